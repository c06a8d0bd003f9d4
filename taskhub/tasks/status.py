"""Status derivation for tasks and shopping lists."""
from typing import Any, Iterable

from taskhub.rules import field

NOT_STARTED = "not_started"
IN_PROGRESS = "in_progress"
COMPLETED = "completed"


def derive_status(items: Iterable[Any]) -> str:
    """not_started if no item is ticked, completed if all are, else in_progress.

    An empty list counts as not started.
    """
    flags = [bool(field(item, "completed")) for item in items]
    if flags and all(flags):
        return COMPLETED
    if any(flags):
        return IN_PROGRESS
    return NOT_STARTED


def status_after_toggle(completed: bool, was_started: bool) -> str:
    """Status of a regular task once its completed flag is set"""
    if completed:
        return COMPLETED
    return IN_PROGRESS if was_started else NOT_STARTED
