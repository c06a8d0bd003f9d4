"""Declarative authorization rules.

``can_perform`` is the single policy function. The platform services call it
before every write and treat a refusal as final; the stores call the same
function ahead of time to give quicker, friendlier errors, but a store-side
``True`` never grants anything by itself.

Entities are plain records: ORM ``to_dict()`` output, pydantic models or
anything else exposing the same field names.
"""
from enum import Enum
from typing import Any, Iterable, Optional


class Action(str, Enum):
    CHANNEL_READ = "channel.read"
    CHANNEL_UPDATE = "channel.update"
    CHANNEL_DELETE = "channel.delete"
    CHANNEL_JOIN = "channel.join"
    CHANNEL_JOIN_WITH_CODE = "channel.join_with_code"
    CHANNEL_LEAVE = "channel.leave"
    CHANNEL_ADD_MEMBER = "channel.add_member"
    CHANNEL_REMOVE_MEMBER = "channel.remove_member"
    CHANNEL_MANAGE_ADMINS = "channel.manage_admins"
    CHANNEL_REGENERATE_CODE = "channel.regenerate_code"

    TASK_READ = "task.read"
    TASK_CREATE = "task.create"
    TASK_UPDATE = "task.update"
    TASK_DELETE = "task.delete"
    TASK_TOGGLE = "task.toggle"

    MESSAGE_READ = "message.read"
    MESSAGE_SEND = "message.send"
    MESSAGE_DELETE = "message.delete"

    DIRECT_MESSAGE_SEND = "direct_message.send"
    DIRECT_MESSAGE_READ = "direct_message.read"

    STORAGE_READ = "storage.read"
    STORAGE_WRITE = "storage.write"


def field(entity: Any, name: str, default=None):
    if entity is None:
        return default
    if isinstance(entity, dict):
        return entity.get(name, default)
    return getattr(entity, name, default)


def is_member(channel: Any, user_id: Optional[str]) -> bool:
    return bool(user_id) and user_id in (field(channel, "members") or [])


def is_admin(channel: Any, user_id: Optional[str]) -> bool:
    # the creator is always privileged, even if the admin list says otherwise
    return bool(user_id) and (
        user_id in (field(channel, "admins") or []) or is_creator(channel, user_id)
    )


def is_creator(channel: Any, user_id: Optional[str]) -> bool:
    return bool(user_id) and field(channel, "created_by") == user_id


def shares_channel(channels: Iterable[Any], first: str, second: str) -> bool:
    """True iff some channel lists both identities as members."""
    return any(is_member(c, first) and is_member(c, second) for c in channels)


def _channel_rule(action: Action, actor: str, channel: Any, context: dict) -> bool:
    if action == Action.CHANNEL_READ:
        return bool(field(channel, "is_public")) or is_member(channel, actor)
    if action in (Action.CHANNEL_UPDATE, Action.CHANNEL_REGENERATE_CODE,
                  Action.CHANNEL_ADD_MEMBER, Action.CHANNEL_REMOVE_MEMBER):
        return is_member(channel, actor) and is_admin(channel, actor)
    if action in (Action.CHANNEL_DELETE, Action.CHANNEL_MANAGE_ADMINS):
        return is_creator(channel, actor)
    if action == Action.CHANNEL_JOIN:
        return not is_member(channel, actor) and bool(field(channel, "is_public"))
    if action == Action.CHANNEL_JOIN_WITH_CODE:
        code = context.get("invite_code")
        return (
            not is_member(channel, actor)
            and not field(channel, "is_public")
            and bool(code)
            and code == field(channel, "invite_code")
        )
    if action == Action.CHANNEL_LEAVE:
        return is_member(channel, actor) and not is_creator(channel, actor)
    return False


def _task_rule(action: Action, actor: str, task: Any, context: dict) -> bool:
    channel = context.get("channel")
    if field(task, "channel_id"):
        # channel tasks are shared by the members of the owning channel
        if channel is None or not is_member(channel, actor):
            return False
        if action == Action.TASK_CREATE:
            return field(task, "created_by") == actor
        if action in (Action.TASK_READ, Action.TASK_TOGGLE):
            return True
        if action in (Action.TASK_UPDATE, Action.TASK_DELETE):
            return field(task, "created_by") == actor or is_admin(channel, actor)
        return False

    owner = field(task, "created_by") == actor
    if action == Action.TASK_READ:
        return owner or field(task, "privacy") == "public"
    return owner


def _message_rule(action: Action, actor: str, message: Any, context: dict) -> bool:
    if action == Action.MESSAGE_DELETE:
        return field(message, "sender_id") == actor
    channel = context.get("channel")
    if not is_member(channel, actor):
        return False
    if action == Action.MESSAGE_SEND:
        return field(message, "sender_id") == actor
    return True


def _direct_message_rule(action: Action, actor: str, message: Any, context: dict) -> bool:
    if action == Action.DIRECT_MESSAGE_READ:
        return actor in (field(message, "sender_id"), field(message, "receiver_id"))
    receiver = field(message, "receiver_id")
    return (
        field(message, "sender_id") == actor
        and bool(receiver)
        and shares_channel(context.get("channels") or [], actor, receiver)
    )


def can_perform(action: Action, actor: Optional[str], entity: Any = None, **context) -> bool:
    """Decide whether ``actor`` may perform ``action`` on ``entity``.

    Context keys: ``channel`` for task and message rules, ``invite_code`` for
    joining with a code, ``channels`` (the channels to look for a shared
    membership in) for direct messages.
    """
    if not actor:
        return False
    action = Action(action)
    group = action.value.split(".", 1)[0]
    if group == "channel":
        return entity is not None and _channel_rule(action, actor, entity, context)
    if group == "task":
        return entity is not None and _task_rule(action, actor, entity, context)
    if group == "message":
        return entity is not None and _message_rule(action, actor, entity, context)
    if group == "direct_message":
        return entity is not None and _direct_message_rule(action, actor, entity, context)
    if action == Action.STORAGE_READ:
        return True
    if action == Action.STORAGE_WRITE:
        return field(entity, "owner_id") == actor
    return False
