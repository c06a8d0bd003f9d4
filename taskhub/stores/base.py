"""Shared plumbing for the reactive stores.

A store owns some in-memory state, tells its listeners whenever that state
changes and records the last failure as a human-readable ``error``. Writes
re-raise after recording; live-query failures are only recorded.
"""
import logging
from contextlib import contextmanager
from enum import Enum
from typing import Any, Callable, Hashable, List, Optional, Set, Tuple

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from taskhub.backend import Backend
from taskhub.errors import InvalidInput, OperationInProgress, ProviderError, TaskHubError

logger = logging.getLogger(__name__)

Listener = Callable[["Store"], None]


def parse_input(model_cls, value):
    """``value`` as ``model_cls``; validation failures become InvalidInput"""
    if isinstance(value, model_cls):
        return value
    try:
        return model_cls(**value)
    except ValidationError as exc:
        first = exc.errors()[0]
        where = ".".join(str(part) for part in first.get("loc", ()))
        raise InvalidInput(f"{where}: {first['msg']}" if where else first["msg"]) from exc


class Store:
    def __init__(self, backend: Backend):
        self.backend = backend
        self.loading = False
        self.error: Optional[str] = None
        self._listeners: List[Listener] = []
        self._pending: Set[Tuple[str, Hashable]] = set()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Call ``listener(store)`` after every state change until the
        returned handle is called."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            listener(self)

    def _record(self, error: TaskHubError) -> None:
        self.error = error.detail
        logger.warning("%s: %s", type(self).__name__, error.detail)
        self._notify()

    def _on_subscription_error(self, error: TaskHubError) -> None:
        self._record(error)

    @contextmanager
    def _operation(self, name: str, key: Hashable = None):
        """Wrap one write. A second call with the same name and key while the
        first is still running is refused."""
        token = (name, key)
        if token in self._pending:
            raise OperationInProgress()
        self._pending.add(token)
        self.error = None
        self.loading = True
        try:
            yield
        except TaskHubError as exc:
            self._record(exc)
            raise
        except SQLAlchemyError as exc:
            logger.exception("%s.%s failed in the database", type(self).__name__, name)
            error = ProviderError()
            self._record(error)
            raise error from exc
        finally:
            self._pending.discard(token)
            self.loading = bool(self._pending)

    @contextmanager
    def _service(self, service_cls):
        with self.backend.session() as db:
            yield service_cls(db, self.backend.realtime)


class ConversationState(str, Enum):
    UNSUBSCRIBED = "unsubscribed"
    SUBSCRIBING = "subscribing"
    LIVE = "live"


class ConversationStore(Store):
    """One live conversation at a time; opening another one first tears the
    current subscription down."""

    def __init__(self, backend: Backend):
        super().__init__(backend)
        self.messages: List[Any] = []
        self.state = ConversationState.UNSUBSCRIBED
        self.conversation: Optional[str] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    def _open(self, key: str, topic: str, query) -> List[Any]:
        self.close()
        self.conversation = key
        self.messages = []
        self.state = ConversationState.SUBSCRIBING
        self.error = None
        self.loading = True
        self._notify()

        unsubscribe = self.backend.realtime.listen(
            topic, query,
            lambda messages: self._on_messages(key, messages),
            lambda error: self._on_conversation_error(key, error),
        )
        if self.conversation != key or self.state != ConversationState.LIVE:
            # the first snapshot failed, or a listener already switched away
            unsubscribe()
            if self.conversation == key:
                self.state = ConversationState.UNSUBSCRIBED
                self.conversation = None
                self._notify()
            return []

        self._unsubscribe = unsubscribe
        return list(self.messages)

    def _on_messages(self, key: str, messages: List[Any]) -> None:
        if self.conversation != key:
            return
        self.messages = messages
        self.state = ConversationState.LIVE
        self.loading = False
        self._notify()

    def _on_conversation_error(self, key: str, error: TaskHubError) -> None:
        if self.conversation != key:
            return
        self.loading = False
        # a live conversation keeps showing its last known messages
        self._record(error)

    def close(self) -> None:
        """Release the live subscription; safe to call at any time."""
        unsubscribe, self._unsubscribe = self._unsubscribe, None
        if unsubscribe is not None:
            unsubscribe()
        if self.state != ConversationState.UNSUBSCRIBED or self.conversation is not None:
            self.state = ConversationState.UNSUBSCRIBED
            self.conversation = None
            self.loading = False
            self._notify()

    def reset(self) -> None:
        self.close()
        self.messages = []
        self.error = None
        self._notify()
