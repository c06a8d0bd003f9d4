"""Live query subscriptions.

A listener registers a topic and a query. The query runs once right away and
again every time a service publishes the topic after a committed write; the
result replaces whatever the listener had before. Delivery is synchronous on
the publishing call, so every listener sees updates in commit order.
"""
import logging
import threading
from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from taskhub.errors import ProviderError, TaskHubError

logger = logging.getLogger(__name__)

CHANNELS = "channels"
PERSONAL_TASKS = "tasks"
DIRECT_MESSAGES = "direct_messages"
USERS = "users"


def channel_tasks(channel_id: str) -> str:
    return f"channels/{channel_id}/tasks"


def channel_messages(channel_id: str) -> str:
    return f"channels/{channel_id}/messages"


Query = Callable[[Session], Any]
SnapshotHandler = Callable[[Any], None]
ErrorHandler = Callable[[TaskHubError], None]


class _Subscription:
    __slots__ = ("topic", "query", "on_snapshot", "on_error", "active")

    def __init__(self, topic, query, on_snapshot, on_error):
        self.topic = topic
        self.query = query
        self.on_snapshot = on_snapshot
        self.on_error = on_error
        self.active = True


class RealtimeHub:
    def __init__(self, session_factory):
        self._session_factory = session_factory
        self._subscriptions: Dict[str, List[_Subscription]] = defaultdict(list)
        self._lock = threading.RLock()

    def listen(
        self,
        topic: str,
        query: Query,
        on_snapshot: SnapshotHandler,
        on_error: Optional[ErrorHandler] = None,
    ) -> Callable[[], None]:
        """Subscribe to ``topic``; returns an idempotent unsubscribe handle."""
        subscription = _Subscription(topic, query, on_snapshot, on_error)
        with self._lock:
            self._subscriptions[topic].append(subscription)
        logger.debug("listen topic=%s", topic)

        def unsubscribe() -> None:
            if not subscription.active:
                return
            subscription.active = False
            with self._lock:
                listeners = self._subscriptions.get(topic, [])
                if subscription in listeners:
                    listeners.remove(subscription)
                if not listeners:
                    self._subscriptions.pop(topic, None)
            logger.debug("unlisten topic=%s", topic)

        self._deliver(subscription)
        return unsubscribe

    def publish(self, *topics: str) -> None:
        for topic in dict.fromkeys(topics):
            with self._lock:
                listeners = list(self._subscriptions.get(topic, []))
            for subscription in listeners:
                if subscription.active:
                    self._deliver(subscription)

    def listener_count(self, topic: Optional[str] = None) -> int:
        with self._lock:
            if topic is not None:
                return len(self._subscriptions.get(topic, []))
            return sum(len(subs) for subs in self._subscriptions.values())

    def _deliver(self, subscription: _Subscription) -> None:
        db = self._session_factory()
        try:
            snapshot = subscription.query(db)
        except TaskHubError as exc:
            self._fail(subscription, exc)
            return
        except SQLAlchemyError:
            logger.exception("Snapshot query failed for topic=%s", subscription.topic)
            self._fail(subscription, ProviderError(f"Failed to load {subscription.topic}"))
            return
        finally:
            db.close()

        if not subscription.active:
            return
        try:
            subscription.on_snapshot(snapshot)
        except Exception:
            # a broken listener must not undo or abort the write that triggered it
            logger.exception("Snapshot listener failed for topic=%s", subscription.topic)

    def _fail(self, subscription: _Subscription, error: TaskHubError) -> None:
        if not subscription.active:
            return
        logger.warning("Snapshot error topic=%s: %s", subscription.topic, error)
        if subscription.on_error is not None:
            subscription.on_error(error)
