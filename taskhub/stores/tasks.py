import logging
from collections import Counter
from datetime import date
from functools import partial
from typing import Callable, Dict, List, Optional, Union

from taskhub import realtime as topics
from taskhub.backend import Backend
from taskhub.errors import ItemNotFound
from taskhub.stores.base import Store, parse_input
from taskhub.stores.channels import ChannelStore
from taskhub.stores.session import SessionStore
from taskhub.tasks.models import TaskCreate, TaskResponse, TaskStatus, TaskUpdate
from taskhub.tasks.services import TaskService, channel_tasks_query, personal_tasks_query, present_task

logger = logging.getLogger(__name__)


class TaskStore(Store):
    """Personal, public and channel tasks of the signed-in identity.

    Snapshots land in partitions: one for personal-or-public tasks and one
    per joined channel. Each snapshot replaces its partition wholesale and
    ``tasks`` is the merge of all of them keyed by task id.
    """

    def __init__(self, backend: Backend, session: SessionStore, channels: ChannelStore):
        super().__init__(backend)
        self.session = session
        self.channels = channels
        self._user_id: Optional[str] = None
        self._personal: List[TaskResponse] = []
        self._by_channel: Dict[str, List[TaskResponse]] = {}
        self._personal_subscription: Optional[Callable[[], None]] = None
        self._channel_subscriptions: Dict[str, Callable[[], None]] = {}
        self._unsubscribers = [
            session.subscribe(self._on_session_change),
            channels.subscribe(self._on_channels_change),
        ]
        self._on_session_change(session)

    # -- subscriptions -----------------------------------------------------

    def _ensure_user(self) -> None:
        user_id = self.session.user_id
        if user_id == self._user_id:
            return
        self._teardown()
        self._user_id = user_id
        self.error = None
        if user_id is not None:
            self._personal_subscription = self.backend.realtime.listen(
                topics.PERSONAL_TASKS, personal_tasks_query(user_id),
                self._set_personal, self._on_subscription_error,
            )
        self._notify()

    def _on_session_change(self, session: SessionStore) -> None:
        self._ensure_user()
        self._sync_channels()

    def _on_channels_change(self, channels: ChannelStore) -> None:
        self._ensure_user()
        self._sync_channels()

    def _sync_channels(self) -> None:
        if self._user_id is None:
            return
        wanted = [c.id for c in self.channels.joined_channels]
        dropped = [cid for cid in self._channel_subscriptions if cid not in wanted]
        for channel_id in dropped:
            self._channel_subscriptions.pop(channel_id)()
            self._by_channel.pop(channel_id, None)
            logger.debug("Stopped following tasks of channel %s", channel_id)

        for channel_id in wanted:
            if channel_id in self._channel_subscriptions:
                continue
            self._channel_subscriptions[channel_id] = self.backend.realtime.listen(
                topics.channel_tasks(channel_id), channel_tasks_query(channel_id, self._user_id),
                partial(self._set_channel, channel_id), self._on_subscription_error,
            )
        if dropped:
            self._notify()

    def _set_personal(self, tasks: List[TaskResponse]) -> None:
        self._personal = tasks
        self._notify()

    def _set_channel(self, channel_id: str, tasks: List[TaskResponse]) -> None:
        self._by_channel[channel_id] = tasks
        self._notify()

    def _teardown(self) -> None:
        if self._personal_subscription is not None:
            self._personal_subscription()
            self._personal_subscription = None
        subscriptions, self._channel_subscriptions = self._channel_subscriptions, {}
        for unsubscribe in subscriptions.values():
            unsubscribe()
        self._personal = []
        self._by_channel = {}

    def dispose(self) -> None:
        self._teardown()
        for unsubscribe in self._unsubscribers:
            unsubscribe()

    # -- views -------------------------------------------------------------

    @property
    def tasks(self) -> List[TaskResponse]:
        merged: Dict[str, TaskResponse] = {task.id: task for task in self._personal}
        for partition in self._by_channel.values():
            merged.update((task.id, task) for task in partition)
        return list(merged.values())

    def personal_tasks(self) -> List[TaskResponse]:
        return [t for t in self._personal if t.created_by == self._user_id]

    def public_tasks(self) -> List[TaskResponse]:
        """Public personal tasks of other identities"""
        return [t for t in self._personal if t.created_by != self._user_id]

    def channel_tasks(self, channel_id: Optional[str] = None) -> List[TaskResponse]:
        if channel_id is not None:
            return list(self._by_channel.get(channel_id, []))
        return [task for partition in self._by_channel.values() for task in partition]

    def tasks_for_date(self, day: date) -> List[TaskResponse]:
        return [t for t in self.tasks if t.due_date == day]

    def status_summary(self) -> Dict[str, int]:
        """Task counts per status plus ``active`` (not yet completed)"""
        counts = Counter(t.status.value for t in self.tasks)
        summary = {status.value: counts.get(status.value, 0) for status in TaskStatus}
        summary["total"] = sum(counts.values())
        summary["active"] = summary["total"] - summary[TaskStatus.COMPLETED.value]
        return summary

    # -- operations --------------------------------------------------------

    def add_task(self, task_input: Union[TaskCreate, dict]) -> str:
        title = task_input.title if isinstance(task_input, TaskCreate) else task_input.get("title")
        with self._operation("add_task", title):
            data = parse_input(TaskCreate, task_input)
            user = self.session.require_user()
            with self._service(TaskService) as service:
                return service.create_task(user.id, data).id

    def update_task(self, task_id: str, updates: Union[TaskUpdate, dict],
                    channel_id: Optional[str] = None) -> TaskResponse:
        with self._operation("update_task", task_id):
            data = parse_input(TaskUpdate, updates)
            user = self.session.require_user()
            with self._service(TaskService) as service:
                return present_task(service.update_task(task_id, user.id, data, channel_id))

    def delete_task(self, task_id: str, channel_id: Optional[str] = None) -> None:
        with self._operation("delete_task", task_id):
            user = self.session.require_user()
            with self._service(TaskService) as service:
                service.delete_task(task_id, user.id, channel_id)

    def toggle_task_completion(self, task_id: str, completed: bool,
                               channel_id: Optional[str] = None) -> TaskResponse:
        with self._operation("toggle_task_completion", task_id):
            user = self.session.require_user()
            with self._service(TaskService) as service:
                return present_task(service.toggle_task_completion(task_id, user.id, completed, channel_id))

    def toggle_shopping_item(self, task_id: str, item_id: str, completed: bool,
                             channel_id: Optional[str] = None) -> TaskResponse:
        with self._operation("toggle_shopping_item", (task_id, item_id)):
            user = self.session.require_user()
            with self._service(TaskService) as service:
                task = service.get_task(task_id, user.id, channel_id)
                if not any(item.id == item_id for item in task.shopping_items):
                    raise ItemNotFound()
                return present_task(service.toggle_shopping_item(task_id, item_id, user.id, completed, channel_id))

    def get_tasks_by_channel(self, channel_id: str) -> List[TaskResponse]:
        with self._operation("get_tasks_by_channel", channel_id):
            user = self.session.require_user()
            with self._service(TaskService) as service:
                return service.get_tasks_by_channel(channel_id, user.id)
