import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from taskhub import realtime as topics
from taskhub.database import Channel, ShoppingItem, Task, new_id, server_timestamp, transaction
from taskhub.errors import InvalidInput, ItemNotFound, NotFound, PermissionDenied
from taskhub.realtime import RealtimeHub
from taskhub.rules import Action, can_perform
from taskhub.tasks.models import ShoppingItemInput, TaskCreate, TaskResponse, TaskUpdate
from taskhub.tasks.status import COMPLETED, IN_PROGRESS, NOT_STARTED, derive_status, status_after_toggle

logger = logging.getLogger(__name__)


def present_task(task: Task) -> TaskResponse:
    return TaskResponse(**task.to_dict())


def personal_tasks_query(user_id: str) -> Callable[[Session], List[TaskResponse]]:
    """The caller's own tasks plus everybody's public personal tasks, newest first"""
    def run(db: Session) -> List[TaskResponse]:
        tasks = (
            db.query(Task)
            .filter(Task.channel_id.is_(None))
            .filter(or_(Task.created_by == user_id, Task.privacy == "public"))
            .order_by(Task.created_at.desc())
            .all()
        )
        return [present_task(t) for t in tasks]
    return run


def channel_tasks_query(channel_id: str, user_id: str) -> Callable[[Session], List[TaskResponse]]:
    def run(db: Session) -> List[TaskResponse]:
        channel = db.query(Channel).filter(Channel.id == channel_id).first()
        if not channel:
            raise NotFound("Channel not found")
        probe = {"channel_id": channel_id}
        if not can_perform(Action.TASK_READ, user_id, probe, channel=channel.to_dict()):
            raise PermissionDenied("Only channel members can view channel tasks")
        tasks = (
            db.query(Task)
            .filter(Task.channel_id == channel_id)
            .order_by(Task.created_at.desc())
            .all()
        )
        return [present_task(t) for t in tasks]
    return run


def build_shopping_items(items: List[ShoppingItemInput], keep_state: bool) -> List[ShoppingItem]:
    """ORM items with ids unique within the list.

    New tasks always get fresh ids and unticked items; updates keep the
    caller's ids and flags and only fill in missing ids.
    """
    taken = set()
    if keep_state:
        for item in items:
            if item.id is None:
                continue
            if item.id in taken:
                raise InvalidInput(f"Duplicate shopping item id: {item.id}")
            taken.add(item.id)

    built = []
    for position, item in enumerate(items):
        name = (item.name or "").strip()
        if not name:
            raise InvalidInput("Shopping item name cannot be empty")

        item_id = item.id if keep_state else None
        while item_id is None or (item_id in taken and not (keep_state and item.id == item_id)):
            item_id = new_id()
        taken.add(item_id)

        built.append(ShoppingItem(
            id=item_id,
            name=name,
            quantity=item.quantity,
            completed=item.completed if keep_state else False,
            position=position,
        ))
    return built


class TaskService:
    def __init__(self, db: Session, realtime: Optional[RealtimeHub] = None):
        self.db = db
        self.realtime = realtime

    def _publish_for(self, channel_id: Optional[str]) -> None:
        if self.realtime is not None:
            self.realtime.publish(topics.channel_tasks(channel_id) if channel_id else topics.PERSONAL_TASKS)

    def _channel_record(self, channel_id: Optional[str]) -> Optional[Dict]:
        if not channel_id:
            return None
        channel = self.db.query(Channel).filter(Channel.id == channel_id).first()
        if not channel:
            raise NotFound("Channel not found")
        return channel.to_dict()

    def _load(self, task_id: str, channel_id: Optional[str] = None) -> Task:
        query = self.db.query(Task).filter(Task.id == task_id)
        if channel_id:
            query = query.filter(Task.channel_id == channel_id)
        else:
            query = query.filter(Task.channel_id.is_(None))
        task = query.first()
        if not task:
            raise NotFound("Task not found")
        return task

    def _authorize(self, action: Action, user_id: str, task: Task, message: str) -> None:
        channel = self._channel_record(task.channel_id)
        if not can_perform(action, user_id, task.to_dict(), channel=channel):
            raise PermissionDenied(message)

    def get_task(self, task_id: str, user_id: str, channel_id: Optional[str] = None) -> Task:
        task = self._load(task_id, channel_id)
        self._authorize(Action.TASK_READ, user_id, task, "You cannot view this task")
        return task

    def get_visible_tasks(self, user_id: str) -> List[TaskResponse]:
        return personal_tasks_query(user_id)(self.db)

    def get_tasks_by_channel(self, channel_id: str, user_id: str) -> List[TaskResponse]:
        return channel_tasks_query(channel_id, user_id)(self.db)

    def create_task(self, user_id: str, task_data: TaskCreate) -> Task:
        title = (task_data.title or "").strip()
        if not title:
            raise InvalidInput("Task title cannot be empty")
        if task_data.type != "shopping" and task_data.shopping_items:
            raise InvalidInput("Only shopping tasks can have shopping items")

        channel = self._channel_record(task_data.channel_id)
        probe = {"channel_id": task_data.channel_id, "created_by": user_id}
        if not can_perform(Action.TASK_CREATE, user_id, probe, channel=channel):
            raise PermissionDenied("Only channel members can add tasks to this channel")

        with transaction(self.db) as db_transaction:
            task = Task(
                title=title,
                description=task_data.description,
                due_date=task_data.due_date,
                due_time=task_data.due_time,
                priority=task_data.priority.value,
                completed=False,
                status=NOT_STARTED,
                type=task_data.type.value,
                privacy=(task_data.privacy.value if task_data.privacy else "private"),
                created_by=user_id,
                channel_id=task_data.channel_id,
            )
            if task_data.type == "shopping":
                task.shopping_items = build_shopping_items(task_data.shopping_items or [], keep_state=False)
            db_transaction.add(task)

        logger.info("Task %s created by %s (channel=%s, type=%s)", task.id, user_id, task.channel_id, task.type)
        self._publish_for(task.channel_id)
        return task

    def update_task(self, task_id: str, user_id: str, task_data: TaskUpdate, channel_id: Optional[str] = None) -> Task:
        task = self._load(task_id, channel_id)
        self._authorize(Action.TASK_UPDATE, user_id, task, "Only the task creator or a channel admin can edit this task")

        updates = task_data.model_dump(exclude_unset=True)
        new_type = updates.get("type") or task.type
        if new_type != "shopping" and updates.get("shopping_items"):
            raise InvalidInput("Only shopping tasks can have shopping items")
        if new_type == "shopping" and updates.get("status") is not None:
            raise InvalidInput("The status of a shopping task follows its items")

        with transaction(self.db):
            if "title" in updates:
                title = (updates["title"] or "").strip()
                if not title:
                    raise InvalidInput("Task title cannot be empty")
                task.title = title
            for name in ("description", "due_date", "due_time"):
                if name in updates:
                    setattr(task, name, updates[name])
            for name in ("priority", "privacy"):
                if updates.get(name) is not None:
                    setattr(task, name, updates[name].value)
            task.type = getattr(new_type, "value", new_type)

            if task.type == "shopping":
                if task_data.shopping_items is not None:
                    task.shopping_items = self._merge_items(task, task_data.shopping_items)
                self._apply_status(task, derive_status(task.shopping_items))
            else:
                task.shopping_items = []
                if updates.get("status") is not None:
                    self._apply_status(task, updates["status"].value)

        logger.info("Task %s updated by %s: %s", task_id, user_id, sorted(updates))
        self._publish_for(task.channel_id)
        return task

    def delete_task(self, task_id: str, user_id: str, channel_id: Optional[str] = None) -> None:
        task = self._load(task_id, channel_id)
        self._authorize(Action.TASK_DELETE, user_id, task, "Only the task creator or a channel admin can delete this task")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(task)

        logger.info("Task %s deleted by %s", task_id, user_id)
        self._publish_for(channel_id)

    def toggle_task_completion(self, task_id: str, user_id: str, completed: bool,
                               channel_id: Optional[str] = None) -> Task:
        task = self._load(task_id, channel_id)
        self._authorize(Action.TASK_TOGGLE, user_id, task, "You cannot update this task")

        with transaction(self.db):
            if task.type == "shopping":
                for item in task.shopping_items:
                    item.completed = completed
                # an empty list still takes the requested state
                self._apply_status(task, COMPLETED if completed else NOT_STARTED)
            else:
                self._apply_status(task, status_after_toggle(completed, task.started_at is not None))

        logger.info("Task %s marked completed=%s by %s", task_id, completed, user_id)
        self._publish_for(task.channel_id)
        return task

    def toggle_shopping_item(self, task_id: str, item_id: str, user_id: str, completed: bool,
                             channel_id: Optional[str] = None) -> Task:
        task = self._load(task_id, channel_id)
        self._authorize(Action.TASK_TOGGLE, user_id, task, "You cannot update this task")

        item = next((i for i in task.shopping_items if i.id == item_id), None)
        if item is None:
            raise ItemNotFound()

        with transaction(self.db):
            item.completed = completed
            # recomputed over the whole list, not just the toggled item
            self._apply_status(task, derive_status(task.shopping_items))

        logger.info("Item %s of task %s marked completed=%s by %s", item_id, task_id, completed, user_id)
        self._publish_for(task.channel_id)
        return task

    @staticmethod
    def _merge_items(task: Task, items: List[ShoppingItemInput]) -> List[ShoppingItem]:
        """Update items in place by id so a kept id never hits the
        (task_id, id) constraint twice within one flush."""
        existing = {item.id: item for item in task.shopping_items}
        merged = []
        for incoming in build_shopping_items(items, keep_state=True):
            current = existing.get(incoming.id)
            if current is None:
                merged.append(incoming)
                continue
            current.name = incoming.name
            current.quantity = incoming.quantity
            current.completed = incoming.completed
            current.position = incoming.position
            merged.append(current)
        return merged

    @staticmethod
    def _apply_status(task: Task, status: str) -> None:
        task.status = status
        task.completed = status == COMPLETED
        if status == IN_PROGRESS and task.started_at is None:
            task.started_at = server_timestamp()
