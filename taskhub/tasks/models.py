from datetime import date
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaskStatus(str, Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskType(str, Enum):
    REGULAR = "regular"
    SHOPPING = "shopping"


class Privacy(str, Enum):
    PUBLIC = "public"
    PRIVATE = "private"


class ShoppingItemInput(BaseModel):
    id: Optional[str] = None
    name: str
    quantity: int = Field(default=1, ge=1)
    completed: bool = False


class TaskCreate(BaseModel):
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    priority: Priority = Priority.MEDIUM
    channel_id: Optional[str] = None
    type: TaskType = TaskType.REGULAR
    shopping_items: Optional[List[ShoppingItemInput]] = None
    privacy: Optional[Privacy] = None


class TaskUpdate(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = Field(default=None, pattern=r"^([01]\d|2[0-3]):[0-5]\d$")
    priority: Optional[Priority] = None
    status: Optional[TaskStatus] = None
    type: Optional[TaskType] = None
    shopping_items: Optional[List[ShoppingItemInput]] = None
    privacy: Optional[Privacy] = None


class TaskCompletion(BaseModel):
    completed: bool


class ShoppingItemResponse(BaseModel):
    id: str
    name: str
    quantity: int
    completed: bool


class TaskResponse(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    due_date: Optional[date] = None
    due_time: Optional[str] = None
    priority: Priority
    completed: bool
    status: TaskStatus
    type: TaskType
    privacy: Privacy
    created_by: str
    created_at: str
    channel_id: Optional[str] = None
    shopping_items: Optional[List[ShoppingItemResponse]] = None
