import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone

from sqlalchemy import (
    Boolean, Column, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text,
    UniqueConstraint, create_engine,
)
from sqlalchemy.orm import Session, declarative_base, relationship, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

_clock_lock = threading.Lock()
_last_timestamp = datetime.min


def server_timestamp() -> datetime:
    """Naive UTC timestamp, strictly increasing within the process so that
    ordering by creation time is total."""
    global _last_timestamp
    with _clock_lock:
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        if now <= _last_timestamp:
            now = _last_timestamp + timedelta(microseconds=1)
        _last_timestamp = now
        return now


def new_id() -> str:
    return str(uuid.uuid4())


def _iso(value):
    return value.isoformat() if value else None


# Identity
class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String(255), unique=True, nullable=False, index=True)
    display_name = Column(String(100), nullable=False)
    photo_url = Column(String(500), nullable=True)
    password_hash = Column(String(128), nullable=False)
    password_salt = Column(String(64), nullable=False)
    created_at = Column(DateTime, default=server_timestamp)

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "display_name": self.display_name,
            "photo_url": self.photo_url,
            "created_at": _iso(self.created_at),
        }


class Channel(Base):
    __tablename__ = "channels"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    is_public = Column(Boolean, nullable=False, default=True)
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False)
    created_at = Column(DateTime, default=server_timestamp, index=True)
    invite_code = Column(String(64), unique=True, nullable=True, index=True)

    memberships = relationship(
        "ChannelMember", back_populates="channel",
        cascade="all, delete-orphan", order_by="ChannelMember.joined_at",
    )
    tasks = relationship("Task", back_populates="channel", cascade="all, delete-orphan")
    messages = relationship("Message", back_populates="channel", cascade="all, delete-orphan")

    @property
    def members(self):
        return [m.user_id for m in self.memberships]

    @property
    def admins(self):
        return [m.user_id for m in self.memberships if m.role in ("creator", "admin")]

    def membership_for(self, user_id):
        for membership in self.memberships:
            if membership.user_id == user_id:
                return membership
        return None

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "description": self.description,
            "is_public": self.is_public,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "members": self.members,
            "admins": self.admins,
            "invite_code": self.invite_code,
        }


class ChannelMember(Base):
    __tablename__ = "channel_members"

    id = Column(String(36), primary_key=True, default=new_id)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    role = Column(Enum("creator", "admin", "member", name="channel_roles"), nullable=False)
    joined_at = Column(DateTime, default=server_timestamp)

    channel = relationship("Channel", back_populates="memberships")
    user = relationship("User")

    __table_args__ = (
        UniqueConstraint("channel_id", "user_id", name="unique_channel_member"),
        Index("ix_channel_members_channel_user", "channel_id", "user_id"),
    )


class Task(Base):
    __tablename__ = "tasks"

    id = Column(String(36), primary_key=True, default=new_id)
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    due_date = Column(Date, nullable=True, index=True)
    due_time = Column(String(5), nullable=True)
    priority = Column(Enum("low", "medium", "high", name="task_priorities"), nullable=False, default="medium")
    completed = Column(Boolean, nullable=False, default=False)
    status = Column(
        Enum("not_started", "in_progress", "completed", name="task_statuses"),
        nullable=False, default="not_started",
    )
    type = Column(Enum("regular", "shopping", name="task_types"), nullable=False, default="regular")
    privacy = Column(Enum("public", "private", name="task_privacy"), nullable=False, default="private")
    created_by = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime, default=server_timestamp, index=True)
    started_at = Column(DateTime, nullable=True)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=True, index=True)

    channel = relationship("Channel", back_populates="tasks")
    shopping_items = relationship(
        "ShoppingItem", back_populates="task",
        cascade="all, delete-orphan", order_by="ShoppingItem.position",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "due_date": _iso(self.due_date),
            "due_time": self.due_time,
            "priority": self.priority,
            "completed": self.completed,
            "status": self.status,
            "type": self.type,
            "privacy": self.privacy,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "channel_id": self.channel_id,
            "shopping_items": [item.to_dict() for item in self.shopping_items]
            if self.type == "shopping" else None,
        }


class ShoppingItem(Base):
    __tablename__ = "shopping_items"

    pk = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String(36), nullable=False)
    task_id = Column(String(36), ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    completed = Column(Boolean, nullable=False, default=False)
    position = Column(Integer, nullable=False, default=0)

    task = relationship("Task", back_populates="shopping_items")

    __table_args__ = (
        UniqueConstraint("task_id", "id", name="unique_item_per_task"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "completed": self.completed,
        }


class Message(Base):
    __tablename__ = "messages"

    id = Column(String(36), primary_key=True, default=new_id)
    channel_id = Column(String(36), ForeignKey("channels.id", ondelete="CASCADE"), nullable=False, index=True)
    content = Column(Text, nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False)
    sender_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=server_timestamp, index=True)

    channel = relationship("Channel", back_populates="messages")

    def to_dict(self):
        return {
            "id": self.id,
            "channel_id": self.channel_id,
            "content": self.content,
            "sender_id": self.sender_id,
            "sender_name": self.sender_name,
            "created_at": _iso(self.created_at),
        }


class DirectMessage(Base):
    __tablename__ = "direct_messages"

    id = Column(String(36), primary_key=True, default=new_id)
    content = Column(Text, nullable=False)
    sender_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    receiver_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    sender_name = Column(String(100), nullable=False)
    created_at = Column(DateTime, default=server_timestamp, index=True)

    __table_args__ = (
        Index("ix_direct_messages_pair", "sender_id", "receiver_id"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "content": self.content,
            "sender_id": self.sender_id,
            "receiver_id": self.receiver_id,
            "sender_name": self.sender_name,
            "created_at": _iso(self.created_at),
        }


def create_db_engine(database_url: str):
    """Engine for the given URL; in-memory SQLite shares one connection."""
    if database_url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if ":memory:" in database_url or database_url in ("sqlite://", "sqlite:///"):
            kwargs["poolclass"] = StaticPool
        return create_engine(database_url, **kwargs)
    return create_engine(database_url, pool_pre_ping=True)


def init_db(engine) -> sessionmaker:
    """Create the tables and return a session factory bound to the engine."""
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)


@contextmanager
def transaction(db: Session):
    """Commit on success, roll back and re-raise on any error."""
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
