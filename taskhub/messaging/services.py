import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from taskhub import realtime as topics
from taskhub.database import Channel, ChannelMember, DirectMessage, Message, User, transaction
from taskhub.errors import InvalidInput, NotFound, NotPermitted, PermissionDenied
from taskhub.messaging.models import DirectMessageResponse, MessageResponse
from taskhub.realtime import RealtimeHub
from taskhub.rules import Action, can_perform, shares_channel

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 4000
DEFAULT_CHANNEL_LIMIT = 100


def channels_of(db: Session, user_id: str) -> List[Dict]:
    channels = (
        db.query(Channel)
        .join(ChannelMember, ChannelMember.channel_id == Channel.id)
        .filter(ChannelMember.user_id == user_id)
        .all()
    )
    return [c.to_dict() for c in channels]


def users_share_channel(db: Session, first: str, second: str) -> bool:
    return shares_channel(channels_of(db, first), first, second)


def channel_messages_query(channel_id: str, user_id: str,
                           limit: int = DEFAULT_CHANNEL_LIMIT) -> Callable[[Session], List[MessageResponse]]:
    """The most recent ``limit`` messages of a channel, oldest first"""
    def run(db: Session) -> List[MessageResponse]:
        channel = db.query(Channel).filter(Channel.id == channel_id).first()
        if not channel:
            raise NotFound("Channel not found")
        if not can_perform(Action.MESSAGE_READ, user_id, {"channel_id": channel_id}, channel=channel.to_dict()):
            raise PermissionDenied("Only channel members can read messages")
        recent = (
            db.query(Message)
            .filter(Message.channel_id == channel_id)
            .order_by(Message.created_at.desc())
            .limit(limit)
            .all()
        )
        return [MessageResponse(**m.to_dict()) for m in reversed(recent)]
    return run


def conversation_query(user_id: str, other_id: str) -> Callable[[Session], List[DirectMessageResponse]]:
    """Every direct message between two identities, oldest first"""
    def run(db: Session) -> List[DirectMessageResponse]:
        if not users_share_channel(db, user_id, other_id):
            raise NotPermitted("You can only view messages with users who are in the same channels as you")
        messages = (
            db.query(DirectMessage)
            .filter(or_(
                and_(DirectMessage.sender_id == user_id, DirectMessage.receiver_id == other_id),
                and_(DirectMessage.sender_id == other_id, DirectMessage.receiver_id == user_id),
            ))
            .order_by(DirectMessage.created_at.asc())
            .all()
        )
        return [DirectMessageResponse(**m.to_dict()) for m in messages]
    return run


def inbox_query(user_id: str) -> Callable[[Session], List[DirectMessageResponse]]:
    def run(db: Session) -> List[DirectMessageResponse]:
        messages = (
            db.query(DirectMessage)
            .filter(or_(DirectMessage.sender_id == user_id, DirectMessage.receiver_id == user_id))
            .order_by(DirectMessage.created_at.asc())
            .all()
        )
        return [DirectMessageResponse(**m.to_dict()) for m in messages]
    return run


def _clean_content(content: str) -> str:
    text = (content or "").strip()
    if not text:
        raise InvalidInput("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise InvalidInput(f"Message must be at most {MAX_MESSAGE_LENGTH} characters long")
    return text


class MessageService:
    def __init__(self, db: Session, realtime: Optional[RealtimeHub] = None):
        self.db = db
        self.realtime = realtime

    def _publish(self, *names: str) -> None:
        if self.realtime is not None:
            self.realtime.publish(*names)

    def _sender_name(self, user_id: str) -> str:
        user = self.db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user.display_name or "Anonymous"

    def send_channel_message(self, channel_id: str, user_id: str, content: str) -> MessageResponse:
        text = _clean_content(content)
        channel = self.db.query(Channel).filter(Channel.id == channel_id).first()
        if not channel:
            raise NotFound("Channel not found")
        probe = {"channel_id": channel_id, "sender_id": user_id}
        if not can_perform(Action.MESSAGE_SEND, user_id, probe, channel=channel.to_dict()):
            raise PermissionDenied("Only channel members can send messages")

        with transaction(self.db) as db_transaction:
            message = Message(
                channel_id=channel_id,
                content=text,
                sender_id=user_id,
                sender_name=self._sender_name(user_id),
            )
            db_transaction.add(message)

        logger.debug("Message %s sent to channel %s by %s", message.id, channel_id, user_id)
        self._publish(topics.channel_messages(channel_id))
        return MessageResponse(**message.to_dict())

    def get_channel_messages(self, channel_id: str, user_id: str,
                             limit: int = DEFAULT_CHANNEL_LIMIT) -> List[MessageResponse]:
        return channel_messages_query(channel_id, user_id, limit)(self.db)

    def delete_channel_message(self, channel_id: str, message_id: str, user_id: str) -> None:
        message = self.db.query(Message).filter(
            Message.id == message_id,
            Message.channel_id == channel_id,
        ).first()
        if not message:
            raise NotFound("Message not found")
        if not can_perform(Action.MESSAGE_DELETE, user_id, message.to_dict()):
            raise PermissionDenied("You can only delete your own messages")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(message)

        self._publish(topics.channel_messages(channel_id))

    def can_message_user(self, user_id: str, other_id: str) -> bool:
        return users_share_channel(self.db, user_id, other_id)

    def send_direct_message(self, sender_id: str, receiver_id: str, content: str) -> DirectMessageResponse:
        text = _clean_content(content)
        if not self.db.query(User.id).filter(User.id == receiver_id).first():
            raise NotFound("User not found")
        probe = {"sender_id": sender_id, "receiver_id": receiver_id}
        if not can_perform(Action.DIRECT_MESSAGE_SEND, sender_id, probe, channels=channels_of(self.db, sender_id)):
            raise NotPermitted()

        with transaction(self.db) as db_transaction:
            message = DirectMessage(
                content=text,
                sender_id=sender_id,
                receiver_id=receiver_id,
                sender_name=self._sender_name(sender_id),
            )
            db_transaction.add(message)

        logger.debug("Direct message %s from %s to %s", message.id, sender_id, receiver_id)
        self._publish(topics.DIRECT_MESSAGES)
        return DirectMessageResponse(**message.to_dict())

    def get_messages_with_user(self, user_id: str, other_id: str) -> List[DirectMessageResponse]:
        return conversation_query(user_id, other_id)(self.db)

    def get_inbox(self, user_id: str) -> List[DirectMessageResponse]:
        return inbox_query(user_id)(self.db)

    def delete_direct_message(self, message_id: str, user_id: str) -> None:
        message = self.db.query(DirectMessage).filter(DirectMessage.id == message_id).first()
        if not message or not can_perform(Action.DIRECT_MESSAGE_READ, user_id, message.to_dict()):
            raise NotFound("Message not found")
        if not can_perform(Action.MESSAGE_DELETE, user_id, message.to_dict()):
            raise PermissionDenied("You can only delete your own messages")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(message)

        self._publish(topics.DIRECT_MESSAGES)
