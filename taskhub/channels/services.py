import logging
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from taskhub import realtime as topics
from taskhub.auth.security import generate_invite_code
from taskhub.channels.models import ChannelCreate, ChannelMemberResponse, ChannelResponse, ChannelRole, ChannelUpdate
from taskhub.database import Channel, ChannelMember, User, transaction
from taskhub.errors import (
    AlreadyMember, CannotDemoteCreator, CannotRemoveCreator, CreatorCannotLeave, InvalidCode,
    InvalidInput, NotAMember, NotFound, PermissionDenied, WrongChannelType,
)
from taskhub.realtime import RealtimeHub
from taskhub.rules import Action, can_perform, is_admin

logger = logging.getLogger(__name__)


def present_channel(record: Dict, viewer_id: Optional[str]) -> ChannelResponse:
    """Channel as seen by ``viewer_id``; the invite code is for admins only"""
    data = dict(record)
    if not is_admin(data, viewer_id):
        data["invite_code"] = None
    return ChannelResponse(**data)


def joined_channels_query(user_id: str) -> Callable[[Session], List[ChannelResponse]]:
    def run(db: Session) -> List[ChannelResponse]:
        channels = (
            db.query(Channel)
            .join(ChannelMember, ChannelMember.channel_id == Channel.id)
            .filter(ChannelMember.user_id == user_id)
            .order_by(Channel.created_at)
            .all()
        )
        return [present_channel(c.to_dict(), user_id) for c in channels]
    return run


def public_channels_query(user_id: str) -> Callable[[Session], List[ChannelResponse]]:
    """Public channels ``user_id`` has not joined yet"""
    def run(db: Session) -> List[ChannelResponse]:
        joined = db.query(ChannelMember.channel_id).filter(ChannelMember.user_id == user_id)
        channels = (
            db.query(Channel)
            .filter(Channel.is_public.is_(True), Channel.id.not_in(joined))
            .order_by(Channel.created_at)
            .all()
        )
        return [present_channel(c.to_dict(), user_id) for c in channels]
    return run


class ChannelService:
    def __init__(self, db: Session, realtime: Optional[RealtimeHub] = None):
        self.db = db
        self.realtime = realtime

    def _publish(self, *names: str) -> None:
        if self.realtime is not None:
            self.realtime.publish(*names)

    def _load(self, channel_id: str) -> Channel:
        channel = self.db.query(Channel).filter(Channel.id == channel_id).first()
        if not channel:
            raise NotFound("Channel not found")
        return channel

    def _unique_invite_code(self) -> str:
        while True:
            code = generate_invite_code()
            if not self.db.query(Channel.id).filter(Channel.invite_code == code).first():
                return code

    def get_channel(self, channel_id: str, user_id: str) -> Channel:
        """Channel with a read check (public or member)"""
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_READ, user_id, channel.to_dict()):
            raise PermissionDenied("Access denied")
        return channel

    def get_user_channels(self, user_id: str) -> List[ChannelResponse]:
        return joined_channels_query(user_id)(self.db)

    def get_public_channels(self, user_id: str) -> List[ChannelResponse]:
        return public_channels_query(user_id)(self.db)

    def create_channel(self, user_id: str, channel_data: ChannelCreate) -> Channel:
        name = (channel_data.name or "").strip()
        if not name:
            raise InvalidInput("Channel name cannot be empty")

        with transaction(self.db) as db_transaction:
            channel = Channel(
                name=name,
                description=channel_data.description,
                is_public=channel_data.is_public,
                created_by=user_id,
                invite_code=None if channel_data.is_public else self._unique_invite_code(),
            )
            db_transaction.add(channel)
            db_transaction.flush()

            # creator is the sole initial member and admin
            db_transaction.add(ChannelMember(channel_id=channel.id, user_id=user_id, role=ChannelRole.CREATOR.value))

        self.db.refresh(channel)
        logger.info("Channel %s created by %s (public=%s)", channel.id, user_id, channel.is_public)
        self._publish(topics.CHANNELS)
        return channel

    def update_channel(self, channel_id: str, user_id: str, channel_data: ChannelUpdate) -> Channel:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_UPDATE, user_id, channel.to_dict()):
            raise PermissionDenied("Only channel admins can update channel details")

        updates = channel_data.model_dump(exclude_unset=True)
        with transaction(self.db):
            if "name" in updates:
                name = (updates["name"] or "").strip()
                if not name:
                    raise InvalidInput("Channel name cannot be empty")
                channel.name = name
            if "description" in updates:
                channel.description = updates["description"]
            if updates.get("is_public") is not None and updates["is_public"] != channel.is_public:
                channel.is_public = updates["is_public"]
                # the invite code exists exactly while the channel is private
                channel.invite_code = None if channel.is_public else self._unique_invite_code()

        logger.info("Channel %s updated by %s: %s", channel_id, user_id, sorted(updates))
        self._publish(topics.CHANNELS)
        return channel

    def delete_channel(self, channel_id: str, user_id: str) -> None:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_DELETE, user_id, channel.to_dict()):
            raise PermissionDenied("Only the channel creator can delete the channel")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(channel)

        logger.info("Channel %s deleted by %s", channel_id, user_id)
        self._publish(topics.CHANNELS, topics.channel_tasks(channel_id), topics.channel_messages(channel_id))

    def _add_membership(self, channel: Channel, user_id: str) -> None:
        with transaction(self.db) as db_transaction:
            db_transaction.add(ChannelMember(channel_id=channel.id, user_id=user_id, role=ChannelRole.MEMBER.value))
        self.db.refresh(channel)

    def join_channel(self, channel_id: str, user_id: str) -> Channel:
        channel = self._load(channel_id)
        if channel.membership_for(user_id):
            raise AlreadyMember()
        if not can_perform(Action.CHANNEL_JOIN, user_id, channel.to_dict()):
            raise WrongChannelType("This is a private channel. Join it with an invite code.")

        self._add_membership(channel, user_id)
        logger.info("User %s joined channel %s", user_id, channel_id)
        self._publish(topics.CHANNELS)
        return channel

    def join_channel_by_invite_code(self, invite_code: str, user_id: str) -> Channel:
        code = (invite_code or "").strip()
        channel = self.db.query(Channel).filter(Channel.invite_code == code).first() if code else None
        if not channel:
            raise InvalidCode()
        if channel.membership_for(user_id):
            raise AlreadyMember()
        if not can_perform(Action.CHANNEL_JOIN_WITH_CODE, user_id, channel.to_dict(), invite_code=code):
            raise WrongChannelType("This is a public channel. Use the regular join channel function.")

        self._add_membership(channel, user_id)
        logger.info("User %s joined channel %s with an invite code", user_id, channel.id)
        self._publish(topics.CHANNELS)
        return channel

    def leave_channel(self, channel_id: str, user_id: str) -> None:
        channel = self._load(channel_id)
        if channel.created_by == user_id:
            raise CreatorCannotLeave()
        membership = channel.membership_for(user_id)
        if not membership:
            raise NotAMember("You are not a member of this channel")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(membership)

        logger.info("User %s left channel %s", user_id, channel_id)
        self._publish(topics.CHANNELS)

    def add_member(self, channel_id: str, actor_id: str, user_id: str) -> Channel:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_ADD_MEMBER, actor_id, channel.to_dict()):
            raise PermissionDenied("Only channel admins can add members")
        if not self.db.query(User.id).filter(User.id == user_id).first():
            raise NotFound("User not found")
        if channel.membership_for(user_id):
            raise AlreadyMember("User is already a member of this channel")

        self._add_membership(channel, user_id)
        logger.info("User %s added %s to channel %s", actor_id, user_id, channel_id)
        self._publish(topics.CHANNELS)
        return channel

    def remove_member(self, channel_id: str, actor_id: str, user_id: str) -> Channel:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_REMOVE_MEMBER, actor_id, channel.to_dict()):
            raise PermissionDenied("Only channel admins can remove members")
        if user_id == channel.created_by:
            raise CannotRemoveCreator()
        membership = channel.membership_for(user_id)
        if not membership:
            raise NotAMember("User is not a member of this channel")

        with transaction(self.db) as db_transaction:
            db_transaction.delete(membership)
        self.db.refresh(channel)

        logger.info("User %s removed %s from channel %s", actor_id, user_id, channel_id)
        self._publish(topics.CHANNELS)
        return channel

    def _set_role(self, channel: Channel, user_id: str, role: ChannelRole) -> None:
        membership = channel.membership_for(user_id)
        if not membership:
            raise NotAMember()
        if membership.role == role.value:
            return
        with transaction(self.db):
            membership.role = role.value

    def promote_to_admin(self, channel_id: str, actor_id: str, user_id: str) -> Channel:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_MANAGE_ADMINS, actor_id, channel.to_dict()):
            raise PermissionDenied("Only the channel creator can promote members to admin")
        if user_id == channel.created_by:
            return channel

        self._set_role(channel, user_id, ChannelRole.ADMIN)
        logger.info("User %s promoted %s in channel %s", actor_id, user_id, channel_id)
        self._publish(topics.CHANNELS)
        return channel

    def demote_from_admin(self, channel_id: str, actor_id: str, user_id: str) -> Channel:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_MANAGE_ADMINS, actor_id, channel.to_dict()):
            raise PermissionDenied("Only the channel creator can demote admins")
        if user_id == channel.created_by:
            raise CannotDemoteCreator()

        self._set_role(channel, user_id, ChannelRole.MEMBER)
        logger.info("User %s demoted %s in channel %s", actor_id, user_id, channel_id)
        self._publish(topics.CHANNELS)
        return channel

    def generate_invite_code(self, channel_id: str, user_id: str) -> str:
        channel = self._load(channel_id)
        if not can_perform(Action.CHANNEL_REGENERATE_CODE, user_id, channel.to_dict()):
            raise PermissionDenied("Only channel admins can generate invite codes")
        if channel.is_public:
            raise WrongChannelType("Public channels do not use invite codes")

        with transaction(self.db):
            # overwriting invalidates the previous code immediately
            channel.invite_code = self._unique_invite_code()

        logger.info("Invite code regenerated for channel %s by %s", channel_id, user_id)
        self._publish(topics.CHANNELS)
        return channel.invite_code

    def get_channel_members(self, channel_id: str, user_id: str) -> List[ChannelMemberResponse]:
        channel = self.get_channel(channel_id, user_id)
        rows = (
            self.db.query(ChannelMember, User)
            .join(User, ChannelMember.user_id == User.id)
            .filter(ChannelMember.channel_id == channel.id)
            .order_by(ChannelMember.joined_at)
            .all()
        )
        return [
            ChannelMemberResponse(
                user_id=row.ChannelMember.user_id,
                display_name=row.User.display_name,
                photo_url=row.User.photo_url,
                role=row.ChannelMember.role,
                joined_at=row.ChannelMember.joined_at.isoformat(),
            )
            for row in rows
        ]
