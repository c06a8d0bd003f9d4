import logging
from typing import Callable, List, Optional

from taskhub import realtime as topics
from taskhub.backend import Backend
from taskhub.channels.models import ChannelCreate, ChannelMemberResponse, ChannelResponse, ChannelUpdate
from taskhub.channels.services import ChannelService, joined_channels_query, present_channel, public_channels_query
from taskhub.errors import (
    AlreadyMember, CannotDemoteCreator, CannotRemoveCreator, CreatorCannotLeave, NotAMember,
    NotFound, PermissionDenied, WrongChannelType,
)
from taskhub.rules import Action, can_perform, is_creator, is_member
from taskhub.stores.base import Store, parse_input
from taskhub.stores.session import SessionStore

logger = logging.getLogger(__name__)


class ChannelStore(Store):
    """Joined and discoverable channels of the signed-in identity.

    Every membership or role change re-reads the channel first and runs the
    same rule the platform will run, so obvious refusals come back with a
    precise error without a round trip through the write path.
    """

    def __init__(self, backend: Backend, session: SessionStore):
        super().__init__(backend)
        self.session = session
        self.joined_channels: List[ChannelResponse] = []
        self.public_channels: List[ChannelResponse] = []
        self._user_id: Optional[str] = None
        self._subscriptions: List[Callable[[], None]] = []
        self._unsubscribe_session = session.subscribe(self._on_session_change)
        self._on_session_change(session)

    @property
    def channels(self) -> List[ChannelResponse]:
        return self.joined_channels

    def _on_session_change(self, session: SessionStore) -> None:
        user_id = session.user_id
        if user_id == self._user_id:
            return
        self._teardown()
        self._user_id = user_id
        self.joined_channels = []
        self.public_channels = []
        self.error = None
        if user_id is None:
            self._notify()
            return

        hub = self.backend.realtime
        self._subscriptions = [
            hub.listen(topics.CHANNELS, joined_channels_query(user_id), self._set_joined, self._on_subscription_error),
            hub.listen(topics.CHANNELS, public_channels_query(user_id), self._set_public, self._on_subscription_error),
        ]

    def _set_joined(self, channels: List[ChannelResponse]) -> None:
        self.joined_channels = channels
        self._notify()

    def _set_public(self, channels: List[ChannelResponse]) -> None:
        self.public_channels = channels
        self._notify()

    def _teardown(self) -> None:
        subscriptions, self._subscriptions = self._subscriptions, []
        for unsubscribe in subscriptions:
            unsubscribe()

    def dispose(self) -> None:
        self._teardown()
        self._unsubscribe_session()

    def _fetch(self, channel_id: str, user_id: str) -> ChannelResponse:
        with self._service(ChannelService) as service:
            channel = service.get_channel(channel_id, user_id)
            return present_channel(channel.to_dict(), user_id)

    @staticmethod
    def _require(action: Action, user_id: str, channel: ChannelResponse, message: str) -> None:
        if not can_perform(action, user_id, channel):
            raise PermissionDenied(message)

    def create_channel(self, name: str, description: Optional[str] = None, is_public: bool = True) -> str:
        with self._operation("create_channel", name):
            user = self.session.require_user()
            data = ChannelCreate(name=name, description=description, is_public=is_public)
            with self._service(ChannelService) as service:
                return service.create_channel(user.id, data).id

    def update_channel(self, channel_id: str, **changes) -> ChannelResponse:
        with self._operation("update_channel", channel_id):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_UPDATE, user.id, channel, "Only channel admins can update channel details")
            with self._service(ChannelService) as service:
                updated = service.update_channel(channel_id, user.id, parse_input(ChannelUpdate, changes))
                return present_channel(updated.to_dict(), user.id)

    def delete_channel(self, channel_id: str) -> None:
        with self._operation("delete_channel", channel_id):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_DELETE, user.id, channel, "Only the channel creator can delete the channel")
            with self._service(ChannelService) as service:
                service.delete_channel(channel_id, user.id)

    def join_channel(self, channel_id: str) -> None:
        with self._operation("join_channel", channel_id):
            user = self.session.require_user()
            if any(c.id == channel_id for c in self.joined_channels):
                raise AlreadyMember()
            with self._service(ChannelService) as service:
                service.join_channel(channel_id, user.id)

    def join_channel_by_invite_code(self, invite_code: str) -> str:
        with self._operation("join_channel_by_invite_code", invite_code):
            user = self.session.require_user()
            with self._service(ChannelService) as service:
                return service.join_channel_by_invite_code(invite_code, user.id).id

    def leave_channel(self, channel_id: str) -> None:
        with self._operation("leave_channel", channel_id):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            if is_creator(channel, user.id):
                raise CreatorCannotLeave()
            if not is_member(channel, user.id):
                raise NotAMember("You are not a member of this channel")
            with self._service(ChannelService) as service:
                service.leave_channel(channel_id, user.id)

    def add_member_to_channel(self, channel_id: str, user_id: str) -> None:
        with self._operation("add_member_to_channel", (channel_id, user_id)):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_ADD_MEMBER, user.id, channel, "Only channel admins can add members")
            if is_member(channel, user_id):
                raise AlreadyMember("User is already a member of this channel")
            with self._service(ChannelService) as service:
                service.add_member(channel_id, user.id, user_id)

    def remove_member_from_channel(self, channel_id: str, user_id: str) -> None:
        with self._operation("remove_member_from_channel", (channel_id, user_id)):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_REMOVE_MEMBER, user.id, channel, "Only channel admins can remove members")
            if is_creator(channel, user_id):
                raise CannotRemoveCreator()
            if not is_member(channel, user_id):
                raise NotAMember("User is not a member of this channel")
            with self._service(ChannelService) as service:
                service.remove_member(channel_id, user.id, user_id)

    def promote_to_admin(self, channel_id: str, user_id: str) -> None:
        with self._operation("promote_to_admin", (channel_id, user_id)):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_MANAGE_ADMINS, user.id, channel,
                          "Only the channel creator can promote members to admin")
            if not is_member(channel, user_id):
                raise NotAMember()
            with self._service(ChannelService) as service:
                service.promote_to_admin(channel_id, user.id, user_id)

    def demote_from_admin(self, channel_id: str, user_id: str) -> None:
        with self._operation("demote_from_admin", (channel_id, user_id)):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_MANAGE_ADMINS, user.id, channel, "Only the channel creator can demote admins")
            if is_creator(channel, user_id):
                raise CannotDemoteCreator()
            with self._service(ChannelService) as service:
                service.demote_from_admin(channel_id, user.id, user_id)

    def generate_invite_code(self, channel_id: str) -> str:
        with self._operation("generate_invite_code", channel_id):
            user = self.session.require_user()
            channel = self._fetch(channel_id, user.id)
            self._require(Action.CHANNEL_REGENERATE_CODE, user.id, channel,
                          "Only channel admins can generate invite codes")
            if channel.is_public:
                raise WrongChannelType("Public channels do not use invite codes")
            with self._service(ChannelService) as service:
                return service.generate_invite_code(channel_id, user.id)

    def get_channel_by_id(self, channel_id: str) -> Optional[ChannelResponse]:
        """Fresh copy of one channel, or None when it no longer exists"""
        with self._operation("get_channel_by_id", channel_id):
            user = self.session.require_user()
            try:
                return self._fetch(channel_id, user.id)
            except NotFound:
                return None

    def get_channel_members(self, channel_id: str) -> List[ChannelMemberResponse]:
        with self._operation("get_channel_members", channel_id):
            user = self.session.require_user()
            with self._service(ChannelService) as service:
                return service.get_channel_members(channel_id, user.id)
