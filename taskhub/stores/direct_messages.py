import logging
from typing import Callable, List, Optional

from taskhub import realtime as topics
from taskhub.backend import Backend
from taskhub.errors import NotPermitted
from taskhub.messaging.models import DirectMessageResponse
from taskhub.messaging.services import MessageService, conversation_query, inbox_query
from taskhub.rules import shares_channel
from taskhub.stores.base import ConversationStore
from taskhub.stores.channels import ChannelStore
from taskhub.stores.session import SessionStore

logger = logging.getLogger(__name__)


class DirectMessageStore(ConversationStore):
    """One-to-one conversations.

    Two identities may talk only while they share a channel; the check runs
    here against the joined channels and again on the platform.
    """

    def __init__(self, backend: Backend, session: SessionStore, channels: ChannelStore):
        super().__init__(backend)
        self.session = session
        self.channels = channels
        self.inbox: List[DirectMessageResponse] = []
        self._user_id: Optional[str] = None
        self._inbox_subscription: Optional[Callable[[], None]] = None
        self._unsubscribe_session = session.subscribe(self._on_session_change)
        self._on_session_change(session)

    def _on_session_change(self, session: SessionStore) -> None:
        if session.user_id == self._user_id:
            return
        self._user_id = session.user_id
        self._stop_inbox()
        self.reset()
        if self._user_id is not None:
            self._inbox_subscription = self.backend.realtime.listen(
                topics.DIRECT_MESSAGES, inbox_query(self._user_id), self._set_inbox, self._on_subscription_error,
            )

    def _set_inbox(self, messages: List[DirectMessageResponse]) -> None:
        self.inbox = messages
        self._notify()

    def _stop_inbox(self) -> None:
        if self._inbox_subscription is not None:
            self._inbox_subscription()
            self._inbox_subscription = None
        self.inbox = []

    def can_message_user(self, user_id: str) -> bool:
        me = self.session.user_id
        if me is None:
            return False
        return shares_channel(self.channels.joined_channels, me, user_id)

    def _require_contact(self, user_id: str) -> str:
        me = self.session.require_user().id
        if not self.can_message_user(user_id):
            raise NotPermitted()
        return me

    def send_message(self, user_id: str, content: str) -> DirectMessageResponse:
        with self._operation("send_message", user_id):
            me = self._require_contact(user_id)
            with self._service(MessageService) as service:
                return service.send_direct_message(me, user_id, content)

    def get_messages_with_user(self, user_id: str) -> List[DirectMessageResponse]:
        """Follow the conversation with ``user_id``; returns the first snapshot"""
        with self._operation("get_messages_with_user", user_id):
            me = self._require_contact(user_id)
            return self._open(user_id, topics.DIRECT_MESSAGES, conversation_query(me, user_id))

    def delete_message(self, message_id: str) -> None:
        with self._operation("delete_message", message_id):
            me = self.session.require_user().id
            with self._service(MessageService) as service:
                service.delete_direct_message(message_id, me)

    def dispose(self) -> None:
        self.close()
        self._stop_inbox()
        self._unsubscribe_session()
