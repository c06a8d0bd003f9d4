from typing import List

from taskhub import realtime as topics
from taskhub.backend import Backend
from taskhub.messaging.models import MessageResponse
from taskhub.messaging.services import MessageService, channel_messages_query
from taskhub.stores.base import ConversationStore
from taskhub.stores.session import SessionStore


class ChatStore(ConversationStore):
    """Message log of the channel currently on screen"""

    def __init__(self, backend: Backend, session: SessionStore):
        super().__init__(backend)
        self.session = session
        self._user_id = session.user_id
        self._unsubscribe_session = session.subscribe(self._on_session_change)

    def _on_session_change(self, session: SessionStore) -> None:
        if session.user_id != self._user_id:
            self._user_id = session.user_id
            self.reset()

    def send_message(self, channel_id: str, content: str) -> MessageResponse:
        with self._operation("send_message", channel_id):
            user = self.session.require_user()
            with self._service(MessageService) as service:
                return service.send_channel_message(channel_id, user.id, content)

    def get_channel_messages(self, channel_id: str) -> List[MessageResponse]:
        """Follow ``channel_id``; returns the first snapshot, later ones land in ``messages``"""
        with self._operation("get_channel_messages", channel_id):
            user = self.session.require_user()
            limit = self.backend.settings.channel_message_limit
            return self._open(
                channel_id,
                topics.channel_messages(channel_id),
                channel_messages_query(channel_id, user.id, limit),
            )

    def delete_message(self, channel_id: str, message_id: str) -> None:
        with self._operation("delete_message", message_id):
            user = self.session.require_user()
            with self._service(MessageService) as service:
                service.delete_channel_message(channel_id, message_id, user.id)

    def dispose(self) -> None:
        self.close()
        self._unsubscribe_session()
