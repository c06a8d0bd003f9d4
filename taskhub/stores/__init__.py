"""Reactive stores: the signed-in view of channels, tasks and messages."""
from typing import Optional

from taskhub.auth.services import MailService
from taskhub.backend import Backend
from taskhub.stores.base import ConversationState, Store
from taskhub.stores.channels import ChannelStore
from taskhub.stores.chat import ChatStore
from taskhub.stores.direct_messages import DirectMessageStore
from taskhub.stores.session import SessionStore
from taskhub.stores.tasks import TaskStore


class Stores:
    """All stores of one client, wired to a single session"""

    def __init__(self, backend: Backend, mail_service: Optional[MailService] = None):
        self.backend = backend
        self.session = SessionStore(backend, mail_service)
        self.channels = ChannelStore(backend, self.session)
        self.tasks = TaskStore(backend, self.session, self.channels)
        self.chat = ChatStore(backend, self.session)
        self.direct_messages = DirectMessageStore(backend, self.session, self.channels)

    def dispose(self) -> None:
        self.direct_messages.dispose()
        self.chat.dispose()
        self.tasks.dispose()
        self.channels.dispose()


__all__ = [
    "ChannelStore",
    "ChatStore",
    "ConversationState",
    "DirectMessageStore",
    "SessionStore",
    "Store",
    "Stores",
    "TaskStore",
]
