from contextlib import contextmanager
from typing import Optional

from sqlalchemy.orm import Session, sessionmaker

from taskhub.auth.services import MailService
from taskhub.config import Settings, settings as default_settings
from taskhub.database import create_db_engine, init_db
from taskhub.realtime import RealtimeHub
from taskhub.storage import ObjectStorage


class Backend:
    """The hosted side of the app: document store, realtime hub, object storage
    and the mail API client. Built once per process and handed to the stores and the API."""

    def __init__(self, settings: Optional[Settings] = None, session_factory: Optional[sessionmaker] = None,
                 mail_service: Optional[MailService] = None):
        self.settings = settings or default_settings
        self.mail_service = mail_service or MailService(self.settings)
        if session_factory is None:
            engine = create_db_engine(self.settings.database_url)
            session_factory = init_db(engine)
        self.session_factory = session_factory
        self.realtime = RealtimeHub(session_factory)
        self.storage = ObjectStorage(self.settings.storage_dir, self.settings.storage_base_url)

    @contextmanager
    def session(self) -> Session:
        db = self.session_factory()
        try:
            yield db
        finally:
            db.close()
