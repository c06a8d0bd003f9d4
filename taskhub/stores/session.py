import logging
from typing import List, Optional

from taskhub.auth.models import Token, UserResponse
from taskhub.auth.security import verify_jwt_token
from taskhub.auth.services import AuthService, MailService
from taskhub.backend import Backend
from taskhub.errors import AuthRequired
from taskhub.stores.base import Store

logger = logging.getLogger(__name__)


class SessionStore(Store):
    """The signed-in identity. Lives as long as the process; the other stores
    follow it and rebuild their subscriptions whenever it changes."""

    def __init__(self, backend: Backend, mail_service: Optional[MailService] = None):
        super().__init__(backend)
        self.mail_service = mail_service or backend.mail_service
        self.current_user: Optional[UserResponse] = None
        self.token: Optional[str] = None

    @property
    def user_id(self) -> Optional[str]:
        return self.current_user.id if self.current_user else None

    def require_user(self) -> UserResponse:
        if self.current_user is None:
            raise AuthRequired()
        return self.current_user

    def _auth(self, db) -> AuthService:
        return AuthService(db, self.backend.settings, self.mail_service)

    def _sign_in(self, token: Token) -> UserResponse:
        with self.backend.session() as db:
            user = self._auth(db).get_user(token.user_id)
        self.token = token.access_token
        self.current_user = user
        logger.info("Session started for %s", user.id)
        self._notify()
        return user

    def register(self, email: str, password: str, display_name: str) -> UserResponse:
        with self._operation("register"):
            with self.backend.session() as db:
                token = self._auth(db).register(email, password, display_name)
            return self._sign_in(token)

    def login(self, email: str, password: str) -> UserResponse:
        with self._operation("login"):
            with self.backend.session() as db:
                token = self._auth(db).login(email, password)
            return self._sign_in(token)

    def restore(self, access_token: str) -> UserResponse:
        """Resume a session from a previously issued token"""
        with self._operation("restore"):
            payload = verify_jwt_token(access_token, self.backend.settings)
            return self._sign_in(Token(access_token=access_token, token_type="bearer", user_id=payload["user_id"]))

    def logout(self) -> None:
        with self._operation("logout"):
            user = self.require_user()
            with self.backend.session() as db:
                self._auth(db).logout(user.id)
            self.current_user = None
            self.token = None
            self._notify()

    async def reset_password(self, email: str) -> None:
        with self._operation("reset_password", email):
            with self.backend.session() as db:
                await self._auth(db).send_password_reset_email(email)

    def confirm_password_reset(self, token: str, new_password: str) -> None:
        with self._operation("confirm_password_reset"):
            with self.backend.session() as db:
                self._auth(db).confirm_password_reset(token, new_password)

    def update_profile(self, display_name: str, photo_url: Optional[str] = None) -> UserResponse:
        with self._operation("update_profile"):
            user = self.require_user()
            with self.backend.session() as db:
                self.current_user = self._auth(db).update_profile(user.id, display_name, photo_url)
            self._notify()
            return self.current_user

    def upload_avatar(self, filename: str, data: bytes) -> str:
        with self._operation("upload_avatar"):
            user = self.require_user()
            url = self.backend.storage.upload(user.id, user.id, filename, data)
            with self.backend.session() as db:
                self.current_user = self._auth(db).update_profile(user.id, user.display_name, url)
            self._notify()
            return url

    def get_user_profile(self, user_id: str) -> UserResponse:
        with self._operation("get_user_profile", user_id):
            self.require_user()
            with self.backend.session() as db:
                return self._auth(db).get_user(user_id)

    def list_contacts(self) -> List[UserResponse]:
        with self._operation("list_contacts"):
            user = self.require_user()
            with self.backend.session() as db:
                return self._auth(db).list_contacts(user.id)
