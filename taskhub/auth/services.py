import logging
from typing import Dict, List, Optional

import httpx
from sqlalchemy.orm import Session

from taskhub.auth.models import Token, UserResponse
from taskhub.auth.security import (
    create_jwt_token, hash_password, validate_display_name, validate_password,
    verify_jwt_token, verify_password,
)
from taskhub.config import Settings, settings as default_settings
from taskhub.database import ChannelMember, User, transaction
from taskhub.errors import AlreadyExists, AuthRequired, NotFound, PermissionDenied, ProviderError

logger = logging.getLogger(__name__)


class MailService:
    def __init__(self, config: Settings = default_settings, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self.transport = transport

    async def send_password_reset(self, email: str, token: str) -> None:
        """Hand the reset link token to the mail API"""
        url = f"{self.config.mail_api_base_url}{self.config.password_reset_endpoint}"
        logger.info("Sending password reset email to %s", email)

        try:
            async with httpx.AsyncClient(timeout=self.config.mail_timeout, transport=self.transport) as client:
                response = await client.post(
                    url,
                    json={"email": email, "token": token},
                    headers={"Content-Type": "application/json", "User-Agent": "TaskHub/0.6"},
                )
        except httpx.HTTPError as exc:
            logger.error("Mail API unreachable: %s", exc)
            raise ProviderError("Failed to send password reset email") from exc

        if response.status_code not in (200, 201, 202):
            logger.error("Mail API answered %s: %s", response.status_code, response.text)
            raise ProviderError("Failed to send password reset email")


class UserService:
    @staticmethod
    def get_user(db: Session, user_id: str) -> User:
        user = db.query(User).filter(User.id == user_id).first()
        if not user:
            raise NotFound("User not found")
        return user

    @staticmethod
    def find_by_email(db: Session, email: str) -> Optional[User]:
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def list_contacts(db: Session, user_id: str) -> List[User]:
        """Identities sharing at least one channel with ``user_id``"""
        channel_ids = db.query(ChannelMember.channel_id).filter(ChannelMember.user_id == user_id)
        return (
            db.query(User)
            .join(ChannelMember, ChannelMember.user_id == User.id)
            .filter(ChannelMember.channel_id.in_(channel_ids), User.id != user_id)
            .distinct()
            .order_by(User.display_name)
            .all()
        )


class AuthService:
    def __init__(self, db: Session, config: Settings = default_settings, mail_service: Optional[MailService] = None):
        self.db = db
        self.config = config
        self.mail_service = mail_service or MailService(config)
        self.user_service = UserService()

    def register(self, email: str, password: str, display_name: str) -> Token:
        email = email.strip().lower()
        display_name = validate_display_name(display_name)
        validate_password(password, self.config)

        with transaction(self.db) as db_transaction:
            if self.user_service.find_by_email(db_transaction, email):
                raise AlreadyExists("An account with this email already exists")

            password_hash, salt = hash_password(password)
            user = User(
                email=email,
                display_name=display_name,
                password_hash=password_hash,
                password_salt=salt,
            )
            db_transaction.add(user)

        logger.info("Registered user %s (%s)", user.id, email)
        return Token(access_token=create_jwt_token(user.id, self.config), token_type="bearer", user_id=user.id)

    def login(self, email: str, password: str) -> Token:
        user = self.user_service.find_by_email(self.db, email)
        if not user or not verify_password(password, user.password_hash, user.password_salt):
            logger.info("Failed login for %s", email)
            raise PermissionDenied("Invalid email or password")

        logger.info("User %s signed in", user.id)
        return Token(access_token=create_jwt_token(user.id, self.config), token_type="bearer", user_id=user.id)

    def logout(self, user_id: str) -> Dict[str, str]:
        # tokens are stateless, nothing to revoke server-side
        logger.info("User %s signed out", user_id)
        return {"message": "Logged out successfully"}

    async def send_password_reset_email(self, email: str) -> Dict[str, str]:
        user = self.user_service.find_by_email(self.db, email)
        if user:
            token = create_jwt_token(
                user.id, self.config, token_type="reset", expires_in=self.config.reset_token_expiry
            )
            await self.mail_service.send_password_reset(user.email, token)
        else:
            logger.info("Password reset requested for unknown email %s", email)
        return {"message": "If an account exists for this email, a reset link has been sent"}

    def confirm_password_reset(self, token: str, new_password: str) -> Dict[str, str]:
        try:
            payload = verify_jwt_token(token, self.config, token_type="reset")
        except AuthRequired as exc:
            raise PermissionDenied(f"Password reset failed: {exc.detail}")
        validate_password(new_password, self.config)

        with transaction(self.db) as db_transaction:
            user = self.user_service.get_user(db_transaction, payload["user_id"])
            user.password_hash, user.password_salt = hash_password(new_password)

        logger.info("Password reset for user %s", user.id)
        return {"message": "Password updated successfully"}

    def update_profile(self, user_id: str, display_name: str, photo_url: Optional[str] = None) -> UserResponse:
        display_name = validate_display_name(display_name)

        with transaction(self.db) as db_transaction:
            user = self.user_service.get_user(db_transaction, user_id)
            user.display_name = display_name
            if photo_url:
                user.photo_url = photo_url

        logger.info("User %s updated profile", user_id)
        return UserResponse(**user.to_dict())

    def get_user(self, user_id: str) -> UserResponse:
        return UserResponse(**self.user_service.get_user(self.db, user_id).to_dict())

    def list_contacts(self, user_id: str) -> List[UserResponse]:
        return [UserResponse(**user.to_dict()) for user in self.user_service.list_contacts(self.db, user_id)]
