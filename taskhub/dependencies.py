from typing import Iterator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from taskhub.auth.security import verify_jwt_token
from taskhub.backend import Backend
from taskhub.database import User
from taskhub.errors import AuthRequired

security = HTTPBearer(auto_error=False)


class UserAuth:
    def __init__(self, user_id: str):
        self.user_id = user_id


def get_backend(request: Request) -> Backend:
    return request.app.state.backend


def get_db(backend: Backend = Depends(get_backend)) -> Iterator[Session]:
    with backend.session() as db:
        yield db


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def get_current_user(
        credentials: HTTPAuthorizationCredentials = Depends(security),
        backend: Backend = Depends(get_backend),
        db: Session = Depends(get_db),
) -> UserAuth:
    """Resolve the bearer token to a signed-in identity"""
    if credentials is None or not credentials.credentials:
        raise _unauthorized("Missing or invalid authorization header")

    try:
        payload = verify_jwt_token(credentials.credentials, backend.settings)
    except AuthRequired as exc:
        raise _unauthorized(exc.detail)

    # the account may have been removed after the token was issued
    if not db.query(User.id).filter(User.id == payload["user_id"]).first():
        raise _unauthorized("User not found")

    return UserAuth(user_id=payload["user_id"])
