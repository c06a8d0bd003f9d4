import mimetypes
from typing import List

from fastapi import APIRouter, Depends, File, Response, UploadFile
from sqlalchemy.orm import Session

from taskhub.auth.models import (
    LoginRequest, PasswordResetConfirm, PasswordResetRequest, ProfileUpdate, RegisterRequest,
    Token, UserResponse,
)
from taskhub.auth.services import AuthService
from taskhub.backend import Backend
from taskhub.dependencies import UserAuth, get_backend, get_current_user, get_db

router = APIRouter(prefix="/auth", tags=["authentication"])
storage_router = APIRouter(prefix="/storage", tags=["storage"])


def get_auth_service(db: Session = Depends(get_db), backend: Backend = Depends(get_backend)) -> AuthService:
    return AuthService(db, backend.settings, backend.mail_service)


# Sign up / sign in
@router.post("/register", response_model=Token, status_code=201)
def register(request: RegisterRequest, auth_service: AuthService = Depends(get_auth_service)):
    return auth_service.register(request.email, request.password, request.display_name)


@router.post("/login", response_model=Token)
def login(request: LoginRequest, auth_service: AuthService = Depends(get_auth_service)):
    return auth_service.login(request.email, request.password)


@router.post("/logout")
def logout(
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.logout(current_user.user_id)


# Password reset
@router.post("/password-reset")
async def request_password_reset(
        request: PasswordResetRequest,
        auth_service: AuthService = Depends(get_auth_service),
):
    """Email a reset link; the answer is the same whether the account exists or not"""
    return await auth_service.send_password_reset_email(request.email)


@router.post("/password-reset/confirm")
def confirm_password_reset(
        request: PasswordResetConfirm,
        auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.confirm_password_reset(request.token, request.new_password)


# Profile
@router.get("/me", response_model=UserResponse)
def get_me(
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.get_user(current_user.user_id)


@router.patch("/profile", response_model=UserResponse)
def update_profile(
        profile: ProfileUpdate,
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.update_profile(current_user.user_id, profile.display_name, profile.photo_url)


@router.post("/avatar", response_model=UserResponse)
async def upload_avatar(
        file: UploadFile = File(...),
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
        backend: Backend = Depends(get_backend),
):
    """Store the picture in the caller's namespace and point the profile at it"""
    data = await file.read()
    url = backend.storage.upload(current_user.user_id, current_user.user_id, file.filename or "", data)
    user = auth_service.get_user(current_user.user_id)
    return auth_service.update_profile(current_user.user_id, user.display_name, url)


@router.get("/users/{user_id}", response_model=UserResponse)
def get_user_profile(
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
):
    return auth_service.get_user(user_id)


@router.get("/contacts", response_model=List[UserResponse])
def list_contacts(
        current_user: UserAuth = Depends(get_current_user),
        auth_service: AuthService = Depends(get_auth_service),
):
    """Everyone sharing at least one channel with the caller"""
    return auth_service.list_contacts(current_user.user_id)


# Stored objects
@storage_router.get("/{owner_id}/{name}")
def read_object(
        owner_id: str,
        name: str,
        current_user: UserAuth = Depends(get_current_user),
        backend: Backend = Depends(get_backend),
):
    """Any signed-in identity may fetch another identity's files, e.g. avatars"""
    data = backend.storage.read(current_user.user_id, owner_id, name)
    media_type = mimetypes.guess_type(name)[0] or "application/octet-stream"
    return Response(content=data, media_type=media_type)
