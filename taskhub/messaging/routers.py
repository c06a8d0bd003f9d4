from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskhub.backend import Backend
from taskhub.dependencies import UserAuth, get_backend, get_current_user, get_db
from taskhub.messaging.models import (
    CanMessageResponse, DirectMessageCreate, DirectMessageResponse, MessageCreate, MessageResponse,
)
from taskhub.messaging.services import MessageService

router = APIRouter(tags=["messages"])


def get_message_service(db: Session = Depends(get_db), backend: Backend = Depends(get_backend)) -> MessageService:
    return MessageService(db, backend.realtime)


# Channel chat
@router.get("/channels/{channel_id}/messages", response_model=List[MessageResponse])
def get_channel_messages(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
        backend: Backend = Depends(get_backend),
):
    """Most recent messages of the channel, oldest first"""
    return message_service.get_channel_messages(
        channel_id, current_user.user_id, backend.settings.channel_message_limit
    )


@router.post("/channels/{channel_id}/messages", response_model=MessageResponse, status_code=201)
def send_channel_message(
        channel_id: str,
        message: MessageCreate,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    return message_service.send_channel_message(channel_id, current_user.user_id, message.content)


@router.delete("/channels/{channel_id}/messages/{message_id}", status_code=204)
def delete_channel_message(
        channel_id: str,
        message_id: str,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    message_service.delete_channel_message(channel_id, message_id, current_user.user_id)


# Direct messages
@router.get("/messages/direct", response_model=List[DirectMessageResponse])
def get_inbox(
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    return message_service.get_inbox(current_user.user_id)


@router.post("/messages/direct", response_model=DirectMessageResponse, status_code=201)
def send_direct_message(
        message: DirectMessageCreate,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    return message_service.send_direct_message(current_user.user_id, message.receiver_id, message.content)


@router.get("/messages/direct/{user_id}", response_model=List[DirectMessageResponse])
def get_messages_with_user(
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    return message_service.get_messages_with_user(current_user.user_id, user_id)


@router.get("/messages/direct/{user_id}/can-message", response_model=CanMessageResponse)
def can_message_user(
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    return CanMessageResponse(
        user_id=user_id,
        can_message=message_service.can_message_user(current_user.user_id, user_id),
    )


@router.delete("/messages/direct/{message_id}", status_code=204)
def delete_direct_message(
        message_id: str,
        current_user: UserAuth = Depends(get_current_user),
        message_service: MessageService = Depends(get_message_service),
):
    message_service.delete_direct_message(message_id, current_user.user_id)
