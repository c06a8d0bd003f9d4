from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from taskhub.backend import Backend
from taskhub.channels.models import (
    ChannelCreate, ChannelMemberResponse, ChannelResponse, ChannelUpdate, InviteCodeJoin,
    InviteCodeResponse, MemberAdd,
)
from taskhub.channels.services import ChannelService, present_channel
from taskhub.dependencies import UserAuth, get_backend, get_current_user, get_db

router = APIRouter(prefix="/channels", tags=["channels"])


def get_channel_service(db: Session = Depends(get_db), backend: Backend = Depends(get_backend)) -> ChannelService:
    return ChannelService(db, backend.realtime)


# Channels
@router.post("/", response_model=ChannelResponse, status_code=201)
def create_channel(
        channel_data: ChannelCreate,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.create_channel(current_user.user_id, channel_data)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.get("/", response_model=List[ChannelResponse])
def get_my_channels(
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    """Channels the caller is a member of"""
    return channel_service.get_user_channels(current_user.user_id)


@router.get("/public", response_model=List[ChannelResponse])
def get_public_channels(
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    """Public channels the caller can still join"""
    return channel_service.get_public_channels(current_user.user_id)


@router.post("/join", response_model=ChannelResponse)
def join_channel_by_invite_code(
        join_data: InviteCodeJoin,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.join_channel_by_invite_code(join_data.invite_code, current_user.user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.get("/{channel_id}", response_model=ChannelResponse)
def get_channel(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.get_channel(channel_id, current_user.user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.patch("/{channel_id}", response_model=ChannelResponse)
def update_channel(
        channel_id: str,
        channel_data: ChannelUpdate,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.update_channel(channel_id, current_user.user_id, channel_data)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.delete("/{channel_id}", status_code=204)
def delete_channel(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    """Delete the channel together with its tasks and messages"""
    channel_service.delete_channel(channel_id, current_user.user_id)


# Membership
@router.post("/{channel_id}/join", response_model=ChannelResponse)
def join_channel(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.join_channel(channel_id, current_user.user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.post("/{channel_id}/leave", status_code=204)
def leave_channel(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel_service.leave_channel(channel_id, current_user.user_id)


@router.get("/{channel_id}/members", response_model=List[ChannelMemberResponse])
def get_channel_members(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    return channel_service.get_channel_members(channel_id, current_user.user_id)


@router.post("/{channel_id}/members", response_model=ChannelResponse)
def add_member(
        channel_id: str,
        member: MemberAdd,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.add_member(channel_id, current_user.user_id, member.user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.delete("/{channel_id}/members/{user_id}", response_model=ChannelResponse)
def remove_member(
        channel_id: str,
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.remove_member(channel_id, current_user.user_id, user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


# Admins
@router.post("/{channel_id}/admins/{user_id}", response_model=ChannelResponse)
def promote_to_admin(
        channel_id: str,
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.promote_to_admin(channel_id, current_user.user_id, user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.delete("/{channel_id}/admins/{user_id}", response_model=ChannelResponse)
def demote_from_admin(
        channel_id: str,
        user_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    channel = channel_service.demote_from_admin(channel_id, current_user.user_id, user_id)
    return present_channel(channel.to_dict(), current_user.user_id)


@router.post("/{channel_id}/invite-code", response_model=InviteCodeResponse)
def generate_invite_code(
        channel_id: str,
        current_user: UserAuth = Depends(get_current_user),
        channel_service: ChannelService = Depends(get_channel_service),
):
    """Issue a fresh invite code; the previous one stops working"""
    code = channel_service.generate_invite_code(channel_id, current_user.user_id)
    return InviteCodeResponse(channel_id=channel_id, invite_code=code)
