from enum import Enum
from typing import List, Optional

from pydantic import BaseModel


class ChannelRole(str, Enum):
    CREATOR = "creator"
    ADMIN = "admin"
    MEMBER = "member"


class ChannelCreate(BaseModel):
    name: str
    description: Optional[str] = None
    is_public: bool = True


class ChannelUpdate(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    is_public: Optional[bool] = None


class InviteCodeJoin(BaseModel):
    invite_code: str


class MemberAdd(BaseModel):
    user_id: str


class ChannelResponse(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    is_public: bool
    created_by: str
    created_at: str
    members: List[str]
    admins: List[str]
    invite_code: Optional[str] = None  # only shown to admins


class ChannelMemberResponse(BaseModel):
    user_id: str
    display_name: str
    photo_url: Optional[str] = None
    role: ChannelRole
    joined_at: str


class InviteCodeResponse(BaseModel):
    channel_id: str
    invite_code: str
