from pydantic import BaseModel


class MessageCreate(BaseModel):
    content: str


class DirectMessageCreate(BaseModel):
    receiver_id: str
    content: str


class MessageResponse(BaseModel):
    id: str
    channel_id: str
    content: str
    sender_id: str
    sender_name: str
    created_at: str


class DirectMessageResponse(BaseModel):
    id: str
    content: str
    sender_id: str
    receiver_id: str
    sender_name: str
    created_at: str


class CanMessageResponse(BaseModel):
    user_id: str
    can_message: bool
