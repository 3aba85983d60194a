from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class ChatThreadOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    user_id: int
    subject: str
    status: Literal["open", "closed"]
    is_user_unread: bool
    is_admin_unread: bool
    last_message_at: datetime | None = None
    created_at: datetime | None = None
    username: str | None = None


class ChatMessageOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    thread_id: int
    user_id: int
    message: str
    is_admin_message: bool
    created_at: datetime | None = None


class ChatThreadDetailOut(ChatThreadOut):
    messages: list[ChatMessageOut] = Field(default_factory=list)


class ChatThreadCreateIn(BaseModel):
    subject: str = Field(..., min_length=1, max_length=200)
    message: str | None = Field(default=None, max_length=5000)


class ChatMessageIn(BaseModel):
    message: str = Field(..., min_length=1, max_length=5000)


class UnreadCountOut(BaseModel):
    count: int
