from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

NotificationType = Literal["info", "warning", "success", "error", "chat"]
NotificationTarget = Literal["all", "E-BASIC", "E-TOOL", "E-MASTER", "admin", "individual"]


class NotificationOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    message: str
    type: NotificationType
    link: str | None = None
    target_role: NotificationTarget
    user_id: int | None = None
    is_read: bool
    created_at: datetime | None = None
    expires_at: datetime | None = None


class NotificationCreateIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    type: NotificationType = "info"
    target_role: NotificationTarget = "all"
    user_id: int | None = None
    link: str | None = Field(default=None, max_length=2048)
    expires_at: datetime | None = None


class NotificationBulkIn(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)
    message: str = Field(..., min_length=1, max_length=5000)
    type: NotificationType = "info"
    target_role: Literal["all", "E-BASIC", "E-TOOL", "E-MASTER", "admin"] = "all"
    link: str | None = Field(default=None, max_length=2048)


class NotificationBulkOut(BaseModel):
    ok: bool = True
    count: int
