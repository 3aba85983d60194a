from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator

PromoType = Literal["role", "course"]
PromoReason = Literal[
    "ok",
    "invalid",
    "limit_reached",
    "expired",
    "wrong_type",
    "wrong_course",
    "course_not_found",
    "already_used",
]


class PromoCodeOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    code: str
    promo_type: PromoType
    target_role: Literal["E-TOOL", "E-MASTER"] | None = None
    course_id: int | None = None
    days: int
    max_uses: int
    used_count: int
    is_active: bool
    expiry_date: datetime | None = None
    created_at: datetime | None = None


class PromoCodeCreateIn(BaseModel):
    code: str = Field(..., min_length=3, max_length=64)
    promo_type: PromoType = "role"
    target_role: Literal["E-TOOL", "E-MASTER"] | None = None
    course_id: int | None = None
    days: int = Field(..., ge=1, le=3650)
    max_uses: int = Field(default=1, ge=1, le=1_000_000)
    expiry_date: datetime | None = None
    is_active: bool = True

    @model_validator(mode="after")
    def validate_target(self):
        if self.promo_type == "role" and self.target_role is None:
            raise ValueError("target_role is required for role codes")
        if self.promo_type == "course" and self.course_id is None:
            raise ValueError("course_id is required for course codes")
        return self


class PromoUseIn(BaseModel):
    code: str = Field(..., min_length=1, max_length=64)
    course_id: int | None = None


class PromoUseOut(BaseModel):
    success: bool
    message: str
    reason: PromoReason
    days: int | None = None
    role: str | None = None
    role_expiry_date: datetime | None = None
    course_id: int | None = None
