from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Role = Literal["E-BASIC", "E-TOOL", "E-MASTER", "admin"]


def looks_like_email(value: str) -> bool:
    v = value.strip()
    return "@" in v and "." in v.split("@")[-1]


class UserOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    username: str
    email: str
    role: Role
    role_expiry_date: datetime | None = None
    cpf: str | None = None
    disable_password_recovery: bool = False
    created_at: datetime | None = None
    last_login_at: datetime | None = None


class RegisterIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=80)
    email: str = Field(..., min_length=5, max_length=255, examples=["user@example.com"])
    password: str = Field(..., min_length=6, max_length=128)
    cpf: str = Field(..., min_length=11, max_length=14, examples=["12345678901"])
    promo_code: str | None = Field(default=None, max_length=64)


class LoginIn(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=1, max_length=128)


class PromoOutcomeOut(BaseModel):
    success: bool
    message: str


class TokenOut(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: UserOut
    promo: PromoOutcomeOut | None = None


class SessionStatusOut(BaseModel):
    authenticated: bool
    user_id: int | None = None
    session_id: str | None = None


class RecoverPasswordIn(BaseModel):
    identifier: str = Field(..., min_length=3, max_length=255)
    cpf: str = Field(..., min_length=11, max_length=14)


class RecoverPasswordOut(BaseModel):
    ok: bool = True
    reset_token: str
    expires_in_minutes: int


class ResetPasswordIn(BaseModel):
    token: str = Field(..., min_length=16, max_length=128)
    password: str = Field(..., min_length=6, max_length=128)


class SimpleOKOut(BaseModel):
    ok: bool = True
    message: str | None = None
