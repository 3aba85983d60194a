from pydantic import BaseModel, Field

from eprojects.schemas.auth import Role


class UserCreateIn(BaseModel):
    username: str = Field(..., min_length=3, max_length=80)
    email: str = Field(..., min_length=5, max_length=255)
    password: str = Field(..., min_length=6, max_length=128)
    cpf: str | None = Field(default=None, max_length=14)
    role: Role = "E-BASIC"
    pro_days: int | None = Field(default=None, ge=1, le=3650)


class UserUpdateIn(BaseModel):
    username: str | None = Field(default=None, min_length=3, max_length=80)
    email: str | None = Field(default=None, max_length=255)
    cpf: str | None = Field(default=None, max_length=14)
    role: Role | None = None
    pro_days: int | None = Field(default=None, ge=1, le=3650)


class UserPasswordResetIn(BaseModel):
    password: str = Field(..., min_length=6, max_length=128)


class PasswordRecoveryToggleIn(BaseModel):
    disable_password_recovery: bool
