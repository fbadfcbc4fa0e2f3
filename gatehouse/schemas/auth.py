"""Auth Schemas — Pydantic models for the /auth endpoints.

Invariants:
    - Emails are normalized (trimmed, lowercase) before any lookup
    - New passwords: 12-128 chars
    - Responses never carry password hashes, token hashes or lockout counters

Design Decisions:
    - Login takes a plain str email, not EmailStr: a malformed address is just
      another invalid credential, never a 400 that confirms the format check
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, EmailStr, Field, field_validator

PASSWORD_MIN_LENGTH = 12
PASSWORD_MAX_LENGTH = 128


class LoginRequest(BaseModel):
    email: str = Field(min_length=1, max_length=320)
    password: str = Field(min_length=1, max_length=1024)

    @field_validator("email")
    @classmethod
    def normalize_email(cls, v: str) -> str:
        return v.strip().lower()


class LoginResponse(BaseModel):
    success: bool = True


class MeResponse(BaseModel):
    id: UUID
    email: str
    email_verified_at: datetime | None
    role: str | None


class PasswordResetRequest(BaseModel):
    email: EmailStr


class PasswordResetRequestResponse(BaseModel):
    message: str = "If an account exists, you will receive an email"


class PasswordResetValidateResponse(BaseModel):
    expires_at: datetime


class PasswordResetConfirm(BaseModel):
    token: str = Field(min_length=1, max_length=512)
    password: str = Field(
        min_length=PASSWORD_MIN_LENGTH, max_length=PASSWORD_MAX_LENGTH,
    )
