"""Pydantic schemas for the auth and account API.

Learn: These schemas are the HTTP contract only. Routes validate input
with them and hand plain values to the services, which never see a
pydantic model.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


# ─── Session (client → platform) ────────────────────────


class RegisterRequest(BaseModel):
    username: str = Field(..., min_length=3, max_length=50)
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8)


class LoginRequest(BaseModel):
    email: str
    password: str


class TokenResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"


# ─── Ephemeral flows ────────────────────────────────────


class EmailRequest(BaseModel):
    """Body of verify-email/request and password/forgot."""
    email: str


class VerifyEmailRequest(BaseModel):
    token: str


class ResetPasswordRequest(BaseModel):
    email: str
    code: str = Field(..., min_length=6, max_length=6, pattern=r"^\d{6}$")
    new_password: str = Field(..., min_length=8)


# ─── Account changes ────────────────────────────────────


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(..., min_length=8)


class ChangeEmailRequest(BaseModel):
    current_password: str
    new_email: str = Field(..., min_length=3, max_length=255)


class ChangeUsernameRequest(BaseModel):
    current_password: str
    new_username: str = Field(..., min_length=3, max_length=50)


# ─── Read (platform → client) ───────────────────────────


class PrincipalRead(BaseModel):
    id: uuid.UUID
    username: str
    email: str
    roles: list[str]
    active: bool
    email_verified: bool
    created_at: Optional[datetime] = None


class MessageResponse(BaseModel):
    """Acknowledgement for commands with nothing to return."""
    message: str


class ErrorResponse(BaseModel):
    detail: str
    code: str
