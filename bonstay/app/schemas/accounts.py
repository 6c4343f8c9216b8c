from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from bonstay.app.models.account import RoleEnum
from bonstay.app.services.login import DenialReason, LoginOutcome


# ─── Login attempt ───────────────────────────────────────────────────────────


class LoginAttemptIn(BaseModel):
    password: str = Field(..., min_length=1, max_length=128)
    role: RoleEnum = RoleEnum.USER


class LoginIn(LoginAttemptIn):
    identifier: str = Field(..., min_length=1, max_length=150)


class LoginAttemptOut(BaseModel):
    outcome: LoginOutcome
    message: str
    reason: DenialReason | None = None
    remaining: int | None = None
    ticket_id: UUID | None = None
    access_token: str | None = None
    token_type: str | None = None


# ─── Account record ──────────────────────────────────────────────────────────


class AccountOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    username: str
    email: str | None
    full_name: str | None
    role: RoleEnum
    is_active: bool
    failed_login_attempts: int
    is_locked: bool
    locked_at: datetime | None
    created_at: datetime | None


class MessageOut(BaseModel):
    detail: str
