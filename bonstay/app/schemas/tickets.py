from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bonstay.app.models.ticket import Decision, TicketStatus, TicketType


# ─── Request Schemas ──────────────────────────────────────────────────────────


class TicketCreate(BaseModel):
    account_id: str = Field(..., min_length=1, max_length=150)
    type: TicketType = TicketType.ACCOUNT_UNLOCK
    failed_attempts: int | None = None

    @field_validator("failed_attempts")
    @classmethod
    def failed_attempts_non_negative(cls, v: int | None) -> int | None:
        if v is not None and v < 0:
            raise ValueError("failed_attempts must not be negative")
        return v


class TicketResolve(BaseModel):
    decision: Decision
    notes: str | None = Field(None, max_length=2000)


# ─── Response Schemas ─────────────────────────────────────────────────────────


class TicketOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    account_id: UUID
    type: TicketType
    status: TicketStatus
    failed_attempts: int
    lockout_time: datetime | None
    user_name: str | None
    user_email: str | None
    created_at: datetime
    resolved_by: UUID | None
    resolved_at: datetime | None
    admin_notes: str | None


class TicketStatsOut(BaseModel):
    total: int
    pending: int
    approved: int
    rejected: int
