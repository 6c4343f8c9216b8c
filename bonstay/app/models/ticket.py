"""Incident tickets: human-reviewed requests to restore a locked account.

A ticket is created PENDING and resolved exactly once to APPROVED or
REJECTED. The partial unique index keeps at most one PENDING ticket per
(account, type) even when two requests race to open one.
"""

from __future__ import annotations

import enum
import uuid
from datetime import datetime

from sqlalchemy import DateTime, Enum, ForeignKey, Index, Integer, String, Text, Uuid, text
from sqlalchemy.orm import Mapped, mapped_column

from bonstay.app.core.database import Base
from bonstay.app.utils.datetime_utils import utc_now


# ─── Enums ───────────────────────────────────────────────────────────────────


class TicketType(str, enum.Enum):
    ACCOUNT_UNLOCK = "account_unlock"


class TicketStatus(str, enum.Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"

    @property
    def is_terminal(self) -> bool:
        return self is not TicketStatus.PENDING


class Decision(str, enum.Enum):
    APPROVE = "APPROVE"
    REJECT = "REJECT"


# ─── Models ──────────────────────────────────────────────────────────────────


class IncidentTicket(Base):
    __tablename__ = "incident_tickets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    account_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("accounts.id"), nullable=False
    )
    type: Mapped[TicketType] = mapped_column(
        Enum(TicketType, name="tickettype"), nullable=False, default=TicketType.ACCOUNT_UNLOCK
    )
    status: Mapped[TicketStatus] = mapped_column(
        Enum(TicketStatus, name="ticketstatus"), nullable=False, default=TicketStatus.PENDING
    )

    # Snapshots taken when the ticket is opened
    failed_attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    lockout_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    user_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    user_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=utc_now
    )
    resolved_by: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("accounts.id"), nullable=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        Index("ix_incident_tickets_account_type_created", "account_id", "type", "created_at"),
        Index("ix_incident_tickets_status", "status"),
        Index(
            "uq_incident_tickets_one_pending",
            "account_id",
            "type",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
    )
