"""Tests for the resolution workflow (approve / reject)."""

from __future__ import annotations

import uuid

import pytest
from sqlalchemy.orm import Session

from bonstay.app.core.errors import (
    InconsistencyError,
    InvalidStateError,
    NotFoundError,
    TransientStoreError,
)
from bonstay.app.models.account import Account
from bonstay.app.models.audit import AuditLog
from bonstay.app.models.ticket import Decision, IncidentTicket, TicketStatus
from bonstay.app.services import resolution
from bonstay.app.services.resolution import resolve
from bonstay.app.services.ticket_registry import create_if_absent


@pytest.fixture()
def pending_ticket(db: Session, locked_guest: Account) -> IncidentTicket:
    ticket, _ = create_if_absent(db, account_id=locked_guest.id)
    db.commit()
    return ticket


class TestApprove:
    def test_approve_unlocks_account(
        self,
        db: Session,
        locked_guest: Account,
        admin: Account,
        pending_ticket: IncidentTicket,
    ) -> None:
        ticket = resolve(
            db,
            ticket_id=pending_ticket.id,
            decision=Decision.APPROVE,
            admin_id=admin.id,
            notes="Identity verified by phone",
        )
        db.commit()

        assert ticket.status is TicketStatus.APPROVED
        assert ticket.resolved_by == admin.id
        assert ticket.resolved_at is not None
        assert ticket.admin_notes == "Identity verified by phone"
        assert locked_guest.is_locked is False
        assert locked_guest.failed_login_attempts == 0
        assert locked_guest.locked_at is None

    def test_approve_is_audited(
        self, db: Session, admin: Account, pending_ticket: IncidentTicket,
    ) -> None:
        resolve(db, ticket_id=pending_ticket.id, decision=Decision.APPROVE, admin_id=admin.id)
        db.commit()

        actions = {row.action for row in db.query(AuditLog).all()}
        assert {"TICKET_CREATED", "TICKET_APPROVED", "ACCOUNT_UNLOCKED"} <= actions

    def test_failed_account_reset_is_inconsistency(
        self,
        db: Session,
        locked_guest: Account,
        admin: Account,
        pending_ticket: IncidentTicket,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        ticket_id = pending_ticket.id

        def _store_down(*args: object, **kwargs: object) -> None:
            raise TransientStoreError("Record store unavailable during account update")

        monkeypatch.setattr(resolution, "clear_lockout", _store_down)

        with pytest.raises(InconsistencyError) as excinfo:
            resolve(db, ticket_id=ticket_id, decision=Decision.APPROVE, admin_id=admin.id)

        assert excinfo.value.ticket_id == ticket_id
        assert excinfo.value.account_id == locked_guest.id
        # Both writes were rolled back together.
        assert db.get(IncidentTicket, ticket_id).status is TicketStatus.PENDING
        assert db.get(Account, locked_guest.id).is_locked is True


class TestReject:
    def test_reject_keeps_account_locked(
        self,
        db: Session,
        locked_guest: Account,
        admin: Account,
        pending_ticket: IncidentTicket,
    ) -> None:
        ticket = resolve(
            db,
            ticket_id=pending_ticket.id,
            decision=Decision.REJECT,
            admin_id=admin.id,
            notes="Could not verify identity",
        )
        db.commit()

        assert ticket.status is TicketStatus.REJECTED
        assert ticket.resolved_by == admin.id
        assert locked_guest.is_locked is True
        assert locked_guest.failed_login_attempts == 3


class TestTerminalState:
    @pytest.mark.parametrize("first", [Decision.APPROVE, Decision.REJECT])
    @pytest.mark.parametrize("second", [Decision.APPROVE, Decision.REJECT])
    def test_resolved_ticket_cannot_change(
        self,
        db: Session,
        admin: Account,
        pending_ticket: IncidentTicket,
        first: Decision,
        second: Decision,
    ) -> None:
        resolve(db, ticket_id=pending_ticket.id, decision=first, admin_id=admin.id)
        db.commit()
        status_after_first = db.get(IncidentTicket, pending_ticket.id).status

        with pytest.raises(InvalidStateError, match="already"):
            resolve(db, ticket_id=pending_ticket.id, decision=second, admin_id=admin.id)
        db.rollback()

        assert db.get(IncidentTicket, pending_ticket.id).status is status_after_first

    def test_unknown_ticket(self, db: Session, admin: Account) -> None:
        with pytest.raises(NotFoundError):
            resolve(db, ticket_id=uuid.uuid4(), decision=Decision.APPROVE, admin_id=admin.id)
