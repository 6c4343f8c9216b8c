"""Ticket registry: opens and looks up incident tickets.

``create_if_absent`` is idempotent per lock episode: while a PENDING ticket
exists for (account, type) it is returned unchanged. Two callers that both
miss the existing ticket and insert concurrently are reconciled by the
partial unique index; the loser gets the winner's ticket back.

This module does NOT call db.commit().
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from bonstay.app.core.errors import ConcurrentUpdateError, InvalidStateError, NotFoundError
from bonstay.app.models.account import Account
from bonstay.app.models.ticket import IncidentTicket, TicketStatus, TicketType
from bonstay.app.services.accounts import get_account
from bonstay.app.services.audit import AuditAction, log_action
from bonstay.app.services.store import translate_store_errors
from bonstay.app.utils.datetime_utils import as_utc

logger = logging.getLogger(__name__)


def get_ticket(db: Session, ticket_id: UUID, *, for_update: bool = False) -> IncidentTicket:
    with translate_store_errors("ticket lookup"):
        query = db.query(IncidentTicket).filter(IncidentTicket.id == ticket_id)
        if for_update:
            query = query.with_for_update().populate_existing()
        ticket = query.first()
    if ticket is None:
        raise NotFoundError("Ticket", ticket_id)
    return ticket


def list_tickets(
    db: Session,
    *,
    account_id: UUID | None = None,
    ticket_type: TicketType | None = None,
    status: TicketStatus | None = None,
) -> list[IncidentTicket]:
    """Return tickets newest first, optionally filtered."""
    with translate_store_errors("ticket listing"):
        query = db.query(IncidentTicket)
        if account_id is not None:
            query = query.filter(IncidentTicket.account_id == account_id)
        if ticket_type is not None:
            query = query.filter(IncidentTicket.type == ticket_type)
        if status is not None:
            query = query.filter(IncidentTicket.status == status)
        return query.order_by(IncidentTicket.created_at.desc()).all()


def list_for_account(
    db: Session, account_id: UUID, ticket_type: TicketType = TicketType.ACCOUNT_UNLOCK
) -> list[IncidentTicket]:
    """Ticket history for one account, latest first."""
    return list_tickets(db, account_id=account_id, ticket_type=ticket_type)


def get_latest_for_account(
    db: Session, account_id: UUID, ticket_type: TicketType = TicketType.ACCOUNT_UNLOCK
) -> IncidentTicket | None:
    with translate_store_errors("latest ticket lookup"):
        return (
            db.query(IncidentTicket)
            .filter(
                IncidentTicket.account_id == account_id,
                IncidentTicket.type == ticket_type,
            )
            .order_by(IncidentTicket.created_at.desc())
            .first()
        )


def _pending_ticket(db: Session, account_id: UUID, ticket_type: TicketType) -> IncidentTicket | None:
    with translate_store_errors("pending ticket lookup"):
        return (
            db.query(IncidentTicket)
            .filter(
                IncidentTicket.account_id == account_id,
                IncidentTicket.type == ticket_type,
                IncidentTicket.status == TicketStatus.PENDING,
            )
            .first()
        )


def approval_covers_current_lock(ticket: IncidentTicket, account: Account) -> bool:
    """True when an APPROVED ticket was resolved after the account's current lock.

    An approval older than the lock belongs to a previous lock episode.
    """
    if ticket.status is not TicketStatus.APPROVED or ticket.resolved_at is None:
        return False
    locked_at = as_utc(account.locked_at)
    if locked_at is None:
        return True
    return as_utc(ticket.resolved_at) >= locked_at


def create_if_absent(
    db: Session,
    *,
    account_id: UUID | str,
    ticket_type: TicketType = TicketType.ACCOUNT_UNLOCK,
    failed_attempts: int | None = None,
    ip_address: str | None = None,
) -> tuple[IncidentTicket, bool]:
    """Open a PENDING ticket unless one is already active.

    Returns ``(ticket, created)``. ``created`` is False when an existing
    ticket was returned instead of a new one.
    """
    account = get_account(db, account_id, for_update=True)
    if not account.is_locked:
        logger.warning("Ticket requested for unlocked account %s", account.id)
        raise InvalidStateError("Account is not locked")

    latest = get_latest_for_account(db, account.id, ticket_type)
    if latest is not None:
        if latest.status is TicketStatus.PENDING:
            return latest, False
        if approval_covers_current_lock(latest, account):
            # The lock should already be gone; the caller retries the login.
            logger.warning(
                "Account %s still locked after approved ticket %s", account.id, latest.id
            )
            return latest, False

    ticket = IncidentTicket(
        account_id=account.id,
        type=ticket_type,
        status=TicketStatus.PENDING,
        failed_attempts=(
            failed_attempts if failed_attempts is not None else account.failed_login_attempts
        ),
        lockout_time=account.locked_at,
        user_name=account.full_name or account.username,
        user_email=account.email,
    )
    try:
        with translate_store_errors("ticket insert"), db.begin_nested():
            db.add(ticket)
            db.flush()
    except IntegrityError:
        existing = _pending_ticket(db, account.id, ticket_type)
        if existing is None:
            raise ConcurrentUpdateError("Pending ticket vanished during creation")
        logger.info(
            "Concurrent ticket creation for account %s; reusing %s", account.id, existing.id
        )
        return existing, False

    log_action(
        db,
        actor_id=account.id,
        action=AuditAction.TICKET_CREATED,
        resource_type="incident_tickets",
        resource_id=str(ticket.id),
        changes={
            "account_id": str(account.id),
            "type": ticket_type.value,
            "failed_attempts": ticket.failed_attempts,
        },
        ip_address=ip_address,
    )
    logger.info("Opened %s ticket %s for account %s", ticket_type.value, ticket.id, account.id)
    return ticket, True


def ticket_stats(db: Session, ticket_type: TicketType | None = None) -> dict[str, int]:
    """Counts per status plus the total, for the admin dashboard cards."""
    with translate_store_errors("ticket stats"):
        query = db.query(IncidentTicket.status, func.count(IncidentTicket.id))
        if ticket_type is not None:
            query = query.filter(IncidentTicket.type == ticket_type)
        rows = query.group_by(IncidentTicket.status).all()

    counts = {status: count for status, count in rows}
    pending = counts.get(TicketStatus.PENDING, 0)
    approved = counts.get(TicketStatus.APPROVED, 0)
    rejected = counts.get(TicketStatus.REJECTED, 0)
    return {
        "total": pending + approved + rejected,
        "pending": pending,
        "approved": approved,
        "rejected": rejected,
    }
