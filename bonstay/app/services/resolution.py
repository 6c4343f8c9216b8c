"""Resolution workflow: the administrator's decision on a pending ticket.

Approval is the one authoritative unlock path. The ticket update and the
account reset run in the same transaction; if the reset fails after the
ticket row was written, everything is rolled back and the failure is
escalated as ``InconsistencyError`` instead of being retried.

This module does NOT call db.commit() on success; on an inconsistency it
rolls the session back itself before raising.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy.orm import Session

from bonstay.app.core.errors import InconsistencyError, InvalidStateError, LockoutServiceError
from bonstay.app.models.account import Account
from bonstay.app.models.ticket import Decision, IncidentTicket, TicketStatus
from bonstay.app.services.accounts import clear_lockout
from bonstay.app.services.audit import AuditAction, log_action
from bonstay.app.services.store import translate_store_errors
from bonstay.app.services.ticket_registry import get_ticket
from bonstay.app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


def _reset_account(db: Session, ticket: IncidentTicket) -> Account:
    with translate_store_errors("account lookup"):
        account = (
            db.query(Account)
            .filter(Account.id == ticket.account_id)
            .with_for_update()
            .populate_existing()
            .first()
        )
    if account is None:
        raise LookupError(f"account {ticket.account_id} referenced by ticket is missing")
    return clear_lockout(db, account)


def resolve(
    db: Session,
    *,
    ticket_id: UUID,
    decision: Decision,
    admin_id: UUID,
    notes: str | None = None,
    ip_address: str | None = None,
) -> IncidentTicket:
    """Move a PENDING ticket to APPROVED or REJECTED.

    Raises ``InvalidStateError`` if the ticket is already terminal.
    """
    ticket = get_ticket(db, ticket_id, for_update=True)
    if ticket.status.is_terminal:
        logger.warning(
            "Admin %s tried to %s ticket %s which is already %s",
            admin_id,
            decision.value.lower(),
            ticket.id,
            ticket.status.value,
        )
        raise InvalidStateError(f"Ticket is already {ticket.status.value.lower()}")

    ticket.status = (
        TicketStatus.APPROVED if decision is Decision.APPROVE else TicketStatus.REJECTED
    )
    ticket.resolved_by = admin_id
    ticket.resolved_at = utc_now()
    ticket.admin_notes = notes
    with translate_store_errors("ticket update"):
        db.flush()

    log_action(
        db,
        actor_id=admin_id,
        action=AuditAction(f"TICKET_{ticket.status.value}"),
        resource_type="incident_tickets",
        resource_id=str(ticket.id),
        changes={"account_id": str(ticket.account_id), "notes": notes},
        ip_address=ip_address,
    )

    if decision is Decision.REJECT:
        logger.info("Ticket %s rejected by admin %s", ticket.id, admin_id)
        return ticket

    account_id = ticket.account_id
    try:
        account = _reset_account(db, ticket)
    except (LockoutServiceError, LookupError) as exc:
        db.rollback()
        logger.critical(
            "Ticket %s approval rolled back: account %s could not be reset (%s)",
            ticket_id,
            account_id,
            exc,
        )
        raise InconsistencyError(
            "Ticket approval could not unlock the account",
            ticket_id=ticket_id,
            account_id=account_id,
        ) from exc

    log_action(
        db,
        actor_id=admin_id,
        action=AuditAction.ACCOUNT_UNLOCKED,
        resource_type="accounts",
        resource_id=str(account.id),
        changes={"ticket_id": str(ticket.id)},
        ip_address=ip_address,
    )
    logger.info("Ticket %s approved by admin %s; account %s unlocked", ticket.id, admin_id, account.id)
    return ticket
