from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, Response, status
from sqlalchemy.orm import Session

from bonstay.app.api.deps import client_ip, get_current_active_admin, to_http_exception
from bonstay.app.core.database import get_db
from bonstay.app.core.errors import LockoutServiceError
from bonstay.app.models.account import Account
from bonstay.app.models.ticket import IncidentTicket, TicketStatus, TicketType
from bonstay.app.schemas.tickets import TicketCreate, TicketOut, TicketResolve, TicketStatsOut
from bonstay.app.services import ticket_registry
from bonstay.app.services.accounts import get_account
from bonstay.app.services.resolution import resolve
from bonstay.app.services.store import run_with_retry

router = APIRouter()


@router.post("", response_model=TicketOut, status_code=status.HTTP_201_CREATED)
def open_ticket(
    body: TicketCreate,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> IncidentTicket:
    """Open a recovery ticket for a locked account.

    Idempotent: while a pending ticket exists it is returned with 200.
    """
    ip = client_ip(request)
    try:
        ticket, created = run_with_retry(
            db,
            lambda: ticket_registry.create_if_absent(
                db,
                account_id=body.account_id,
                ticket_type=body.type,
                failed_attempts=body.failed_attempts,
                ip_address=ip,
            ),
            operation="ticket creation",
        )
    except LockoutServiceError as e:
        raise to_http_exception(e)

    if not created:
        response.status_code = status.HTTP_200_OK
    return ticket


@router.get("", response_model=list[TicketOut])
def list_tickets(
    account_id: str | None = Query(None),
    type: TicketType | None = Query(None),
    status_filter: TicketStatus | None = Query(None, alias="status"),
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> list[IncidentTicket]:
    """Ticket history, latest first. Admin only."""
    try:
        resolved_id = get_account(db, account_id).id if account_id else None
        return ticket_registry.list_tickets(
            db, account_id=resolved_id, ticket_type=type, status=status_filter
        )
    except LockoutServiceError as e:
        raise to_http_exception(e)


@router.get("/stats", response_model=TicketStatsOut)
def read_ticket_stats(
    type: TicketType | None = Query(None),
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> dict[str, int]:
    """Ticket counts per status. Admin only."""
    try:
        return ticket_registry.ticket_stats(db, ticket_type=type)
    except LockoutServiceError as e:
        raise to_http_exception(e)


@router.get("/{ticket_id}", response_model=TicketOut)
def read_ticket(
    ticket_id: UUID,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> IncidentTicket:
    try:
        return ticket_registry.get_ticket(db, ticket_id)
    except LockoutServiceError as e:
        raise to_http_exception(e)


@router.patch("/{ticket_id}", response_model=TicketOut)
def resolve_ticket(
    ticket_id: UUID,
    body: TicketResolve,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> IncidentTicket:
    """Approve (and unlock the account) or reject a pending ticket. Admin only."""
    admin_id = current_user.id
    ip = client_ip(request)
    try:
        return run_with_retry(
            db,
            lambda: resolve(
                db,
                ticket_id=ticket_id,
                decision=body.decision,
                admin_id=admin_id,
                notes=body.notes,
                ip_address=ip,
            ),
            operation="ticket resolution",
        )
    except LockoutServiceError as e:
        raise to_http_exception(e)
