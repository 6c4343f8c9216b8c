"""Account lookup and the internal lockout-state mutation surface.

``apply_lockout_state`` is the only place that writes the lockout columns.
It is called by the attempt guard, the resolution workflow and the
administrative reset; nothing outside these services may call it and it is
not exposed over HTTP.

This module does NOT call db.commit(); the caller owns the transaction.
"""

from __future__ import annotations

import logging
from datetime import datetime
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from bonstay.app.core.errors import InvalidStateError, NotFoundError
from bonstay.app.core.security import get_password_hash
from bonstay.app.models.account import Account, RoleEnum
from bonstay.app.models.ticket import IncidentTicket, TicketStatus
from bonstay.app.services.audit import AuditAction, log_action
from bonstay.app.services.store import translate_store_errors

logger = logging.getLogger(__name__)

_UNSET = object()


def _parse_uuid(identifier: str | UUID) -> UUID | None:
    if isinstance(identifier, UUID):
        return identifier
    try:
        return UUID(identifier)
    except (TypeError, ValueError):
        return None


def find_account(db: Session, identifier: str | UUID, *, for_update: bool = False) -> Account | None:
    """Resolve an account by id or, failing that, by username (case-insensitive).

    With ``for_update`` the row is locked and re-read even if the session
    already holds it, so callers decide on the committed lockout state.
    """
    with translate_store_errors("account lookup"):
        account_id = _parse_uuid(identifier)
        if account_id is not None:
            query = db.query(Account).filter(Account.id == account_id)
        else:
            query = db.query(Account).filter(
                func.lower(Account.username) == str(identifier).lower()
            )
        if for_update:
            query = query.with_for_update().populate_existing()
        return query.first()


def get_account(db: Session, identifier: str | UUID, *, for_update: bool = False) -> Account:
    """Like ``find_account`` but raises ``NotFoundError`` when absent."""
    account = find_account(db, identifier, for_update=for_update)
    if account is None:
        raise NotFoundError("Account", identifier)
    return account


def create_account(
    db: Session,
    *,
    username: str,
    password: str,
    role: RoleEnum = RoleEnum.USER,
    email: str | None = None,
    full_name: str | None = None,
) -> Account:
    """Register an account. Raises ValueError if the username is taken."""
    existing = db.query(Account).filter(
        func.lower(Account.username) == username.lower()
    ).first()
    if existing:
        raise ValueError("Username already exists")

    account = Account(
        username=username,
        hashed_password=get_password_hash(password),
        role=role,
        email=email,
        full_name=full_name,
    )
    db.add(account)
    db.flush()
    return account


def apply_lockout_state(
    db: Session,
    account: Account,
    *,
    failed_attempts: int | None = None,
    locked: bool | None = None,
    locked_at: datetime | None | object = _UNSET,
) -> Account:
    """Write the given lockout fields and flush.

    The flush runs the optimistic version check; a concurrent writer surfaces
    as ``ConcurrentUpdateError``.
    """
    if failed_attempts is not None:
        if failed_attempts < 0:
            raise ValueError("failed_attempts must be non-negative")
        account.failed_login_attempts = failed_attempts
    if locked is not None:
        account.is_locked = locked
    if locked_at is not _UNSET:
        account.locked_at = locked_at  # type: ignore[assignment]

    with translate_store_errors("account update"):
        db.flush()
    return account


def clear_lockout(db: Session, account: Account) -> Account:
    return apply_lockout_state(db, account, failed_attempts=0, locked=False, locked_at=None)


def reset_lockout(
    db: Session,
    *,
    identifier: str | UUID,
    admin_id: UUID,
    ip_address: str | None = None,
) -> Account:
    """Explicit administrative reset of an account's lockout state.

    Refused while a PENDING ticket exists: that episode is closed by resolving
    the ticket, so every lock episode has exactly one reset.
    """
    account = get_account(db, identifier, for_update=True)

    with translate_store_errors("pending ticket lookup"):
        pending = (
            db.query(IncidentTicket.id)
            .filter(
                IncidentTicket.account_id == account.id,
                IncidentTicket.status == TicketStatus.PENDING,
            )
            .first()
        )
    if pending is not None:
        logger.warning(
            "Refused lockout reset for %s: pending ticket %s", account.id, pending.id
        )
        raise InvalidStateError(
            "Account has a pending incident ticket; resolve the ticket instead"
        )

    previous = {"failed_attempts": account.failed_login_attempts, "locked": account.is_locked}
    clear_lockout(db, account)

    log_action(
        db,
        actor_id=admin_id,
        action=AuditAction.LOCKOUT_RESET,
        resource_type="accounts",
        resource_id=str(account.id),
        changes={"previous": previous},
        ip_address=ip_address,
    )
    logger.info("Lockout state of account %s reset by admin %s", account.id, admin_id)
    return account
