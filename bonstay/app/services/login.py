"""Login orchestrator: the decision procedure every sign-in request follows.

Lookup -> lock check -> role check -> credential check (attempt guard) ->
on lockout, open the recovery ticket before answering.

A locked account is never reset here. Approval in the resolution workflow is
the single unlock path and it clears the lock in the same transaction as the
ticket update, so a locked account whose latest ticket is APPROVED was locked
again after that approval and needs a fresh ticket.

This module does NOT call db.commit().
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass

from sqlalchemy.orm import Session

from bonstay.app.core.config import settings
from bonstay.app.core.errors import InconsistencyError
from bonstay.app.models.account import Account, RoleEnum
from bonstay.app.models.ticket import IncidentTicket, TicketStatus, TicketType
from bonstay.app.services import attempt_guard, ticket_registry
from bonstay.app.services.accounts import get_account
from bonstay.app.services.attempt_guard import AttemptOutcome
from bonstay.app.services.audit import AuditAction, log_action

logger = logging.getLogger(__name__)


class LoginOutcome(str, enum.Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    LOCK = "LOCK"


class DenialReason(str, enum.Enum):
    INVALID_CREDENTIALS = "invalid_credentials"
    ROLE_MISMATCH = "role_mismatch"
    ACCOUNT_INACTIVE = "account_inactive"
    LOCKED_TICKET_REQUIRED = "locked_ticket_required"
    LOCKED_PENDING_REVIEW = "locked_pending_review"
    LOCKED_TICKET_REJECTED = "locked_ticket_rejected"


_MESSAGES = {
    DenialReason.ROLE_MISMATCH: "This account cannot sign in with the selected role.",
    DenialReason.ACCOUNT_INACTIVE: "This account is inactive.",
    DenialReason.LOCKED_TICKET_REQUIRED: (
        "Account locked. Open an incident ticket to request an unlock."
    ),
    DenialReason.LOCKED_PENDING_REVIEW: (
        "Account locked. Your incident ticket is awaiting administrator review."
    ),
    DenialReason.LOCKED_TICKET_REJECTED: (
        "Account locked. Your incident ticket was rejected; open a new one."
    ),
}

LOCK_MESSAGE = (
    "Account locked after {attempts} failed attempts. "
    "An incident ticket has been opened for administrator review."
)


@dataclass(frozen=True)
class LoginResult:
    outcome: LoginOutcome
    account: Account
    reason: DenialReason | None = None
    remaining: int | None = None
    ticket: IncidentTicket | None = None

    @property
    def message(self) -> str:
        if self.outcome is LoginOutcome.ALLOW:
            return "Login successful"
        if self.outcome is LoginOutcome.LOCK:
            return LOCK_MESSAGE.format(attempts=settings.MAX_LOGIN_ATTEMPTS)
        if self.reason is DenialReason.INVALID_CREDENTIALS:
            return (
                f"Incorrect password. {self.remaining} attempt(s) remaining "
                "before the account is locked."
            )
        return _MESSAGES[self.reason]  # type: ignore[index]


def _locked_denial(db: Session, account: Account) -> LoginResult:
    latest = ticket_registry.get_latest_for_account(db, account.id, TicketType.ACCOUNT_UNLOCK)

    if latest is None:
        reason = DenialReason.LOCKED_TICKET_REQUIRED
    elif latest.status is TicketStatus.PENDING:
        reason = DenialReason.LOCKED_PENDING_REVIEW
    elif latest.status is TicketStatus.REJECTED:
        reason = DenialReason.LOCKED_TICKET_REJECTED
    elif ticket_registry.approval_covers_current_lock(latest, account):
        logger.critical(
            "Account %s is locked although ticket %s approved its unlock", account.id, latest.id
        )
        raise InconsistencyError(
            "Account is locked despite an approved unlock ticket",
            ticket_id=latest.id,
            account_id=account.id,
        )
    else:
        # Approval from an earlier lock episode.
        reason = DenialReason.LOCKED_TICKET_REQUIRED

    ticket = latest if reason is not DenialReason.LOCKED_TICKET_REQUIRED else None
    return LoginResult(LoginOutcome.DENY, account, reason=reason, ticket=ticket)


def attempt_login(
    db: Session,
    *,
    identifier: str,
    password: str,
    role: RoleEnum,
    ip_address: str | None = None,
) -> LoginResult:
    """Run one sign-in attempt through the full state machine.

    Raises ``NotFoundError`` for an unknown identifier and propagates
    ``TransientStoreError`` unchanged; a store failure is never reported
    as a wrong password.
    """
    account = get_account(db, identifier)

    def _audit(action: AuditAction, **changes: object) -> None:
        log_action(
            db,
            actor_id=account.id,
            action=action,
            resource_type="auth",
            resource_id=account.username,
            ip_address=ip_address,
            changes=changes or None,
        )

    if account.is_locked:
        result = _locked_denial(db, account)
        _audit(AuditAction.LOGIN_BLOCKED, reason=result.reason.value)  # type: ignore[union-attr]
        return result

    if role != account.role:
        _audit(AuditAction.LOGIN_FAILED, reason=DenialReason.ROLE_MISMATCH.value)
        return LoginResult(LoginOutcome.DENY, account, reason=DenialReason.ROLE_MISMATCH)

    attempt = attempt_guard.evaluate(db, account_id=account.id, password=password)

    if attempt.outcome is AttemptOutcome.LOCK:
        ticket, created = ticket_registry.create_if_absent(
            db,
            account_id=account.id,
            ticket_type=TicketType.ACCOUNT_UNLOCK,
            failed_attempts=account.failed_login_attempts,
            ip_address=ip_address,
        )
        _audit(
            AuditAction.ACCOUNT_LOCKED,
            failed_attempts=account.failed_login_attempts,
            ticket_id=str(ticket.id),
            ticket_created=created,
        )
        return LoginResult(LoginOutcome.LOCK, account, ticket=ticket)

    if attempt.outcome is AttemptOutcome.DENY:
        _audit(
            AuditAction.LOGIN_FAILED,
            reason=DenialReason.INVALID_CREDENTIALS.value,
            remaining=attempt.remaining,
        )
        return LoginResult(
            LoginOutcome.DENY,
            account,
            reason=DenialReason.INVALID_CREDENTIALS,
            remaining=attempt.remaining,
        )

    if not account.is_active:
        _audit(AuditAction.LOGIN_FAILED, reason=DenialReason.ACCOUNT_INACTIVE.value)
        return LoginResult(LoginOutcome.DENY, account, reason=DenialReason.ACCOUNT_INACTIVE)

    _audit(AuditAction.LOGIN_SUCCESS, role=account.role.value)
    return LoginResult(LoginOutcome.ALLOW, account)
