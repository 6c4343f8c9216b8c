"""Attempt guard: the credential check that drives the failure counter.

Every evaluation of an unlocked account writes the counter (increment on a
miss, reset on a hit after earlier misses) and the threshold-th consecutive
miss locks the account. The row is read FOR UPDATE and written with an
optimistic version check, so two concurrent attempts cannot both read the
same counter and lose an increment.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from uuid import UUID

from sqlalchemy.orm import Session

from bonstay.app.core.config import settings
from bonstay.app.core.security import verify_password
from bonstay.app.models.account import Account
from bonstay.app.services.accounts import apply_lockout_state, get_account
from bonstay.app.utils.datetime_utils import utc_now

logger = logging.getLogger(__name__)


class AttemptOutcome(str, enum.Enum):
    ALLOW = "ALLOW"
    DENY = "DENY"
    LOCK = "LOCK"


@dataclass(frozen=True)
class AttemptResult:
    outcome: AttemptOutcome
    account: Account
    remaining: int | None = None


def _threshold() -> int:
    return settings.MAX_LOGIN_ATTEMPTS


def evaluate(db: Session, *, account_id: UUID | str, password: str) -> AttemptResult:
    """Check *password* against the account and update its lockout state.

    Store failures propagate as ``TransientStoreError``; this function never
    returns ALLOW unless the account row was read and the password matched.
    """
    account = get_account(db, account_id, for_update=True)

    if account.is_locked:
        # A matching password never clears a lock.
        return AttemptResult(AttemptOutcome.LOCK, account)

    if verify_password(password, account.hashed_password):
        if account.failed_login_attempts > 0:
            apply_lockout_state(db, account, failed_attempts=0)
        return AttemptResult(AttemptOutcome.ALLOW, account)

    threshold = _threshold()
    attempts = account.failed_login_attempts + 1

    if attempts >= threshold:
        apply_lockout_state(
            db, account, failed_attempts=attempts, locked=True, locked_at=utc_now()
        )
        logger.info("Account %s locked after %d failed attempts", account.id, attempts)
        return AttemptResult(AttemptOutcome.LOCK, account)

    apply_lockout_state(db, account, failed_attempts=attempts)
    return AttemptResult(AttemptOutcome.DENY, account, remaining=threshold - attempts)
