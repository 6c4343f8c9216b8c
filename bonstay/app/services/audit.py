"""Security audit trail for the lockout and recovery workflow.

Every sign-in decision, lock, ticket transition and reset leaves one row in
``audit_logs``. Rows are added to the caller's session and committed with
the state change they describe, so a rolled-back transition leaves no trail.
"""

from __future__ import annotations

import enum
from typing import Any
from uuid import UUID

from sqlalchemy.orm import Session

from bonstay.app.models.audit import AuditLog


class AuditAction(str, enum.Enum):
    LOGIN_SUCCESS = "LOGIN_SUCCESS"
    LOGIN_FAILED = "LOGIN_FAILED"  # wrong password, role mismatch or inactive
    LOGIN_BLOCKED = "LOGIN_BLOCKED"  # attempt on an account that is already locked
    ACCOUNT_LOCKED = "ACCOUNT_LOCKED"
    TICKET_CREATED = "TICKET_CREATED"
    TICKET_APPROVED = "TICKET_APPROVED"
    TICKET_REJECTED = "TICKET_REJECTED"
    ACCOUNT_UNLOCKED = "ACCOUNT_UNLOCKED"  # reset by an approved ticket
    LOCKOUT_RESET = "LOCKOUT_RESET"  # explicit administrative reset


def log_action(
    db: Session,
    *,
    actor_id: UUID | None,
    action: AuditAction,
    resource_type: str,
    resource_id: str,
    changes: dict[str, Any] | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    """Stage an audit row for *action* performed by *actor_id*.

    The actor is the account signing in for login events and the resolving
    administrator for ticket decisions and resets. Does not flush or commit.
    """
    entry = AuditLog(
        table_name=resource_type,
        record_id=resource_id,
        action=action.value,
        changed_by=actor_id,
        new_values=changes,
        ip_address=ip_address,
    )
    db.add(entry)
    return entry
