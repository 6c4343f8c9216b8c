from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from bonstay.app.api.deps import client_ip, get_current_active_admin, to_http_exception
from bonstay.app.api.v1.endpoints.auth import perform_login
from bonstay.app.core.database import get_db
from bonstay.app.core.errors import LockoutServiceError
from bonstay.app.models.account import Account
from bonstay.app.schemas.accounts import AccountOut, LoginAttemptIn, LoginAttemptOut
from bonstay.app.services.accounts import get_account, reset_lockout
from bonstay.app.services.store import run_with_retry

router = APIRouter()


@router.post("/{identifier}/login-attempt", response_model=LoginAttemptOut)
def login_attempt(
    identifier: str,
    body: LoginAttemptIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginAttemptOut:
    """Run one sign-in attempt for the account (id or username)."""
    return perform_login(
        request,
        response,
        db,
        identifier=identifier,
        password=body.password,
        role=body.role,
    )


@router.get("/{identifier}", response_model=AccountOut)
def read_account(
    identifier: str,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> Account:
    """Read-only account record. Admin only."""
    try:
        return get_account(db, identifier)
    except LockoutServiceError as e:
        raise to_http_exception(e)


@router.post("/{identifier}/reset-lockout", response_model=AccountOut)
def admin_reset_lockout(
    identifier: str,
    request: Request,
    db: Session = Depends(get_db),
    current_user: Account = Depends(get_current_active_admin),
) -> Account:
    """Clear the failure counter and lock of an account. Admin only."""
    admin_id = current_user.id
    ip = client_ip(request)
    try:
        account = run_with_retry(
            db,
            lambda: reset_lockout(
                db, identifier=identifier, admin_id=admin_id, ip_address=ip
            ),
            operation="lockout reset",
        )
    except LockoutServiceError as e:
        raise to_http_exception(e)
    return account
