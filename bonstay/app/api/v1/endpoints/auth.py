from __future__ import annotations

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from bonstay.app.api.deps import client_ip, oauth2_scheme, to_http_exception
from bonstay.app.core.config import settings
from bonstay.app.core.database import get_db
from bonstay.app.core.errors import LockoutServiceError
from bonstay.app.core.security import create_access_token, revoke_token
from bonstay.app.middleware.rate_limit import InMemoryRateLimiter
from bonstay.app.models.account import RoleEnum
from bonstay.app.schemas.accounts import LoginAttemptOut, LoginIn, MessageOut
from bonstay.app.services.login import LoginOutcome, attempt_login
from bonstay.app.services.store import run_with_retry

router = APIRouter()

# ─── Rate Limiting ───────────────────────────────────────────────────────────
# In-memory per-IP rate limiter. For multi-replica, use Redis.
login_limiter = InMemoryRateLimiter(
    window_seconds=settings.LOGIN_RATE_LIMIT_WINDOW_SECONDS,
    max_attempts=settings.LOGIN_RATE_LIMIT_MAX_ATTEMPTS,
)

_OUTCOME_STATUS = {
    LoginOutcome.ALLOW: status.HTTP_200_OK,
    LoginOutcome.DENY: status.HTTP_401_UNAUTHORIZED,
    LoginOutcome.LOCK: status.HTTP_423_LOCKED,
}


def perform_login(
    request: Request,
    response: Response,
    db: Session,
    *,
    identifier: str,
    password: str,
    role: RoleEnum,
) -> LoginAttemptOut:
    """Shared body of both login routes: throttle, decide, commit, answer."""
    ip = client_ip(request)
    login_limiter.check(ip)

    try:
        result = run_with_retry(
            db,
            lambda: attempt_login(
                db, identifier=identifier, password=password, role=role, ip_address=ip
            ),
            operation="login attempt",
        )
    except LockoutServiceError as e:
        raise to_http_exception(e)

    body = LoginAttemptOut(
        outcome=result.outcome,
        message=result.message,
        reason=result.reason,
        remaining=result.remaining,
        ticket_id=result.ticket.id if result.ticket is not None else None,
    )
    if result.outcome is LoginOutcome.ALLOW:
        body.access_token = create_access_token(subject=str(result.account.id))
        body.token_type = "bearer"

    response.status_code = _OUTCOME_STATUS[result.outcome]
    return body


@router.post("/login", response_model=LoginAttemptOut)
def login(
    body: LoginIn,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> LoginAttemptOut:
    """Sign in with the identifier in the body (id or username)."""
    return perform_login(
        request,
        response,
        db,
        identifier=body.identifier,
        password=body.password,
        role=body.role,
    )


# ─── Logout ──────────────────────────────────────────────────────────────────


@router.post("/logout", response_model=MessageOut)
def logout(token: str = Depends(oauth2_scheme)) -> dict[str, str]:
    """Invalidate the current access token."""
    revoke_token(token)
    return {"detail": "Logged out successfully"}
