from __future__ import annotations

import logging
from uuid import UUID

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from jose import JWTError, jwt
from sqlalchemy.orm import Session

from bonstay.app.core.config import settings
from bonstay.app.core.database import get_db
from bonstay.app.core.errors import (
    InconsistencyError,
    InvalidStateError,
    LockoutServiceError,
    NotFoundError,
    TransientStoreError,
)
from bonstay.app.core.security import ALGORITHM, is_token_revoked
from bonstay.app.models.account import Account, RoleEnum

logger = logging.getLogger(__name__)

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/v1/auth/login")


def client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> Account:
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    # Check if token was revoked (logout)
    if is_token_revoked(token):
        raise credentials_exception

    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        user_id: str | None = payload.get("sub")
        if user_id is None:
            raise credentials_exception
        account_id = UUID(user_id)
    except (JWTError, ValueError):
        raise credentials_exception

    account = db.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise credentials_exception
    if not account.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Inactive user"
        )
    if account.is_locked:
        raise HTTPException(
            status_code=status.HTTP_423_LOCKED, detail="Account locked"
        )
    return account


def get_current_active_admin(
    current_user: Account = Depends(get_current_user),
) -> Account:
    if current_user.role != RoleEnum.ADMIN:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required",
        )
    return current_user


def to_http_exception(exc: LockoutServiceError) -> HTTPException:
    """Map a domain error onto the HTTP status the API reports for it."""
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))
    if isinstance(exc, InvalidStateError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, TransientStoreError):
        return HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Record store temporarily unavailable. Please retry.",
            headers={"Retry-After": "1"},
        )
    if isinstance(exc, InconsistencyError):
        return HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Account and ticket state are inconsistent; an administrator has been alerted.",
        )
    logger.error("Unmapped lockout service error: %s", exc)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))
