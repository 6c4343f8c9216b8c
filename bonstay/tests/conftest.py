"""Shared test fixtures.

Each test gets its own in-memory SQLite database, so tests never pollute
each other. Settings are pinned before the application is imported.
"""

from __future__ import annotations

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("STORE_RETRY_WAIT_SECONDS", "0")

from typing import Callable, Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from sqlalchemy import Engine  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from bonstay.app.api.v1.endpoints.auth import login_limiter  # noqa: E402
from bonstay.app.core.database import Base, create_store_engine, get_db  # noqa: E402
from bonstay.app.core.security import create_access_token  # noqa: E402
from bonstay.app.main import app  # noqa: E402
from bonstay.app.models.lockout import Account, RoleEnum  # noqa: E402
from bonstay.app.services.accounts import apply_lockout_state, create_account  # noqa: E402
from bonstay.app.utils.datetime_utils import utc_now  # noqa: E402

PASSWORD = "correct-horse-battery"
WRONG_PASSWORD = "not-the-password"


# ─── Database ────────────────────────────────────────────────────────────────


@pytest.fixture()
def engine() -> Generator[Engine, None, None]:
    eng = create_store_engine("sqlite://")
    Base.metadata.create_all(bind=eng)
    yield eng
    Base.metadata.drop_all(bind=eng)
    eng.dispose()


@pytest.fixture()
def db(engine: Engine) -> Generator[Session, None, None]:
    session = Session(bind=engine, autoflush=False)
    yield session
    session.close()


@pytest.fixture()
def client(db: Session) -> Generator[TestClient, None, None]:
    """FastAPI TestClient wired to the per-test session."""

    def _override_get_db() -> Generator[Session, None, None]:
        yield db

    app.dependency_overrides[get_db] = _override_get_db
    with TestClient(app) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture(autouse=True)
def _reset_login_limiter() -> Generator[None, None, None]:
    login_limiter.reset()
    yield
    login_limiter.reset()


# ─── Accounts ────────────────────────────────────────────────────────────────


@pytest.fixture()
def make_account(db: Session) -> Callable[..., Account]:
    def _make(
        username: str = "guest01",
        *,
        role: RoleEnum = RoleEnum.USER,
        password: str = PASSWORD,
        failed_attempts: int = 0,
        locked: bool = False,
    ) -> Account:
        account = create_account(
            db,
            username=username,
            password=password,
            role=role,
            email=f"{username}@bonstay.test",
            full_name=username.title(),
        )
        if failed_attempts or locked:
            apply_lockout_state(
                db,
                account,
                failed_attempts=failed_attempts,
                locked=locked,
                locked_at=utc_now() if locked else None,
            )
        db.commit()
        return account

    return _make


@pytest.fixture()
def guest(make_account: Callable[..., Account]) -> Account:
    return make_account("guest01")


@pytest.fixture()
def locked_guest(make_account: Callable[..., Account]) -> Account:
    return make_account("locked01", failed_attempts=3, locked=True)


@pytest.fixture()
def admin(make_account: Callable[..., Account]) -> Account:
    return make_account("admin01", role=RoleEnum.ADMIN)


@pytest.fixture()
def admin_token(admin: Account) -> str:
    return create_access_token(subject=str(admin.id))


@pytest.fixture()
def guest_token(guest: Account) -> str:
    return create_access_token(subject=str(guest.id))


def auth(token: str) -> dict[str, str]:
    """Return Authorization header dict."""
    return {"Authorization": f"Bearer {token}"}
