"""Racing requests against one account, each in its own session and thread.

These run against a file-backed SQLite database so that every worker has its
own connection and the database, not the test, serializes the writers.
"""

from __future__ import annotations

import threading
from pathlib import Path
from typing import Callable, Generator
from uuid import UUID

import pytest
from sqlalchemy import Engine
from sqlalchemy.orm import Session, sessionmaker

from bonstay.app.core.database import Base, create_store_engine
from bonstay.app.models.lockout import Account, IncidentTicket, RoleEnum, TicketStatus
from bonstay.app.services.accounts import apply_lockout_state, create_account
from bonstay.app.services.login import DenialReason, LoginOutcome, attempt_login
from bonstay.app.services.store import run_with_retry
from bonstay.app.services.ticket_registry import create_if_absent
from bonstay.app.utils.datetime_utils import utc_now
from bonstay.tests.conftest import WRONG_PASSWORD

WORKERS = 8
# Losers of a write race see "database is locked" and retry.
RETRY_ATTEMPTS = 25
RETRY_WAIT = 0.01


@pytest.fixture()
def file_engine(tmp_path: Path) -> Generator[Engine, None, None]:
    eng = create_store_engine(f"sqlite:///{tmp_path / 'race.db'}")
    Base.metadata.create_all(bind=eng)
    yield eng
    eng.dispose()


@pytest.fixture()
def session_factory(file_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=file_engine, autoflush=False)


@pytest.fixture()
def seed_account(session_factory: sessionmaker[Session]) -> Callable[..., UUID]:
    def _seed(username: str, *, failed_attempts: int, locked: bool) -> UUID:
        with session_factory() as db:
            account = create_account(db, username=username, password="correct-horse-battery")
            apply_lockout_state(
                db,
                account,
                failed_attempts=failed_attempts,
                locked=locked,
                locked_at=utc_now() if locked else None,
            )
            db.commit()
            return account.id

    return _seed


def _race(
    session_factory: sessionmaker[Session],
    unit_of_work: Callable[[Session], object],
) -> tuple[list[object], list[Exception]]:
    """Start WORKERS threads together; each commits *unit_of_work* once."""
    barrier = threading.Barrier(WORKERS)
    results: list[object] = []
    errors: list[Exception] = []
    guard = threading.Lock()

    def _worker() -> None:
        with session_factory() as db:
            try:
                barrier.wait(timeout=30)
                result = run_with_retry(
                    db,
                    lambda: unit_of_work(db),
                    operation="race",
                    max_attempts=RETRY_ATTEMPTS,
                    min_wait=RETRY_WAIT,
                )
            except Exception as exc:  # collected and asserted on below
                with guard:
                    errors.append(exc)
                return
            with guard:
                results.append(result)

    threads = [threading.Thread(target=_worker) for _ in range(WORKERS)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)
    return results, errors


def _pending_tickets(session_factory: sessionmaker[Session], account_id: UUID) -> list[UUID]:
    with session_factory() as db:
        return [
            t.id
            for t in db.query(IncidentTicket).filter(
                IncidentTicket.account_id == account_id,
                IncidentTicket.status == TicketStatus.PENDING,
            )
        ]


class TestConcurrentTicketCreation:
    def test_racing_creators_share_one_pending_ticket(
        self,
        session_factory: sessionmaker[Session],
        seed_account: Callable[..., UUID],
    ) -> None:
        account_id = seed_account("racer", failed_attempts=3, locked=True)

        def _open(db: Session) -> tuple[UUID, bool]:
            ticket, created = create_if_absent(db, account_id=account_id)
            return ticket.id, created

        results, errors = _race(session_factory, _open)

        assert errors == []
        assert len(results) == WORKERS
        pending = _pending_tickets(session_factory, account_id)
        assert len(pending) == 1
        assert {ticket_id for ticket_id, _ in results} == set(pending)
        assert sum(1 for _, created in results if created) == 1


class TestConcurrentLogins:
    def test_racing_failures_lock_once(
        self,
        session_factory: sessionmaker[Session],
        seed_account: Callable[..., UUID],
    ) -> None:
        account_id = seed_account("hammered", failed_attempts=2, locked=False)

        def _fail(db: Session) -> tuple[LoginOutcome, DenialReason | None]:
            result = attempt_login(
                db, identifier=str(account_id), password=WRONG_PASSWORD, role=RoleEnum.USER
            )
            return result.outcome, result.reason

        results, errors = _race(session_factory, _fail)

        assert errors == []
        assert len(results) == WORKERS
        outcomes = [outcome for outcome, _ in results]
        assert outcomes.count(LoginOutcome.LOCK) == 1
        assert LoginOutcome.ALLOW not in outcomes
        # Everyone after the lock is told a ticket is already under review.
        assert {
            reason for outcome, reason in results if outcome is LoginOutcome.DENY
        } <= {DenialReason.LOCKED_PENDING_REVIEW}

        with session_factory() as db:
            account = db.get(Account, account_id)
            assert account.is_locked is True
            assert account.failed_login_attempts == 3
        assert len(_pending_tickets(session_factory, account_id)) == 1
