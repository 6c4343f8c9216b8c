"""Domain errors raised by the lockout and recovery services.

Services raise these; endpoints translate them to HTTP responses (see
``bonstay.app.api.deps.to_http_exception``). Only ``TransientStoreError`` and
its subclasses are safe to retry.
"""

from __future__ import annotations


class LockoutServiceError(Exception):
    """Base class for every error raised by the recovery services."""


class NotFoundError(LockoutServiceError):
    """An account or ticket identifier does not resolve."""

    def __init__(self, kind: str, identifier: object) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} not found: {identifier}")


class InvalidStateError(LockoutServiceError):
    """The requested transition is not allowed from the current state."""


class TransientStoreError(LockoutServiceError):
    """The record store was unreachable or timed out."""


class ConcurrentUpdateError(TransientStoreError):
    """A row changed between read and write; the caller should retry."""


class InconsistencyError(LockoutServiceError):
    """A two-record transition landed only partially.

    Never retried automatically: a blind retry could apply the reset twice.
    """

    def __init__(self, message: str, *, ticket_id: object = None, account_id: object = None) -> None:
        self.ticket_id = ticket_id
        self.account_id = account_id
        super().__init__(message)
