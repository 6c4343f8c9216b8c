"""Process-wide logging setup.

Every record carries the id of the request that produced it, taken from the
context variable set by ``RequestIDMiddleware``.
"""

from __future__ import annotations

import logging
from contextvars import ContextVar

from bonstay.app.core.config import settings

request_id_var: ContextVar[str] = ContextVar("request_id", default="-")

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] [request_id=%(request_id)s] %(message)s"


class RequestIDFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True


def configure_logging(level: str | None = None) -> None:
    """Install the request-aware handler on the root logger (idempotent)."""
    root = logging.getLogger()
    root.setLevel((level or settings.LOG_LEVEL).upper())

    for handler in root.handlers:
        if getattr(handler, "_bonstay", False):
            return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    handler.addFilter(RequestIDFilter())
    handler._bonstay = True  # type: ignore[attr-defined]
    root.addHandler(handler)
