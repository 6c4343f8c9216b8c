# bonstay/app/models/lockout.py: single import point for every mapped table
#
# Importing this module registers all models on ``Base.metadata`` so that
# foreign keys resolve and ``create_all`` sees every table.

from bonstay.app.models.account import Account, RoleEnum
from bonstay.app.models.audit import AuditLog
from bonstay.app.models.ticket import Decision, IncidentTicket, TicketStatus, TicketType

__all__ = [
    "Account",
    "RoleEnum",
    "AuditLog",
    "Decision",
    "IncidentTicket",
    "TicketStatus",
    "TicketType",
]
