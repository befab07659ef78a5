from __future__ import annotations

from .errors import ErrorEnvelope
from .categories import Category, CategoryCreate
from .notifications import (
    KNOWN_NOTIFICATION_TYPES,
    NotificationKind,
    NotificationRecord,
    notification_summary,
)
from .pages import ListPage
from .tickets import (
    AgentComment,
    Attachment,
    Ticket,
    TicketCreate,
    TicketPriority,
    TicketStatus,
)
from .users import ROLES, Role, User, UserUpdate

__all__ = [
    "AgentComment",
    "Attachment",
    "Category",
    "CategoryCreate",
    "ErrorEnvelope",
    "KNOWN_NOTIFICATION_TYPES",
    "ListPage",
    "NotificationKind",
    "NotificationRecord",
    "ROLES",
    "Role",
    "Ticket",
    "TicketCreate",
    "TicketPriority",
    "TicketStatus",
    "User",
    "UserUpdate",
    "notification_summary",
]
