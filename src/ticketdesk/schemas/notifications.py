from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

NotificationKind = Literal["ticket.created", "ticket.updated", "ticket.status.updated", "other"]
KNOWN_NOTIFICATION_TYPES: frozenset[str] = frozenset(
    {"ticket.created", "ticket.updated", "ticket.status.updated"}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class NotificationRecord(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    # Kept verbatim; the set is open-ended on the wire. See `kind`.
    type: str = Field(default="other", min_length=1)
    # Opaque per-type payload.
    payload: dict[str, Any] = Field(default_factory=dict)
    read: bool = Field(default=False, validation_alias=AliasChoices("read", "isRead"))
    created_at: datetime = Field(default_factory=utc_now, alias="createdAt")

    @property
    def kind(self) -> NotificationKind:
        if self.type in KNOWN_NOTIFICATION_TYPES:
            return self.type  # type: ignore[return-value]
        return "other"


def _ticket_label(payload: dict[str, Any]) -> str:
    for key in ("ticketName", "name", "title"):
        v = payload.get(key)
        if isinstance(v, str) and v.strip():
            return v.strip()
    ticket_id = payload.get("ticketId") or payload.get("ticket_id")
    if ticket_id:
        return f"#{ticket_id}"
    return "a ticket"


def notification_summary(record: NotificationRecord) -> tuple[str, str]:
    """Return (title, message) display text for a notification."""
    payload = record.payload or {}
    explicit = payload.get("message")
    label = _ticket_label(payload)

    if record.kind == "ticket.created":
        title = "New ticket"
        message = f"Ticket {label} was created"
    elif record.kind == "ticket.updated":
        title = "Ticket updated"
        message = f"Ticket {label} was updated"
    elif record.kind == "ticket.status.updated":
        title = "Ticket status changed"
        status = payload.get("status")
        if isinstance(status, str) and status:
            message = f"Ticket {label} is now {status}"
        else:
            message = f"Ticket {label} changed status"
    else:
        title = str(payload.get("title") or "Notification")
        message = ""

    if isinstance(explicit, str) and explicit.strip():
        message = explicit.strip()
    return title, message
