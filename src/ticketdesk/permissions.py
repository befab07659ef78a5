"""Role-based UI gating.

Every predicate is a pure function of the role value and is meant to be
evaluated on each render. These checks only hide or disable controls; the
server re-validates authorization on every mutation endpoint.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Literal

from ticketdesk.errors import PermissionDeniedError, SelfDeactivationError
from ticketdesk.schemas import ROLES, Role

View = Literal[
    "dashboard",
    "admin-dashboard",
    "tickets",
    "ticket-detail",
    "categories",
    "users",
]

_VIEW_ROLES: dict[str, frozenset[str]] = {
    "dashboard": frozenset(ROLES),
    "admin-dashboard": frozenset({"admin"}),
    "tickets": frozenset({"admin", "agent"}),
    "ticket-detail": frozenset(ROLES),
    "categories": frozenset({"admin"}),
    "users": frozenset({"admin"}),
}


def allowed_roles(view: View) -> frozenset[str]:
    return _VIEW_ROLES.get(view, frozenset())


def can_open_view(role: Role | None, view: View) -> bool:
    return role is not None and role in allowed_roles(view)


def can_view_all_tickets(role: Role | None) -> bool:
    return role in {"admin", "agent"}


def can_create_ticket(role: Role | None) -> bool:
    return role == "customer"


def can_comment_as_agent(role: Role | None) -> bool:
    return role in {"admin", "agent"}


def can_close_ticket(role: Role | None) -> bool:
    return role in {"admin", "agent"}


def can_assign_agent(role: Role | None) -> bool:
    return role == "admin"


def can_manage_categories(role: Role | None) -> bool:
    return role == "admin"


def can_manage_users(role: Role | None) -> bool:
    return role == "admin"


def can_toggle_user_status(session_user_id: str | None, row_id: str) -> bool:
    """A user can never deactivate (or reactivate) their own account row."""
    return bool(session_user_id) and session_user_id != row_id


def require(predicate: Callable[[Role | None], bool], role: Role | None) -> None:
    if not predicate(role):
        raise PermissionDeniedError(f"role {role or 'anonymous'} may not perform this action")


def require_toggle_user_status(session_user_id: str | None, row_id: str) -> None:
    if session_user_id and session_user_id == row_id:
        raise SelfDeactivationError("You cannot change the status of your own account")
    if not session_user_id:
        raise PermissionDeniedError("no authenticated session")
