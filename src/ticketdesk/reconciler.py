"""Post-mutation reconciliation of the displayed page.

Policy, for every resource:
- create            -> refetch page 1 under the current filters
- update / toggle   -> patch the row in place when the server returned the
                       entity and it is on the page; otherwise refetch the
                       current page
- own user row      -> status toggle refused before any request

State only changes after the server confirms; nothing is applied
optimistically, so a failed mutation has nothing to roll back.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from ticketdesk import permissions
from ticketdesk.api_client import TicketDeskAPI
from ticketdesk.errors import ApiError, PermissionDeniedError
from ticketdesk.list_query import ListQueryController
from ticketdesk.resources import USERS
from ticketdesk.schemas import Ticket, TicketCreate, TicketStatus
from ticketdesk.session import SessionStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class MutationResult(Generic[M]):
    ok: bool
    entity: M | None = None
    error: str | None = None
    # True when the page was refetched rather than patched.
    refetched: bool = False


class MutationReconciler(Generic[M]):
    def __init__(
        self,
        controller: ListQueryController[M],
        api: TicketDeskAPI,
        session: SessionStore,
    ) -> None:
        self.controller = controller
        self.resource = controller.resource
        self._api = api
        self._session = session
        self.busy = False

    # ── Gating ──────────────────────────────────────────────────────────

    def can_toggle(self, row: M) -> bool:
        if self.resource.status_path is None:
            return False
        if self.resource.name == USERS.name:
            return permissions.can_toggle_user_status(self._session.user_id, _row_id(row))
        return True

    # ── Operations ──────────────────────────────────────────────────────

    async def create(self, payload: Mapping[str, Any]) -> MutationResult[M]:
        return await self._run_create(lambda: self._api.create(self.resource, payload))

    async def update(self, entity_id: str, payload: Mapping[str, Any]) -> MutationResult[M]:
        return await self._run_update(lambda: self._api.update(self.resource, entity_id, payload))

    async def toggle_status(self, row: M) -> MutationResult[M]:
        self.controller.clear_error()
        row_id = _row_id(row)
        try:
            if self.resource.status_path is None:
                raise PermissionDeniedError(f"{self.resource.name} rows have no status toggle")
            if self.resource.name == USERS.name:
                permissions.require_toggle_user_status(self._session.user_id, row_id)
        except PermissionDeniedError as e:
            logger.warning("status toggle refused resource=%s id=%s", self.resource.name, row_id)
            return MutationResult(ok=False, error=str(e))

        is_active = bool(getattr(row, "is_active", True))
        return await self._run_update(
            lambda: self._api.set_status(self.resource, row_id, not is_active)
        )

    # ── Shared paths ────────────────────────────────────────────────────

    async def _run_create(self, op: Callable[[], Awaitable[M]]) -> MutationResult[M]:
        self.controller.clear_error()
        entity = await self._call(op, "create")
        if isinstance(entity, MutationResult):
            return entity
        # A new row may not belong on the current page and totals change.
        await self.controller.fetch(page=1)
        return MutationResult(ok=True, entity=entity, refetched=True)

    async def _run_update(self, op: Callable[[], Awaitable[M]]) -> MutationResult[M]:
        self.controller.clear_error()
        entity = await self._call(op, "update")
        if isinstance(entity, MutationResult):
            return entity
        if self.controller.patch_item(entity):
            return MutationResult(ok=True, entity=entity)
        await self.controller.refresh()
        return MutationResult(ok=True, entity=entity, refetched=True)

    async def _call(self, op: Callable[[], Awaitable[M]], what: str) -> M | MutationResult[M]:
        self.busy = True
        try:
            return await op()
        except ApiError as e:
            logger.warning(
                "%s failed resource=%s error=%s status=%s",
                what,
                self.resource.name,
                e.message,
                e.status_code,
            )
            self.controller.report_error(e.message)
            return MutationResult(ok=False, error=e.message)
        finally:
            self.busy = False


class TicketReconciler(MutationReconciler[Ticket]):
    """Ticket mutations, plus the ticket currently open in a detail view."""

    def __init__(
        self,
        controller: ListQueryController[Ticket],
        api: TicketDeskAPI,
        session: SessionStore,
    ) -> None:
        super().__init__(controller, api, session)
        self.current_ticket: Ticket | None = None

    async def open_ticket(self, ticket_id: str) -> MutationResult[Ticket]:
        self.controller.clear_error()
        ticket = await self._call(lambda: self._api.get_ticket(ticket_id), "get")
        if isinstance(ticket, MutationResult):
            return ticket
        self.current_ticket = ticket
        return MutationResult(ok=True, entity=ticket)

    async def create_ticket(
        self,
        fields: TicketCreate,
        attachments: list[tuple[str, bytes, str]] | None = None,
    ) -> MutationResult[Ticket]:
        return await self._run_create(lambda: self._api.create_ticket(fields, attachments))

    async def update_ticket(self, ticket_id: str, comment_text: str) -> MutationResult[Ticket]:
        result = await self._run_update(lambda: self._api.update_ticket(ticket_id, comment_text))
        self._track_current(result)
        return result

    async def add_agent_comment(
        self, ticket_id: str, comment_text: str, status: TicketStatus
    ) -> MutationResult[Ticket]:
        role = self._session.role
        try:
            permissions.require(permissions.can_comment_as_agent, role)
            if status == "closed":
                permissions.require(permissions.can_close_ticket, role)
        except PermissionDeniedError as e:
            self.controller.clear_error()
            return MutationResult(ok=False, error=str(e))

        result = await self._run_update(
            lambda: self._api.add_agent_comment(ticket_id, comment_text, status)
        )
        self._track_current(result)
        return result

    def _track_current(self, result: MutationResult[Ticket]) -> None:
        if result.ok and result.entity is not None:
            self.current_ticket = result.entity


def _row_id(row: BaseModel) -> str:
    return str(getattr(row, "id", ""))
