"""REST client for the ticket service.

Every call goes through `_request`, which is the single place where:
- the bearer token is attached from the session store,
- timeouts / transport failures become ApiTimeoutError / ApiConnectionError,
- 401 replies trigger the global policy (clear persisted session, send the
  UI to the login entry point) before AuthorizationError is raised,
- the {success, message, data} envelope is unwrapped.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ticketdesk.errors import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    AuthorizationError,
)
from ticketdesk.resources import CATEGORIES, TICKETS, USERS, ResourceSpec
from ticketdesk.schemas import (
    Category,
    CategoryCreate,
    ErrorEnvelope,
    ListPage,
    NotificationRecord,
    Ticket,
    TicketCreate,
    TicketStatus,
    User,
    UserUpdate,
)
from ticketdesk.session import SessionState, SessionStore

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

FilterValue = str | bool | int | None
UnauthorizedHandler = Callable[[str], None]


def build_query_params(page: int, limit: int, filters: Mapping[str, FilterValue]) -> dict[str, str]:
    """Build list query params. None and blank values are omitted, never sent empty."""
    params: dict[str, str] = {"page": str(int(page)), "limit": str(int(limit))}
    for key, value in filters.items():
        if value is None:
            continue
        if isinstance(value, bool):
            params[key] = "true" if value else "false"
            continue
        text = str(value).strip()
        if not text:
            continue
        params[key] = text
    return params


def _extract_items(data: object, keys: tuple[str, ...]) -> list[dict[str, Any]]:
    if isinstance(data, list):
        return [x for x in data if isinstance(x, dict)]
    if isinstance(data, dict):
        for key in keys:
            v = data.get(key)
            if isinstance(v, list):
                return [x for x in v if isinstance(x, dict)]
    return []


def _int_or(value: object, default: int) -> int:
    if isinstance(value, bool):
        return default
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return default


def parse_list_page(data: object, resource: ResourceSpec[M], requested_page: int) -> ListPage[M]:
    items_raw = _extract_items(data, resource.list_keys)
    meta: dict[str, Any] = data if isinstance(data, dict) else {}

    total_records = _int_or(meta.get("totalRecords"), -1)
    if total_records < 0:
        total_records = _int_or(meta.get("total"), len(items_raw))
    # Falsy totals fall back to 1 page, matching the server's empty-list replies.
    total_pages = _int_or(meta.get("totalPages"), 0) or 1
    current_page = _int_or(meta.get("currentPage"), 0) or requested_page

    try:
        items = [resource.item_model.model_validate(x) for x in items_raw]
    except ValidationError as e:
        raise ApiError(f"{resource.name} list response cannot be parsed: {e}") from e
    return ListPage(
        items=items,
        total_records=total_records,
        total_pages=total_pages,
        current_page=current_page,
    )


def _error_from_response(resp: httpx.Response) -> ApiError:
    fallback = f"Request failed with status {resp.status_code}"
    details: object | None = None
    try:
        body = resp.json()
    except ValueError:
        body = None
    if isinstance(body, dict):
        try:
            env = ErrorEnvelope.model_validate(body)
        except ValidationError:
            message = fallback
        else:
            message = env.best_message(fallback)
            details = env.details if env.details is not None else env.detail
    else:
        message = resp.text.strip()[:500] or fallback
    return ApiError(message, status_code=resp.status_code, details=details)


class TicketDeskAPI:
    def __init__(
        self,
        *,
        base_url: str,
        session_store: SessionStore,
        timeout_seconds: float,
        login_path: str = "/login",
        on_unauthorized: UnauthorizedHandler | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._session = session_store
        self._timeout = timeout_seconds
        self._login_path = login_path
        self._client = client
        self.on_unauthorized = on_unauthorized

    def _headers(self) -> dict[str, str]:
        token = self._session.token
        if not token:
            return {}
        return {"Authorization": f"Bearer {token}"}

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json: object | None = None,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None,
    ) -> httpx.Response:
        kwargs: dict[str, Any] = {"headers": self._headers(), "params": params}
        if json is not None:
            kwargs["json"] = json
        if data is not None:
            kwargs["data"] = data
        if files:
            kwargs["files"] = files
        if self._client is not None:
            return await self._client.request(method, url, timeout=self._timeout, **kwargs)
        async with httpx.AsyncClient(timeout=self._timeout) as client:
            return await client.request(method, url, **kwargs)

    def _handle_unauthorized(self) -> None:
        self._session.clear()
        if self.on_unauthorized is not None:
            self.on_unauthorized(self._login_path)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: object | None = None,
        params: Mapping[str, str] | None = None,
        data: Mapping[str, str] | None = None,
        files: list[tuple[str, tuple[str, bytes, str]]] | None = None,
    ) -> Any:
        url = f"{self._base_url}{path}"
        try:
            resp = await self._send(method, url, json=json, params=params, data=data, files=files)
        except httpx.TimeoutException as e:
            logger.warning("request timed out method=%s path=%s", method, path)
            raise ApiTimeoutError(f"{method} {path} timed out after {self._timeout}s") from e
        except httpx.RequestError as e:
            logger.warning("request failed method=%s path=%s error=%s", method, path, e)
            raise ApiConnectionError(f"{method} {path} failed: {e}") from e

        if resp.status_code == 401:
            logger.info("unauthorized reply method=%s path=%s; clearing session", method, path)
            self._handle_unauthorized()
            err = _error_from_response(resp)
            raise AuthorizationError(err.message, status_code=401, details=err.details)

        if not (200 <= resp.status_code < 300):
            raise _error_from_response(resp)

        if resp.status_code == 204 or not resp.content:
            return None
        try:
            body = resp.json()
        except ValueError as e:
            raise ApiError(
                f"{method} {path} returned non-JSON body", status_code=resp.status_code
            ) from e
        if isinstance(body, dict):
            if body.get("success") is False:
                message = body.get("message")
                raise ApiError(
                    message if isinstance(message, str) and message else "Request failed",
                    status_code=resp.status_code,
                )
            if "data" in body:
                return body["data"]
        return body

    @staticmethod
    def _parse(model: type[M], data: object, what: str) -> M:
        # Some endpoints wrap the entity: {"ticket": {...}} / {"user": {...}}.
        if isinstance(data, dict) and "_id" not in data and "id" not in data:
            for v in data.values():
                if isinstance(v, dict) and ("_id" in v or "id" in v):
                    data = v
                    break
        try:
            return model.model_validate(data)
        except ValidationError as e:
            raise ApiError(f"{what} response cannot be parsed: {e}") from e

    # ── Auth ────────────────────────────────────────────────────────────

    async def _authenticate(self, path: str, payload: dict[str, Any]) -> SessionState:
        data = await self._request("POST", path, json=payload)
        if not isinstance(data, dict):
            raise ApiError(f"POST {path} returned no session data")
        token = data.get("token")
        if not isinstance(token, str) or not token:
            raise ApiError(f"POST {path} returned no token")
        user = self._parse(User, data.get("user"), "auth user")
        return self._session.save(token, user)

    async def login(self, email: str, password: str) -> SessionState:
        return await self._authenticate("/auth/login", {"email": email, "password": password})

    async def register(self, name: str, email: str, password: str, role: str) -> SessionState:
        return await self._authenticate(
            "/auth/register",
            {"name": name, "email": email, "password": password, "role": role},
        )

    def logout(self) -> None:
        """Forget the local session; the server keeps no logout state."""
        self._session.clear()

    async def get_current_user(self) -> User:
        data = await self._request("GET", "/auth/getCurrentUser")
        user = self._parse(User, data, "current user")
        self._session.update_user(user)
        return user

    # ── Lists ───────────────────────────────────────────────────────────

    async def list_page(
        self,
        resource: ResourceSpec[M],
        *,
        page: int,
        limit: int,
        filters: Mapping[str, FilterValue],
    ) -> ListPage[M]:
        params = build_query_params(page, limit, filters)
        data = await self._request("GET", resource.list_path, params=params)
        return parse_list_page(data, resource, page)

    # ── Generic mutations ───────────────────────────────────────────────

    async def create(self, resource: ResourceSpec[M], payload: Mapping[str, Any]) -> M:
        if resource.create_path is None:
            raise ApiError(f"{resource.name} cannot be created from this client")
        data = await self._request("POST", resource.create_path, json=dict(payload))
        return self._parse(resource.item_model, data, f"create {resource.name}")

    async def update(self, resource: ResourceSpec[M], entity_id: str, payload: Mapping[str, Any]) -> M:
        data = await self._request("PUT", resource.item_path(entity_id), json=dict(payload))
        return self._parse(resource.item_model, data, f"update {resource.name}")

    async def set_status(self, resource: ResourceSpec[M], entity_id: str, is_active: bool) -> M:
        data = await self._request(
            "PATCH", resource.status_item_path(entity_id), json={"isActive": is_active}
        )
        return self._parse(resource.item_model, data, f"toggle {resource.name} status")

    # ── Tickets ─────────────────────────────────────────────────────────

    async def get_ticket(self, ticket_id: str) -> Ticket:
        data = await self._request("GET", TICKETS.item_path(ticket_id))
        return self._parse(Ticket, data, "ticket")

    async def list_my_tickets(self) -> list[Ticket]:
        data = await self._request("GET", "/tickets/user")
        try:
            return [Ticket.model_validate(x) for x in _extract_items(data, ("tickets", "data"))]
        except ValidationError as e:
            raise ApiError(f"user tickets response cannot be parsed: {e}") from e

    async def create_ticket(
        self,
        fields: TicketCreate,
        attachments: list[tuple[str, bytes, str]] | None = None,
    ) -> Ticket:
        """Create a ticket as multipart form data; attachments are (filename, content, mime)."""
        form = {k: str(v) for k, v in fields.model_dump().items()}
        files = [("attachments", a) for a in (attachments or [])]
        data = await self._request("POST", "/tickets", data=form, files=files or None)
        return self._parse(Ticket, data, "create ticket")

    async def update_ticket(self, ticket_id: str, comment_text: str) -> Ticket:
        return await self.update(TICKETS, ticket_id, {"commentText": comment_text})

    async def add_agent_comment(
        self, ticket_id: str, comment_text: str, status: TicketStatus
    ) -> Ticket:
        data = await self._request(
            "POST",
            f"/tickets/{ticket_id}/agent-comment",
            json={"commentText": comment_text, "status": status},
        )
        return self._parse(Ticket, data, "agent comment")

    # ── Categories ──────────────────────────────────────────────────────

    async def create_category(self, name: str) -> Category:
        return await self.create(CATEGORIES, CategoryCreate(name=name).model_dump())

    async def update_category(self, category_id: str, name: str) -> Category:
        return await self.update(CATEGORIES, category_id, {"name": name})

    async def toggle_category_status(self, category_id: str, is_active: bool) -> Category:
        return await self.set_status(CATEGORIES, category_id, is_active)

    async def list_active_categories(self) -> list[Category]:
        data = await self._request("GET", "/category/active/list")
        try:
            return [Category.model_validate(x) for x in _extract_items(data, ("data",))]
        except ValidationError as e:
            raise ApiError(f"active categories response cannot be parsed: {e}") from e

    # ── Users ───────────────────────────────────────────────────────────

    async def update_user(self, user_id: str, fields: UserUpdate) -> User:
        payload = fields.model_dump(by_alias=True, exclude_none=True)
        return await self.update(USERS, user_id, payload)

    async def toggle_user_status(self, user_id: str, is_active: bool) -> User:
        return await self.set_status(USERS, user_id, is_active)

    # ── Notifications ───────────────────────────────────────────────────

    async def get_notifications(self) -> list[NotificationRecord]:
        data = await self._request("GET", "/notifications")
        out: list[NotificationRecord] = []
        for x in _extract_items(data, ("notifications", "data", "items")):
            try:
                out.append(NotificationRecord.model_validate(x))
            except ValidationError:
                logger.warning("dropping malformed notification from initial load: %s", x)
        return out

    async def mark_all_notifications_read(self) -> None:
        await self._request("PUT", "/notifications/mark-as-read")
