from __future__ import annotations

import json

import httpx
import pytest

from ticketdesk.api_client import TicketDeskAPI, build_query_params, parse_list_page
from ticketdesk.errors import (
    ApiConnectionError,
    ApiError,
    ApiTimeoutError,
    AuthorizationError,
)
from ticketdesk.list_query import ListQueryController
from ticketdesk.resources import CATEGORIES, TICKETS, USERS
from ticketdesk.schemas import Category, TicketCreate, UserUpdate
from ticketdesk.session import SessionStore

from fake_api import PASSWORD, FakeBackend
from fakes import user


def test_build_query_params_omits_empty_values():
    params = build_query_params(
        2,
        10,
        {"search": "  ", "status": None, "priority": "high", "isActive": False, "category": " c1 "},
    )
    assert params == {
        "page": "2",
        "limit": "10",
        "priority": "high",
        "isActive": "false",
        "category": "c1",
    }


def test_parse_list_page_reads_server_meta():
    data = {
        "tickets": [{"_id": "t1", "name": "A"}, "junk"],
        "totalRecords": "21",
        "totalPages": 3,
        "currentPage": 2,
    }
    page = parse_list_page(data, TICKETS, requested_page=2)
    assert [t.id for t in page.items] == ["t1"]
    assert page.total_records == 21
    assert page.total_pages == 3
    assert page.current_page == 2


def test_parse_list_page_defaults_when_meta_missing():
    page = parse_list_page([{"_id": "c1"}, {"_id": "c2"}], CATEGORIES, requested_page=4)
    assert page.total_records == 2
    assert page.total_pages == 1
    assert page.current_page == 4

    empty = parse_list_page({"data": [], "totalPages": 0}, USERS, requested_page=1)
    assert empty.items == []
    assert empty.total_pages == 1


def test_parse_list_page_rejects_malformed_rows():
    with pytest.raises(ApiError):
        parse_list_page({"data": [{"name": "no id"}]}, CATEGORIES, requested_page=1)


@pytest.mark.anyio
async def test_login_persists_session_and_sends_bearer(make_api, session_store: SessionStore, backend: FakeBackend):
    api: TicketDeskAPI = make_api()
    state = await api.login("admin@example.com", PASSWORD)
    assert state.authenticated
    assert state.role == "admin"
    assert SessionStore(session_store._path).load().user_id == "u-admin"  # pyright: ignore[reportPrivateUsage]

    me = await api.get_current_user()
    assert me.id == "u-admin"
    assert backend.requests[-1][1] == "/api/auth/getCurrentUser"


@pytest.mark.anyio
async def test_login_failure_surfaces_server_message(make_api, session_store: SessionStore):
    api: TicketDeskAPI = make_api()
    with pytest.raises(ApiError) as excinfo:
        await api.login("admin@example.com", "wrong")
    assert excinfo.value.message == "Invalid email or password"
    assert excinfo.value.status_code == 400
    assert excinfo.value.error == "bad_request"
    assert not session_store.current.authenticated


@pytest.mark.anyio
async def test_list_page_sends_only_non_empty_filters(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-admin"), user("u-admin", role="admin"))
    api: TicketDeskAPI = make_api()

    page = await api.list_page(
        TICKETS, page=1, limit=3, filters={"search": "", "status": "open", "priority": None}
    )

    method, path, query = backend.requests[-1]
    assert (method, path) == ("GET", "/api/tickets")
    assert query == {"page": "1", "limit": "3", "status": "open"}
    assert all(t.status == "open" for t in page.items)
    assert page.total_records == 5
    assert page.total_pages == 2
    assert page.items[0].category_id == "c1"


@pytest.mark.anyio
async def test_category_crud_round_trip(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-admin"), user("u-admin", role="admin"))
    api: TicketDeskAPI = make_api()

    created = await api.create_category("Billing")
    assert isinstance(created, Category)
    assert created.name == "Billing"

    renamed = await api.update_category(created.id, "Invoices")
    assert renamed.name == "Invoices"

    toggled = await api.toggle_category_status(created.id, False)
    assert toggled.is_active is False

    active = await api.list_active_categories()
    assert created.id not in {c.id for c in active}

    with pytest.raises(ApiError) as excinfo:
        await api.create_category("  ")
    assert excinfo.value.is_validation_error
    assert excinfo.value.details == [{"field": "name"}]


@pytest.mark.anyio
async def test_ticket_detail_and_agent_comment(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-agent"), user("u-agent", role="agent"))
    api: TicketDeskAPI = make_api()

    t = await api.get_ticket("t1")
    assert t.id == "t1"

    edited = await api.update_ticket("t1", "also the scanner")
    assert edited.description == "also the scanner"

    updated = await api.add_agent_comment("t1", "on it", "in progress")
    assert updated.status == "in progress"
    assert updated.agent_comments[-1].comment_text == "on it"

    with pytest.raises(ApiError) as excinfo:
        await api.get_ticket("missing")
    assert excinfo.value.error == "not_found"


@pytest.mark.anyio
async def test_update_user_sends_camel_case(make_api, session_store: SessionStore, backend: FakeBackend):
    seen: list[dict[str, object]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"success": True, "data": {"user": {"_id": "u-2", "isActive": False}}})

    session_store.save("tok", user("u-1", role="admin"))
    api = TicketDeskAPI(
        base_url="http://test/api",
        session_store=session_store,
        timeout_seconds=5,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    updated = await api.update_user("u-2", UserUpdate(is_active=False))
    assert seen == [{"isActive": False}]
    assert updated.id == "u-2"
    assert updated.is_active is False


@pytest.mark.anyio
async def test_create_ticket_posts_multipart(session_store: SessionStore):
    captured: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["path"] = request.url.path
        captured["content_type"] = request.headers["content-type"]
        captured["body"] = request.content
        return httpx.Response(201, json={"success": True, "data": {"_id": "t9", "name": "Printer"}})

    session_store.save("tok", user("u-cust"))
    api = TicketDeskAPI(
        base_url="http://test/api",
        session_store=session_store,
        timeout_seconds=5,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    created = await api.create_ticket(
        TicketCreate(name="Printer", description="jammed", category="c1", priority="high"),
        [("photo.png", b"\x89PNG", "image/png")],
    )

    assert created.id == "t9"
    assert captured["path"] == "/api/tickets"
    assert str(captured["content_type"]).startswith("multipart/form-data")
    body = captured["body"]
    assert isinstance(body, bytes)
    assert b'name="attachments"; filename="photo.png"' in body
    assert b'name="priority"' in body


@pytest.mark.anyio
async def test_unauthorized_clears_session_and_redirects(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-admin"), user("u-admin", role="admin"))
    redirects: list[str] = []
    api: TicketDeskAPI = make_api(login_path="/signin", on_unauthorized=redirects.append)

    backend.tokens_expired = True
    with pytest.raises(AuthorizationError) as excinfo:
        await api.get_notifications()

    assert excinfo.value.status_code == 401
    assert excinfo.value.message == "Token expired, please log in again"
    assert redirects == ["/signin"]
    assert not session_store.current.authenticated
    assert not session_store._path.exists()  # pyright: ignore[reportPrivateUsage]


@pytest.mark.anyio
async def test_envelope_success_false_is_an_error(session_store: SessionStore):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"success": False, "message": "Category already exists"})

    api = TicketDeskAPI(
        base_url="http://test/api",
        session_store=session_store,
        timeout_seconds=5,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    with pytest.raises(ApiError) as excinfo:
        await api.create_category("Billing")
    assert excinfo.value.message == "Category already exists"


@pytest.mark.anyio
async def test_timeouts_and_network_failures_are_typed(session_store: SessionStore):
    def timeout(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    def refused(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    def make(handler) -> TicketDeskAPI:
        return TicketDeskAPI(
            base_url="http://test/api",
            session_store=session_store,
            timeout_seconds=0.5,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )

    with pytest.raises(ApiTimeoutError) as excinfo:
        await make(timeout).get_notifications()
    assert excinfo.value.error == "timeout"

    with pytest.raises(ApiConnectionError) as excinfo2:
        await make(refused).get_notifications()
    assert excinfo2.value.error == "network_error"


@pytest.mark.anyio
async def test_redirect_loops_and_bad_encodings_are_network_errors(session_store: SessionStore):
    def redirect_loop(request: httpx.Request) -> httpx.Response:
        raise httpx.TooManyRedirects("Exceeded maximum allowed redirects.", request=request)

    def bad_body(request: httpx.Request) -> httpx.Response:
        raise httpx.DecodingError("invalid gzip stream", request=request)

    for handler in (redirect_loop, bad_body):
        api = TicketDeskAPI(
            base_url="http://test/api",
            session_store=session_store,
            timeout_seconds=0.5,
            client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        )
        with pytest.raises(ApiConnectionError) as excinfo:
            await api.list_page(TICKETS, page=1, limit=10, filters={})
        assert excinfo.value.error == "network_error"

        ctrl = ListQueryController(TICKETS, api)
        assert await ctrl.refresh() is False
        assert ctrl.loading is False
        assert ctrl.error is not None


@pytest.mark.anyio
async def test_notifications_load_and_mark_read(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-cust"), user("u-cust"))
    backend.notifications.append({"_id": "", "type": "ticket.created"})
    api: TicketDeskAPI = make_api()

    records = await api.get_notifications()
    assert [r.id for r in records] == ["n2", "n1"]

    assert await api.mark_all_notifications_read() is None
    assert backend.requests[-1][:2] == ("PUT", "/api/notifications/mark-as-read")

    backend.fail_mark_read = True
    with pytest.raises(ApiError) as excinfo:
        await api.mark_all_notifications_read()
    assert excinfo.value.status_code == 500
    assert excinfo.value.message == "Could not update notifications"


@pytest.mark.anyio
async def test_register_persists_session(make_api, session_store: SessionStore, backend: FakeBackend):
    api: TicketDeskAPI = make_api()
    state = await api.register("Dee", "dee@example.com", PASSWORD, "customer")
    assert state.role == "customer"
    assert session_store.current.user_id in backend.users

    with pytest.raises(ApiError) as excinfo:
        await api.register("Dee", "dee@example.com", PASSWORD, "customer")
    assert excinfo.value.error == "conflict"


@pytest.mark.anyio
async def test_list_my_tickets(make_api, session_store: SessionStore, backend: FakeBackend):
    session_store.save(backend.token_for("u-cust"), user("u-cust"))
    api: TicketDeskAPI = make_api()
    tickets = await api.list_my_tickets()
    assert [t.id for t in tickets] == ["t1", "t2"]
    assert tickets[0].customer == "u-cust"
