from __future__ import annotations

import asyncio
import logging
from pathlib import Path

import pytest

from ticketdesk.config import Settings
from ticketdesk.context import SessionContext, configure_logging
from ticketdesk.session import SessionStore
from ticketdesk.transport import JOIN_ROOM_EVENT, NEW_NOTIFICATION_EVENT, TransportChannel

from fake_api import PASSWORD, FakeBackend
from fakes import SocketFactory, no_sleep, user, wait_until


def _context(tmp_path: Path, make_api, session_store: SessionStore, redirects: list[str]):
    factory = SocketFactory()
    settings = Settings.model_validate(
        {
            "session_file": str(tmp_path / "session.json"),
            "default_page_size": 5,
            "search_debounce_seconds": 0.05,
        }
    )
    channel = TransportChannel(url="http://socket.test", socket_factory=factory, sleep=no_sleep)
    ctx = SessionContext(
        settings,
        session_store=session_store,
        api=make_api(),
        channel=channel,
        navigate=redirects.append,
    )
    return ctx, factory


@pytest.mark.anyio
async def test_start_resumes_session_channel_and_feed(
    tmp_path: Path, make_api, session_store: SessionStore, backend: FakeBackend
):
    session_store.save(backend.token_for("u-cust"), user("u-cust"))
    redirects: list[str] = []
    ctx, factory = _context(tmp_path, make_api, session_store, redirects)

    assert await ctx.start(wait_for_channel=True) is True
    assert ctx.channel.state == "up"
    assert factory.last.emitted == [(JOIN_ROOM_EVENT, "u-cust")]
    assert [r.id for r in ctx.notifications.records] == ["n2", "n1"]
    assert ctx.notifications.unread_count == 1

    await factory.last.push(NEW_NOTIFICATION_EVENT, {"_id": "n3", "type": "ticket.created"})
    assert ctx.notifications.unread_count == 2

    assert await ctx.notifications.mark_all_read() is True
    assert ctx.notifications.records == []
    assert all(n["read"] for n in backend.notifications)

    await ctx.close()
    assert ctx.channel.state == "idle"


@pytest.mark.anyio
async def test_start_without_session_does_nothing(
    tmp_path: Path, make_api, session_store: SessionStore
):
    ctx, factory = _context(tmp_path, make_api, session_store, [])
    assert await ctx.start() is False
    assert factory.sockets == []
    assert ctx.notifications.state == "uninitialized"


@pytest.mark.anyio
async def test_login_then_logout(
    tmp_path: Path, make_api, session_store: SessionStore, backend: FakeBackend
):
    ctx, factory = _context(tmp_path, make_api, session_store, [])

    state = await ctx.login("admin@example.com", PASSWORD, wait_for_channel=True)
    assert state.role == "admin"
    assert ctx.current.user_id == "u-admin"
    assert factory.last.emitted == [(JOIN_ROOM_EVENT, "u-admin")]

    await ctx.categories.set_filter("isActive", True)
    assert ctx.categories.items
    assert all(c.is_active for c in ctx.categories.items)
    assert ctx.categories.state.page == 1

    await ctx.logout()
    assert not ctx.current.authenticated
    assert ctx.channel.state == "idle"
    assert ctx.notifications.records == []
    await ctx.close()


@pytest.mark.anyio
async def test_expired_token_redirects_to_login_and_tears_down(
    tmp_path: Path, make_api, session_store: SessionStore, backend: FakeBackend
):
    session_store.save(backend.token_for("u-admin"), user("u-admin", role="admin"))
    redirects: list[str] = []
    ctx, _factory = _context(tmp_path, make_api, session_store, redirects)
    await ctx.start(wait_for_channel=True)
    assert ctx.channel.state == "up"

    backend.tokens_expired = True
    assert await ctx.tickets.refresh() is False

    assert redirects == ["/login"]
    assert ctx.tickets.error == "Token expired, please log in again"
    assert not ctx.current.authenticated
    await wait_until(lambda: ctx.channel.state == "idle")
    assert ctx.notifications.state == "uninitialized"
    assert ctx.tickets.items == []
    assert ctx.tickets.error is None
    await ctx.close()


@pytest.mark.anyio
async def test_admin_cannot_deactivate_self_through_context(
    tmp_path: Path, make_api, session_store: SessionStore, backend: FakeBackend
):
    session_store.save(backend.token_for("u-admin"), user("u-admin", role="admin"))
    ctx, _factory = _context(tmp_path, make_api, session_store, [])
    await ctx.start(wait_for_channel=True)

    await ctx.users.refresh()
    rows = {u.id: u for u in ctx.users.items}
    before = len(backend.requests)

    result = await ctx.user_mutations.toggle_status(rows["u-admin"])
    assert not result.ok
    assert len(backend.requests) == before

    result = await ctx.user_mutations.toggle_status(rows["u-agent"])
    assert result.ok
    assert backend.users["u-agent"]["isActive"] is False
    assert {u.id: u.is_active for u in ctx.users.items}["u-agent"] is False
    await ctx.close()


@pytest.mark.anyio
async def test_logout_drops_list_state_and_pending_search(
    tmp_path: Path, make_api, session_store: SessionStore, backend: FakeBackend
):
    redirects: list[str] = []
    ctx, _factory = _context(tmp_path, make_api, session_store, redirects)
    await ctx.login("admin@example.com", PASSWORD, wait_for_channel=True)

    await ctx.tickets.set_filter("status", "open")
    await ctx.categories.refresh()
    assert ctx.tickets.items
    ctx.ticket_mutations.current_ticket = ctx.tickets.items[0]
    ctx.tickets.set_search("vpn")
    requests_before = len(backend.requests)

    await ctx.logout()
    await asyncio.sleep(0.15)

    assert ctx.tickets.items == []
    assert ctx.tickets.state.filters == {}
    assert ctx.tickets.search_text == ""
    assert not ctx.tickets.search_pending
    assert ctx.tickets.error is None
    assert ctx.categories.items == []
    assert ctx.ticket_mutations.current_ticket is None
    # The pending search never reached the server, so no 401 and no redirect.
    assert len(backend.requests) == requests_before
    assert redirects == []
    await ctx.close()


def test_configure_logging_announces_app_name(caplog: pytest.LogCaptureFixture):
    settings = Settings.model_validate(
        {
            "app_name": "Helpdesk Console",
            "environment": "development",
            "api_base_url": "http://localhost:5000/api",
        }
    )
    with caplog.at_level(logging.INFO, logger="ticketdesk.context"):
        configure_logging(settings)

    assert "Helpdesk Console starting environment=development" in caplog.text
