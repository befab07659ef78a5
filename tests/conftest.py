from __future__ import annotations

from pathlib import Path

import httpx
import pytest

from ticketdesk.api_client import TicketDeskAPI
from ticketdesk.session import SessionStore

from fake_api import FakeBackend


@pytest.fixture
def anyio_backend() -> str:
    # Debounce timers and the socket channel run on asyncio tasks.
    return "asyncio"


@pytest.fixture
def session_store(tmp_path: Path) -> SessionStore:
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def make_api(backend: FakeBackend, session_store: SessionStore):
    def _make(**kwargs: object) -> TicketDeskAPI:
        client = httpx.AsyncClient(
            transport=httpx.ASGITransport(app=backend.app), base_url="http://test"
        )
        return TicketDeskAPI(
            base_url="http://test/api",
            session_store=session_store,
            timeout_seconds=5,
            client=client,
            **kwargs,  # pyright: ignore[reportArgumentType]
        )

    return _make
