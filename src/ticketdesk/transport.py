"""Realtime push channel (socket.io).

One TransportChannel per session. It is constructed and owned by the session
context and handed to its consumers; there is no module-level socket.

Room membership is not kept by the server across disconnects, so the
`join-user-room` handshake is emitted from the `connect` handler, which the
socket.io client fires on the first connection and on every automatic
reconnection.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import random
from collections.abc import Awaitable, Callable
from typing import Any, Literal, Protocol

import socketio

from ticketdesk.config import Settings

logger = logging.getLogger(__name__)

JOIN_ROOM_EVENT = "join-user-room"
NEW_NOTIFICATION_EVENT = "new-notification"

ChannelState = Literal["idle", "connecting", "up", "down"]
Handler = Callable[..., Awaitable[None] | None]


class SocketClient(Protocol):
    connected: bool

    def on(self, event: str, handler: Callable[..., Any] | None = None) -> Any: ...

    async def connect(self, url: str, **kwargs: Any) -> None: ...

    async def emit(self, event: str, data: Any = None, **kwargs: Any) -> None: ...

    async def disconnect(self) -> None: ...


SocketFactory = Callable[[], SocketClient]


def reconnect_delay(
    attempt: int,
    *,
    base_seconds: float,
    max_seconds: float,
    randomization_factor: float,
    rand: Callable[[], float] = random.random,
) -> float:
    """Exponential backoff with jitter for attempt 0, 1, 2, ..."""
    delay = min(base_seconds * (2 ** max(0, attempt)), max_seconds)
    if randomization_factor > 0:
        jitter = delay * randomization_factor * (2 * rand() - 1)
        delay = delay + jitter
    return max(0.0, delay)


def default_socket_factory(settings: Settings) -> SocketFactory:
    def _factory() -> SocketClient:
        # Automatic reconnection after an established connection drops uses the
        # same bounded, jittered exponential policy as the initial connect loop.
        return socketio.AsyncClient(
            reconnection=True,
            reconnection_attempts=settings.socket_reconnection_attempts,
            reconnection_delay=settings.socket_reconnection_delay_seconds,
            reconnection_delay_max=settings.socket_reconnection_delay_max_seconds,
            randomization_factor=settings.socket_randomization_factor,
        )

    return _factory


class TransportChannel:
    def __init__(
        self,
        *,
        url: str,
        transports: list[str] | None = None,
        reconnection_attempts: int = 5,
        reconnection_delay_seconds: float = 1.0,
        reconnection_delay_max_seconds: float = 5.0,
        randomization_factor: float = 0.5,
        socket_factory: SocketFactory | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._url = url
        self._transports = transports or ["websocket", "polling"]
        self._attempts = reconnection_attempts
        self._delay = reconnection_delay_seconds
        self._delay_max = reconnection_delay_max_seconds
        self._randomization = randomization_factor
        self._factory = socket_factory
        self._sleep = sleep

        self._client: SocketClient | None = None
        self._user_id: str | None = None
        self._token: str | None = None
        self._state: ChannelState = "idle"
        self._listeners: dict[str, list[Handler]] = {}
        self._bound_events: set[str] = set()
        self._lock = asyncio.Lock()
        # Bumped on every teardown; a connect loop holding an older value stops.
        self._generation = 0

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs: Any) -> "TransportChannel":
        kwargs.setdefault("socket_factory", default_socket_factory(settings))
        return cls(
            url=settings.socket_url,
            transports=settings.transports_list(),
            reconnection_attempts=settings.socket_reconnection_attempts,
            reconnection_delay_seconds=settings.socket_reconnection_delay_seconds,
            reconnection_delay_max_seconds=settings.socket_reconnection_delay_max_seconds,
            randomization_factor=settings.socket_randomization_factor,
            **kwargs,
        )

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    @property
    def user_id(self) -> str | None:
        return self._user_id

    # ── Subscriptions ───────────────────────────────────────────────────

    def on(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.setdefault(event, [])
        if handler not in handlers:
            handlers.append(handler)
        if self._client is not None:
            self._bind_event(self._client, event)

    def off(self, event: str, handler: Handler) -> None:
        handlers = self._listeners.get(event)
        if not handlers:
            return
        if handler in handlers:
            handlers.remove(handler)

    def _bind_event(self, client: SocketClient, event: str) -> None:
        if event in self._bound_events:
            return

        async def _dispatch(*args: Any) -> None:
            await self._dispatch(event, *args)

        client.on(event, _dispatch)
        self._bound_events.add(event)

    async def _dispatch(self, event: str, *args: Any) -> None:
        # Copy: handlers may unsubscribe while being called.
        for handler in list(self._listeners.get(event, [])):
            try:
                result = handler(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("socket handler failed event=%s", event)

    # ── Lifecycle ───────────────────────────────────────────────────────

    async def connect(self, session_user_id: str, token: str | None = None) -> bool:
        """Open (or reuse) the connection for this user. Never raises.

        Returns True when the channel is live on return.
        """
        async with self._lock:
            if self.connected and self._user_id == session_user_id:
                logger.debug("socket reusing live connection user_id=%s", session_user_id)
                return True
            client, generation = await self._replace_client(session_user_id, token)
        # The lock only guards the handle swap; retries run unlocked so
        # teardown never waits on backoff.
        return await self._connect_loop(client, generation)

    async def reconnect(self) -> bool:
        """Explicit reconnect after the bounded retries were exhausted."""
        async with self._lock:
            user_id, token = self._user_id, self._token
            if user_id is None:
                return False
            client, generation = await self._replace_client(user_id, token)
        return await self._connect_loop(client, generation)

    async def disconnect(self) -> None:
        async with self._lock:
            await self._teardown()
            self._user_id = None
            self._token = None
            self._state = "idle"

    async def _replace_client(
        self, user_id: str, token: str | None
    ) -> tuple[SocketClient, int]:
        await self._teardown()
        self._user_id = user_id
        self._token = token
        self._client = self._new_client()
        self._state = "connecting"
        return self._client, self._generation

    def _new_client(self) -> SocketClient:
        if self._factory is None:
            raise RuntimeError("TransportChannel has no socket factory")
        client = self._factory()
        self._bound_events = set()

        async def _on_connect() -> None:
            await self._handle_connect(client)

        async def _on_disconnect(*_args: Any) -> None:
            self._handle_disconnect(client)

        async def _on_connect_error(data: Any = None) -> None:
            logger.warning("socket connect_error url=%s error=%s", self._url, data)

        client.on("connect", _on_connect)
        client.on("disconnect", _on_disconnect)
        client.on("connect_error", _on_connect_error)
        for event in self._listeners:
            self._bind_event(client, event)
        return client

    async def _handle_connect(self, client: SocketClient) -> None:
        if client is not self._client:
            return
        self._state = "up"
        logger.info("socket connected url=%s user_id=%s", self._url, self._user_id)
        if self._user_id is None:
            return
        try:
            await client.emit(JOIN_ROOM_EVENT, self._user_id)
        except Exception:
            logger.warning("socket join room failed user_id=%s", self._user_id, exc_info=True)

    def _handle_disconnect(self, client: SocketClient) -> None:
        if client is not self._client:
            return
        # Data already delivered to consumers stays valid.
        self._state = "down"
        logger.info("socket disconnected url=%s user_id=%s", self._url, self._user_id)

    def _stale(self, generation: int) -> bool:
        return generation != self._generation

    async def _connect_loop(self, client: SocketClient, generation: int) -> bool:
        auth: dict[str, str] = {}
        if self._user_id:
            auth["userId"] = self._user_id
        if self._token:
            auth["token"] = self._token

        total = 1 + max(0, self._attempts)
        for attempt in range(total):
            if self._stale(generation):
                logger.debug("socket connect abandoned after teardown url=%s", self._url)
                return False
            try:
                await client.connect(self._url, transports=self._transports, auth=auth or None)
            except Exception as e:
                logger.warning(
                    "socket connect failed url=%s attempt=%d/%d error=%s",
                    self._url,
                    attempt + 1,
                    total,
                    e,
                )
            else:
                if self._stale(generation):
                    # Torn down while the handshake was in flight.
                    await self._close_quietly(client)
                    return False
                # Some clients fire `connect` before returning, others after.
                if client.connected and self._state != "up":
                    await self._handle_connect(client)
                return True
            if attempt + 1 < total:
                await self._sleep(
                    reconnect_delay(
                        attempt,
                        base_seconds=self._delay,
                        max_seconds=self._delay_max,
                        randomization_factor=self._randomization,
                    )
                )

        if self._stale(generation):
            return False
        self._state = "down"
        logger.warning("socket giving up after %d attempts url=%s", total, self._url)
        return False

    async def _teardown(self) -> None:
        # Any connect loop still running for the old handle stops at its next check.
        self._generation += 1
        client = self._client
        self._client = None
        self._bound_events = set()
        if client is None:
            return
        await self._close_quietly(client)
        self._state = "down"

    @staticmethod
    async def _close_quietly(client: SocketClient) -> None:
        try:
            await client.disconnect()
        except Exception:
            logger.warning("socket disconnect failed", exc_info=True)
