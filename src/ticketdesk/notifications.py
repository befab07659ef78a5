"""Notification feed state.

The store is mutated only by the initial bulk load, channel pushes and
mark-all-read. The list is newest-first in arrival order; the unread count is
always derived from the list.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from typing import Any, Literal, Protocol

from pydantic import ValidationError

from ticketdesk.errors import ApiError
from ticketdesk.schemas import NotificationRecord
from ticketdesk.transport import NEW_NOTIFICATION_EVENT, TransportChannel

logger = logging.getLogger(__name__)

StoreState = Literal["uninitialized", "ready"]
Listener = Callable[["NotificationStore"], None]


class NotificationsAPI(Protocol):
    async def get_notifications(self) -> list[NotificationRecord]: ...

    async def mark_all_notifications_read(self) -> None: ...


class _RecentIds:
    """Bounded set of the most recently seen ids (FIFO eviction)."""

    def __init__(self, maxlen: int) -> None:
        self._order: deque[str] = deque()
        self._ids: set[str] = set()
        self._maxlen = max(1, maxlen)

    def __contains__(self, item: str) -> bool:
        return item in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def add(self, item: str) -> None:
        if item in self._ids:
            return
        self._order.append(item)
        self._ids.add(item)
        while len(self._order) > self._maxlen:
            self._ids.discard(self._order.popleft())

    def reset(self, items: list[str]) -> None:
        self._order.clear()
        self._ids.clear()
        for item in items:
            self.add(item)


class NotificationStore:
    def __init__(self, api: NotificationsAPI, *, dedupe_window: int = 200) -> None:
        self._api = api
        self._records: list[NotificationRecord] = []
        self._seen = _RecentIds(dedupe_window)
        self._listeners: list[Listener] = []
        self._channel: TransportChannel | None = None
        self.state: StoreState = "uninitialized"
        self.loading = False
        self.error: str | None = None

    @property
    def records(self) -> list[NotificationRecord]:
        return list(self._records)

    @property
    def unread_count(self) -> int:
        return sum(1 for r in self._records if not r.read)

    # ── Subscriptions ───────────────────────────────────────────────────

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("notification listener failed")

    # ── Channel binding ─────────────────────────────────────────────────

    def attach(self, channel: TransportChannel) -> None:
        if self._channel is channel:
            return
        self.detach()
        self._channel = channel
        channel.on(NEW_NOTIFICATION_EVENT, self._on_channel_event)

    def detach(self) -> None:
        if self._channel is None:
            return
        self._channel.off(NEW_NOTIFICATION_EVENT, self._on_channel_event)
        self._channel = None

    def _on_channel_event(self, data: Any = None) -> None:
        if isinstance(data, NotificationRecord):
            record = data
        else:
            try:
                record = NotificationRecord.model_validate(data)
            except ValidationError:
                logger.warning("dropping malformed notification push: %r", data)
                return
        self.on_push(record)

    # ── Operations ──────────────────────────────────────────────────────

    async def load_initial(self, session_user_id: str | None) -> None:
        if not session_user_id:
            return
        self.loading = True
        self._notify()
        try:
            records = await self._api.get_notifications()
        except ApiError as e:
            # Before the first load there is no meaningful previous state.
            logger.warning(
                "loading notifications failed user_id=%s error=%s", session_user_id, e.message
            )
            records = []
            self.error = e.message
        else:
            self.error = None
        finally:
            self.loading = False

        self._records = list(records)
        self._seen.reset([r.id for r in reversed(self._records)])
        self.state = "ready"
        self._notify()

    def on_push(self, record: NotificationRecord) -> bool:
        """Prepend a pushed record. Returns False when it was a redelivery."""
        if record.id in self._seen:
            logger.debug("ignoring duplicate notification id=%s", record.id)
            return False
        self._seen.add(record.id)
        self._records.insert(0, record)
        self._notify()
        return True

    async def mark_all_read(self) -> bool:
        try:
            await self._api.mark_all_notifications_read()
        except ApiError as e:
            logger.warning("mark all notifications read failed error=%s", e.message)
            self.error = e.message
            self._notify()
            return False
        # Cleared rather than flagged: consumers expect an empty feed afterwards.
        self._records = []
        self.error = None
        self._notify()
        return True

    def clear_error(self) -> None:
        self.error = None

    def reset(self) -> None:
        """Forget everything (logout)."""
        self._records = []
        self._seen.reset([])
        self.error = None
        self.loading = False
        self.state = "uninitialized"
        self._notify()
