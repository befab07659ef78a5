"""Paginated, filtered list state for one resource.

Rules:
- Any filter or search-text change resets the page to 1.
- Free-text search is debounced; discrete filters fetch immediately.
- A successful fetch replaces the displayed page wholesale; a failed fetch
  keeps the last good page and records an error.
- Each fetch is tagged with a per-controller sequence number and only the
  response of the most recently issued request is applied.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Generic, Protocol, TypeVar

from pydantic import BaseModel

from ticketdesk.api_client import FilterValue
from ticketdesk.debounce import Debouncer
from ticketdesk.errors import ApiError
from ticketdesk.resources import SEARCH_KEY, ResourceSpec
from ticketdesk.schemas import ListPage

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class ListAPI(Protocol):
    async def list_page(
        self,
        resource: ResourceSpec[Any],
        *,
        page: int,
        limit: int,
        filters: Mapping[str, FilterValue],
    ) -> ListPage[Any]: ...


@dataclass
class ListQueryState:
    page: int = 1
    page_size: int = 10
    # Discrete filters only; search text lives in debounced_search_text.
    filters: dict[str, FilterValue] = field(default_factory=dict)
    debounced_search_text: str = ""

    def query_filters(self) -> dict[str, FilterValue]:
        out = dict(self.filters)
        out[SEARCH_KEY] = self.debounced_search_text
        return out


def _normalize(value: FilterValue) -> FilterValue:
    if isinstance(value, str) and not value.strip():
        return None
    return value


class ListQueryController(Generic[M]):
    def __init__(
        self,
        resource: ResourceSpec[M],
        api: ListAPI,
        *,
        page_size: int = 10,
        search_debounce_seconds: float = 0.5,
    ) -> None:
        self.resource = resource
        self._api = api
        self.state = ListQueryState(page_size=page_size)
        self.search_text = ""
        self.page_data: ListPage[M] = ListPage()
        self.loading = False
        self.error: str | None = None
        self._issued_seq = 0
        self._listeners: list[Callable[[ListQueryController[M]], None]] = []
        self._debouncer = Debouncer(search_debounce_seconds, self._commit_search)

    # ── Read side ───────────────────────────────────────────────────────

    @property
    def items(self) -> list[M]:
        return list(self.page_data.items)

    @property
    def total_records(self) -> int:
        return self.page_data.total_records

    @property
    def total_pages(self) -> int:
        return self.page_data.total_pages

    @property
    def current_page(self) -> int:
        return self.page_data.current_page

    @property
    def search_pending(self) -> bool:
        return self._debouncer.pending

    def subscribe(self, listener: Callable[[ListQueryController[M]], None]) -> Callable[[], None]:
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
                logger.exception("list listener failed resource=%s", self.resource.name)

    # ── Inputs ──────────────────────────────────────────────────────────

    async def set_filter(self, key: str, value: FilterValue) -> bool:
        """Change one filter. Returns False when nothing changed."""
        if key == SEARCH_KEY:
            return self.set_search("" if value is None else str(value))
        if key not in self.resource.filter_keys:
            raise ValueError(f"unknown filter {key!r} for {self.resource.name}")

        value = _normalize(value)
        current = self.state.filters.get(key)
        # Compare types too: True == 1 but they are different filter values.
        if current == value and type(current) is type(value):
            return False
        if value is None:
            self.state.filters.pop(key, None)
        else:
            self.state.filters[key] = value
        self.state.page = 1
        await self.fetch()
        return True

    def set_search(self, text: str) -> bool:
        """Record search input and (re)arm the settle timer."""
        if text == self.search_text:
            return False
        self.search_text = text
        self.state.page = 1
        self._debouncer.arm()
        return True

    async def flush_search(self) -> None:
        await self._debouncer.flush()

    async def _commit_search(self) -> None:
        self.state.debounced_search_text = self.search_text.strip()
        self.state.page = 1
        await self.fetch()

    async def set_page(self, page: int) -> None:
        if page < 1:
            raise ValueError("page must be >= 1")
        self.state.page = page
        await self.fetch()

    async def set_page_size(self, page_size: int) -> None:
        if page_size < 1:
            raise ValueError("page_size must be >= 1")
        self.state.page_size = page_size
        self.state.page = 1
        await self.fetch()

    async def reset_filters(self) -> None:
        self._debouncer.cancel()
        self.search_text = ""
        self.state.filters.clear()
        self.state.debounced_search_text = ""
        self.state.page = 1
        await self.fetch()

    async def refresh(self) -> bool:
        return await self.fetch()

    # ── Fetch ───────────────────────────────────────────────────────────

    async def fetch(self, page: int | None = None) -> bool:
        """Query one page under the current filters.

        Returns True when this response was applied; False on failure or when
        a newer request superseded it.
        """
        if page is not None:
            self.state.page = page
        self._issued_seq += 1
        seq = self._issued_seq
        req_page = self.state.page
        filters = self.state.query_filters()

        self.loading = True
        self._notify()
        try:
            result = await self._api.list_page(
                self.resource, page=req_page, limit=self.state.page_size, filters=filters
            )
        except ApiError as e:
            if seq != self._issued_seq:
                logger.debug("discarding stale failure resource=%s seq=%d", self.resource.name, seq)
                return False
            logger.warning(
                "list fetch failed resource=%s page=%d seq=%d error=%s",
                self.resource.name,
                req_page,
                seq,
                e.message,
            )
            self.error = e.message
            self.loading = False
            self._notify()
            return False

        if seq != self._issued_seq:
            logger.debug(
                "discarding stale response resource=%s seq=%d latest=%d",
                self.resource.name,
                seq,
                self._issued_seq,
            )
            return False

        self.page_data = result
        self.error = None
        self.loading = False
        self._notify()
        return True

    # ── Local reconciliation ────────────────────────────────────────────

    def patch_item(self, entity: M) -> bool:
        """Replace the row with the same id in the displayed page."""
        entity_id = getattr(entity, "id", None)
        items = list(self.page_data.items)
        for i, row in enumerate(items):
            if getattr(row, "id", None) == entity_id:
                items[i] = entity
                self.page_data = self.page_data.model_copy(update={"items": items})
                self._notify()
                return True
        return False

    def report_error(self, message: str) -> None:
        self.error = message
        self._notify()

    def clear_error(self) -> None:
        if self.error is not None:
            self.error = None
            self._notify()

    def reset(self) -> None:
        """Forget the query and the displayed page (logout).

        Pending search input is dropped and responses to requests already in
        flight are discarded by the sequence guard.
        """
        self._debouncer.cancel()
        self._issued_seq += 1
        self.state = ListQueryState(page_size=self.state.page_size)
        self.search_text = ""
        self.page_data = ListPage()
        self.loading = False
        self.error = None
        self._notify()

    def close(self) -> None:
        self._debouncer.cancel()
