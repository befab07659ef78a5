from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ListPage(BaseModel, Generic[T]):
    """One page of a server-driven list. Replaced wholesale on every fetch."""

    items: list[T] = Field(default_factory=list)
    total_records: int = 0
    total_pages: int = 1
    current_page: int = 1
