from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Literal, TypeVar

from pydantic import BaseModel

from ticketdesk.schemas import Category, Ticket, User

ResourceName = Literal["tickets", "categories", "users"]

SEARCH_KEY = "search"

M = TypeVar("M", bound=BaseModel)


@dataclass(frozen=True)
class ResourceSpec(Generic[M]):
    name: ResourceName
    list_path: str
    filter_keys: tuple[str, ...]
    item_model: type[M]
    create_path: str | None
    # Templates take {id}.
    update_path: str
    status_path: str | None
    # Keys under `data` that may hold the item list, tried in order.
    list_keys: tuple[str, ...] = ("data", "items")

    def item_path(self, entity_id: str) -> str:
        return self.update_path.replace("{id}", entity_id)

    def status_item_path(self, entity_id: str) -> str:
        if self.status_path is None:
            raise ValueError(f"{self.name} has no status endpoint")
        return self.status_path.replace("{id}", entity_id)


TICKETS: ResourceSpec[Ticket] = ResourceSpec(
    name="tickets",
    list_path="/tickets",
    filter_keys=(SEARCH_KEY, "status", "priority", "category"),
    item_model=Ticket,
    create_path="/tickets",
    update_path="/tickets/{id}",
    status_path=None,
    list_keys=("tickets", "data", "items"),
)

CATEGORIES: ResourceSpec[Category] = ResourceSpec(
    name="categories",
    list_path="/category",
    filter_keys=(SEARCH_KEY, "isActive"),
    item_model=Category,
    create_path="/category",
    update_path="/category/{id}",
    status_path="/category/{id}/status",
)

USERS: ResourceSpec[User] = ResourceSpec(
    name="users",
    list_path="/users",
    filter_keys=(SEARCH_KEY, "role", "isActive"),
    item_model=User,
    # Accounts are created through registration, not from the admin table.
    create_path=None,
    update_path="/users/{id}",
    status_path="/users/{id}/status",
    list_keys=("data", "users", "items"),
)
