from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

Role = Literal["admin", "agent", "customer"]
ROLES: tuple[Role, ...] = ("admin", "agent", "customer")


class User(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    email: str = ""
    role: Role = "customer"
    is_active: bool = Field(default=True, alias="isActive")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class UserUpdate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str | None = None
    email: str | None = None
    role: Role | None = None
    is_active: bool | None = Field(default=None, alias="isActive")
