from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Category(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    is_active: bool = Field(default=True, alias="isActive")
    # Id, or the populated user object when the server expands it.
    created_by: str | dict[str, Any] | None = Field(default=None, alias="createdBy")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
