from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from .categories import Category
from .users import User

TicketPriority = Literal["low", "medium", "high"]
TicketStatus = Literal["open", "in progress", "resolved", "closed"]


class Attachment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    filename: str
    path: str = ""
    uploaded_by: str | None = Field(default=None, alias="uploadedBy")
    uploaded_at: datetime | None = Field(default=None, alias="uploadedAt")


class AgentComment(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    agent_id: str | User | None = Field(default=None, alias="agentId")
    comment_text: str = Field(default="", alias="commentText")
    commented_at: datetime | None = Field(default=None, alias="commentedAt")


class Ticket(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str = Field(min_length=1, validation_alias=AliasChoices("_id", "id"))
    name: str = ""
    description: str = ""
    # References are either ids or populated objects, depending on the endpoint.
    category: Category | str | None = None
    priority: TicketPriority = "medium"
    status: TicketStatus = "open"
    customer: User | str | None = None
    assigned_agent: User | str | None = Field(default=None, alias="assignedAgent")
    attachments: list[Attachment] = Field(default_factory=list)
    agent_comments: list[AgentComment] = Field(default_factory=list, alias="agentComments")
    created_by: User | str | None = Field(default=None, alias="createdBy")
    created_at: datetime | None = Field(default=None, alias="createdAt")
    updated_at: datetime | None = Field(default=None, alias="updatedAt")

    @property
    def category_id(self) -> str | None:
        if isinstance(self.category, Category):
            return self.category.id
        return self.category

    @property
    def assigned_agent_id(self) -> str | None:
        if isinstance(self.assigned_agent, User):
            return self.assigned_agent.id
        return self.assigned_agent


class TicketCreate(BaseModel):
    """Form fields for ticket creation (sent as multipart alongside attachments)."""

    name: str = Field(min_length=1)
    description: str = Field(min_length=1)
    category: str = Field(min_length=1)
    priority: TicketPriority = "medium"
