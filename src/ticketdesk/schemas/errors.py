from __future__ import annotations

from typing import Any

from pydantic import BaseModel


class ErrorEnvelope(BaseModel):
    """Error envelope.

    The server answers ``{success: false, message}``; proxies and framework
    defaults may instead answer ``{error, message, details}`` or ``{detail}``.
    All shapes are accepted and reduced to a single message.
    """

    success: bool = False
    message: str | None = None
    error: str | None = None
    detail: Any = None
    details: Any = None

    def best_message(self, fallback: str) -> str:
        if self.message:
            return self.message
        if isinstance(self.detail, str) and self.detail:
            return self.detail
        if isinstance(self.error, str) and self.error:
            return self.error
        return fallback
