"""Client-side error taxonomy.

All REST failures surface as ApiError (or a subclass) carrying a stable
``error`` code, so controllers can turn them into state without branching on
raw status codes. Authorization failures are handled globally by the HTTP
client before AuthorizationError is raised.
"""

from __future__ import annotations

from typing import Any


def map_http_status_to_error(status_code: int) -> str:
    mapping: dict[int, str] = {
        400: "bad_request",
        401: "unauthorized",
        403: "forbidden",
        404: "not_found",
        409: "conflict",
        410: "gone",
        413: "payload_too_large",
        422: "validation_error",
        429: "rate_limited",
        502: "upstream_error",
    }
    return mapping.get(status_code, f"http_{status_code}")


class TicketDeskError(RuntimeError):
    pass


class ApiError(TicketDeskError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        error: str | None = None,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        if error is None:
            error = map_http_status_to_error(status_code) if status_code else "api_error"
        self.error = error
        self.details = details

    @property
    def is_validation_error(self) -> bool:
        return self.error in {"bad_request", "validation_error"}


class AuthorizationError(ApiError):
    pass


class ApiTimeoutError(ApiError):
    def __init__(self, message: str = "Request timed out") -> None:
        super().__init__(message, error="timeout")


class ApiConnectionError(ApiError):
    def __init__(self, message: str = "Network error") -> None:
        super().__init__(message, error="network_error")


class PermissionDeniedError(TicketDeskError):
    pass


class SelfDeactivationError(PermissionDeniedError):
    pass
