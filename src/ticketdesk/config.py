from __future__ import annotations

from typing import ClassVar, final

from pydantic import AliasChoices, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str | None) -> list[str]:
    if not value:
        return []
    return [x.strip() for x in value.split(",") if x.strip()]


def _is_plain_http(url: str) -> bool:
    v = url.strip().lower()
    return v.startswith("http://") and not (
        v.startswith("http://localhost") or v.startswith("http://127.0.0.1")
    )


@final
class Settings(BaseSettings):
    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )
    app_name: str = "TicketDesk Client"

    # Environment (ENVIRONMENT): development | production
    environment: str = "development"

    # Primary env: API_BASE_URL; also accept API_URL as alias.
    api_base_url: str = Field(
        default="http://localhost:5000/api",
        validation_alias=AliasChoices("API_BASE_URL", "API_URL"),
    )
    request_timeout_seconds: float = 10.0

    # Realtime channel (socket.io)
    socket_url: str = "http://localhost:5000"
    socket_transports: str = "websocket,polling"
    socket_reconnection_attempts: int = 5
    socket_reconnection_delay_seconds: float = 1.0
    socket_reconnection_delay_max_seconds: float = 5.0
    # Jitter applied to every reconnect delay: delay * (1 +/- factor).
    socket_randomization_factor: float = 0.5

    # List queries
    search_debounce_seconds: float = 0.5
    default_page_size: int = 10

    # Number of recent notification ids remembered for redelivery filtering.
    notification_dedupe_window: int = 200

    # Persisted credentials (token + user object).
    session_file: str = ".data/session.json"
    login_path: str = "/login"

    log_level: str = "INFO"

    @model_validator(mode="after")
    def _validate_settings(self) -> "Settings":  # pyright: ignore[reportUnusedFunction]
        errors: list[str] = []
        if self.request_timeout_seconds <= 0:
            errors.append("REQUEST_TIMEOUT_SECONDS must be positive")
        if self.default_page_size < 1:
            errors.append("DEFAULT_PAGE_SIZE must be >= 1")
        if self.socket_reconnection_attempts < 0:
            errors.append("SOCKET_RECONNECTION_ATTEMPTS must be >= 0")
        if self.notification_dedupe_window < 1:
            errors.append("NOTIFICATION_DEDUPE_WINDOW must be >= 1")

        if self.environment.strip().lower() == "production":
            if _is_plain_http(self.api_base_url):
                errors.append("API_BASE_URL must use https in production")
            if _is_plain_http(self.socket_url):
                errors.append("SOCKET_URL must use https in production")

        if errors:
            raise ValueError("Invalid settings: " + "; ".join(errors))
        return self

    def transports_list(self) -> list[str]:
        return _split_csv(self.socket_transports) or ["websocket", "polling"]

    def security_warnings(self) -> list[str]:
        warnings: list[str] = []
        if self.environment.strip().lower() != "production":
            return warnings
        if self.log_level.strip().upper() == "DEBUG":
            warnings.append("LOG_LEVEL=DEBUG logs notification payloads")
        if self.api_base_url.strip().lower().startswith("http://"):
            warnings.append("API_BASE_URL is not using https")
        if self.socket_url.strip().lower().startswith("http://"):
            warnings.append("SOCKET_URL is not using https")
        return warnings


settings = Settings()
