"""Persisted session identity (auth token + user object).

File format (JSON):
  {"version": "v1", "token": "...", "user": {...}}

A missing, unreadable or wrong-version file loads as an empty session; the
caller then goes through the login entry point.
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from ticketdesk.schemas import Role, User

logger = logging.getLogger(__name__)

_SESSION_VERSION = "v1"


@dataclass(frozen=True)
class SessionState:
    token: str | None = None
    user: User | None = None

    @property
    def authenticated(self) -> bool:
        return bool(self.token) and self.user is not None

    @property
    def user_id(self) -> str | None:
        return self.user.id if self.user is not None else None

    @property
    def role(self) -> Role | None:
        return self.user.role if self.user is not None else None


class SessionStore:
    """Owns the persisted credentials. Consumers read `current`; only login,
    logout and the 401 policy write."""

    def __init__(self, path: str | Path | None) -> None:
        self._path = Path(path) if path else None
        self._state = SessionState()

    @property
    def current(self) -> SessionState:
        return self._state

    @property
    def token(self) -> str | None:
        return self._state.token

    @property
    def user_id(self) -> str | None:
        return self._state.user_id

    @property
    def role(self) -> Role | None:
        return self._state.role

    def load(self) -> SessionState:
        self._state = self._read_file()
        return self._state

    def _read_file(self) -> SessionState:
        if self._path is None or not self._path.exists():
            return SessionState()
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            logger.warning("session file unreadable path=%s", self._path, exc_info=True)
            return SessionState()
        if not isinstance(raw, dict) or raw.get("version") != _SESSION_VERSION:
            return SessionState()

        token = raw.get("token")
        if not isinstance(token, str) or not token.strip():
            return SessionState()
        user_obj = raw.get("user")
        user: User | None = None
        if isinstance(user_obj, dict):
            try:
                user = User.model_validate(user_obj)
            except ValidationError:
                logger.warning("session user invalid path=%s", self._path)
                return SessionState()
        return SessionState(token=token.strip(), user=user)

    def save(self, token: str, user: User) -> SessionState:
        self._state = SessionState(token=token, user=user)
        self._write_file()
        return self._state

    def update_user(self, user: User) -> SessionState:
        if not self._state.token:
            return self._state
        return self.save(self._state.token, user)

    def clear(self) -> None:
        self._state = SessionState()
        if self._path is None:
            return
        try:
            self._path.unlink(missing_ok=True)
        except OSError:
            logger.warning("session file delete failed path=%s", self._path, exc_info=True)

    def _write_file(self) -> None:
        if self._path is None:
            return
        payload: dict[str, Any] = {
            "version": _SESSION_VERSION,
            "token": self._state.token,
            "user": (
                self._state.user.model_dump(mode="json", by_alias=True)
                if self._state.user is not None
                else None
            ),
        }
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp.write_text(json.dumps(payload, ensure_ascii=False), encoding="utf-8")
        os.replace(tmp, self._path)
