"""Durable client-side session storage.

One JSON document holds the bearer token, the cached user projection and the
path to return to after a forced login. Anything unreadable is treated as "no
session": the file is removed and callers see None, never an exception.
"""

from __future__ import annotations

import json
import os
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional


def _debug(msg: str) -> None:
    print(f"[client] {msg}")


@dataclass(frozen=True)
class StoredSession:
    token: str
    user: Dict[str, Any]


class SessionStore:
    def __init__(self, path: str | os.PathLike):
        self.path = Path(path)
        self._lock = threading.RLock()

    # -----------------
    # File access
    # -----------------

    def _read(self) -> Dict[str, Any]:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return {}
        except (UnicodeDecodeError, OSError) as e:
            _debug(f"session file is unreadable ({type(e).__name__}); clearing")
            self._remove()
            return {}
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            _debug("session file is not valid JSON; clearing")
            self._remove()
            return {}
        if not isinstance(data, dict):
            _debug("session file has unexpected shape; clearing")
            self._remove()
            return {}
        return data

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=str(self.path.parent), prefix=".session-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            Path(tmp).unlink(missing_ok=True)
            raise

    def _remove(self) -> None:
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            # e.g. a directory sitting at the session path
            _debug(f"could not remove session file: {e}")

    # -----------------
    # Session
    # -----------------

    def get(self) -> Optional[StoredSession]:
        with self._lock:
            data = self._read()
            if not data.get("token") and not data.get("user"):
                return None
            token = data.get("token")
            user = data.get("user")
            if (
                not isinstance(token, str)
                or not token
                or not isinstance(user, dict)
                or not user.get("id")
                or not user.get("username")
            ):
                _debug("stored session is incomplete; clearing")
                self._remove()
                return None
            return StoredSession(token=token, user=user)

    def get_token(self) -> Optional[str]:
        s = self.get()
        return s.token if s else None

    def set(self, token: str, user: Dict[str, Any]) -> None:
        with self._lock:
            data = self._read()
            data["token"] = token
            data["user"] = {
                "id": user.get("id"),
                "username": user.get("username"),
                "email": user.get("email"),
                "roles": list(user.get("roles") or []),
                "created_at": user.get("created_at"),
            }
            self._write(data)

    def clear(self) -> None:
        """Drop everything, including a pending return path."""
        with self._lock:
            self._remove()

    # -----------------
    # Return-after-login path
    # -----------------

    def set_return_to(self, path: str) -> None:
        with self._lock:
            data = self._read()
            data["return_to"] = path
            self._write(data)

    def pop_return_to(self) -> Optional[str]:
        with self._lock:
            data = self._read()
            value = data.pop("return_to", None)
            if value is None:
                return None
            if data:
                self._write(data)
            else:
                self._remove()
            return value if isinstance(value, str) else None
