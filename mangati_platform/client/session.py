"""Client session lifecycle: attach, refresh, expire.

Refresh is single-flight. The first caller that needs a new token performs the
refresh; callers arriving while it is in flight park on a Future and receive
the same token, or the same SessionExpiredError when it fails.
"""

from __future__ import annotations

import threading
import time
from concurrent.futures import Future
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Any, Callable, Dict, List, Optional, Tuple

from .config import ClientConfig
from .errors import SessionExpiredError
from .storage import SessionStore
from .tokens import is_token_valid, token_info


RefreshFn = Callable[[str], Tuple[str, Dict[str, Any]]]
LoginRequiredFn = Callable[[Optional[str]], None]

# Credential endpoints: a 401 here is a failed login, not an expired session.
AUTH_PATHS = frozenset(
    {
        "/api/auth/login",
        "/api/auth/register",
        "/api/auth/refresh",
        "/api/auth/logout",
    }
)


def _debug(msg: str) -> None:
    print(f"[client] {msg}")


def is_auth_path(path: str) -> bool:
    return path.split("?", 1)[0].rstrip("/") in AUTH_PATHS


class SessionManager:
    def __init__(
        self,
        store: SessionStore,
        *,
        config: Optional[ClientConfig] = None,
        refresh_fn: Optional[RefreshFn] = None,
        on_login_required: Optional[LoginRequiredFn] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store
        self.config = config or ClientConfig()
        self.refresh_fn = refresh_fn
        self.on_login_required = on_login_required
        self._clock = clock

        self._lock = threading.Lock()
        self._refreshing = False
        self._waiters: List[Future] = []
        self._timer: Optional[threading.Timer] = None

    # -----------------
    # Store / clear
    # -----------------

    def store_session(self, token: str, user: Dict[str, Any]) -> None:
        self.store.set(token, user)
        self._schedule_refresh(token)

    def clear(self) -> None:
        self._cancel_timer()
        self.store.clear()

    def current_user(self) -> Optional[Dict[str, Any]]:
        s = self.store.get()
        return s.user if s else None

    def is_authenticated(self) -> bool:
        token = self.store.get_token()
        return is_token_valid(token, now=self._clock(), buffer_seconds=self.config.EXPIRY_BUFFER_SECONDS)

    # -----------------
    # Per-request
    # -----------------

    def auth_headers(self, path: str) -> Dict[str, str]:
        """Authorization header for an outbound request, or {} to send it anonymously.

        A locally expired token is not sent. A token close to expiry is
        refreshed first when a refresh function is configured.
        """
        token = self.store.get_token()
        if not token:
            return {}
        now = self._clock()
        if not is_token_valid(token, now=now, buffer_seconds=self.config.EXPIRY_BUFFER_SECONDS):
            _debug("stored token is expired; sending request without it")
            return {}

        if self.refresh_fn is not None and not is_auth_path(path):
            info = token_info(token)
            remaining = info.expires_in(now) if info else None
            if remaining is not None and remaining <= self.config.REFRESH_WINDOW_SECONDS:
                token = self.refresh(token)
        return {"Authorization": f"Bearer {token}"}

    def handle_unauthorized(self, path: str) -> None:
        """A protected request came back 401: drop credentials and ask for login.

        Always raises SessionExpiredError.
        """
        _debug(f"401 from {path}; clearing session")
        self.clear()
        self.store.set_return_to(path)
        if self.on_login_required is not None:
            self.on_login_required(path)
        raise SessionExpiredError(path=path)

    # -----------------
    # Refresh
    # -----------------

    def refresh(self, token: Optional[str] = None) -> str:
        if self.refresh_fn is None:
            raise SessionExpiredError("refresh_unavailable")

        with self._lock:
            if self._refreshing:
                waiter: Future = Future()
                self._waiters.append(waiter)
                leader = False
            else:
                self._refreshing = True
                leader = True

        if not leader:
            try:
                return waiter.result(timeout=self.config.REFRESH_WAIT_SECONDS)
            except FutureTimeoutError:
                with self._lock:
                    if waiter in self._waiters:
                        self._waiters.remove(waiter)
                _debug("gave up waiting for in-flight token refresh")
                raise SessionExpiredError("refresh_timeout")

        current = token or self.store.get_token()
        try:
            if not current:
                raise SessionExpiredError("no_session")
            new_token, user = self.refresh_fn(current)
        except Exception as e:
            _debug(f"token refresh failed: {e}")
            self.clear()
            err = e if isinstance(e, SessionExpiredError) else SessionExpiredError("refresh_failed")
            self._finish(None, err)
            if self.on_login_required is not None:
                self.on_login_required(None)
            if err is e:
                raise
            raise err from e

        self.store_session(new_token, user)
        self._finish(new_token, None)
        return new_token

    def _finish(self, token: Optional[str], error: Optional[BaseException]) -> None:
        with self._lock:
            waiters = self._waiters
            self._waiters = []
            self._refreshing = False
        for w in waiters:
            if error is not None:
                w.set_exception(error)
            else:
                w.set_result(token)

    # -----------------
    # Background refresh timer
    # -----------------

    def _schedule_refresh(self, token: str) -> None:
        """Replace any pending timer with one for `token`.

        The old timer is swapped out and the new one installed under a single
        lock hold, so concurrent stores never leave an orphaned timer running.
        """
        timer: Optional[threading.Timer] = None
        if self.refresh_fn is not None:
            info = token_info(token)
            if info is not None and info.exp is not None:
                delay = info.exp - self._clock() - self.config.REFRESH_MARGIN_SECONDS
                # Inside the margin already: request-time refresh covers it.
                if delay > 0:
                    timer = threading.Timer(delay, self._on_timer)
                    timer.daemon = True

        with self._lock:
            old = self._timer
            self._timer = timer
        if old is not None:
            old.cancel()
        if timer is not None:
            timer.start()

    def _cancel_timer(self) -> None:
        with self._lock:
            timer = self._timer
            self._timer = None
        if timer is not None:
            timer.cancel()

    def _on_timer(self) -> None:
        try:
            self.refresh()
        except SessionExpiredError:
            # Credentials were cleared and on_login_required notified.
            _debug("background refresh failed; session ended")

    @property
    def refresh_scheduled(self) -> bool:
        with self._lock:
            return self._timer is not None
