from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

import requests

from .config import ClientConfig
from .errors import ApiError, error_for
from .session import LoginRequiredFn, SessionManager, is_auth_path
from .storage import SessionStore


def _debug(msg: str) -> None:
    print(f"[client] {msg}")


def _detail(r: requests.Response) -> Any:
    try:
        body = r.json()
    except ValueError:
        return r.text or None
    if isinstance(body, dict) and "detail" in body:
        return body["detail"]
    return body


class ApiClient:
    """Synchronous client for the Mangati API.

    Every call goes through `request()`, which asks the SessionManager for the
    Authorization header and hands 401s on protected paths back to it.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        *,
        store: Optional[SessionStore] = None,
        http: Optional[requests.Session] = None,
        on_login_required: Optional[LoginRequiredFn] = None,
        refresh_enabled: bool = True,
    ):
        self.config = config or ClientConfig()
        self.base_url = self.config.API_BASE_URL.rstrip("/")
        self.http = http or requests.Session()
        self.session = SessionManager(
            store or SessionStore(self.config.SESSION_PATH),
            config=self.config,
            refresh_fn=self._refresh_token if refresh_enabled else None,
            on_login_required=on_login_required,
        )

    # -----------------
    # Transport
    # -----------------

    def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[Any, requests.Response]:
        h = dict(self.session.auth_headers(path))
        h.update(headers or {})
        r = self.http.request(
            method,
            f"{self.base_url}{path}",
            json=json,
            params=params,
            headers=h,
            timeout=self.config.REQUEST_TIMEOUT_SECONDS,
        )
        if r.status_code == 401 and not is_auth_path(path):
            self.session.handle_unauthorized(path)
        if r.status_code >= 400:
            raise error_for(r.status_code, _detail(r), path=path)
        if r.status_code == 204 or not r.content:
            return None, r
        return r.json(), r

    def _call(self, method: str, path: str, **kwargs: Any) -> Any:
        data, _ = self.request(method, path, **kwargs)
        return data

    def _refresh_token(self, token: str) -> Tuple[str, Dict[str, Any]]:
        r = self.http.post(
            f"{self.base_url}/api/auth/refresh",
            headers={"Authorization": f"Bearer {token}"},
            timeout=self.config.REQUEST_TIMEOUT_SECONDS,
        )
        if r.status_code != 200:
            raise error_for(r.status_code, _detail(r), path="/api/auth/refresh")
        body = r.json()
        return str(body["token"]), dict(body["user"])

    # -----------------
    # Auth
    # -----------------

    def login(self, email: str, password: str) -> Dict[str, Any]:
        data = self._call("POST", "/api/auth/login", json={"email": email, "password": password})
        self.session.store_session(data["token"], data["user"])
        return data["user"]

    def register(self, username: str, email: str, password: str, role: Optional[str] = None) -> Dict[str, Any]:
        payload = {"username": username, "email": email, "password": password, "role": role}
        data = self._call("POST", "/api/auth/register", json=payload)
        self.session.store_session(data["token"], data["user"])
        return data["user"]

    def logout(self) -> None:
        try:
            self._call("POST", "/api/auth/logout")
        except (ApiError, requests.RequestException) as e:
            _debug(f"logout call failed: {e}")
        finally:
            self.session.clear()

    def me(self) -> Dict[str, Any]:
        return self._call("GET", "/api/auth/me")["user"]

    def current_user(self) -> Optional[Dict[str, Any]]:
        return self.session.current_user()

    def has_role(self, role: str) -> bool:
        user = self.current_user() or {}
        wanted = (role or "").lower()
        return any(str(r).lower() == wanted for r in user.get("roles") or [])

    def return_to(self) -> Optional[str]:
        """Path a forced login interrupted, consumed on read."""
        return self.session.store.pop_return_to()

    # -----------------
    # Content
    # -----------------

    def list_series(
        self,
        *,
        search: Optional[str] = None,
        status: Optional[str] = None,
        language_id: Optional[int] = None,
        tag_ids: Sequence[int] = (),
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {"page": page}
        if search:
            params["search"] = search
        if status:
            params["status"] = status
        if language_id is not None:
            params["language_id"] = language_id
        if tag_ids:
            params["tag_ids"] = list(tag_ids)
        if page_size:
            params["page_size"] = page_size
        items, r = self.request("GET", "/api/mangaseries", params=params)
        return {
            "items": items,
            "total_count": int(r.headers.get("X-Total-Count", "0")),
            "total_pages": int(r.headers.get("X-Total-Pages", "0")),
        }

    def get_series(self, series_id: int) -> Dict[str, Any]:
        return self._call("GET", f"/api/mangaseries/{series_id}")

    def create_series(self, title: str, **fields: Any) -> Dict[str, Any]:
        return self._call("POST", "/api/mangaseries", json={"title": title, **fields})

    def list_chapters(self, series_id: int, *, status: Optional[str] = None) -> List[Dict[str, Any]]:
        params = {"status": status} if status else None
        return self._call("GET", f"/api/manga/{series_id}/chapter", params=params)

    def get_chapter(self, series_id: int, chapter_id: int) -> Dict[str, Any]:
        return self._call("GET", f"/api/manga/{series_id}/chapter/{chapter_id}")

    def upload_chapter(
        self,
        series_id: int,
        title: str,
        pages: Sequence[Dict[str, Any]],
        *,
        number: Optional[int] = None,
    ) -> Dict[str, Any]:
        payload = {"title": title, "number": number, "pages": list(pages)}
        return self._call("POST", f"/api/manga/{series_id}/chapter", json=payload)

    # -----------------
    # Reader
    # -----------------

    def favorites(self) -> List[Dict[str, Any]]:
        return self._call("GET", "/api/favorites")

    def add_favorite(self, series_id: int) -> None:
        self._call("POST", "/api/favorites", json={"series_id": series_id})

    def remove_favorite(self, series_id: int) -> None:
        self._call("DELETE", f"/api/favorites/{series_id}")

    def save_progress(self, chapter_id: int, page_number: int) -> None:
        self._call("POST", "/api/readingprogress", json={"chapter_id": chapter_id, "page_number": page_number})

    def viewer_settings(self) -> Dict[str, Any]:
        return self._call("GET", "/api/viewersettings")

    def save_viewer_settings(self, **settings: Any) -> None:
        self._call("PUT", "/api/viewersettings", json=settings)

    def my_subscription(self) -> Dict[str, Any]:
        return self._call("GET", "/api/subscriptions/me")
