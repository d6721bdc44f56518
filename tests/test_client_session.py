"""Client SDK: session storage, token attach/refresh, 401 handling."""

import json
import threading
import time
from unittest.mock import MagicMock

import jwt
import pytest
import requests

from mangati_platform.client import ApiClient, ApiError, ClientConfig, SessionExpiredError, SessionManager, SessionStore
from mangati_platform.client.session import is_auth_path
from mangati_platform.client.tokens import token_info


NOW = 1_800_000_000.0
USER = {"id": "u-1", "username": "kaito", "email": "kaito@example.test", "roles": ["Writer"]}


def _token(exp, sub="u-1"):
    return jwt.encode({"sub": sub, "unique_name": "kaito", "role": ["Writer"], "exp": int(exp)}, "k", algorithm="HS256")


def _response(status, body=None):
    r = requests.Response()
    r.status_code = status
    r._content = b"" if body is None else json.dumps(body).encode("utf-8")
    r.headers["Content-Type"] = "application/json"
    return r


@pytest.fixture
def store(tmp_path):
    return SessionStore(tmp_path / "session.json")


@pytest.fixture
def client_config(tmp_path):
    return ClientConfig(API_BASE_URL="http://api.test", SESSION_PATH=str(tmp_path / "session.json"))


# -----------------------------
# Storage
# -----------------------------


@pytest.mark.parametrize(
    "raw",
    [
        b"{not json",
        b'["token"]',
        b'{"token": 5, "user": {"id": "u", "username": "x"}}',
        b'{"token": "abc", "user": "kaito"}',
        b'{"token": "abc", "user": {"username": "kaito"}}',
        b'{"token": "\xff\xfe", "user": {}}',
    ],
)
def test_corrupt_storage_reads_as_no_session(store, raw):
    store.path.write_bytes(raw)
    assert store.get() is None
    assert store.get_token() is None
    assert not store.path.exists()


def test_directory_at_session_path_reads_as_no_session(tmp_path):
    path = tmp_path / "session.json"
    path.mkdir()
    store = SessionStore(path)
    assert store.get() is None
    assert store.pop_return_to() is None


def test_storage_round_trip(store):
    store.set("tok", USER)
    s = store.get()
    assert s.token == "tok"
    assert s.user["roles"] == ["Writer"]

    store.set_return_to("/api/favorites")
    assert store.get().token == "tok"
    assert store.pop_return_to() == "/api/favorites"
    assert store.pop_return_to() is None

    store.clear()
    assert store.get() is None


# -----------------------------
# Attaching tokens
# -----------------------------


def _manager(store, refresh_fn=None, on_login_required=None, **cfg):
    return SessionManager(
        store,
        config=ClientConfig(**cfg),
        refresh_fn=refresh_fn,
        on_login_required=on_login_required,
        clock=lambda: NOW,
    )


def test_expired_token_is_not_attached(store):
    refresh_fn = MagicMock()
    m = _manager(store, refresh_fn)
    store.set(_token(NOW - 10), USER)

    assert m.auth_headers("/api/favorites") == {}
    assert not m.is_authenticated()
    refresh_fn.assert_not_called()


def test_token_inside_expiry_buffer_is_not_attached(store):
    m = _manager(store)
    store.set(_token(NOW + 20), USER)
    assert m.auth_headers("/api/favorites") == {}


def test_valid_token_is_attached(store):
    token = _token(NOW + 3600)
    m = _manager(store)
    store.set(token, USER)
    assert m.auth_headers("/api/favorites") == {"Authorization": f"Bearer {token}"}
    assert m.is_authenticated()
    assert m.current_user()["username"] == "kaito"


def test_token_near_expiry_is_refreshed_before_use(store):
    fresh = _token(NOW + 100)
    refresh_fn = MagicMock(return_value=(fresh, USER))
    m = _manager(store, refresh_fn)
    old = _token(NOW + 60)
    store.set(old, USER)

    assert m.auth_headers("/api/favorites") == {"Authorization": f"Bearer {fresh}"}
    refresh_fn.assert_called_once_with(old)
    assert store.get_token() == fresh

    # Credential endpoints never trigger a refresh.
    store.set(old, USER)
    assert m.auth_headers("/api/auth/logout") == {"Authorization": f"Bearer {old}"}
    assert refresh_fn.call_count == 1


# -----------------------------
# Single-flight refresh
# -----------------------------


def _run_concurrent_refreshes(m, release, n_waiters):
    results = {}

    def call(name):
        try:
            results[name] = m.refresh()
        except Exception as e:
            results[name] = e

    leader = threading.Thread(target=call, args=("leader",))
    leader.start()
    deadline = time.time() + 5
    while not m._refreshing and time.time() < deadline:
        time.sleep(0.01)

    waiters = [threading.Thread(target=call, args=(f"w{i}",)) for i in range(n_waiters)]
    for t in waiters:
        t.start()
    while len(m._waiters) < n_waiters and time.time() < deadline:
        time.sleep(0.01)

    release.set()
    for t in [leader, *waiters]:
        t.join(timeout=5)
    return results


def test_concurrent_refresh_runs_once(store):
    release = threading.Event()
    fresh = _token(NOW + 100)
    calls = []

    def refresh_fn(token):
        calls.append(token)
        release.wait(5)
        return fresh, USER

    m = _manager(store, refresh_fn)
    store.set(_token(NOW + 60), USER)

    results = _run_concurrent_refreshes(m, release, n_waiters=5)

    assert len(calls) == 1
    assert set(results.values()) == {fresh}
    assert len(results) == 6
    assert store.get_token() == fresh


def test_failed_refresh_fails_every_caller_and_clears_session(store):
    release = threading.Event()
    login_required = MagicMock()

    def refresh_fn(token):
        release.wait(5)
        raise ApiError(401, "token_expired")

    m = _manager(store, refresh_fn, login_required)
    store.set(_token(NOW + 60), USER)

    results = _run_concurrent_refreshes(m, release, n_waiters=3)

    assert len(results) == 4
    assert all(isinstance(v, SessionExpiredError) for v in results.values())
    assert store.get() is None
    login_required.assert_called_once_with(None)

    # The next refresh starts a new flight rather than reusing the failed one.
    m.refresh_fn = MagicMock(return_value=(_token(NOW + 100), USER))
    store.set(_token(NOW + 60), USER)
    assert m.refresh() == _token(NOW + 100)


def test_waiter_gives_up_on_stuck_refresh(store):
    release = threading.Event()
    login_required = MagicMock()

    def refresh_fn(token):
        release.wait(5)
        return _token(NOW + 100), USER

    m = _manager(store, refresh_fn, login_required, REFRESH_WAIT_SECONDS=0.1)
    store.set(_token(NOW + 60), USER)

    leader = threading.Thread(target=m.refresh)
    leader.start()
    deadline = time.time() + 5
    while not m._refreshing and time.time() < deadline:
        time.sleep(0.01)

    with pytest.raises(SessionExpiredError) as exc:
        m.refresh()
    assert exc.value.detail == "refresh_timeout"
    assert m._waiters == []

    release.set()
    leader.join(timeout=5)
    assert store.get_token() == _token(NOW + 100)
    login_required.assert_not_called()


def test_refresh_without_session(store):
    m = _manager(store, MagicMock())
    with pytest.raises(SessionExpiredError):
        m.refresh()


# -----------------------------
# Background refresh timer
# -----------------------------


def test_refresh_timer_scheduled_and_cancelled(store):
    m = _manager(store, MagicMock())
    m.store_session(_token(NOW + 3600), USER)
    assert m.refresh_scheduled

    m.clear()
    assert not m.refresh_scheduled
    assert store.get() is None


def test_no_timer_inside_refresh_margin(store):
    m = _manager(store, MagicMock())
    m.store_session(_token(NOW + 200), USER)
    assert not m.refresh_scheduled


def test_no_timer_without_refresh_function(store):
    m = _manager(store)
    m.store_session(_token(NOW + 3600), USER)
    assert not m.refresh_scheduled


def test_replaced_timer_is_cancelled(store):
    m = _manager(store, MagicMock())
    m.store_session(_token(NOW + 3600), USER)
    first = m._timer
    m.store_session(_token(NOW + 7200), USER)

    assert first.finished.is_set()
    assert m._timer is not first
    m.clear()


def test_concurrent_stores_leave_one_live_timer(store, monkeypatch):
    created = []

    class RecordingTimer(threading.Timer):
        def __init__(self, *args, **kwargs):
            super().__init__(*args, **kwargs)
            created.append(self)

    monkeypatch.setattr("mangati_platform.client.session.threading.Timer", RecordingTimer)
    m = _manager(store, MagicMock())
    start = threading.Barrier(8)

    def store_one(i):
        start.wait(5)
        m.store_session(_token(NOW + 3600 + i), USER)

    threads = [threading.Thread(target=store_one, args=(i,)) for i in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5)

    live = [t for t in created if not t.finished.is_set()]
    assert len(created) == 8
    assert live == [m._timer]
    m.clear()
    assert all(t.finished.is_set() for t in created)


def test_timer_fires_refresh(store):
    fired = threading.Event()
    fresh = _token(NOW + 100)

    def refresh_fn(token):
        fired.set()
        return fresh, USER

    m = _manager(store, refresh_fn, REFRESH_MARGIN_SECONDS=300)
    # exp is margin + 1s away in the fake clock's frame.
    m.store_session(_token(NOW + 301), USER)

    assert fired.wait(5)
    deadline = time.time() + 5
    while store.get_token() != fresh and time.time() < deadline:
        time.sleep(0.01)
    assert store.get_token() == fresh


# -----------------------------
# ApiClient 401 handling
# -----------------------------


def _api(client_config, http, on_login_required=None):
    return ApiClient(client_config, http=http, on_login_required=on_login_required)


def test_protected_401_clears_session_and_remembers_path(client_config):
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(401, {"detail": "token_invalid"})
    login_required = MagicMock()
    api = _api(client_config, http, login_required)
    api.session.store.set(_token(time.time() + 3600), USER)

    with pytest.raises(SessionExpiredError):
        api.favorites()

    assert api.current_user() is None
    login_required.assert_called_once_with("/api/favorites")
    assert api.return_to() == "/api/favorites"
    assert api.return_to() is None


def test_failed_login_does_not_clear_session(client_config):
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(401, {"detail": "invalid_credentials"})
    login_required = MagicMock()
    api = _api(client_config, http, login_required)
    api.session.store.set(_token(time.time() + 3600), USER)

    with pytest.raises(ApiError) as exc:
        api.login("kaito@example.test", "wrong")

    assert type(exc.value) is ApiError
    assert exc.value.user_message == "Invalid email or password."
    assert api.current_user()["username"] == "kaito"
    login_required.assert_not_called()


def test_expired_token_request_goes_out_anonymously(client_config):
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(200, [])
    api = _api(client_config, http)
    api.session.store.set(_token(time.time() - 10), USER)

    assert api.favorites() == []
    assert "Authorization" not in http.request.call_args.kwargs["headers"]
    http.post.assert_not_called()


def test_login_stores_session(client_config):
    token = _token(time.time() + 3600)
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(200, {"token": token, "user": USER})
    api = _api(client_config, http)

    assert api.login("kaito@example.test", "Secret123!")["id"] == "u-1"
    assert api.has_role("writer")
    assert not api.has_role("Admin")
    assert api.session.store.get_token() == token
    api.session.clear()


def test_error_classes_by_status(client_config):
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(429, {"detail": "upload_limit_reached"})
    api = _api(client_config, http)

    with pytest.raises(ApiError) as exc:
        api.upload_chapter(1, "Ch", [{"image_url": "https://cdn.example.test/1.png"}])
    assert exc.value.status_code == 429
    assert exc.value.user_message == "You have reached your monthly upload limit."


def test_401_from_me_ends_the_session(client_config):
    http = MagicMock(spec=requests.Session)
    http.request.return_value = _response(401, {"detail": "token_invalid"})
    login_required = MagicMock()
    api = _api(client_config, http, login_required)
    api.session.store.set(_token(time.time() + 3600), USER)

    with pytest.raises(SessionExpiredError):
        api.me()

    assert api.session.store.get_token() is None
    login_required.assert_called_once_with("/api/auth/me")
    assert api.return_to() == "/api/auth/me"


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/api/auth/login", True),
        ("/api/auth/register", True),
        ("/api/auth/refresh", True),
        ("/api/auth/logout", True),
        ("/api/auth/me", False),
        ("/api/favorites", False),
    ],
)
def test_credential_endpoints(path, expected):
    assert is_auth_path(path) is expected


def test_token_info_reads_canonical_claims_only():
    other = jwt.encode({"nameid": "u-9", "username": "legacy", "exp": int(NOW)}, "k", algorithm="HS256")
    info = token_info(other)
    assert info.user_id is None
    assert info.username is None

    info = token_info(_token(NOW))
    assert (info.user_id, info.username, info.roles) == ("u-1", "kaito", ["Writer"])
