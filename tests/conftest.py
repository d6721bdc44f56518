import pytest
from fastapi.testclient import TestClient

from mangati_platform.api.server import create_app
from mangati_platform.config import Config
from mangati_platform.db import connect


PASSWORD = "Secret123!"
PAGES = [
    {"image_url": "https://cdn.example.test/p1.png", "file_size_bytes": 2048},
    {"image_url": "https://cdn.example.test/p2.png", "file_size_bytes": 4096},
]


@pytest.fixture
def cfg(tmp_path):
    return Config(
        DB_DSN=str(tmp_path / "mangati-test.sqlite"),
        AUTH_JWT_SECRET="test-signing-key-0123456789abcdef",
        AUTH_TOKEN_EXPIRE_MINUTES=60,
        AUTH_ALLOW_ADMIN_SIGNUP=True,
        AUTH_BOOTSTRAP_ADMIN_PASSWORD=None,
        CORS_ALLOW_ORIGINS="",
        STRIPE_SECRET_KEY=None,
        STRIPE_WEBHOOK_SECRET=None,
    )


@pytest.fixture
def client(cfg):
    with TestClient(create_app(cfg)) as c:
        yield c


@pytest.fixture
def register(client):
    """Register a user and return {token, user, headers}."""

    def _register(username, role=None, *, email=None, password=PASSWORD):
        r = client.post(
            "/api/auth/register",
            json={
                "username": username,
                "email": email or f"{username}@example.test",
                "password": password,
                "role": role,
            },
        )
        assert r.status_code == 201, r.text
        body = r.json()
        return {
            "token": body["token"],
            "user": body["user"],
            "headers": {"Authorization": f"Bearer {body['token']}"},
        }

    return _register


@pytest.fixture
def admin(register):
    return register("admin1", "Admin")


@pytest.fixture
def writer(register):
    return register("writer1", "Writer")


@pytest.fixture
def viewer(register):
    return register("viewer1")


@pytest.fixture
def subscribe(client, admin):
    """Create a plan with the given monthly limit and assign it to a user."""

    def _subscribe(user, *, limit=10, status="Active"):
        user_id = user["user"]["id"]
        plan = client.post(
            "/api/admin/subscription-plans",
            json={"name": f"Plan-{limit}-{user_id[:8]}", "price_cents": 999, "upload_limit_per_month": limit},
            headers=admin["headers"],
        )
        assert plan.status_code == 201, plan.text
        r = client.put(
            f"/api/admin/subscriptions/{user_id}",
            json={"plan_id": plan.json()["plan_id"], "status": status},
            headers=admin["headers"],
        )
        assert r.status_code == 200, r.text
        return plan.json()

    return _subscribe


@pytest.fixture
def make_series(client):
    def _make(owner, title="Blade of Dawn", **fields):
        r = client.post("/api/mangaseries", json={"title": title, **fields}, headers=owner["headers"])
        assert r.status_code == 201, r.text
        return r.json()

    return _make


@pytest.fixture
def upload(client):
    def _upload(who, series_id, title="Chapter", *, number=None, pages=None):
        headers = who["headers"] if who else {}
        return client.post(
            f"/api/manga/{series_id}/chapter",
            json={"title": title, "number": number, "pages": PAGES if pages is None else pages},
            headers=headers,
        )

    return _upload


@pytest.fixture
def counter(cfg):
    """Read a user's stored monthly upload counter."""

    def _counter(user):
        with connect(cfg.DB_DSN) as conn:
            row = conn.execute(
                "SELECT chapters_uploaded_this_month AS n FROM user_subscriptions WHERE user_id=?",
                (user["user"]["id"],),
            ).fetchone()
        return None if row is None else int(row["n"])

    return _counter
