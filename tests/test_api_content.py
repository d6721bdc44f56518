import pytest


@pytest.fixture
def catalogue(client, admin):
    """Two tags and two languages."""
    h = admin["headers"]
    tags = [client.post("/api/filters/tags", json={"name": n}, headers=h).json() for n in ("Action", "Romance")]
    langs = [client.post("/api/filters/languages", json={"name": n}, headers=h).json() for n in ("English", "Japanese")]
    return {"tags": tags, "languages": langs}


# -----------------------------
# Series
# -----------------------------


def test_series_listing_filters_and_paging(client, writer, make_series, catalogue):
    action, romance = (t["id"] for t in catalogue["tags"])
    english, japanese = (lang["id"] for lang in catalogue["languages"])

    make_series(writer, "Steel Hearts", tag_ids=[action, romance], language_ids=[english])
    make_series(writer, "Quiet Garden", synopsis="A slow romance", tag_ids=[romance], language_ids=[japanese])
    make_series(writer, "Iron Fist", tag_ids=[action], language_ids=[english, japanese])

    r = client.get("/api/mangaseries", params={"page_size": 2})
    assert r.status_code == 200
    assert r.headers["X-Total-Count"] == "3"
    assert r.headers["X-Total-Pages"] == "2"
    assert [s["title"] for s in r.json()] == ["Iron Fist", "Quiet Garden"]

    both = client.get("/api/mangaseries", params=[("tag_ids", action), ("tag_ids", romance)]).json()
    assert [s["title"] for s in both] == ["Steel Hearts"]

    japanese_titles = {s["title"] for s in client.get("/api/mangaseries", params={"language_id": japanese}).json()}
    assert japanese_titles == {"Quiet Garden", "Iron Fist"}

    found = client.get("/api/mangaseries", params={"search": "ROMANCE"}).json()
    assert [s["title"] for s in found] == ["Quiet Garden"]

    empty = client.get("/api/mangaseries", params={"search": "nothing like this"})
    assert empty.json() == []
    assert empty.headers["X-Total-Pages"] == "0"


def test_series_detail_lists_only_approved_chapters(client, admin, writer, subscribe, make_series, upload):
    subscribe(writer, limit=5)
    s = make_series(writer)
    upload(writer, s["id"], number=1)
    upload(admin, s["id"], number=2)

    detail = client.get(f"/api/mangaseries/{s['id']}").json()
    assert detail["author_name"] == "writer1"
    assert [c["number"] for c in detail["chapters"]] == [2]


def test_series_requires_writer(client, viewer):
    r = client.post("/api/mangaseries", json={"title": "Nope"}, headers=viewer["headers"])
    assert r.status_code == 403
    assert r.json()["detail"] == "role_required"


def test_series_validation(client, writer):
    r = client.post("/api/mangaseries", json={"title": "   "}, headers=writer["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "title_blank"

    r = client.post("/api/mangaseries", json={"title": "T", "tag_ids": [999]}, headers=writer["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "unknown_tag"
    assert client.get("/api/mangaseries").headers["X-Total-Count"] == "0"


def test_series_update_and_delete_ownership(client, register, admin, writer, make_series):
    other = register("writer2", "Writer")
    s = make_series(writer)
    path = f"/api/mangaseries/{s['id']}"

    r = client.put(path, json={"status": "Completed"}, headers=other["headers"])
    assert r.status_code == 403
    assert r.json()["detail"] == "not_owner"

    r = client.put(path, json={"status": "Completed", "title": "Renamed"}, headers=writer["headers"])
    assert r.status_code == 200
    assert (r.json()["status"], r.json()["title"]) == ("Completed", "Renamed")

    r = client.put(path, json={"status": "Paused"}, headers=writer["headers"])
    assert r.status_code == 400

    assert client.delete(path, headers=other["headers"]).status_code == 403
    assert client.delete(path, headers=admin["headers"]).status_code == 204
    assert client.get(path).status_code == 404


# -----------------------------
# Reader library
# -----------------------------


def test_favorites(client, viewer, writer, make_series):
    s = make_series(writer)
    h = viewer["headers"]

    assert client.post("/api/favorites", json={"series_id": s["id"]}, headers=h).json()["added"] is True
    assert client.post("/api/favorites", json={"series_id": s["id"]}, headers=h).json()["added"] is False
    assert [f["id"] for f in client.get("/api/favorites", headers=h).json()] == [s["id"]]

    assert client.post("/api/favorites", json={"series_id": 999}, headers=h).status_code == 404
    assert client.delete(f"/api/favorites/{s['id']}", headers=h).status_code == 204
    assert client.delete(f"/api/favorites/{s['id']}", headers=h).status_code == 404
    assert client.get("/api/favorites").status_code == 401


def test_reading_progress(client, admin, viewer, writer, subscribe, make_series, upload):
    subscribe(writer, limit=5)
    s = make_series(writer)
    ch1 = upload(admin, s["id"], number=1).json()
    pending = upload(writer, s["id"], number=2).json()
    h = viewer["headers"]

    r = client.post("/api/readingprogress", json={"chapter_id": ch1["id"], "page_number": 2}, headers=h)
    assert r.status_code == 200
    assert client.post("/api/readingprogress", json={"chapter_id": ch1["id"], "page_number": 0}, headers=h).status_code == 400

    # An unapproved chapter does not exist for this reader.
    r = client.post("/api/readingprogress", json={"chapter_id": pending["id"], "page_number": 1}, headers=h)
    assert r.status_code == 404

    rows = client.get(f"/api/readingprogress/{s['id']}", headers=h).json()
    assert [(p["chapter_number"], p["last_read_page"]) for p in rows] == [(1, 2)]

    # Opening the chapter again keeps the saved page.
    client.get(f"/api/manga/{s['id']}/chapter/{ch1['id']}", headers=h)
    assert client.get(f"/api/readingprogress/chapter/{ch1['id']}", headers=h).json()["last_read_page"] == 2

    assert client.get(f"/api/readingprogress/chapter/{pending['id']}", headers=h).status_code == 404


def test_viewer_settings(client, viewer):
    h = viewer["headers"]
    assert client.get("/api/viewersettings", headers=h).json() == {
        "theme": "Light",
        "reading_mode": "PageFlip",
        "fit_to_width": True,
        "zoom_level": 100,
    }

    new = {"theme": "Dark", "reading_mode": "VerticalScroll", "fit_to_width": False, "zoom_level": 150}
    assert client.put("/api/viewersettings", json=new, headers=h).status_code == 204
    assert client.get("/api/viewersettings", headers=h).json() == new

    bad = dict(new, zoom_level=999)
    r = client.put("/api/viewersettings", json=bad, headers=h)
    assert r.status_code == 400
    assert r.json()["detail"] == "invalid_zoom_level"


# -----------------------------
# Filters
# -----------------------------


def test_tag_and_language_creation_rules(client, admin, writer, viewer):
    assert client.post("/api/filters/tags", json={"name": "Drama"}, headers=writer["headers"]).status_code == 201
    r = client.post("/api/filters/tags", json={"name": "drama"}, headers=admin["headers"])
    assert r.status_code == 409
    assert r.json()["detail"] == "tag_exists"
    assert client.post("/api/filters/tags", json={"name": "Comedy"}, headers=viewer["headers"]).status_code == 403

    assert client.post("/api/filters/languages", json={"name": "Korean"}, headers=writer["headers"]).status_code == 403
    assert client.post("/api/filters/languages", json={"name": "Korean"}, headers=admin["headers"]).status_code == 201

    everything = client.get("/api/filters/all").json()
    assert [t["name"] for t in everything["tags"]] == ["Drama"]
    assert [lang["name"] for lang in everything["languages"]] == ["Korean"]


def test_trending_tags(client, writer, make_series, catalogue):
    action, romance = (t["id"] for t in catalogue["tags"])
    make_series(writer, "A", tag_ids=[action])
    make_series(writer, "B", tag_ids=[action, romance])

    r = client.get("/api/filters/trending-tags", params={"limit": 5}).json()
    assert [(t["name"], t["count"]) for t in r] == [("Action", 2), ("Romance", 1)]


# -----------------------------
# Reports and admin
# -----------------------------


def test_reports_flow(client, admin, viewer, writer, make_series, upload):
    s = make_series(writer)
    ch = upload(admin, s["id"], number=1).json()

    r = client.post("/api/reports", json={"chapter_id": ch["id"], "reason": "Wrong page order"}, headers=viewer["headers"])
    assert r.status_code == 201, r.text
    report = r.json()
    assert report["series_id"] == s["id"]
    assert report["status"] == "Pending"

    r = client.post("/api/reports", json={"reason": "??"}, headers=viewer["headers"])
    assert r.status_code == 400
    assert r.json()["detail"] == "report_target_required"

    assert client.get("/api/admin/reports", headers=viewer["headers"]).status_code == 403
    pending = client.get("/api/admin/reports", params={"status": "Pending"}, headers=admin["headers"]).json()
    assert [p["report_id"] for p in pending] == [report["report_id"]]

    r = client.put(f"/api/admin/reports/{report['report_id']}", json={"status": "Resolved"}, headers=admin["headers"])
    assert r.status_code == 204
    assert client.get("/api/admin/reports", params={"status": "Pending"}, headers=admin["headers"]).json() == []


def test_revoking_last_role_is_refused(client, admin, viewer):
    uid = viewer["user"]["id"]
    r = client.delete(f"/api/admin/users/{uid}/roles/Viewer", headers=admin["headers"])
    assert r.status_code == 409
    assert r.json()["detail"] == "last_role"

    client.post(f"/api/admin/users/{uid}/roles", json={"role": "writer"}, headers=admin["headers"])
    r = client.delete(f"/api/admin/users/{uid}/roles/Viewer", headers=admin["headers"])
    assert r.status_code == 200
    assert r.json()["roles"] == ["Writer"]

    assert client.post("/api/admin/users/nope/roles", json={"role": "Writer"}, headers=admin["headers"]).status_code == 404


def test_plans_and_my_subscription(client, admin, writer, subscribe):
    assert client.get("/api/subscriptions/me", headers=writer["headers"]).json() == {
        "subscription": None,
        "unlimited": False,
    }
    plan = subscribe(writer, limit=7)

    r = client.post(
        "/api/admin/subscription-plans",
        json={"name": plan["name"], "upload_limit_per_month": 1},
        headers=admin["headers"],
    )
    assert r.status_code == 409

    assert [p["plan_id"] for p in client.get("/api/subscriptions/plans").json()] == [plan["plan_id"]]

    mine = client.get("/api/subscriptions/me", headers=writer["headers"]).json()
    assert mine["subscription"]["upload_limit_per_month"] == 7
    assert mine["subscription"]["remaining_uploads"] == 7
    assert client.get("/api/subscriptions/me", headers=admin["headers"]).json()["unlimited"] is True


def test_checkout_without_stripe_configured(client, admin, writer):
    plan = client.post(
        "/api/admin/subscription-plans",
        json={"name": "Pro", "price_cents": 999, "upload_limit_per_month": 50, "stripe_price_id": "price_123"},
        headers=admin["headers"],
    ).json()
    r = client.post("/api/billing/checkout-session", json={"plan_id": plan["plan_id"]}, headers=writer["headers"])
    assert r.status_code == 501
    assert r.json()["detail"] == "stripe_secret_key_missing"
