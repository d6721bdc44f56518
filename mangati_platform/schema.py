"""Database schema for the Mangati platform.

The schema is written for SQLite and rewritten for Postgres with a small set of
transformations (types + autoincrement).

Timestamps are ISO-8601 TEXT (UTC, with 'Z'). ISO strings sort lexicographically in
time order, so `ORDER BY updated_at DESC` behaves the same on both engines.

Enumerations (roles, moderation status, subscription status) are stored as their
canonical names and constrained with CHECK.
"""

from __future__ import annotations

import re


SCHEMA_SQLITE = r"""
PRAGMA foreign_keys = ON;

-- Users / Auth
CREATE TABLE IF NOT EXISTS users (
    user_id TEXT PRIMARY KEY,
    username TEXT NOT NULL UNIQUE,
    email TEXT NOT NULL UNIQUE,
    password_hash TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    last_login_at TEXT,
    stripe_customer_id TEXT
);
CREATE INDEX IF NOT EXISTS idx_users_stripe_customer ON users (stripe_customer_id);

CREATE TABLE IF NOT EXISTS user_roles (
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    role TEXT NOT NULL CHECK (role IN ('Viewer','Writer','Admin')),
    granted_at TEXT NOT NULL,
    PRIMARY KEY (user_id, role)
);

-- Subscriptions / entitlements
CREATE TABLE IF NOT EXISTS subscription_plans (
    plan_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE,
    price_cents INTEGER NOT NULL DEFAULT 0,
    upload_limit_per_month INTEGER NOT NULL CHECK (upload_limit_per_month >= 0),
    stripe_price_id TEXT,
    created_at TEXT NOT NULL
);

-- One entitlement record per user.
CREATE TABLE IF NOT EXISTS user_subscriptions (
    user_id TEXT PRIMARY KEY REFERENCES users(user_id) ON DELETE CASCADE,
    plan_id INTEGER NOT NULL REFERENCES subscription_plans(plan_id),
    status TEXT NOT NULL CHECK (status IN ('Active','Cancelled','Expired','PaymentFailed')),
    start_date TEXT NOT NULL,
    end_date TEXT,
    chapters_uploaded_this_month INTEGER NOT NULL DEFAULT 0,
    last_upload_reset_date TEXT NOT NULL,
    stripe_subscription_id TEXT,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_user_subscriptions_stripe ON user_subscriptions (stripe_subscription_id);

CREATE TABLE IF NOT EXISTS subscription_payments (
    payment_id INTEGER PRIMARY KEY AUTOINCREMENT,
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    amount_cents INTEGER NOT NULL,
    payment_date TEXT NOT NULL,
    transaction_id TEXT NOT NULL UNIQUE
);

-- Stripe webhook idempotency
CREATE TABLE IF NOT EXISTS stripe_events (
    event_id TEXT PRIMARY KEY,
    event_type TEXT NOT NULL,
    received_at TEXT NOT NULL
);

-- Content
CREATE TABLE IF NOT EXISTS manga_series (
    series_id INTEGER PRIMARY KEY AUTOINCREMENT,
    title TEXT NOT NULL,
    synopsis TEXT,
    cover_image_url TEXT,
    status TEXT NOT NULL DEFAULT 'Ongoing' CHECK (status IN ('Ongoing','Completed')),
    author_user_id TEXT NOT NULL REFERENCES users(user_id),
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_manga_series_author ON manga_series (author_user_id);
CREATE INDEX IF NOT EXISTS idx_manga_series_updated ON manga_series (updated_at);

CREATE TABLE IF NOT EXISTS chapters (
    chapter_id INTEGER PRIMARY KEY AUTOINCREMENT,
    series_id INTEGER NOT NULL REFERENCES manga_series(series_id) ON DELETE CASCADE,
    title TEXT NOT NULL,
    number INTEGER NOT NULL,
    status TEXT NOT NULL CHECK (status IN ('Pending','Approved','Rejected')),
    uploaded_at TEXT NOT NULL,
    UNIQUE (series_id, number)
);
CREATE INDEX IF NOT EXISTS idx_chapters_series_status ON chapters (series_id, status);

CREATE TABLE IF NOT EXISTS pages (
    page_id INTEGER PRIMARY KEY AUTOINCREMENT,
    chapter_id INTEGER NOT NULL REFERENCES chapters(chapter_id) ON DELETE CASCADE,
    image_url TEXT NOT NULL,
    file_size_bytes INTEGER NOT NULL DEFAULT 0,
    page_order INTEGER NOT NULL,
    UNIQUE (chapter_id, page_order)
);

CREATE TABLE IF NOT EXISTS tags (
    tag_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS languages (
    language_id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS manga_series_tags (
    series_id INTEGER NOT NULL REFERENCES manga_series(series_id) ON DELETE CASCADE,
    tag_id INTEGER NOT NULL REFERENCES tags(tag_id) ON DELETE CASCADE,
    PRIMARY KEY (series_id, tag_id)
);

CREATE TABLE IF NOT EXISTS manga_series_languages (
    series_id INTEGER NOT NULL REFERENCES manga_series(series_id) ON DELETE CASCADE,
    language_id INTEGER NOT NULL REFERENCES languages(language_id) ON DELETE CASCADE,
    PRIMARY KEY (series_id, language_id)
);

-- Reader library
CREATE TABLE IF NOT EXISTS user_favorites (
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    series_id INTEGER NOT NULL REFERENCES manga_series(series_id) ON DELETE CASCADE,
    added_at TEXT NOT NULL,
    PRIMARY KEY (user_id, series_id)
);

CREATE TABLE IF NOT EXISTS reading_progress (
    user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    chapter_id INTEGER NOT NULL REFERENCES chapters(chapter_id) ON DELETE CASCADE,
    last_read_page INTEGER NOT NULL DEFAULT 1,
    last_read_at TEXT NOT NULL,
    PRIMARY KEY (user_id, chapter_id)
);
CREATE INDEX IF NOT EXISTS idx_reading_progress_recent ON reading_progress (user_id, last_read_at);

CREATE TABLE IF NOT EXISTS viewer_settings (
    user_id TEXT PRIMARY KEY REFERENCES users(user_id) ON DELETE CASCADE,
    theme TEXT NOT NULL DEFAULT 'Light' CHECK (theme IN ('Light','Dark')),
    reading_mode TEXT NOT NULL DEFAULT 'PageFlip' CHECK (reading_mode IN ('PageFlip','VerticalScroll')),
    fit_to_width INTEGER NOT NULL DEFAULT 1,
    zoom_level INTEGER NOT NULL DEFAULT 100,
    updated_at TEXT NOT NULL
);

-- Moderation
CREATE TABLE IF NOT EXISTS content_reports (
    report_id INTEGER PRIMARY KEY AUTOINCREMENT,
    reported_by_user_id TEXT NOT NULL REFERENCES users(user_id) ON DELETE CASCADE,
    series_id INTEGER REFERENCES manga_series(series_id) ON DELETE CASCADE,
    chapter_id INTEGER REFERENCES chapters(chapter_id) ON DELETE CASCADE,
    reason TEXT NOT NULL,
    status TEXT NOT NULL DEFAULT 'Pending' CHECK (status IN ('Pending','Resolved','Rejected')),
    created_at TEXT NOT NULL,
    resolved_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_content_reports_status ON content_reports (status, created_at);
"""


def _sqlite_to_postgres(ddl: str) -> str:
    # Remove SQLite pragmas
    lines: list[str] = []
    for line in ddl.splitlines():
        if line.strip().upper().startswith("PRAGMA "):
            continue
        lines.append(line)
    out = "\n".join(lines)

    # AUTOINCREMENT primary keys
    out = re.sub(
        r"INTEGER\s+PRIMARY\s+KEY\s+AUTOINCREMENT",
        "BIGSERIAL PRIMARY KEY",
        out,
        flags=re.IGNORECASE,
    )
    # Foreign keys into BIGSERIAL columns
    out = re.sub(r"\b(\w+_id) INTEGER\b", r"\1 BIGINT", out)

    return out


SCHEMA_POSTGRES = _sqlite_to_postgres(SCHEMA_SQLITE)


def get_schema_sql(dialect: str) -> str:
    d = (dialect or "").lower()
    if d.startswith("post"):
        return SCHEMA_POSTGRES
    return SCHEMA_SQLITE
