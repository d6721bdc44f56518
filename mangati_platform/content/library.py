"""Per-reader state: favorites, reading progress, viewer settings."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from mangati_platform.util.time import utcnow_iso


THEMES = ("Light", "Dark")
READING_MODES = ("PageFlip", "VerticalScroll")
ZOOM_MIN = 25
ZOOM_MAX = 400

DEFAULT_SETTINGS: Dict[str, Any] = {
    "theme": "Light",
    "reading_mode": "PageFlip",
    "fit_to_width": True,
    "zoom_level": 100,
}


# -----------------
# Favorites
# -----------------


def list_favorites(conn: Any, user_id: str) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT s.series_id AS id, s.title, s.cover_image_url, s.status, f.added_at
        FROM user_favorites f
        JOIN manga_series s ON s.series_id = f.series_id
        WHERE f.user_id=?
        ORDER BY f.added_at DESC, s.series_id DESC
        """,
        (str(user_id),),
    ).fetchall()
    return [dict(r) for r in rows]


def add_favorite(conn: Any, user_id: str, series_id: int) -> bool:
    """Idempotent. Returns True when a new favorite was stored."""
    cur = conn.execute(
        """
        INSERT INTO user_favorites (user_id, series_id, added_at) VALUES (?,?,?)
        ON CONFLICT(user_id, series_id) DO NOTHING
        """,
        (str(user_id), int(series_id), utcnow_iso()),
    )
    return cur.rowcount > 0


def remove_favorite(conn: Any, user_id: str, series_id: int) -> bool:
    cur = conn.execute(
        "DELETE FROM user_favorites WHERE user_id=? AND series_id=?",
        (str(user_id), int(series_id)),
    )
    return cur.rowcount > 0


# -----------------
# Reading progress
# -----------------


def upsert_progress(conn: Any, user_id: str, chapter_id: int, page_number: Optional[int]) -> None:
    """Record a read. `page_number=None` keeps the stored page (1 for a first read)."""
    now = utcnow_iso()
    if page_number is None:
        conn.execute(
            """
            INSERT INTO reading_progress (user_id, chapter_id, last_read_page, last_read_at)
            VALUES (?,?,1,?)
            ON CONFLICT(user_id, chapter_id) DO UPDATE SET last_read_at=excluded.last_read_at
            """,
            (str(user_id), int(chapter_id), now),
        )
        return
    if int(page_number) < 1:
        raise ValueError("invalid_page_number")
    conn.execute(
        """
        INSERT INTO reading_progress (user_id, chapter_id, last_read_page, last_read_at)
        VALUES (?,?,?,?)
        ON CONFLICT(user_id, chapter_id) DO UPDATE SET
            last_read_page=excluded.last_read_page,
            last_read_at=excluded.last_read_at
        """,
        (str(user_id), int(chapter_id), int(page_number), now),
    )


def series_progress(conn: Any, user_id: str, series_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT p.chapter_id, c.number AS chapter_number, p.last_read_page, p.last_read_at
        FROM reading_progress p
        JOIN chapters c ON c.chapter_id = p.chapter_id
        WHERE p.user_id=? AND c.series_id=?
        ORDER BY c.number
        """,
        (str(user_id), int(series_id)),
    ).fetchall()
    return [dict(r) for r in rows]


def chapter_progress(conn: Any, user_id: str, chapter_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute(
        """
        SELECT p.chapter_id, c.number AS chapter_number, p.last_read_page, p.last_read_at
        FROM reading_progress p
        JOIN chapters c ON c.chapter_id = p.chapter_id
        WHERE p.user_id=? AND p.chapter_id=?
        """,
        (str(user_id), int(chapter_id)),
    ).fetchone()
    return dict(row) if row is not None else None


# -----------------
# Viewer settings
# -----------------


def get_settings(conn: Any, user_id: str) -> Dict[str, Any]:
    row = conn.execute(
        "SELECT theme, reading_mode, fit_to_width, zoom_level FROM viewer_settings WHERE user_id=?",
        (str(user_id),),
    ).fetchone()
    if row is None:
        return dict(DEFAULT_SETTINGS)
    d = dict(row)
    d["fit_to_width"] = bool(d["fit_to_width"])
    d["zoom_level"] = int(d["zoom_level"])
    return d


def save_settings(
    conn: Any,
    user_id: str,
    *,
    theme: str,
    reading_mode: str,
    fit_to_width: bool,
    zoom_level: int,
) -> None:
    if theme not in THEMES:
        raise ValueError("invalid_theme")
    if reading_mode not in READING_MODES:
        raise ValueError("invalid_reading_mode")
    if not (ZOOM_MIN <= int(zoom_level) <= ZOOM_MAX):
        raise ValueError("invalid_zoom_level")
    conn.execute(
        """
        INSERT INTO viewer_settings (user_id, theme, reading_mode, fit_to_width, zoom_level, updated_at)
        VALUES (?,?,?,?,?,?)
        ON CONFLICT(user_id) DO UPDATE SET
            theme=excluded.theme,
            reading_mode=excluded.reading_mode,
            fit_to_width=excluded.fit_to_width,
            zoom_level=excluded.zoom_level,
            updated_at=excluded.updated_at
        """,
        (str(user_id), theme, reading_mode, 1 if fit_to_width else 0, int(zoom_level), utcnow_iso()),
    )
