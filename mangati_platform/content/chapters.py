from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence

from mangati_platform.util.time import utcnow_iso


PENDING = "Pending"
APPROVED = "Approved"
REJECTED = "Rejected"

CHAPTER_STATUSES = (PENDING, APPROVED, REJECTED)

TITLE_MAX = 100


def _debug(msg: str) -> None:
    print(f"[content] {msg}")


def get_chapter(conn: Any, series_id: int, chapter_id: int) -> Optional[Any]:
    """Chapter row joined with its series author (for policy checks)."""
    return conn.execute(
        """
        SELECT c.*, s.author_user_id
        FROM chapters c
        JOIN manga_series s ON s.series_id = c.series_id
        WHERE c.series_id=? AND c.chapter_id=?
        """,
        (int(series_id), int(chapter_id)),
    ).fetchone()


def get_chapter_by_id(conn: Any, chapter_id: int) -> Optional[Any]:
    return conn.execute(
        """
        SELECT c.*, s.author_user_id
        FROM chapters c
        JOIN manga_series s ON s.series_id = c.series_id
        WHERE c.chapter_id=?
        """,
        (int(chapter_id),),
    ).fetchone()


def list_chapters(conn: Any, series_id: int, *, status: str | None = None) -> List[Any]:
    sql = """
        SELECT c.*, s.author_user_id
        FROM chapters c
        JOIN manga_series s ON s.series_id = c.series_id
        WHERE c.series_id=?
    """
    params: List[Any] = [int(series_id)]
    if status:
        sql += " AND c.status=?"
        params.append(status)
    sql += " ORDER BY c.number"
    return list(conn.execute(sql, params).fetchall())


def chapter_out(row: Any) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": int(d["chapter_id"]),
        "series_id": int(d["series_id"]),
        "title": d["title"],
        "number": int(d["number"]),
        "status": d["status"],
        "uploaded_at": d["uploaded_at"],
    }


def get_pages(conn: Any, chapter_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT page_id AS id, image_url, file_size_bytes, page_order AS "order"
        FROM pages WHERE chapter_id=? ORDER BY page_order
        """,
        (int(chapter_id),),
    ).fetchall()
    return [dict(r) for r in rows]


def next_chapter_number(conn: Any, series_id: int) -> int:
    row = conn.execute(
        "SELECT COALESCE(MAX(number), 0) AS n FROM chapters WHERE series_id=?",
        (int(series_id),),
    ).fetchone()
    return int(row["n"]) + 1


def create_chapter(
    conn: Any,
    *,
    series_id: int,
    title: str,
    number: int | None,
    status: str,
    pages: Sequence[Dict[str, Any]],
) -> int:
    """Insert a chapter and its pages. Raises ValueError on invalid input.

    A number already used in the series surfaces as the driver's IntegrityError.
    """
    t = (title or "").strip()
    if not t:
        raise ValueError("title_blank")
    if len(t) > TITLE_MAX:
        raise ValueError("title_too_long")
    if status not in CHAPTER_STATUSES:
        raise ValueError("invalid_chapter_status")
    if not pages:
        raise ValueError("pages_required")
    if number is not None and int(number) < 1:
        raise ValueError("invalid_chapter_number")

    n = int(number) if number is not None else next_chapter_number(conn, series_id)
    row = conn.execute(
        """
        INSERT INTO chapters (series_id, title, number, status, uploaded_at)
        VALUES (?,?,?,?,?)
        RETURNING chapter_id
        """,
        (int(series_id), t, n, status, utcnow_iso()),
    ).fetchone()
    chapter_id = int(row["chapter_id"])

    conn.executemany(
        "INSERT INTO pages (chapter_id, image_url, file_size_bytes, page_order) VALUES (?,?,?,?)",
        [
            (chapter_id, str(p["image_url"]), int(p.get("file_size_bytes") or 0), i + 1)
            for i, p in enumerate(pages)
        ],
    )
    _debug(f"chapter {chapter_id} (#{n}) created in series {series_id} status={status}")
    return chapter_id


def set_chapter_status(conn: Any, chapter_id: int, status: str) -> None:
    if status not in CHAPTER_STATUSES:
        raise ValueError("invalid_chapter_status")
    conn.execute("UPDATE chapters SET status=? WHERE chapter_id=?", (status, int(chapter_id)))


def delete_chapter(conn: Any, chapter_id: int) -> None:
    conn.execute("DELETE FROM chapters WHERE chapter_id=?", (int(chapter_id),))
