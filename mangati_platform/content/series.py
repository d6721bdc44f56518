from __future__ import annotations

from typing import Any, Dict, List, Optional, Sequence, Tuple

from mangati_platform.util.time import utcnow_iso


TITLE_MAX = 200
SYNOPSIS_MAX = 2000

SERIES_STATUSES = ("Ongoing", "Completed")


def _debug(msg: str) -> None:
    print(f"[content] {msg}")


def _validate_fields(title: str | None, synopsis: str | None, status: str | None) -> None:
    if title is not None:
        t = title.strip()
        if not t:
            raise ValueError("title_blank")
        if len(t) > TITLE_MAX:
            raise ValueError("title_too_long")
    if synopsis is not None and len(synopsis) > SYNOPSIS_MAX:
        raise ValueError("synopsis_too_long")
    if status is not None and status not in SERIES_STATUSES:
        raise ValueError("invalid_series_status")


def _check_ids_exist(conn: Any, table: str, col: str, ids: Sequence[int], code: str) -> List[int]:
    unique = sorted({int(i) for i in ids})
    if not unique:
        return []
    marks = ",".join("?" for _ in unique)
    rows = conn.execute(f"SELECT {col} AS id FROM {table} WHERE {col} IN ({marks})", unique).fetchall()
    if len(rows) != len(unique):
        raise ValueError(code)
    return unique


def _set_links(conn: Any, series_id: int, *, tag_ids: Optional[Sequence[int]], language_ids: Optional[Sequence[int]]) -> None:
    if tag_ids is not None:
        tags = _check_ids_exist(conn, "tags", "tag_id", tag_ids, "unknown_tag")
        conn.execute("DELETE FROM manga_series_tags WHERE series_id=?", (series_id,))
        if tags:
            conn.executemany(
                "INSERT INTO manga_series_tags (series_id, tag_id) VALUES (?,?)",
                [(series_id, t) for t in tags],
            )
    if language_ids is not None:
        langs = _check_ids_exist(conn, "languages", "language_id", language_ids, "unknown_language")
        conn.execute("DELETE FROM manga_series_languages WHERE series_id=?", (series_id,))
        if langs:
            conn.executemany(
                "INSERT INTO manga_series_languages (series_id, language_id) VALUES (?,?)",
                [(series_id, lang) for lang in langs],
            )


def get_series(conn: Any, series_id: int) -> Optional[Any]:
    return conn.execute(
        """
        SELECT s.*, u.username AS author_name
        FROM manga_series s
        JOIN users u ON u.user_id = s.author_user_id
        WHERE s.series_id=?
        """,
        (int(series_id),),
    ).fetchone()


def series_tags(conn: Any, series_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT t.tag_id AS id, t.name
        FROM manga_series_tags st JOIN tags t ON t.tag_id = st.tag_id
        WHERE st.series_id=?
        ORDER BY t.name
        """,
        (int(series_id),),
    ).fetchall()
    return [dict(r) for r in rows]


def series_languages(conn: Any, series_id: int) -> List[Dict[str, Any]]:
    rows = conn.execute(
        """
        SELECT l.language_id AS id, l.name
        FROM manga_series_languages sl JOIN languages l ON l.language_id = sl.language_id
        WHERE sl.series_id=?
        ORDER BY l.name
        """,
        (int(series_id),),
    ).fetchall()
    return [dict(r) for r in rows]


def series_out(conn: Any, row: Any) -> Dict[str, Any]:
    d = dict(row)
    return {
        "id": int(d["series_id"]),
        "title": d["title"],
        "synopsis": d["synopsis"],
        "cover_image_url": d["cover_image_url"],
        "status": d["status"],
        "author_id": d["author_user_id"],
        "author_name": d.get("author_name"),
        "tags": series_tags(conn, d["series_id"]),
        "languages": series_languages(conn, d["series_id"]),
        "created_at": d["created_at"],
        "updated_at": d["updated_at"],
    }


def list_series(
    conn: Any,
    *,
    search: str | None = None,
    status: str | None = None,
    language_id: int | None = None,
    tag_ids: Sequence[int] = (),
    page: int = 1,
    page_size: int = 20,
) -> Tuple[List[Any], int]:
    """Filtered, newest-first page of series plus the total match count.

    A series matches tag_ids only when it carries every listed tag.
    """
    where: List[str] = []
    params: List[Any] = []

    term = (search or "").strip().lower()
    if term:
        where.append("(lower(s.title) LIKE ? OR lower(COALESCE(s.synopsis, '')) LIKE ?)")
        params.extend([f"%{term}%", f"%{term}%"])
    if status:
        where.append("s.status=?")
        params.append(status)
    if language_id is not None:
        where.append(
            "EXISTS (SELECT 1 FROM manga_series_languages sl WHERE sl.series_id=s.series_id AND sl.language_id=?)"
        )
        params.append(int(language_id))
    for tag_id in sorted({int(t) for t in tag_ids}):
        where.append(
            "EXISTS (SELECT 1 FROM manga_series_tags st WHERE st.series_id=s.series_id AND st.tag_id=?)"
        )
        params.append(tag_id)

    clause = ("WHERE " + " AND ".join(where)) if where else ""
    total = conn.execute(f"SELECT COUNT(*) AS n FROM manga_series s {clause}", params).fetchone()["n"]

    page = max(1, int(page))
    offset = (page - 1) * int(page_size)
    rows = conn.execute(
        f"""
        SELECT s.*, u.username AS author_name
        FROM manga_series s
        JOIN users u ON u.user_id = s.author_user_id
        {clause}
        ORDER BY COALESCE(s.updated_at, s.created_at) DESC, s.series_id DESC
        LIMIT ? OFFSET ?
        """,
        params + [int(page_size), offset],
    ).fetchall()
    return list(rows), int(total)


def create_series(
    conn: Any,
    *,
    author_id: str,
    title: str,
    synopsis: str | None = None,
    cover_image_url: str | None = None,
    tag_ids: Sequence[int] = (),
    language_ids: Sequence[int] = (),
) -> int:
    _validate_fields(title, synopsis, None)
    now = utcnow_iso()
    row = conn.execute(
        """
        INSERT INTO manga_series (title, synopsis, cover_image_url, status, author_user_id, created_at, updated_at)
        VALUES (?,?,?,?,?,?,?)
        RETURNING series_id
        """,
        (title.strip(), synopsis, cover_image_url, "Ongoing", str(author_id), now, now),
    ).fetchone()
    series_id = int(row["series_id"])
    _set_links(conn, series_id, tag_ids=tag_ids, language_ids=language_ids)
    _debug(f"series {series_id} created by {author_id}")
    return series_id


def update_series(
    conn: Any,
    series_id: int,
    *,
    title: str | None = None,
    synopsis: str | None = None,
    cover_image_url: str | None = None,
    status: str | None = None,
    tag_ids: Optional[Sequence[int]] = None,
    language_ids: Optional[Sequence[int]] = None,
) -> None:
    _validate_fields(title, synopsis, status)
    fields: list[tuple[str, Any]] = []
    if title is not None:
        fields.append(("title", title.strip()))
    if synopsis is not None:
        fields.append(("synopsis", synopsis))
    if cover_image_url is not None:
        fields.append(("cover_image_url", cover_image_url))
    if status is not None:
        fields.append(("status", status))
    fields.append(("updated_at", utcnow_iso()))

    sets = ", ".join([f"{k}=?" for k, _ in fields])
    conn.execute(
        f"UPDATE manga_series SET {sets} WHERE series_id=?",
        [v for _, v in fields] + [int(series_id)],
    )
    _set_links(conn, int(series_id), tag_ids=tag_ids, language_ids=language_ids)


def touch_series(conn: Any, series_id: int) -> None:
    conn.execute(
        "UPDATE manga_series SET updated_at=? WHERE series_id=?",
        (utcnow_iso(), int(series_id)),
    )


def delete_series(conn: Any, series_id: int) -> None:
    conn.execute("DELETE FROM manga_series WHERE series_id=?", (int(series_id),))
    _debug(f"series {series_id} deleted")
