from __future__ import annotations

from typing import Any, Dict, List


NAME_MAX = 50


def _clean_name(name: str) -> str:
    n = (name or "").strip()
    if not n:
        raise ValueError("name_blank")
    if len(n) > NAME_MAX:
        raise ValueError("name_too_long")
    return n


def list_tags(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT tag_id AS id, name FROM tags ORDER BY name").fetchall()
    return [dict(r) for r in rows]


def list_languages(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT language_id AS id, name FROM languages ORDER BY name").fetchall()
    return [dict(r) for r in rows]


def create_tag(conn: Any, name: str) -> Dict[str, Any]:
    """Raises ValueError('tag_exists') on a case-insensitive duplicate."""
    n = _clean_name(name)
    if conn.execute("SELECT 1 FROM tags WHERE lower(name)=lower(?)", (n,)).fetchone() is not None:
        raise ValueError("tag_exists")
    row = conn.execute("INSERT INTO tags (name) VALUES (?) RETURNING tag_id", (n,)).fetchone()
    return {"id": int(row["tag_id"]), "name": n}


def create_language(conn: Any, name: str) -> Dict[str, Any]:
    n = _clean_name(name)
    if conn.execute("SELECT 1 FROM languages WHERE lower(name)=lower(?)", (n,)).fetchone() is not None:
        raise ValueError("language_exists")
    row = conn.execute("INSERT INTO languages (name) VALUES (?) RETURNING language_id", (n,)).fetchone()
    return {"id": int(row["language_id"]), "name": n}


def trending_tags(conn: Any, limit: int = 10) -> List[Dict[str, Any]]:
    """Tags ordered by how many series carry them."""
    rows = conn.execute(
        """
        SELECT t.tag_id AS id, t.name, COUNT(*) AS count
        FROM manga_series_tags st
        JOIN tags t ON t.tag_id = st.tag_id
        GROUP BY t.tag_id, t.name
        ORDER BY count DESC, t.name
        LIMIT ?
        """,
        (max(1, int(limit)),),
    ).fetchall()
    return [{"id": int(r["id"]), "name": r["name"], "count": int(r["count"])} for r in rows]
