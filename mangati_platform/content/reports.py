from __future__ import annotations

from typing import Any, Dict, List, Optional

from mangati_platform.util.time import utcnow_iso


REASON_MAX = 1000
REPORT_STATUSES = ("Pending", "Resolved", "Rejected")


def create_report(
    conn: Any,
    *,
    user_id: str,
    series_id: Optional[int],
    chapter_id: Optional[int],
    reason: str,
) -> int:
    """File a report against a series and/or chapter. Target existence is checked by the caller."""
    r = (reason or "").strip()
    if not r:
        raise ValueError("reason_blank")
    if len(r) > REASON_MAX:
        raise ValueError("reason_too_long")
    if series_id is None and chapter_id is None:
        raise ValueError("report_target_required")
    row = conn.execute(
        """
        INSERT INTO content_reports (reported_by_user_id, series_id, chapter_id, reason, status, created_at)
        VALUES (?,?,?,?,'Pending',?)
        RETURNING report_id
        """,
        (str(user_id), series_id, chapter_id, r, utcnow_iso()),
    ).fetchone()
    return int(row["report_id"])


def list_reports(conn: Any, *, status: str | None = None) -> List[Dict[str, Any]]:
    if status:
        rows = conn.execute(
            "SELECT * FROM content_reports WHERE status=? ORDER BY created_at DESC, report_id DESC",
            (status,),
        ).fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM content_reports ORDER BY created_at DESC, report_id DESC"
        ).fetchall()
    return [dict(r) for r in rows]


def get_report(conn: Any, report_id: int) -> Optional[Dict[str, Any]]:
    row = conn.execute("SELECT * FROM content_reports WHERE report_id=?", (int(report_id),)).fetchone()
    return dict(row) if row is not None else None


def resolve_report(conn: Any, report_id: int, status: str) -> bool:
    if status not in ("Resolved", "Rejected"):
        raise ValueError("invalid_report_status")
    cur = conn.execute(
        "UPDATE content_reports SET status=?, resolved_at=? WHERE report_id=?",
        (status, utcnow_iso(), int(report_id)),
    )
    return cur.rowcount > 0
