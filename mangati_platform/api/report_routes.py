from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mangati_platform.auth.deps import authorize, enforce, get_cfg
from mangati_platform.auth.policy import CREATE_REPORT, READ_CHAPTER, Principal, ResourceState
from mangati_platform.config import Config
from mangati_platform.content import chapters, reports, series
from mangati_platform.db import connect


router = APIRouter(prefix="/api/reports", tags=["reports"])


class ReportRequest(BaseModel):
    series_id: Optional[int] = None
    chapter_id: Optional[int] = None
    reason: str


@router.post("", status_code=201)
def create_report(
    payload: ReportRequest,
    principal: Principal = Depends(authorize(CREATE_REPORT)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        series_id = payload.series_id
        if payload.chapter_id is not None:
            row = chapters.get_chapter_by_id(conn, payload.chapter_id)
            if row is None:
                raise HTTPException(status_code=404, detail="chapter_not_found")
            enforce(
                principal,
                READ_CHAPTER,
                ResourceState(author_id=row["author_user_id"], status=row["status"]),
                not_found="chapter_not_found",
            )
            if series_id is not None and int(series_id) != int(row["series_id"]):
                raise HTTPException(status_code=400, detail="chapter_series_mismatch")
            series_id = int(row["series_id"])
        elif series_id is not None and series.get_series(conn, series_id) is None:
            raise HTTPException(status_code=404, detail="series_not_found")

        try:
            report_id = reports.create_report(
                conn,
                user_id=principal.user_id,
                series_id=series_id,
                chapter_id=payload.chapter_id,
                reason=payload.reason,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return reports.get_report(conn, report_id)
