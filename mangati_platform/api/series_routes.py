from __future__ import annotations

import math
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from pydantic import BaseModel, Field

from mangati_platform.auth.deps import authorize, enforce, get_cfg
from mangati_platform.auth.policy import (
    CREATE_SERIES,
    DELETE_SERIES,
    UPDATE_SERIES,
    Principal,
    ResourceState,
)
from mangati_platform.config import Config
from mangati_platform.content import chapters, series
from mangati_platform.db import connect


router = APIRouter(prefix="/api/mangaseries", tags=["series"])


class CreateSeriesRequest(BaseModel):
    title: str
    synopsis: Optional[str] = None
    cover_image_url: Optional[str] = None
    language_ids: List[int] = Field(default_factory=list)
    tag_ids: List[int] = Field(default_factory=list)


class UpdateSeriesRequest(BaseModel):
    title: Optional[str] = None
    synopsis: Optional[str] = None
    cover_image_url: Optional[str] = None
    status: Optional[str] = None  # Ongoing | Completed
    language_ids: Optional[List[int]] = None
    tag_ids: Optional[List[int]] = None


def _detail(conn: Any, row: Any) -> Dict[str, Any]:
    out = series.series_out(conn, row)
    out["chapters"] = [
        chapters.chapter_out(c)
        for c in chapters.list_chapters(conn, int(row["series_id"]), status=chapters.APPROVED)
    ]
    return out


def _load_owned(conn: Any, principal: Principal, series_id: int, operation: Any) -> Any:
    row = series.get_series(conn, series_id)
    if row is None:
        raise HTTPException(status_code=404, detail="series_not_found")
    enforce(principal, operation, ResourceState(author_id=row["author_user_id"]))
    return row


@router.get("")
def list_series(
    response: Response,
    search: Optional[str] = None,
    status: Optional[str] = None,
    language_id: Optional[int] = None,
    tag_ids: List[int] = Query([]),
    page: int = Query(1, ge=1),
    page_size: Optional[int] = Query(None, ge=1),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    size = min(page_size or cfg.SERIES_PAGE_SIZE_DEFAULT, cfg.SERIES_PAGE_SIZE_MAX)
    with connect(cfg.DB_DSN) as conn:
        rows, total = series.list_series(
            conn,
            search=search,
            status=status,
            language_id=language_id,
            tag_ids=tag_ids,
            page=page,
            page_size=size,
        )
        items = [series.series_out(conn, r) for r in rows]

    response.headers["X-Total-Count"] = str(total)
    response.headers["X-Total-Pages"] = str(math.ceil(total / size) if total else 0)
    return items


@router.get("/{series_id}")
def get_series(
    series_id: int,
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = series.get_series(conn, series_id)
        if row is None:
            raise HTTPException(status_code=404, detail="series_not_found")
        return _detail(conn, row)


@router.post("", status_code=201)
def create_series(
    payload: CreateSeriesRequest,
    principal: Principal = Depends(authorize(CREATE_SERIES)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            series_id = series.create_series(
                conn,
                author_id=principal.user_id,
                title=payload.title,
                synopsis=payload.synopsis,
                cover_image_url=payload.cover_image_url,
                tag_ids=payload.tag_ids,
                language_ids=payload.language_ids,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _detail(conn, series.get_series(conn, series_id))


@router.put("/{series_id}")
def update_series(
    series_id: int,
    payload: UpdateSeriesRequest,
    principal: Principal = Depends(authorize(UPDATE_SERIES)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        _load_owned(conn, principal, series_id, UPDATE_SERIES)
        try:
            series.update_series(
                conn,
                series_id,
                title=payload.title,
                synopsis=payload.synopsis,
                cover_image_url=payload.cover_image_url,
                status=payload.status,
                tag_ids=payload.tag_ids,
                language_ids=payload.language_ids,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        return _detail(conn, series.get_series(conn, series_id))


@router.delete("/{series_id}", status_code=204)
def delete_series(
    series_id: int,
    principal: Principal = Depends(authorize(DELETE_SERIES)),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        _load_owned(conn, principal, series_id, DELETE_SERIES)
        series.delete_series(conn, series_id)
    return Response(status_code=204)
