from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel, Field

from mangati_platform.auth.deps import authorize, enforce, get_cfg, get_optional_principal
from mangati_platform.auth.policy import (
    CREATE_CHAPTER,
    DELETE_CHAPTER,
    MODERATE_CHAPTER,
    READ_CHAPTER,
    Principal,
    ResourceState,
    can_view,
)
from mangati_platform.config import Config
from mangati_platform.content import chapters, library, series
from mangati_platform.db import connect, is_integrity_error
from mangati_platform.entitlements import tracker


router = APIRouter(prefix="/api/manga/{series_id}/chapter", tags=["chapters"])


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


class PageIn(BaseModel):
    image_url: str
    file_size_bytes: int = 0


class CreateChapterRequest(BaseModel):
    title: str
    number: Optional[int] = None  # next number in the series when omitted
    pages: List[PageIn] = Field(default_factory=list)


class ChapterStatusRequest(BaseModel):
    status: str  # Pending | Approved | Rejected


def _require_series(conn: Any, series_id: int) -> Any:
    row = series.get_series(conn, series_id)
    if row is None:
        raise HTTPException(status_code=404, detail="series_not_found")
    return row


@router.get("")
def list_chapters(
    series_id: int,
    status: Optional[str] = None,
    principal: Optional[Principal] = Depends(get_optional_principal),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    """Approved chapters for everyone; Admins and Writers may filter by status.

    Writers only ever see their own unapproved chapters.
    """
    privileged = principal is not None and (principal.is_admin or principal.is_writer)
    wanted = status if privileged else chapters.APPROVED
    with connect(cfg.DB_DSN) as conn:
        _require_series(conn, series_id)
        rows = chapters.list_chapters(conn, series_id, status=wanted)
    return [
        chapters.chapter_out(r)
        for r in rows
        if can_view(principal, author_id=r["author_user_id"], status=r["status"])
    ]


@router.get("/{chapter_id}")
def get_chapter(
    series_id: int,
    chapter_id: int,
    principal: Optional[Principal] = Depends(get_optional_principal),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = chapters.get_chapter(conn, series_id, chapter_id)
        if row is None:
            raise HTTPException(status_code=404, detail="chapter_not_found")
        enforce(
            principal,
            READ_CHAPTER,
            ResourceState(author_id=row["author_user_id"], status=row["status"]),
            not_found="chapter_not_found",
        )
        if principal is not None:
            library.upsert_progress(conn, principal.user_id, chapter_id, None)
        out = chapters.chapter_out(row)
        out["pages"] = chapters.get_pages(conn, chapter_id)
        return out


@router.post("", status_code=201)
def create_chapter(
    series_id: int,
    payload: CreateChapterRequest,
    principal: Principal = Depends(authorize(CREATE_CHAPTER)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Upload a chapter.

    The quota increment and the chapter insert share this transaction: any
    failure after the increment (bad pages, duplicate number) rolls it back.
    """
    with connect(cfg.DB_DSN) as conn:
        row = _require_series(conn, series_id)
        enforce(principal, CREATE_CHAPTER, ResourceState(author_id=row["author_user_id"]))

        try:
            quota = tracker.consume_upload(conn, principal)
        except tracker.QuotaExceeded as e:
            raise HTTPException(status_code=e.status_code, detail=e.code)

        status = chapters.APPROVED if principal.is_admin else chapters.PENDING
        try:
            chapter_id = chapters.create_chapter(
                conn,
                series_id=series_id,
                title=payload.title,
                number=payload.number,
                status=status,
                pages=[p.model_dump() for p in payload.pages],
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except Exception as e:
            if is_integrity_error(e):
                raise HTTPException(status_code=409, detail="chapter_number_exists")
            raise

        series.touch_series(conn, series_id)
        out = chapters.chapter_out(chapters.get_chapter(conn, series_id, chapter_id))
        out["pages"] = chapters.get_pages(conn, chapter_id)
        if not quota.bypassed:
            out["remaining_uploads"] = quota.remaining
        _debug(f"user {principal.user_id} uploaded chapter {chapter_id} to series {series_id}")
        return out


@router.put("/{chapter_id}/status", status_code=204)
def set_chapter_status(
    series_id: int,
    chapter_id: int,
    payload: ChapterStatusRequest,
    _admin: Principal = Depends(authorize(MODERATE_CHAPTER)),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        if chapters.get_chapter(conn, series_id, chapter_id) is None:
            raise HTTPException(status_code=404, detail="chapter_not_found")
        try:
            chapters.set_chapter_status(conn, chapter_id, payload.status)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        if payload.status == chapters.APPROVED:
            series.touch_series(conn, series_id)
    return Response(status_code=204)


@router.delete("/{chapter_id}", status_code=204)
def delete_chapter(
    series_id: int,
    chapter_id: int,
    principal: Principal = Depends(authorize(DELETE_CHAPTER)),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        row = chapters.get_chapter(conn, series_id, chapter_id)
        if row is None:
            raise HTTPException(status_code=404, detail="chapter_not_found")
        enforce(principal, DELETE_CHAPTER, ResourceState(author_id=row["author_user_id"]))
        chapters.delete_chapter(conn, chapter_id)
    return Response(status_code=204)
