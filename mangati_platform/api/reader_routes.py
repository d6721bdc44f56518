"""Reader library endpoints: favorites, reading progress, viewer settings."""

from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from mangati_platform.auth.deps import authorize, enforce, get_cfg
from mangati_platform.auth.policy import READ_CHAPTER, READER_LIBRARY, Principal, ResourceState
from mangati_platform.config import Config
from mangati_platform.content import chapters, library, series
from mangati_platform.db import connect


router = APIRouter(prefix="/api", tags=["reader"])

_reader = authorize(READER_LIBRARY)


class FavoriteRequest(BaseModel):
    series_id: int


class ProgressRequest(BaseModel):
    chapter_id: int
    page_number: int


class ViewerSettingsRequest(BaseModel):
    theme: str = "Light"
    reading_mode: str = "PageFlip"
    fit_to_width: bool = True
    zoom_level: int = 100


# -----------------------------
# Favorites
# -----------------------------


@router.get("/favorites")
def list_favorites(principal: Principal = Depends(_reader), cfg: Config = Depends(get_cfg)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return library.list_favorites(conn, principal.user_id)


@router.post("/favorites")
def add_favorite(
    payload: FavoriteRequest,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if series.get_series(conn, payload.series_id) is None:
            raise HTTPException(status_code=404, detail="series_not_found")
        added = library.add_favorite(conn, principal.user_id, payload.series_id)
    return {"ok": True, "added": added}


@router.delete("/favorites/{series_id}", status_code=204)
def remove_favorite(
    series_id: int,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        if not library.remove_favorite(conn, principal.user_id, series_id):
            raise HTTPException(status_code=404, detail="favorite_not_found")
    return Response(status_code=204)


# -----------------------------
# Reading progress
# -----------------------------


@router.get("/readingprogress/chapter/{chapter_id}")
def chapter_progress(
    chapter_id: int,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        progress = library.chapter_progress(conn, principal.user_id, chapter_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="progress_not_found")
    return progress


@router.get("/readingprogress/{series_id}")
def series_progress(
    series_id: int,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return library.series_progress(conn, principal.user_id, series_id)


@router.post("/readingprogress")
def update_progress(
    payload: ProgressRequest,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = chapters.get_chapter_by_id(conn, payload.chapter_id)
        if row is None:
            raise HTTPException(status_code=404, detail="chapter_not_found")
        enforce(
            principal,
            READ_CHAPTER,
            ResourceState(author_id=row["author_user_id"], status=row["status"]),
            not_found="chapter_not_found",
        )
        try:
            library.upsert_progress(conn, principal.user_id, payload.chapter_id, payload.page_number)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return {"ok": True}


# -----------------------------
# Viewer settings
# -----------------------------


@router.get("/viewersettings")
def get_viewer_settings(principal: Principal = Depends(_reader), cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return library.get_settings(conn, principal.user_id)


@router.put("/viewersettings", status_code=204)
def put_viewer_settings(
    payload: ViewerSettingsRequest,
    principal: Principal = Depends(_reader),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        try:
            library.save_settings(
                conn,
                principal.user_id,
                theme=payload.theme,
                reading_mode=payload.reading_mode,
                fit_to_width=payload.fit_to_width,
                zoom_level=payload.zoom_level,
            )
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
    return Response(status_code=204)
