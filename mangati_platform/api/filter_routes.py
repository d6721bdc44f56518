from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel

from mangati_platform.auth.deps import authorize, get_cfg
from mangati_platform.auth.policy import CREATE_LANGUAGE, CREATE_TAG, Principal
from mangati_platform.config import Config
from mangati_platform.content import filters
from mangati_platform.db import connect


router = APIRouter(prefix="/api/filters", tags=["filters"])


class NameRequest(BaseModel):
    name: str


def _created(fn: Any, cfg: Config, name: str) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            return fn(conn, name)
        except ValueError as e:
            detail = str(e)
            if detail.endswith("_exists"):
                raise HTTPException(status_code=409, detail=detail)
            raise HTTPException(status_code=400, detail=detail)


@router.get("/tags")
def list_tags(cfg: Config = Depends(get_cfg)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return filters.list_tags(conn)


@router.post("/tags", status_code=201)
def create_tag(
    payload: NameRequest,
    _principal: Principal = Depends(authorize(CREATE_TAG)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    return _created(filters.create_tag, cfg, payload.name)


@router.get("/languages")
def list_languages(cfg: Config = Depends(get_cfg)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return filters.list_languages(conn)


@router.post("/languages", status_code=201)
def create_language(
    payload: NameRequest,
    _principal: Principal = Depends(authorize(CREATE_LANGUAGE)),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    return _created(filters.create_language, cfg, payload.name)


@router.get("/all")
def all_filters(cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        return {"tags": filters.list_tags(conn), "languages": filters.list_languages(conn)}


@router.get("/trending-tags")
def trending_tags(limit: int = Query(10, ge=1, le=100), cfg: Config = Depends(get_cfg)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return filters.trending_tags(conn, limit)
