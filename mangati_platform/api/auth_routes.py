from __future__ import annotations

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from mangati_platform.auth.crud import (
    create_user,
    get_user_by_id,
    get_user_roles,
    public_user,
    touch_last_login,
    verify_user_credentials,
)
from mangati_platform.auth.deps import get_cfg, get_current_principal
from mangati_platform.auth.policy import Principal
from mangati_platform.auth.roles import signup_role
from mangati_platform.auth.security import create_access_token
from mangati_platform.config import Config
from mangati_platform.db import connect


router = APIRouter(prefix="/api/auth", tags=["auth"])


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


class RegisterRequest(BaseModel):
    username: str
    email: str
    password: str
    role: Optional[str] = None  # Viewer (default) | Writer | Admin


class LoginRequest(BaseModel):
    email: str
    password: str


def _auth_response(cfg: Config, conn: Any, row: Any) -> Dict[str, Any]:
    """Issue a token with the principal's current roles (loaded fresh)."""
    user = public_user(conn, row)
    token = create_access_token(
        cfg,
        user_id=user["id"],
        username=user["username"],
        email=user["email"],
        roles=get_user_roles(conn, user["id"]),
    )
    return {
        "token": token,
        "token_type": "bearer",
        "expires_in": int(cfg.AUTH_TOKEN_EXPIRE_MINUTES) * 60,
        "user": user,
    }


@router.post("/register", status_code=201)
def auth_register(payload: RegisterRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    role = signup_role(payload.role, allow_admin=cfg.AUTH_ALLOW_ADMIN_SIGNUP)
    with connect(cfg.DB_DSN) as conn:
        try:
            u = create_user(
                conn,
                username=payload.username,
                email=payload.email,
                password=payload.password,
                role=role,
            )
        except ValueError as e:
            detail = str(e)
            if detail in ("username_exists", "email_exists"):
                raise HTTPException(status_code=409, detail=detail)
            raise HTTPException(status_code=400, detail=detail)

        row = get_user_by_id(conn, u["id"])
        _debug(f"registered user {u['id']} as {role}")
        return _auth_response(cfg, conn, row)


@router.post("/login")
def auth_login(payload: LoginRequest, cfg: Config = Depends(get_cfg)) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = verify_user_credentials(conn, payload.email, payload.password)
        if row is None:
            raise HTTPException(
                status_code=401,
                detail="invalid_credentials",
                headers={"WWW-Authenticate": "Bearer"},
            )
        touch_last_login(conn, row["user_id"])
        return _auth_response(cfg, conn, row)


@router.post("/refresh")
def auth_refresh(
    principal: Principal = Depends(get_current_principal),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Re-issue a token for a still-valid one. Roles are reloaded, so grants show up here."""
    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, principal.user_id)
        if row is None or int(row["is_active"] or 0) != 1:
            raise HTTPException(
                status_code=401,
                detail="user_not_found",
                headers={"WWW-Authenticate": "Bearer"},
            )
        return _auth_response(cfg, conn, row)


@router.get("/me")
def auth_me(
    principal: Principal = Depends(get_current_principal),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        row = get_user_by_id(conn, principal.user_id)
        if row is None:
            raise HTTPException(status_code=404, detail="user_not_found")
        return {"user": public_user(conn, row)}


@router.post("/logout")
def auth_logout() -> Dict[str, Any]:
    """Tokens are stateless; clients drop theirs."""
    return {"ok": True}
