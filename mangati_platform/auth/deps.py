from __future__ import annotations

from typing import Callable, Optional

from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from mangati_platform.config import Config

from .policy import ADMINISTER, Decision, Operation, Principal, ResourceState, evaluate
from .security import TokenExpired, TokenInvalid, decode_access_token


_bearer = HTTPBearer(auto_error=False)


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def _unauthorized(detail: str) -> HTTPException:
    return HTTPException(status_code=401, detail=detail, headers={"WWW-Authenticate": "Bearer"})


def get_cfg(request: Request) -> Config:
    cfg = getattr(request.app.state, "cfg", None)
    if cfg is None:
        raise HTTPException(status_code=500, detail="server_config_missing")
    return cfg


def _principal_from_token(cfg: Config, token: str) -> Principal:
    try:
        claims = decode_access_token(cfg, token)
    except TokenExpired:
        raise _unauthorized("token_expired")
    except TokenInvalid as e:
        _debug(f"rejected token: {e}")
        raise _unauthorized("token_invalid")

    if not claims.get("sub"):
        raise _unauthorized("token_missing_sub")
    return Principal.from_claims(claims)


def get_current_principal(
    cfg: Config = Depends(get_cfg),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Principal:
    """Authenticate a request from `Authorization: Bearer <jwt>`.

    Claims are trusted as issued; roles come from the token, not the database.
    """
    if credentials is None or not credentials.credentials:
        raise _unauthorized("missing_token")
    return _principal_from_token(cfg, credentials.credentials)


def get_optional_principal(
    cfg: Config = Depends(get_cfg),
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(_bearer),
) -> Optional[Principal]:
    """Principal for public reads: anonymous when no usable token is sent."""
    if credentials is None or not credentials.credentials:
        return None
    try:
        return _principal_from_token(cfg, credentials.credentials)
    except HTTPException:
        return None


def enforce(
    principal: Optional[Principal],
    operation: Operation,
    resource: Optional[ResourceState] = None,
    *,
    not_found: str = "not_found",
) -> None:
    """Evaluate and raise the matching HTTP error when the decision is not ALLOW."""
    decision = evaluate(principal, operation, resource)
    if decision is Decision.ALLOW:
        return
    who = principal.user_id if principal else "anonymous"
    _debug(f"{operation.name} denied for {who}: {decision.value}")
    if decision is Decision.UNAUTHENTICATED:
        raise _unauthorized("missing_token")
    if decision is Decision.FORBIDDEN:
        lacks_role = operation.allowed_roles is not None and not (principal and principal.roles & operation.allowed_roles)
        code = "role_required" if lacks_role else "not_owner"
        raise HTTPException(status_code=403, detail=code)
    raise HTTPException(status_code=404, detail=not_found)


def authorize(operation: Operation) -> Callable[..., Principal]:
    """Dependency factory: authenticate and apply the role check for `operation`."""

    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        enforce(principal, operation)
        return principal

    return _dep


require_admin = authorize(ADMINISTER)
