"""Local (unverified) inspection of bearer tokens.

The client cannot check signatures; it only reads claims to judge expiry and
to show who is logged in. The server remains the authority.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import jwt


DEFAULT_BUFFER_SECONDS = 30


@dataclass(frozen=True)
class TokenInfo:
    user_id: Optional[str]
    username: Optional[str]
    email: Optional[str]
    roles: List[str]
    exp: Optional[float]

    def expires_in(self, now: Optional[float] = None) -> Optional[float]:
        if self.exp is None:
            return None
        return self.exp - (time.time() if now is None else now)


def parse_token(token: Optional[str]) -> Optional[Dict[str, Any]]:
    """Decode the payload without verifying it. None for anything malformed."""
    if not token or not isinstance(token, str):
        return None
    try:
        payload = jwt.decode(token, options={"verify_signature": False})
    except jwt.InvalidTokenError:
        return None
    return payload if isinstance(payload, dict) else None


def token_info(token: Optional[str]) -> Optional[TokenInfo]:
    payload = parse_token(token)
    if payload is None:
        return None
    roles = payload.get("role") or []
    if isinstance(roles, str):
        roles = [roles]
    exp = payload.get("exp")
    return TokenInfo(
        user_id=payload.get("sub"),
        username=payload.get("unique_name"),
        email=payload.get("email"),
        roles=[str(r) for r in roles],
        exp=float(exp) if isinstance(exp, (int, float)) else None,
    )


def is_token_valid(
    token: Optional[str],
    *,
    now: Optional[float] = None,
    buffer_seconds: int = DEFAULT_BUFFER_SECONDS,
) -> bool:
    """True while now < exp - buffer. Tokens without exp are treated as invalid."""
    info = token_info(token)
    if info is None or info.exp is None:
        return False
    current = time.time() if now is None else now
    return current < info.exp - buffer_seconds
