"""Password hashing and bearer token issuance/validation.

Tokens are HS256 JWTs. Expiry is judged here rather than by PyJWT so that the
boundary is exact: a token issued at T with lifetime L is accepted for
T <= now < T+L and rejected from T+L on, with no clock-skew leeway.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, Optional

import jwt
from passlib.context import CryptContext

from mangati_platform.config import Config, require_jwt_secret

from .roles import sorted_roles


_pwd = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
_JWT_ALG = "HS256"


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


class TokenExpired(Exception):
    pass


class TokenInvalid(Exception):
    pass


def hash_password(password: str) -> str:
    if not password:
        raise ValueError("password_blank")
    return _pwd.hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return _pwd.verify(password, password_hash)
    except ValueError:
        # Unrecognized / malformed hash
        return False


def create_access_token(
    cfg: Config,
    *,
    user_id: str,
    username: str,
    email: str,
    roles: Iterable[str],
    now: Optional[datetime] = None,
) -> str:
    """Mint a signed token for a principal.

    `roles` should be the principal's current role set as loaded from the
    credential store. Raises MisconfigurationError when no signing key is set.
    """
    secret = require_jwt_secret(cfg)

    issued = now or datetime.now(timezone.utc)
    exp = issued + timedelta(minutes=max(1, int(cfg.AUTH_TOKEN_EXPIRE_MINUTES)))

    payload: Dict[str, Any] = {
        "sub": str(user_id),
        "unique_name": username,
        "email": email,
        "jti": str(uuid.uuid4()),
        "role": sorted_roles(roles),
        "iat": int(issued.timestamp()),
        "nbf": int(issued.timestamp()),
        "exp": int(exp.timestamp()),
        "iss": cfg.AUTH_JWT_ISSUER,
        "aud": cfg.AUTH_JWT_AUDIENCE,
    }
    _debug(f"issued token sub={payload['sub']} roles={payload['role']}")
    return jwt.encode(payload, secret, algorithm=_JWT_ALG)


def decode_access_token(
    cfg: Config,
    token: str,
    *,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Verify signature and expiry and return the claims.

    Raises TokenExpired / TokenInvalid. Issuer and audience are only checked
    when AUTH_VALIDATE_ISSUER / AUTH_VALIDATE_AUDIENCE are on.
    """
    secret = require_jwt_secret(cfg)
    if not token:
        raise TokenInvalid("token_blank")

    kwargs: Dict[str, Any] = {}
    if cfg.AUTH_VALIDATE_AUDIENCE:
        kwargs["audience"] = cfg.AUTH_JWT_AUDIENCE
    if cfg.AUTH_VALIDATE_ISSUER:
        kwargs["issuer"] = cfg.AUTH_JWT_ISSUER

    try:
        claims = jwt.decode(
            token,
            secret,
            algorithms=[_JWT_ALG],
            options={
                "verify_exp": False,
                "verify_nbf": False,
                "verify_iat": False,
                "verify_aud": cfg.AUTH_VALIDATE_AUDIENCE,
                "verify_iss": cfg.AUTH_VALIDATE_ISSUER,
            },
            **kwargs,
        )
    except jwt.InvalidTokenError as e:
        raise TokenInvalid(str(e)) from e

    exp = claims.get("exp")
    if not isinstance(exp, (int, float)):
        raise TokenInvalid("exp_missing")
    current = (now or datetime.now(timezone.utc)).timestamp()
    if current >= exp:
        raise TokenExpired("token_expired")
    return claims


def roles_from_claims(claims: Dict[str, Any]) -> frozenset[str]:
    """Role claim may be a single string or a list."""
    raw = claims.get("role")
    if raw is None:
        return frozenset()
    if isinstance(raw, str):
        return frozenset([raw])
    return frozenset(str(r) for r in raw)
