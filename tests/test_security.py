"""Token issuer: lifetime boundary, signature integrity, claim round-trip."""

import base64
from dataclasses import replace
from datetime import datetime, timedelta, timezone

import jwt
import pytest

from mangati_platform.auth.security import (
    TokenExpired,
    TokenInvalid,
    create_access_token,
    decode_access_token,
    hash_password,
    roles_from_claims,
    verify_password,
)
from mangati_platform.config import MisconfigurationError


T0 = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)


def _issue(cfg, **kw):
    params = dict(
        user_id="u-1",
        username="kaito",
        email="kaito@example.test",
        roles=["Writer"],
        now=T0,
    )
    params.update(kw)
    return create_access_token(cfg, **params)


def test_token_accepted_until_just_before_expiry(cfg):
    token = _issue(cfg)
    lifetime = timedelta(minutes=cfg.AUTH_TOKEN_EXPIRE_MINUTES)

    assert decode_access_token(cfg, token, now=T0)["sub"] == "u-1"
    assert decode_access_token(cfg, token, now=T0 + lifetime - timedelta(seconds=1))["sub"] == "u-1"

    with pytest.raises(TokenExpired):
        decode_access_token(cfg, token, now=T0 + lifetime)
    with pytest.raises(TokenExpired):
        decode_access_token(cfg, token, now=T0 + lifetime + timedelta(days=1))


def test_any_signature_byte_change_is_rejected(cfg):
    token = _issue(cfg)
    header, payload, sig = token.split(".")
    raw = base64.urlsafe_b64decode(sig + "=" * (-len(sig) % 4))

    for i in range(len(raw)):
        mutated = bytearray(raw)
        mutated[i] ^= 0x01
        forged_sig = base64.urlsafe_b64encode(bytes(mutated)).rstrip(b"=").decode("ascii")
        with pytest.raises(TokenInvalid):
            decode_access_token(cfg, f"{header}.{payload}.{forged_sig}", now=T0)


def test_payload_change_is_rejected(cfg):
    token = _issue(cfg)
    header, _, sig = token.split(".")
    forged = jwt.encode({"sub": "u-1", "role": ["Admin"], "exp": 9999999999}, "other-key", algorithm="HS256")
    forged_payload = forged.split(".")[1]
    with pytest.raises(TokenInvalid):
        decode_access_token(cfg, f"{header}.{forged_payload}.{sig}", now=T0)


def test_same_instant_tokens_differ_only_in_jti(cfg):
    a = jwt.decode(_issue(cfg), options={"verify_signature": False})
    b = jwt.decode(_issue(cfg), options={"verify_signature": False})

    assert a["jti"] != b["jti"]
    a.pop("jti")
    b.pop("jti")
    assert a == b


def test_round_trip_preserves_identity_and_roles(cfg):
    token = _issue(cfg, roles=["Admin", "Writer"])
    claims = decode_access_token(cfg, token, now=T0)

    assert claims["sub"] == "u-1"
    assert claims["unique_name"] == "kaito"
    assert claims["email"] == "kaito@example.test"
    assert roles_from_claims(claims) == frozenset({"Writer", "Admin"})
    assert claims["iss"] == cfg.AUTH_JWT_ISSUER
    assert claims["aud"] == cfg.AUTH_JWT_AUDIENCE


def test_missing_signing_key_is_fatal(cfg):
    no_key = replace(cfg, AUTH_JWT_SECRET=None)
    with pytest.raises(MisconfigurationError):
        _issue(no_key)
    with pytest.raises(MisconfigurationError):
        decode_access_token(no_key, _issue(cfg), now=T0)


def test_audience_checked_only_when_enabled(cfg):
    token = _issue(replace(cfg, AUTH_JWT_AUDIENCE="someone-else"))

    assert decode_access_token(cfg, token, now=T0)["aud"] == "someone-else"
    with pytest.raises(TokenInvalid):
        decode_access_token(replace(cfg, AUTH_VALIDATE_AUDIENCE=True), token, now=T0)


def test_role_claim_accepts_single_string():
    assert roles_from_claims({"role": "Viewer"}) == frozenset({"Viewer"})
    assert roles_from_claims({}) == frozenset()


def test_password_hash_round_trip():
    h = hash_password("Secret123!")
    assert verify_password("Secret123!", h)
    assert not verify_password("secret123!", h)
    assert not verify_password("Secret123!", "not-a-hash")
