from __future__ import annotations

from typing import Iterable, Optional

VIEWER = "Viewer"
WRITER = "Writer"
ADMIN = "Admin"

ALL_ROLES = (VIEWER, WRITER, ADMIN)

_BY_KEY = {r.lower(): r for r in ALL_ROLES}


def canonical_role(name: str | None) -> Optional[str]:
    """Map user input ('writer', ' ADMIN ') to a canonical role name, or None."""
    return _BY_KEY.get((name or "").strip().lower())


def signup_role(requested: str | None, *, allow_admin: bool = True) -> str:
    """Role granted at registration.

    Unrecognized or missing values fall back to Viewer. When admin signup is
    disabled an Admin request is capped at Writer.
    """
    role = canonical_role(requested) or VIEWER
    if role == ADMIN and not allow_admin:
        return WRITER
    return role


def sorted_roles(roles: Iterable[str]) -> list[str]:
    order = {r: i for i, r in enumerate(ALL_ROLES)}
    return sorted(set(roles), key=lambda r: order.get(r, len(order)))
