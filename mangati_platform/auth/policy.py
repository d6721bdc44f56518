"""Access policy evaluation.

`evaluate()` is a pure function of (principal, operation, resource state). The
checks run in a fixed order and stop at the first failure:

1. authentication  -> UNAUTHENTICATED
2. role            -> FORBIDDEN
3. ownership       -> FORBIDDEN (mutations of authored content)
4. visibility      -> NOT_FOUND (reads of moderated content)

Role names are compared exactly. Registration and admin grants store only the
canonical names from `roles.ALL_ROLES`, so a token carrying "admin" or "ADMIN"
was not minted by this service and matches nothing.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, Optional

from .roles import ADMIN, ALL_ROLES, WRITER
from .security import roles_from_claims


APPROVED = "Approved"


class Decision(enum.Enum):
    ALLOW = "allow"
    UNAUTHENTICATED = "unauthenticated"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"

    @property
    def allowed(self) -> bool:
        return self is Decision.ALLOW


@dataclass(frozen=True)
class Principal:
    user_id: str
    username: str
    email: str
    roles: FrozenSet[str]
    token_id: Optional[str] = None

    def has_role(self, role: str) -> bool:
        return role in self.roles

    @property
    def is_admin(self) -> bool:
        return ADMIN in self.roles

    @property
    def is_writer(self) -> bool:
        return WRITER in self.roles

    @classmethod
    def from_claims(cls, claims: Dict[str, Any]) -> "Principal":
        return cls(
            user_id=str(claims.get("sub") or ""),
            username=str(claims.get("unique_name") or ""),
            email=str(claims.get("email") or ""),
            roles=roles_from_claims(claims),
            token_id=claims.get("jti"),
        )


@dataclass(frozen=True)
class Operation:
    """Static metadata for a protected operation.

    allowed_roles: None means any authenticated (or anonymous, when
        requires_auth is False) caller passes the role check.
    owned: mutation of authored content, author or Admin only.
    moderated: read of content whose visibility depends on moderation status.
    """

    name: str
    allowed_roles: Optional[FrozenSet[str]] = None
    requires_auth: bool = True
    owned: bool = False
    moderated: bool = False


@dataclass(frozen=True)
class ResourceState:
    author_id: Optional[str] = None
    status: Optional[str] = None


def op(name: str, *roles: str, requires_auth: bool = True, owned: bool = False, moderated: bool = False) -> Operation:
    for r in roles:
        if r not in ALL_ROLES:
            raise ValueError(f"unknown role {r!r}")
    return Operation(
        name=name,
        allowed_roles=frozenset(roles) if roles else None,
        requires_auth=requires_auth,
        owned=owned,
        moderated=moderated,
    )


def evaluate(
    principal: Optional[Principal],
    operation: Operation,
    resource: Optional[ResourceState] = None,
) -> Decision:
    if principal is None:
        if operation.requires_auth or operation.allowed_roles is not None or operation.owned:
            return Decision.UNAUTHENTICATED
    elif operation.allowed_roles is not None and not (principal.roles & operation.allowed_roles):
        return Decision.FORBIDDEN

    if resource is None:
        return Decision.ALLOW

    if operation.owned:
        if not (principal.is_admin or _is_author(principal, resource)):
            return Decision.FORBIDDEN

    if operation.moderated and resource.status != APPROVED:
        if principal is None:
            return Decision.NOT_FOUND
        if principal.is_admin:
            return Decision.ALLOW
        if principal.is_writer and _is_author(principal, resource):
            return Decision.ALLOW
        return Decision.NOT_FOUND

    return Decision.ALLOW


def _is_author(principal: Principal, resource: ResourceState) -> bool:
    return bool(resource.author_id) and str(resource.author_id) == principal.user_id


def can_view(principal: Optional[Principal], *, author_id: Optional[str], status: str) -> bool:
    """Visibility of one moderated item, for filtering lists."""
    return evaluate(principal, READ_CHAPTER, ResourceState(author_id=author_id, status=status)).allowed


# Operation table
READ_SERIES = op("series.read", requires_auth=False)
CREATE_SERIES = op("series.create", WRITER, ADMIN)
UPDATE_SERIES = op("series.update", WRITER, ADMIN, owned=True)
DELETE_SERIES = op("series.delete", WRITER, ADMIN, owned=True)

READ_CHAPTER = op("chapter.read", requires_auth=False, moderated=True)
CREATE_CHAPTER = op("chapter.create", WRITER, ADMIN, owned=True)
DELETE_CHAPTER = op("chapter.delete", WRITER, ADMIN, owned=True)
MODERATE_CHAPTER = op("chapter.moderate", ADMIN)

READER_LIBRARY = op("reader.library")
CREATE_REPORT = op("report.create")
CREATE_TAG = op("filters.tag.create", WRITER, ADMIN)
CREATE_LANGUAGE = op("filters.language.create", ADMIN)
ADMINISTER = op("admin", ADMIN)
