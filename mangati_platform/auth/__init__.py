"""Authentication / authorization.

- Credential store: users + user_roles tables, pbkdf2 password hashes
- Token issuer: HS256 JWT bearer tokens carrying sub/unique_name/email/role
- Access policy: `policy.evaluate()` decides per request from token claims,
  operation metadata and resource state; `deps` wires it into FastAPI.
"""

from .crud import bootstrap_admin_if_needed, create_user
from .deps import authorize, enforce, get_current_principal, get_optional_principal, require_admin
from .policy import Decision, Principal, evaluate

__all__ = [
    "authorize",
    "enforce",
    "get_current_principal",
    "get_optional_principal",
    "require_admin",
    "bootstrap_admin_if_needed",
    "create_user",
    "Decision",
    "Principal",
    "evaluate",
]
