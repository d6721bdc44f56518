from __future__ import annotations

import re
import uuid
from typing import Any, Dict, List, Optional

from mangati_platform.config import Config
from mangati_platform.db import connect
from mangati_platform.util.time import utcnow_iso

from .roles import ADMIN, canonical_role, sorted_roles
from .security import hash_password, verify_password


USERNAME_MAX = 50
PASSWORD_MIN = 8

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def _debug(msg: str) -> None:
    print(f"[auth] {msg}")


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def normalize_username(username: str) -> str:
    return (username or "").strip()


def check_password_policy(password: str) -> None:
    """Digit, lowercase, uppercase, non-alphanumeric, at least 8 chars."""
    p = password or ""
    if len(p) < PASSWORD_MIN:
        raise ValueError("password_too_short")
    if not any(c.isdigit() for c in p):
        raise ValueError("password_requires_digit")
    if not any(c.islower() for c in p):
        raise ValueError("password_requires_lower")
    if not any(c.isupper() for c in p):
        raise ValueError("password_requires_upper")
    if all(c.isalnum() for c in p):
        raise ValueError("password_requires_symbol")


def get_user_roles(conn: Any, user_id: str) -> List[str]:
    rows = conn.execute(
        "SELECT role FROM user_roles WHERE user_id=?",
        (str(user_id),),
    ).fetchall()
    return sorted_roles(str(r["role"]) for r in rows)


def public_user(conn: Any, row: Any | Dict[str, Any]) -> Dict[str, Any]:
    """The user projection handed to clients: id, username, email, roles, created_at."""
    d = dict(row)
    return {
        "id": str(d["user_id"]),
        "username": d["username"],
        "email": d["email"],
        "roles": get_user_roles(conn, d["user_id"]),
        "created_at": d["created_at"],
    }


def get_user_by_id(conn: Any, user_id: str) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM users WHERE user_id=?",
        (str(user_id),),
    ).fetchone()


def get_user_by_email(conn: Any, email: str) -> Optional[Any]:
    e = normalize_email(email)
    if not e:
        return None
    return conn.execute("SELECT * FROM users WHERE email=?", (e,)).fetchone()


def get_user_by_username(conn: Any, username: str) -> Optional[Any]:
    u = normalize_username(username)
    if not u:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE lower(username)=lower(?)",
        (u,),
    ).fetchone()


def get_user_by_stripe_customer_id(conn: Any, stripe_customer_id: str) -> Optional[Any]:
    cid = (stripe_customer_id or "").strip()
    if not cid:
        return None
    return conn.execute(
        "SELECT * FROM users WHERE stripe_customer_id=?",
        (cid,),
    ).fetchone()


def set_stripe_customer_id(conn: Any, user_id: str, stripe_customer_id: str) -> None:
    conn.execute(
        "UPDATE users SET stripe_customer_id=?, updated_at=? WHERE user_id=?",
        (stripe_customer_id, utcnow_iso(), str(user_id)),
    )


def verify_user_credentials(conn: Any, email: str, password: str) -> Optional[Any]:
    row = get_user_by_email(conn, email)
    if row is None:
        return None
    if int(row["is_active"] or 0) != 1:
        return None
    if not verify_password(password, str(row["password_hash"])):
        return None
    return row


def create_user(
    conn: Any,
    *,
    username: str,
    email: str,
    password: str,
    role: str,
    enforce_policy: bool = True,
) -> Dict[str, Any]:
    """Create a principal with exactly one role.

    `role` must already be canonical (see roles.signup_role). Raises ValueError
    with a snake_case code on invalid input or duplicates.
    """
    u = normalize_username(username)
    e = normalize_email(email)
    if not u:
        raise ValueError("username_blank")
    if len(u) > USERNAME_MAX:
        raise ValueError("username_too_long")
    if not _EMAIL_RE.match(e):
        raise ValueError("email_invalid")
    if canonical_role(role) != role:
        raise ValueError("invalid_role")
    if enforce_policy:
        check_password_policy(password)

    if get_user_by_email(conn, e) is not None:
        raise ValueError("email_exists")
    if get_user_by_username(conn, u) is not None:
        raise ValueError("username_exists")

    user_id = str(uuid.uuid4())
    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO users (user_id, username, email, password_hash, is_active, created_at, updated_at)
        VALUES (?,?,?,?,1,?,?)
        """,
        (user_id, u, e, hash_password(password), now, now),
    )
    conn.execute(
        "INSERT INTO user_roles (user_id, role, granted_at) VALUES (?,?,?)",
        (user_id, role, now),
    )
    row = get_user_by_id(conn, user_id)
    if row is None:
        raise LookupError("user_not_found")
    _debug(f"created user {user_id} role={role}")
    return public_user(conn, row)


def grant_role(conn: Any, user_id: str, role: str) -> List[str]:
    r = canonical_role(role)
    if r is None:
        raise ValueError("invalid_role")
    if get_user_by_id(conn, user_id) is None:
        raise LookupError("user_not_found")
    conn.execute(
        """
        INSERT INTO user_roles (user_id, role, granted_at) VALUES (?,?,?)
        ON CONFLICT(user_id, role) DO NOTHING
        """,
        (str(user_id), r, utcnow_iso()),
    )
    return get_user_roles(conn, user_id)


def revoke_role(conn: Any, user_id: str, role: str) -> List[str]:
    r = canonical_role(role)
    if r is None:
        raise ValueError("invalid_role")
    if get_user_by_id(conn, user_id) is None:
        raise LookupError("user_not_found")
    current = get_user_roles(conn, user_id)
    if r in current and len(current) == 1:
        # Every principal keeps at least one role.
        raise ValueError("last_role")
    conn.execute(
        "DELETE FROM user_roles WHERE user_id=? AND role=?",
        (str(user_id), r),
    )
    return get_user_roles(conn, user_id)


def touch_last_login(conn: Any, user_id: str) -> None:
    now = utcnow_iso()
    conn.execute(
        "UPDATE users SET last_login_at=?, updated_at=? WHERE user_id=?",
        (now, now, str(user_id)),
    )


def bootstrap_admin_if_needed(cfg: Config) -> Optional[Dict[str, Any]]:
    """Create the first admin user if the users table is empty.

    - AUTH_BOOTSTRAP_ADMIN_USERNAME (default: admin)
    - AUTH_BOOTSTRAP_ADMIN_EMAIL (default: admin@mangati.app)
    - AUTH_BOOTSTRAP_ADMIN_PASSWORD (no default; unset means skip)

    This only runs when there are 0 rows in `users`.
    """

    password = cfg.AUTH_BOOTSTRAP_ADMIN_PASSWORD
    if not password:
        return None

    with connect(cfg.DB_DSN) as conn:
        n = conn.execute("SELECT COUNT(*) AS n FROM users").fetchone()["n"]
        if int(n) > 0:
            return None

        return create_user(
            conn,
            username=cfg.AUTH_BOOTSTRAP_ADMIN_USERNAME or "admin",
            email=cfg.AUTH_BOOTSTRAP_ADMIN_EMAIL,
            password=password,
            role=ADMIN,
            enforce_policy=False,
        )
