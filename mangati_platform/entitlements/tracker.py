"""Subscription entitlements: per-user monthly chapter upload quota.

Every function takes an open connection and never commits. Callers run
`consume_upload()` inside the same `connect()` block as the content write it
gates, so the counter increment and the chapter insert land (or roll back)
together.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, List, Optional

from mangati_platform.auth.policy import Principal
from mangati_platform.util.time import parse_iso, same_month, to_iso, utcnow, utcnow_iso


ACTIVE = "Active"
CANCELLED = "Cancelled"
EXPIRED = "Expired"
PAYMENT_FAILED = "PaymentFailed"

STATUSES = (ACTIVE, CANCELLED, EXPIRED, PAYMENT_FAILED)


def _debug(msg: str) -> None:
    print(f"[entitlements] {msg}")


class QuotaExceeded(Exception):
    """Upload rejected by the entitlement check.

    code is one of subscription_required, subscription_inactive,
    upload_limit_reached.
    """

    def __init__(self, code: str, *, used: int = 0, limit: int = 0):
        super().__init__(code)
        self.code = code
        self.used = used
        self.limit = limit

    @property
    def status_code(self) -> int:
        return 429 if self.code == "upload_limit_reached" else 402


@dataclass(frozen=True)
class QuotaResult:
    used: int
    limit: int
    bypassed: bool = False

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.used)


def get_subscription(conn: Any, user_id: str) -> Optional[Any]:
    return conn.execute(
        """
        SELECT s.*, p.name AS plan_name, p.upload_limit_per_month, p.price_cents
        FROM user_subscriptions s
        JOIN subscription_plans p ON p.plan_id = s.plan_id
        WHERE s.user_id=?
        """,
        (str(user_id),),
    ).fetchone()


def consume_upload(conn: Any, principal: Principal, *, now: Optional[datetime] = None) -> QuotaResult:
    """Check and spend one upload from the principal's monthly quota.

    Admins bypass the tracker entirely. Otherwise:
      no record           -> QuotaExceeded("subscription_required")
      status != Active    -> QuotaExceeded("subscription_inactive")
      new calendar month  -> counter reset to 0 before comparing
      counter >= limit    -> QuotaExceeded("upload_limit_reached"), counter unchanged
    """
    if principal.is_admin:
        return QuotaResult(used=0, limit=0, bypassed=True)

    current = now or utcnow()
    current_iso = to_iso(current)
    uid = principal.user_id

    row = get_subscription(conn, uid)
    if row is None:
        _debug(f"user {uid} has no subscription")
        raise QuotaExceeded("subscription_required")
    if row["status"] != ACTIVE:
        _debug(f"user {uid} subscription is {row['status']}")
        raise QuotaExceeded("subscription_inactive")

    limit = int(row["upload_limit_per_month"])
    last_reset = parse_iso(row["last_upload_reset_date"])
    if last_reset is None or not same_month(last_reset, current):
        # Compare-and-set: only the first caller of the month resets.
        conn.execute(
            """
            UPDATE user_subscriptions
            SET chapters_uploaded_this_month=0, last_upload_reset_date=?, updated_at=?
            WHERE user_id=? AND last_upload_reset_date=?
            """,
            (current_iso, current_iso, uid, row["last_upload_reset_date"]),
        )
        _debug(f"user {uid} upload counter reset for {current.year}-{current.month:02d}")

    # The limit check and the increment are one statement, so two uploads
    # racing at the boundary cannot both pass.
    cur = conn.execute(
        """
        UPDATE user_subscriptions
        SET chapters_uploaded_this_month = chapters_uploaded_this_month + 1, updated_at=?
        WHERE user_id=? AND status=? AND chapters_uploaded_this_month < ?
        """,
        (current_iso, uid, ACTIVE, limit),
    )
    used_row = conn.execute(
        "SELECT chapters_uploaded_this_month AS used FROM user_subscriptions WHERE user_id=?",
        (uid,),
    ).fetchone()
    used = int(used_row["used"]) if used_row is not None else 0

    if cur.rowcount == 0:
        _debug(f"user {uid} at upload limit {used}/{limit}")
        raise QuotaExceeded("upload_limit_reached", used=used, limit=limit)
    return QuotaResult(used=used, limit=limit)


def quota_summary(conn: Any, user_id: str, *, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
    """Read-only view of the entitlement record (month rollover applied, not persisted)."""
    row = get_subscription(conn, user_id)
    if row is None:
        return None
    current = now or utcnow()
    used = int(row["chapters_uploaded_this_month"])
    last_reset = parse_iso(row["last_upload_reset_date"])
    if last_reset is None or not same_month(last_reset, current):
        used = 0
    limit = int(row["upload_limit_per_month"])
    return {
        "plan_id": int(row["plan_id"]),
        "plan_name": row["plan_name"],
        "status": row["status"],
        "start_date": row["start_date"],
        "end_date": row["end_date"],
        "upload_limit_per_month": limit,
        "chapters_uploaded_this_month": used,
        "remaining_uploads": max(0, limit - used) if row["status"] == ACTIVE else 0,
    }


# -----------------
# Plans
# -----------------


def list_plans(conn: Any) -> List[Dict[str, Any]]:
    rows = conn.execute("SELECT * FROM subscription_plans ORDER BY price_cents, plan_id").fetchall()
    return [dict(r) for r in rows]


def get_plan(conn: Any, plan_id: int) -> Optional[Any]:
    return conn.execute("SELECT * FROM subscription_plans WHERE plan_id=?", (int(plan_id),)).fetchone()


def get_plan_by_stripe_price(conn: Any, stripe_price_id: str) -> Optional[Any]:
    return conn.execute(
        "SELECT * FROM subscription_plans WHERE stripe_price_id=?",
        (stripe_price_id,),
    ).fetchone()


def create_plan(
    conn: Any,
    *,
    name: str,
    price_cents: int,
    upload_limit_per_month: int,
    stripe_price_id: str | None = None,
) -> Dict[str, Any]:
    n = (name or "").strip()
    if not n:
        raise ValueError("plan_name_blank")
    if int(upload_limit_per_month) < 0:
        raise ValueError("upload_limit_negative")
    if int(price_cents) < 0:
        raise ValueError("price_negative")
    row = conn.execute(
        """
        INSERT INTO subscription_plans (name, price_cents, upload_limit_per_month, stripe_price_id, created_at)
        VALUES (?,?,?,?,?)
        RETURNING plan_id
        """,
        (n, int(price_cents), int(upload_limit_per_month), stripe_price_id, utcnow_iso()),
    ).fetchone()
    plan = get_plan(conn, int(row["plan_id"]))
    return dict(plan)


# -----------------
# Subscription lifecycle (admin + billing)
# -----------------


def assign_subscription(
    conn: Any,
    *,
    user_id: str,
    plan_id: int,
    status: str = ACTIVE,
    end_date: str | None = None,
    stripe_subscription_id: str | None = None,
) -> None:
    """Create or replace the user's entitlement record.

    Changing plan keeps the current month's counter.
    """
    if status not in STATUSES:
        raise ValueError("invalid_subscription_status")
    if get_plan(conn, plan_id) is None:
        raise LookupError("plan_not_found")

    now = utcnow_iso()
    conn.execute(
        """
        INSERT INTO user_subscriptions (
            user_id, plan_id, status, start_date, end_date,
            chapters_uploaded_this_month, last_upload_reset_date, stripe_subscription_id, updated_at
        ) VALUES (?,?,?,?,?,0,?,?,?)
        ON CONFLICT(user_id) DO UPDATE SET
            plan_id=excluded.plan_id,
            status=excluded.status,
            end_date=excluded.end_date,
            stripe_subscription_id=COALESCE(excluded.stripe_subscription_id, user_subscriptions.stripe_subscription_id),
            updated_at=excluded.updated_at
        """,
        (str(user_id), int(plan_id), status, now, end_date, now, stripe_subscription_id, now),
    )
    _debug(f"user {user_id} assigned plan {plan_id} status={status}")


def set_subscription_status(conn: Any, user_id: str, status: str, *, end_date: str | None = None) -> bool:
    if status not in STATUSES:
        raise ValueError("invalid_subscription_status")
    cur = conn.execute(
        """
        UPDATE user_subscriptions
        SET status=?, end_date=COALESCE(?, end_date), updated_at=?
        WHERE user_id=?
        """,
        (status, end_date, utcnow_iso(), str(user_id)),
    )
    return cur.rowcount > 0


def record_payment(conn: Any, *, user_id: str, amount_cents: int, transaction_id: str) -> bool:
    """Insert a payment once per transaction id. Returns False on replay."""
    cur = conn.execute(
        """
        INSERT INTO subscription_payments (user_id, amount_cents, payment_date, transaction_id)
        VALUES (?,?,?,?)
        ON CONFLICT(transaction_id) DO NOTHING
        """,
        (str(user_id), int(amount_cents), utcnow_iso(), transaction_id),
    )
    return cur.rowcount > 0
