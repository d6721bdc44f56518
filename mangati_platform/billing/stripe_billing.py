"""Stripe subscription billing.

Checkout creates the subscription on Stripe's side; webhooks keep the local
entitlement record (`user_subscriptions`) in step with it and record payments.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import stripe

from mangati_platform.auth.crud import get_user_by_id, get_user_by_stripe_customer_id, set_stripe_customer_id
from mangati_platform.config import Config
from mangati_platform.db import connect
from mangati_platform.entitlements import tracker
from mangati_platform.util.time import utcnow_iso


# Stripe subscription.status -> local entitlement status
_STATUS_MAP = {
    "active": tracker.ACTIVE,
    "trialing": tracker.ACTIVE,
    "canceled": tracker.CANCELLED,
    "past_due": tracker.PAYMENT_FAILED,
    "unpaid": tracker.PAYMENT_FAILED,
    "incomplete_expired": tracker.EXPIRED,
}


def _debug(msg: str) -> None:
    print(f"[billing] {msg}")


def _ts_to_iso(ts: int | float | None) -> Optional[str]:
    if ts is None:
        return None
    dt = datetime.fromtimestamp(float(ts), tz=timezone.utc)
    return dt.replace(microsecond=0).isoformat().replace("+00:00", "Z")


def map_status(stripe_status: str | None) -> Optional[str]:
    return _STATUS_MAP.get((stripe_status or "").strip().lower())


def _get_stripe(cfg: Config):
    if not cfg.STRIPE_SECRET_KEY:
        raise RuntimeError("stripe_secret_key_missing")
    stripe.api_key = cfg.STRIPE_SECRET_KEY
    return stripe


def create_checkout_session(
    cfg: Config,
    *,
    user_id: str,
    plan_id: int,
    price_id: str,
    success_url: str,
    cancel_url: str,
    customer_id: str | None = None,
    customer_email: str | None = None,
) -> str:
    """Create a Stripe Checkout Session URL for a subscription."""
    client = _get_stripe(cfg)

    params: Dict[str, Any] = {
        "mode": "subscription",
        "line_items": [{"price": price_id, "quantity": 1}],
        "success_url": success_url,
        "cancel_url": cancel_url,
        # Maps webhooks back to users and plans.
        "client_reference_id": str(user_id),
        "metadata": {"user_id": str(user_id), "plan_id": str(plan_id)},
    }
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email

    session = client.checkout.Session.create(**params)
    url = session.get("url")
    if not url:
        raise RuntimeError("stripe_session_url_missing")
    return str(url)


def process_stripe_webhook(
    cfg: Config,
    *,
    payload_bytes: bytes,
    signature: str | None,
) -> Tuple[str, bool]:
    """Verify + process a Stripe webhook.

    Returns: (event_id, processed)
    """
    client = _get_stripe(cfg)
    if not cfg.STRIPE_WEBHOOK_SECRET:
        raise RuntimeError("stripe_webhook_secret_missing")
    if not signature:
        raise ValueError("stripe_signature_missing")

    event = client.Webhook.construct_event(payload_bytes, signature, cfg.STRIPE_WEBHOOK_SECRET)
    return handle_event(cfg, event)


def handle_event(cfg: Config, event: Dict[str, Any]) -> Tuple[str, bool]:
    """Apply a verified event once.

    The idempotency row and the state change share a transaction: a handler
    failure rolls both back so Stripe's retry is processed again.
    """
    event_id = str(event.get("id") or "")
    event_type = str(event.get("type") or "")
    obj = (event.get("data") or {}).get("object") or {}

    with connect(cfg.DB_DSN) as conn:
        cur = conn.execute(
            """
            INSERT INTO stripe_events (event_id, event_type, received_at) VALUES (?,?,?)
            ON CONFLICT(event_id) DO NOTHING
            """,
            (event_id, event_type, utcnow_iso()),
        )
        if cur.rowcount == 0:
            _debug(f"duplicate event {event_id} ignored")
            return event_id, False

        if event_type == "checkout.session.completed":
            _handle_checkout_completed(conn, obj)
        elif event_type.startswith("customer.subscription."):
            _handle_subscription_event(conn, obj, deleted=event_type.endswith(".deleted"))
        elif event_type.startswith("invoice."):
            _handle_invoice_event(conn, obj, event_type)

    return event_id, True


def _first_price_id(sub: Dict[str, Any]) -> Optional[str]:
    items = (sub.get("items") or {}).get("data") or []
    if items and isinstance(items, list):
        return (items[0].get("price") or {}).get("id")
    return None


def _handle_checkout_completed(conn: Any, session: Dict[str, Any]) -> None:
    metadata = session.get("metadata") or {}
    user_id = session.get("client_reference_id") or metadata.get("user_id")
    customer_id = session.get("customer")
    subscription_id = session.get("subscription")

    if not user_id or get_user_by_id(conn, str(user_id)) is None:
        _debug("checkout.session.completed: could not map to user")
        return
    if customer_id:
        set_stripe_customer_id(conn, str(user_id), str(customer_id))

    try:
        plan_id = int(metadata.get("plan_id"))
    except (TypeError, ValueError):
        _debug(f"checkout.session.completed: no plan for user {user_id}")
        return

    tracker.assign_subscription(
        conn,
        user_id=str(user_id),
        plan_id=plan_id,
        status=tracker.ACTIVE,
        stripe_subscription_id=str(subscription_id) if subscription_id else None,
    )


def _handle_subscription_event(conn: Any, sub: Dict[str, Any], *, deleted: bool) -> None:
    customer_id = sub.get("customer")
    if not customer_id:
        return
    user = get_user_by_stripe_customer_id(conn, str(customer_id))
    if user is None:
        _debug(f"subscription event for unknown customer {customer_id}")
        return
    user_id = str(user["user_id"])

    status = tracker.CANCELLED if deleted else map_status(sub.get("status"))
    if status is None:
        # incomplete / paused: nothing to mirror yet
        return
    end_date = _ts_to_iso(sub.get("current_period_end"))

    price_id = _first_price_id(sub)
    plan = tracker.get_plan_by_stripe_price(conn, price_id) if price_id else None
    if plan is not None:
        tracker.assign_subscription(
            conn,
            user_id=user_id,
            plan_id=int(plan["plan_id"]),
            status=status,
            end_date=end_date,
            stripe_subscription_id=str(sub.get("id")) if sub.get("id") else None,
        )
        return
    if not tracker.set_subscription_status(conn, user_id, status, end_date=end_date):
        _debug(f"no local subscription for user {user_id}; status {status} not applied")


def _handle_invoice_event(conn: Any, invoice: Dict[str, Any], event_type: str) -> None:
    customer_id = invoice.get("customer")
    if not customer_id:
        return
    user = get_user_by_stripe_customer_id(conn, str(customer_id))
    if user is None:
        return
    user_id = str(user["user_id"])

    if event_type in ("invoice.paid", "invoice.payment_succeeded"):
        invoice_id = str(invoice.get("id") or "")
        if invoice_id:
            tracker.record_payment(
                conn,
                user_id=user_id,
                amount_cents=int(invoice.get("amount_paid") or 0),
                transaction_id=invoice_id,
            )
    elif event_type == "invoice.payment_failed":
        tracker.set_subscription_status(conn, user_id, tracker.PAYMENT_FAILED)
