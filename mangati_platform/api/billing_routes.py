from __future__ import annotations

from typing import Any, Dict, List

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request
from pydantic import BaseModel

from mangati_platform.auth.crud import get_user_by_id
from mangati_platform.auth.deps import get_cfg, get_current_principal
from mangati_platform.auth.policy import Principal
from mangati_platform.billing.stripe_billing import create_checkout_session, process_stripe_webhook
from mangati_platform.config import Config
from mangati_platform.db import connect
from mangati_platform.entitlements import tracker


router = APIRouter(prefix="/api", tags=["subscriptions"])


def _debug(msg: str) -> None:
    print(f"[api] {msg}")


class CheckoutSessionRequest(BaseModel):
    plan_id: int


@router.get("/subscriptions/plans")
def list_plans(cfg: Config = Depends(get_cfg)) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return tracker.list_plans(conn)


@router.get("/subscriptions/me")
def my_subscription(
    principal: Principal = Depends(get_current_principal),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Caller's entitlement record. Admins are never quota-limited."""
    with connect(cfg.DB_DSN) as conn:
        summary = tracker.quota_summary(conn, principal.user_id)
    return {"subscription": summary, "unlimited": principal.is_admin}


@router.post("/billing/checkout-session")
def billing_checkout_session(
    payload: CheckoutSessionRequest,
    principal: Principal = Depends(get_current_principal),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Create a Stripe Checkout session for the logged-in user."""
    with connect(cfg.DB_DSN) as conn:
        plan = tracker.get_plan(conn, payload.plan_id)
        user = get_user_by_id(conn, principal.user_id)
    if plan is None:
        raise HTTPException(status_code=404, detail="plan_not_found")
    if not plan["stripe_price_id"]:
        raise HTTPException(status_code=400, detail="plan_not_configured")
    if user is None:
        raise HTTPException(status_code=404, detail="user_not_found")

    base = cfg.PUBLIC_APP_URL.rstrip("/")
    try:
        url = create_checkout_session(
            cfg,
            user_id=principal.user_id,
            plan_id=int(plan["plan_id"]),
            price_id=str(plan["stripe_price_id"]),
            success_url=f"{base}/profile?checkout=success",
            cancel_url=f"{base}/profile?checkout=cancel",
            customer_id=user["stripe_customer_id"] or None,
            customer_email=str(user["email"]),
        )
    except RuntimeError as e:
        # Stripe not configured.
        raise HTTPException(status_code=501, detail=str(e))
    except stripe.StripeError as e:
        _debug(f"checkout failed: {e}")
        raise HTTPException(status_code=502, detail="billing_error")
    return {"url": url}


@router.post("/billing/stripe/webhook")
async def billing_stripe_webhook(
    request: Request,
    stripe_signature: str | None = Header(default=None, alias="Stripe-Signature"),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    payload_bytes = await request.body()
    try:
        event_id, processed = process_stripe_webhook(cfg, payload_bytes=payload_bytes, signature=stripe_signature)
    except RuntimeError as e:
        raise HTTPException(status_code=501, detail=str(e))
    except (ValueError, stripe.SignatureVerificationError) as e:
        _debug(f"webhook rejected: {e}")
        raise HTTPException(status_code=400, detail="webhook_invalid")
    return {"ok": True, "event_id": event_id, "processed": processed}
