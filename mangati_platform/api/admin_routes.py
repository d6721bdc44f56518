from __future__ import annotations

from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Response
from pydantic import BaseModel

from mangati_platform.auth.crud import grant_role, revoke_role
from mangati_platform.auth.deps import get_cfg, require_admin
from mangati_platform.auth.policy import Principal
from mangati_platform.config import Config
from mangati_platform.content import reports
from mangati_platform.db import connect
from mangati_platform.entitlements import tracker


router = APIRouter(prefix="/api/admin", tags=["admin"])


def _debug(msg: str) -> None:
    print(f"[admin] {msg}")


class CreatePlanRequest(BaseModel):
    name: str
    price_cents: int = 0
    upload_limit_per_month: int
    stripe_price_id: Optional[str] = None


class AssignSubscriptionRequest(BaseModel):
    plan_id: int
    status: str = tracker.ACTIVE
    end_date: Optional[str] = None


class RoleRequest(BaseModel):
    role: str


class ReportStatusRequest(BaseModel):
    status: str  # Resolved | Rejected


def _value_error(e: ValueError) -> HTTPException:
    return HTTPException(status_code=400, detail=str(e))


# -----------------------------
# Plans / subscriptions
# -----------------------------


@router.post("/subscription-plans", status_code=201)
def create_plan(
    payload: CreatePlanRequest,
    _admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if conn.execute("SELECT 1 FROM subscription_plans WHERE name=?", (payload.name.strip(),)).fetchone():
            raise HTTPException(status_code=409, detail="plan_exists")
        try:
            return tracker.create_plan(
                conn,
                name=payload.name,
                price_cents=payload.price_cents,
                upload_limit_per_month=payload.upload_limit_per_month,
                stripe_price_id=payload.stripe_price_id,
            )
        except ValueError as e:
            raise _value_error(e)


@router.put("/subscriptions/{user_id}")
def assign_subscription(
    user_id: str,
    payload: AssignSubscriptionRequest,
    admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        if conn.execute("SELECT 1 FROM users WHERE user_id=?", (user_id,)).fetchone() is None:
            raise HTTPException(status_code=404, detail="user_not_found")
        try:
            tracker.assign_subscription(
                conn,
                user_id=user_id,
                plan_id=payload.plan_id,
                status=payload.status,
                end_date=payload.end_date,
            )
        except ValueError as e:
            raise _value_error(e)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
        _debug(f"{admin.user_id} set subscription for {user_id}: plan={payload.plan_id} status={payload.status}")
        return {"subscription": tracker.quota_summary(conn, user_id)}


# -----------------------------
# Roles
# -----------------------------


@router.post("/users/{user_id}/roles")
def add_role(
    user_id: str,
    payload: RoleRequest,
    admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    """Grant a role. Takes effect in the user's next issued token."""
    with connect(cfg.DB_DSN) as conn:
        try:
            roles = grant_role(conn, user_id, payload.role)
        except ValueError as e:
            raise _value_error(e)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
    _debug(f"{admin.user_id} granted {payload.role} to {user_id}")
    return {"user_id": user_id, "roles": roles}


@router.delete("/users/{user_id}/roles/{role}")
def remove_role(
    user_id: str,
    role: str,
    admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> Dict[str, Any]:
    with connect(cfg.DB_DSN) as conn:
        try:
            roles = revoke_role(conn, user_id, role)
        except ValueError as e:
            detail = str(e)
            raise HTTPException(status_code=409 if detail == "last_role" else 400, detail=detail)
        except LookupError as e:
            raise HTTPException(status_code=404, detail=str(e))
    _debug(f"{admin.user_id} revoked {role} from {user_id}")
    return {"user_id": user_id, "roles": roles}


# -----------------------------
# Content reports
# -----------------------------


@router.get("/reports")
def list_reports(
    status: Optional[str] = None,
    _admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> List[Dict[str, Any]]:
    with connect(cfg.DB_DSN) as conn:
        return reports.list_reports(conn, status=status)


@router.put("/reports/{report_id}", status_code=204)
def review_report(
    report_id: int,
    payload: ReportStatusRequest,
    _admin: Principal = Depends(require_admin),
    cfg: Config = Depends(get_cfg),
) -> Response:
    with connect(cfg.DB_DSN) as conn:
        try:
            found = reports.resolve_report(conn, report_id, payload.status)
        except ValueError as e:
            raise _value_error(e)
        if not found:
            raise HTTPException(status_code=404, detail="report_not_found")
    return Response(status_code=204)
