"""
Alerts API
Endpoints for managing alerts, triggering sweeps and reading emitted events.

Endpoints:
    GET    /api/alerts                    → List alerts (filter, symbol)
    POST   /api/alerts                    → Create alert (SIMPLE | TWO_STAGE | DORMANT_AWAKENING)
    GET    /api/alerts/events             → Emitted events since an instant
    POST   /api/alerts/evaluate           → Run a sweep (all, or given ids)
    GET    /api/alerts/stats              → Evaluator statistics
    GET    /api/alerts/{id}               → Get alert by ID
    PATCH  /api/alerts/{id}               → Update note / enabled / threshold fields
    DELETE /api/alerts/{id}               → Delete alert
    POST   /api/alerts/{id}/cancel-watch  → Stop watching, keep the record
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Response
from pydantic import BaseModel

from alerts import (
    AlertType,
    TwoStageMachine,
    UpdateAlertRequest,
    get_alert_store,
    get_event_store,
    get_evaluator,
)
from core import InvalidRequest, InvariantViolation

router = APIRouter(prefix="/alerts", tags=["Alerts"])


# =============================================================================
# Request Models
# =============================================================================

class EvaluateRequest(BaseModel):
    """Request body for a sweep; omit alert_ids to sweep every active alert"""
    alert_ids: Optional[List[str]] = None

    model_config = {
        "json_schema_extra": {
            "example": {"alert_ids": ["alert_1767225600000_1a2b3c4d"]}
        }
    }


def _bad_request(e: InvalidRequest) -> HTTPException:
    return HTTPException(400, {"message": str(e), "details": e.details})


def _load(alert_id: str):
    try:
        alert = get_alert_store().get_by_id(alert_id)
    except InvariantViolation as e:
        raise HTTPException(500, str(e))
    if alert is None:
        raise HTTPException(404, f"Alert not found: {alert_id}")
    return alert


# =============================================================================
# Alert Management
# =============================================================================

@router.get("")
async def list_alerts(
    filter: str = Query(default="all", description="all | active | paused | triggered"),
    symbol_or_address: Optional[str] = Query(default=None),
):
    """List alerts, newest first"""
    try:
        alerts = get_alert_store().list(filter, symbol_or_address)
    except InvalidRequest as e:
        raise _bad_request(e)

    return {
        "count": len(alerts),
        "alerts": [a.to_dict() for a in alerts],
    }


@router.post("", status_code=201)
async def create_alert(payload: Dict[str, Any] = Body(...)):
    """
    Create a new alert.

    Body is discriminated by `type`:
        SIMPLE             → condition (ABOVE | BELOW | CROSS), target_price
        TWO_STAGE          → template, expiry_minutes, cooldown_minutes
        DORMANT_AWAKENING  → params (optional, defaults apply)
    """
    try:
        alert = get_alert_store().create(payload)
    except InvalidRequest as e:
        raise _bad_request(e)

    return {
        "message": "Alert created",
        "alert": alert.to_dict(),
    }


# =============================================================================
# Events & Evaluation
# =============================================================================

@router.get("/events")
async def list_events(
    since: Optional[datetime] = Query(default=None, description="ISO instant; default last 24h"),
    limit: int = Query(default=100, ge=1, le=500),
):
    """Emitted events with occurred_at > since, oldest first"""
    events = get_event_store().query(since=since, limit=limit)

    return {
        "count": len(events),
        "events": [e.to_dict() for e in events],
    }


@router.post("/evaluate")
async def evaluate(request: Optional[EvaluateRequest] = None):
    """
    Run one sweep.

    Meant to be called by an external scheduler; overlapping calls are safe.
    The response carries a poll cadence hint (recommended_next_poll_seconds).
    """
    evaluator = get_evaluator()
    if request is not None and request.alert_ids is not None:
        result = await evaluator.evaluate_by_ids(request.alert_ids)
    else:
        result = await evaluator.evaluate_all()
    return result.model_dump(mode="json")


@router.get("/stats")
async def get_stats():
    """Get evaluator statistics"""
    return get_evaluator().stats()


# =============================================================================
# Single Alert
# =============================================================================

@router.get("/{alert_id}")
async def get_alert(alert_id: str):
    """Get a specific alert"""
    alert = _load(alert_id)

    response = {"alert": alert.to_dict()}
    if alert.type == AlertType.TWO_STAGE:
        now = get_evaluator().context().now
        response["in_cooldown"] = TwoStageMachine.is_in_cooldown(alert, now)
    return response


@router.patch("/{alert_id}")
async def update_alert(alert_id: str, request: UpdateAlertRequest):
    """Update note / enabled, and condition / target_price on SIMPLE alerts"""
    try:
        alert = get_alert_store().update(alert_id, request)
    except InvalidRequest as e:
        raise _bad_request(e)
    except InvariantViolation as e:
        raise HTTPException(500, str(e))

    if alert is None:
        raise HTTPException(404, f"Alert not found: {alert_id}")

    return {
        "message": f"Alert {alert_id} updated",
        "alert": alert.to_dict(),
    }


@router.delete("/{alert_id}", status_code=204)
async def delete_alert(alert_id: str):
    """Delete an alert and drop it from the index"""
    if not get_alert_store().delete(alert_id):
        raise HTTPException(404, f"Alert not found: {alert_id}")
    return Response(status_code=204)


@router.post("/{alert_id}/cancel-watch")
async def cancel_watch(alert_id: str):
    """Cancel the watch: stage=CANCELLED, disabled, paused"""
    try:
        alert = get_alert_store().cancel_watch(alert_id)
    except InvariantViolation as e:
        raise HTTPException(500, str(e))

    if alert is None:
        raise HTTPException(404, f"Alert not found: {alert_id}")

    return {
        "message": f"Watch cancelled for {alert_id}",
        "alert": alert.to_dict(),
    }
