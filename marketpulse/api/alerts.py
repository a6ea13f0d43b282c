"""Alerts API endpoints: alert history, resolution and rule configuration."""

from datetime import datetime
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from marketpulse.alerts.models import Alert, AlertFilters, AlertRule, ConditionKind, Severity
from marketpulse.api.deps import get_core
from marketpulse.clock import ensure_utc
from marketpulse.core import MonitoringCore
from marketpulse.errors import AlertAlreadyResolvedError, AlertNotFoundError

# Request/Response schemas


class AlertResponse(BaseModel):
    """Response model for a single alert."""

    id: int
    type: str
    severity: str
    message: str
    details: dict[str, Any]
    created_at: datetime | None
    resolved: bool
    resolved_by: str | None
    resolved_at: datetime | None


class ResolveRequest(BaseModel):
    resolved_by: str = Field(..., min_length=1, description="Who resolved the alert")


class RuleRequest(BaseModel):
    """Request model for creating a rule."""

    name: str = Field(..., min_length=1)
    condition: ConditionKind
    threshold: float
    time_window: int = Field(..., gt=0, description="Trailing window in minutes")
    severity: Severity
    channels: list[str] = []
    is_active: bool = True


class RuleUpdateRequest(BaseModel):
    """Request model for a partial rule update."""

    name: str | None = None
    condition: ConditionKind | None = None
    threshold: float | None = None
    time_window: int | None = Field(default=None, gt=0)
    severity: Severity | None = None
    channels: list[str] | None = None
    is_active: bool | None = None


class RuleResponse(BaseModel):
    id: int
    name: str
    condition: str
    threshold: float
    time_window: int
    severity: str
    channels: list[str]
    is_active: bool


# Router
router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def _alert_to_response(alert: Alert) -> AlertResponse:
    return AlertResponse(
        id=alert.id,
        type=alert.type,
        severity=alert.severity.value,
        message=alert.message,
        details=alert.details,
        created_at=alert.created_at,
        resolved=alert.resolved,
        resolved_by=alert.resolved_by,
        resolved_at=alert.resolved_at,
    )


def _rule_to_response(rule: AlertRule) -> RuleResponse:
    return RuleResponse(**rule.snapshot())


@router.get("", response_model=list[AlertResponse])
async def list_alerts(
    severity: Severity | None = Query(default=None),
    type: str | None = Query(default=None),
    resolved: bool | None = Query(default=None),
    start: datetime | None = Query(default=None),
    end: datetime | None = Query(default=None),
    offset: int = Query(default=0, ge=0),
    limit: int = Query(default=100, ge=1, le=500),
    core: MonitoringCore = Depends(get_core),
) -> list[AlertResponse]:
    """List alerts, newest first.

    Args:
        severity: Filter by severity (low, medium, high, critical)
        type: Filter by alert type (a rule name, ANOMALY_DETECTED, ...)
        resolved: Filter by resolution state
        start: Only alerts created at or after this time
        end: Only alerts created at or before this time
        offset: Number of records to skip
        limit: Maximum number of records to return
    """
    filters = AlertFilters(
        severity=severity,
        type=type,
        resolved=resolved,
        start=ensure_utc(start) if start else None,
        end=ensure_utc(end) if end else None,
        limit=limit,
        offset=offset,
    )
    alerts = await core.get_alerts(filters)
    return [_alert_to_response(a) for a in alerts]


@router.post("/{alert_id}/resolve", response_model=AlertResponse)
async def resolve_alert(
    alert_id: int,
    request: ResolveRequest,
    core: MonitoringCore = Depends(get_core),
) -> AlertResponse:
    """Resolve an alert.

    Raises:
        HTTPException: 404 if the alert does not exist
        HTTPException: 409 if the alert is already resolved
    """
    try:
        alert = await core.resolve_alert(alert_id, request.resolved_by)
    except AlertNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except AlertAlreadyResolvedError as e:
        raise HTTPException(status_code=409, detail=str(e)) from e
    return _alert_to_response(alert)


@router.get("/rules", response_model=list[RuleResponse])
async def list_rules(core: MonitoringCore = Depends(get_core)) -> list[RuleResponse]:
    rules = await core.list_rules()
    return [_rule_to_response(r) for r in rules]


@router.post("/rules", response_model=RuleResponse, status_code=201)
async def create_rule(
    request: RuleRequest,
    core: MonitoringCore = Depends(get_core),
) -> RuleResponse:
    rule = await core.create_rule(**request.model_dump())
    return _rule_to_response(rule)


@router.get("/rules/{rule_id}", response_model=RuleResponse)
async def get_rule(rule_id: int, core: MonitoringCore = Depends(get_core)) -> RuleResponse:
    rule = await core.get_rule(rule_id)
    if rule is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    return _rule_to_response(rule)


@router.patch("/rules/{rule_id}", response_model=RuleResponse)
async def update_rule(
    rule_id: int,
    request: RuleUpdateRequest,
    core: MonitoringCore = Depends(get_core),
) -> RuleResponse:
    """Apply a partial update; the updated rule is validated as a whole.

    Raises:
        HTTPException: 404 if the rule does not exist
    """
    if await core.get_rule(rule_id) is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    rule = await core.update_rule(rule_id, **request.model_dump(exclude_unset=True))
    return _rule_to_response(rule)


@router.delete("/rules/{rule_id}", status_code=204)
async def delete_rule(rule_id: int, core: MonitoringCore = Depends(get_core)) -> None:
    if await core.get_rule(rule_id) is None:
        raise HTTPException(status_code=404, detail="Rule not found")
    await core.delete_rule(rule_id)
