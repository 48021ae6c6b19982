"""API routes for endpoint management, live status and history.

Endpoints:
  GET    /api/status                       — runtime status of every endpoint
  GET    /api/health                       — overall health (503 if any unhealthy)
  GET    /api/endpoints                    — stored definitions
  POST   /api/endpoints                    — add an endpoint
  POST   /api/endpoints/reload             — reload definitions (resets counters)
  PATCH  /api/endpoints/{id}               — update interval / timeout / thresholds
  DELETE /api/endpoints/{id}               — remove an endpoint
  POST   /api/endpoints/{id}/enable        — resume checks
  POST   /api/endpoints/{id}/disable       — pause checks
  POST   /api/endpoints/{id}/suppress      — mute alerts
  POST   /api/endpoints/{id}/unsuppress    — unmute alerts
  POST   /api/endpoints/{id}/check         — run a check now
  GET    /api/history/{id}?limit=N         — outcome records, most recent first
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from sitewatch.endpoints.models import EndpointDefinition, parse_duration
from sitewatch.endpoints.registry import EndpointRegistry
from sitewatch.errors import (
    ConflictError,
    NotFoundError,
    SiteWatchError,
    StorageError,
    ValidationError,
)
from sitewatch.health.state import Status
from sitewatch.storage.history import HistoryStore

logger = logging.getLogger(__name__)

api_router = APIRouter()

DEFAULT_HISTORY_LIMIT = 1000


# ── Request models ───────────────────────────────────────────────────────────


class EndpointRequest(BaseModel):
    name: str = ""
    url: str = ""
    method: str = "GET"
    timeout: str | float | None = None
    check_interval: str | float | None = None
    expected_status: int | None = None
    headers: dict[str, str] = Field(default_factory=dict)
    failure_threshold: int | None = None
    success_threshold: int | None = None


class SettingsUpdate(BaseModel):
    check_interval: str | float | None = None
    timeout: str | float | None = None
    failure_threshold: int | None = None
    success_threshold: int | None = None


# ── Read-only accessors ──────────────────────────────────────────────────────


def status_report(registry: EndpointRegistry) -> list[dict[str, Any]]:
    """Per-endpoint status rows, sorted by name."""
    rows = []
    for defn, snap in registry.snapshots():
        rows.append({
            "id": defn.id,
            "name": defn.name,
            "url": defn.url,
            "method": defn.method,
            "status": snap.status.value,
            "last_check": snap.last_check.isoformat() if snap.last_check else None,
            "last_error": snap.last_error,
            "response_time_ms": round(snap.response_time * 1000, 3),
            "consecutive_failures": snap.consecutive_failures,
            "consecutive_successes": snap.consecutive_successes,
            "enabled": snap.enabled,
            "alerts_suppressed": snap.alerts_suppressed,
        })
    rows.sort(key=lambda r: r["name"].lower())
    return rows


def history_report(history: HistoryStore, endpoint_id: str, limit: int = 0) -> dict[str, Any]:
    """Records (most recent first) plus the mean of non-zero response times."""
    records = history.query(endpoint_id, limit)
    return {
        "endpoint_id": endpoint_id,
        "records": [r.to_dict() for r in records],
        "avg_response_time_ms": history.average_response_time_ms(records),
        "record_count": len(records),
    }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _http_error(exc: SiteWatchError) -> HTTPException:
    if isinstance(exc, NotFoundError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=409, detail=str(exc))
    if isinstance(exc, ValidationError):
        return HTTPException(status_code=400, detail=str(exc))
    if isinstance(exc, StorageError):
        logger.error("Storage error: %s", exc)
    return HTTPException(status_code=500, detail=str(exc))


def _duration(value: str | float | None) -> float | None:
    if value in (None, ""):
        return None
    return parse_duration(value)


# ── Status endpoints ─────────────────────────────────────────────────────────


@api_router.get("/status")
def get_status(request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    return {"endpoints": status_report(registry), "timestamp": _now()}


@api_router.get("/health")
def get_health(request: Request) -> JSONResponse:
    """200 when no endpoint is unhealthy, 503 otherwise."""
    registry: EndpointRegistry = request.app.state.registry
    unhealthy = [snap.id for _, snap in registry.snapshots() if snap.status == Status.UNHEALTHY]
    healthy = not unhealthy
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "unhealthy": unhealthy,
            "timestamp": _now(),
        },
    )


@api_router.get("/history/{endpoint_id}")
def get_history(
    endpoint_id: str, request: Request, limit: int = DEFAULT_HISTORY_LIMIT,
) -> dict[str, Any]:
    history: HistoryStore = request.app.state.history
    report = history_report(history, endpoint_id, limit)
    report["timestamp"] = _now()
    return report


# ── Endpoint management ──────────────────────────────────────────────────────


@api_router.get("/endpoints")
def list_endpoints(request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    try:
        definitions = registry.store.all()
    except StorageError as e:
        raise _http_error(e) from e
    return {"endpoints": [d.to_dict() for d in definitions], "timestamp": _now()}


@api_router.post("/endpoints")
def add_endpoint(body: EndpointRequest, request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    try:
        defn = EndpointDefinition.from_dict(body.model_dump(exclude_none=True))
        stored = registry.add(defn)
    except SiteWatchError as e:
        raise _http_error(e) from e
    return {"success": True, "endpoint": stored.to_dict()}


@api_router.post("/endpoints/reload")
def reload_endpoints(request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    try:
        states = registry.reload()
    except SiteWatchError as e:
        raise _http_error(e) from e
    return {"success": True, "count": len(states)}


@api_router.patch("/endpoints/{endpoint_id}")
def update_endpoint(endpoint_id: str, body: SettingsUpdate, request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    try:
        stored = registry.update_settings(
            endpoint_id,
            check_interval=_duration(body.check_interval),
            timeout=_duration(body.timeout),
            failure_threshold=body.failure_threshold,
            success_threshold=body.success_threshold,
        )
    except SiteWatchError as e:
        raise _http_error(e) from e
    return {"success": True, "endpoint": stored.to_dict()}


@api_router.delete("/endpoints/{endpoint_id}")
def delete_endpoint(endpoint_id: str, request: Request) -> dict[str, Any]:
    registry: EndpointRegistry = request.app.state.registry
    try:
        registry.remove(endpoint_id)
    except SiteWatchError as e:
        raise _http_error(e) from e
    return {"success": True, "message": "Endpoint deleted"}


_ACTIONS = {
    "enable": ("set_enabled", True, "enabled"),
    "disable": ("set_enabled", False, "disabled"),
    "suppress": ("set_alerts_suppressed", True, "alerts suppressed"),
    "unsuppress": ("set_alerts_suppressed", False, "alerts enabled"),
}


@api_router.post("/endpoints/{endpoint_id}/check")
async def trigger_check(endpoint_id: str, request: Request) -> dict[str, Any]:
    """Run one check immediately and return the recorded outcome."""
    scheduler = request.app.state.scheduler
    try:
        record = await scheduler.run_endpoint_now(endpoint_id)
    except SiteWatchError as e:
        raise _http_error(e) from e
    if record is None:
        raise HTTPException(status_code=409, detail="A check is already running for this endpoint")
    return {"endpoint_id": endpoint_id, "result": record.to_dict()}


@api_router.post("/endpoints/{endpoint_id}/{action}")
def endpoint_action(endpoint_id: str, action: str, request: Request) -> dict[str, Any]:
    if action not in _ACTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown action: {action}")
    method, flag, label = _ACTIONS[action]
    registry: EndpointRegistry = request.app.state.registry
    try:
        getattr(registry, method)(endpoint_id, flag)
    except SiteWatchError as e:
        raise _http_error(e) from e
    return {"success": True, "message": f"Endpoint {label}"}
