"""System health endpoint: metadata connection state and pool sizes."""

import time

from fastapi import APIRouter
from pydantic import BaseModel

from app.api.deps import Db, SettingsDep
from app.core.database import ManagedConnection
from app.models.instance import Plan
from app.services.pools import pool_for_plan

router = APIRouter(prefix="/system", tags=["system"])


class ServiceHealth(BaseModel):
    status: str  # "ok" or "error"
    detail: str | None = None
    latency_ms: int | None = None


class HealthResponse(BaseModel):
    status: str
    metadata: ServiceHealth
    reconnects: int
    pools: dict[str, int]


@router.get("/health", response_model=HealthResponse)
async def system_health(db: Db, settings: SettingsDep) -> HealthResponse:
    meta = await _check_metadata(db)
    pools = {str(plan): len(pool_for_plan(plan, settings)) for plan in Plan}
    return HealthResponse(
        status="ok" if meta.status == "ok" else "degraded",
        metadata=meta,
        reconnects=db.reconnect_count,
        pools=pools,
    )


async def _check_metadata(db: ManagedConnection) -> ServiceHealth:
    if not db.connected:
        return ServiceHealth(status="error", detail="Not connected")
    try:
        t0 = time.monotonic()
        res = await db.query("SELECT * FROM instances WHERE id=\"\";")
        latency = int((time.monotonic() - t0) * 1000)
    except Exception as exc:
        return ServiceHealth(status="error", detail=str(exc)[:200])
    if not res.ok:
        return ServiceHealth(status="error", detail=res.error, latency_ms=latency)
    return ServiceHealth(status="ok", latency_ms=latency)
