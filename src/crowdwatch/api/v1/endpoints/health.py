"""Health API endpoints."""

from enum import Enum
from typing import Any

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from crowdwatch.api.v1.deps import Monitor
from crowdwatch.infrastructure.blockchain import ManagerState
from crowdwatch.services.sale_monitor import SubscriptionState

router = APIRouter(prefix="/health", tags=["Health"])


class HealthStatus(str, Enum):
    """Overall watcher health."""

    HEALTHY = "healthy"
    DEGRADED = "degraded"


class ChainHealth(BaseModel):
    """Connection, subscription and notification state."""

    status: HealthStatus = Field(..., description="Overall status")
    contract_address: str = Field(..., description="Watched sale contract")
    connection: dict[str, Any] = Field(..., description="Connection manager counters")
    subscription: dict[str, Any] = Field(..., description="Event subscription counters")
    notifications: dict[str, Any] = Field(..., description="Dispatcher counters")


@router.get("", response_model=ChainHealth)
@router.get("/chain", response_model=ChainHealth)
async def get_chain_health(monitor: Monitor) -> ChainHealth:
    """Get chain connection health.

    Healthy only while a generation is open and the purchase event
    subscription is active on it.
    """
    healthy = (
        monitor.connection.state == ManagerState.OPEN
        and monitor.subscriber.state == SubscriptionState.SUBSCRIBED
    )
    return ChainHealth(
        status=HealthStatus.HEALTHY if healthy else HealthStatus.DEGRADED,
        contract_address=monitor.contract_address,
        **monitor.health(),
    )


@router.get("/live")
async def liveness_check() -> dict[str, Any]:
    """Liveness check endpoint.

    Returns:
        Simple alive status
    """
    return {"status": "alive"}


@router.get("/ready")
async def readiness_check(monitor: Monitor) -> dict[str, Any]:
    """Readiness check endpoint.

    Returns:
        Ready status, 503 while the chain connection is not open
    """
    if monitor.connection.state != ManagerState.OPEN:
        raise HTTPException(503, "Chain connection not open")

    return {
        "status": "ready",
        "generation": monitor.connection.generation,
    }
