"""Service status and health endpoints."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from gasless_relay.api.v1.dependencies import RelayDep
from gasless_relay.core.settings import settings

router = APIRouter(tags=["system"])


@router.get("/")
async def root(relay: RelayDep) -> dict[str, object]:
    """Basic information about the relay and its queue."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "status": "running",
        "pendingVotes": len(relay.queue),
        "maxPendingVotes": relay.queue.capacity,
        "batchSize": relay.config.batch_size,
        "batchIntervalMs": relay.config.batch_interval_ms,
        "contractConnected": relay.client.enabled,
        "submitting": relay.queue.submitting,
        "stats": relay.stats.as_dict(),
        "contractMetrics": relay.client.get_metrics(),
    }


@router.get("/health")
async def health(relay: RelayDep) -> JSONResponse:
    """Healthy when the contract answers and the queue has room.

    Returns:
        200 when healthy, otherwise 503, with queue and connectivity details
    """
    connected = await relay.client.is_connected()
    healthy = connected and not relay.queue.is_full
    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "pendingVotes": len(relay.queue),
            "maxPendingVotes": relay.queue.capacity,
            "contractConnected": connected,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "stats": relay.stats.as_dict(),
        },
    )
