"""
Health check endpoint.
"""

from typing import Any, Dict

from fastapi import APIRouter, Depends

from ...webhooks.models import utc_now_iso
from ..dependencies import RelayServices, get_services

router = APIRouter()


@router.get("/health")
async def health_check(services: RelayServices = Depends(get_services)) -> Dict[str, Any]:
    """Liveness, database reachability and delivery counters."""
    database_healthy = await services.db_manager.health_check()

    return {
        "status": "healthy" if database_healthy else "degraded",
        "version": services.settings.app_version,
        "timestamp": utc_now_iso(),
        "components": {
            "database": {"status": "healthy" if database_healthy else "unhealthy"},
            "notifier": {"pending_notifications": services.notifier.pending_notifications},
            "status_poller": {
                "enabled": services.poller is not None,
                "tracked_jobs": len(services.poller.tracked) if services.poller else 0
            }
        },
        "metrics": services.metrics.snapshot()
    }
