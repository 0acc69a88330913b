"""
PawLenx Backend — Health Check Route
======================================

What:  Liveness endpoint for probes and uptime monitors.
How:   Reports the remote store's local circuit-breaker view. No network call
       is made, so a slow remote host never makes the probe itself time out.

Status levels:
    - ok:       remote store configured and its circuit is closed/half-open
    - degraded: remote store unconfigured or its circuit is open; logins and
                pet edits will fail, submissions still stage locally
"""

import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from pawlenx.dependencies import ServiceContainer, get_services
from pawlenx.schemas.common import HealthResponse

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    response_model_by_alias=True,
    summary="Service health check",
)
async def health_check(services: ServiceContainer = Depends(get_services)) -> HealthResponse:
    remote = services.store.health()
    status = "ok"
    if not remote.get("configured") or remote.get("circuit") == "open":
        status = "degraded"
        logger.debug("Health check degraded: %s", remote)

    return HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        remote_store=remote,
    )
