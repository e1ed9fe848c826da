"""Health check endpoints."""

from typing import Any

from fastapi import APIRouter, Depends

from harborlist.trust import __version__
from harborlist.trust.models import HealthResponse
from harborlist.trust.routes.deps import get_authorizer, get_synchronizer

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(authorizer=Depends(get_authorizer)) -> HealthResponse:
    """Liveness check - is the service running?"""
    loaded = len(authorizer.registry) > 0
    return HealthResponse(
        status="healthy" if loaded else "unhealthy",
        version=__version__,
        domains_loaded=loaded,
        details={
            "domains": [d.value for d in authorizer.registry.domain_ids],
        },
    )


@router.get("/ready", response_model=HealthResponse)
async def readiness_check(
    authorizer=Depends(get_authorizer),
    synchronizer=Depends(get_synchronizer),
) -> HealthResponse:
    """Readiness check - domains loaded and trust state committed."""
    loaded = len(authorizer.registry) > 0
    state = await synchronizer.describe()

    details: dict[str, Any] = {
        "domains": [d.value for d in authorizer.registry.domain_ids],
        "ranges_version": state.ranges.version if state.ranges else 0,
        "secret_version": state.secret_version,
        "sync_stalled": state.stalled,
    }

    # Add cache stats if available
    if authorizer.cache is not None:
        details["cache"] = authorizer.cache.stats

    is_ready = loaded and state.ranges is not None and state.secret_version > 0
    return HealthResponse(
        status="healthy" if is_ready else "unhealthy",
        version=__version__,
        domains_loaded=loaded,
        details=details,
    )
