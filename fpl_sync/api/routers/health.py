"""Health check endpoint."""

from datetime import datetime, timezone

from fastapi import APIRouter

from fpl_sync import __version__
from fpl_sync.api.deps import ContainerDep
from fpl_sync.api.schemas import HealthResponse

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health_check(container: ContainerDep):
    """Check store and cache connectivity.

    The cache is best-effort, so only a store failure marks the service down;
    a cache failure reports "degraded".
    """
    checks = await container.check_health()
    if not checks["store"]:
        status = "down"
    elif not checks["cache"]:
        status = "degraded"
    else:
        status = "ok"

    return HealthResponse(
        status=status,
        version=__version__,
        timestamp=datetime.now(timezone.utc).isoformat(),
        season=container.settings.season,
        checks=checks,
    )
