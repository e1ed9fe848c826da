"""Operator endpoints for the origin trust synchronizer.

Mount on an internal listener only; they carry no end-user authentication.
"""

from typing import Annotated

from fastapi import APIRouter, Depends

from harborlist.trust.models import SyncReport, SyncStatusResponse
from harborlist.trust.routes.deps import get_synchronizer
from harborlist.trust.sync import OriginTrustSynchronizer

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatusResponse)
async def sync_status(
    synchronizer: Annotated[OriginTrustSynchronizer, Depends(get_synchronizer)],
) -> SyncStatusResponse:
    """Committed ranges, secret version and failure streak."""
    return await synchronizer.describe()


@router.post("/run", response_model=SyncReport)
async def run_sync(
    synchronizer: Annotated[OriginTrustSynchronizer, Depends(get_synchronizer)],
) -> SyncReport:
    """Run one synchronizer tick now. Waits out the grace period when ranges change."""
    return await synchronizer.run_once()


@router.post("/rotate-secret", response_model=SyncReport)
async def rotate_secret(
    synchronizer: Annotated[OriginTrustSynchronizer, Depends(get_synchronizer)],
) -> SyncReport:
    """Rotate the edge secret. The new value is never returned."""
    return await synchronizer.rotate_secret()
