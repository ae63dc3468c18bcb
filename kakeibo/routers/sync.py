from fastapi import APIRouter, Depends

from ..deps import get_coordinator, raise_for_result
from ..schemas import SyncStatus
from ..services.sync import SyncCoordinator

router = APIRouter(prefix="/sync", tags=["sync"])


@router.get("/status", response_model=SyncStatus)
async def sync_status(sync: SyncCoordinator = Depends(get_coordinator)):
    return sync.status()


@router.post("/refresh", response_model=SyncStatus, summary="Re-read every cache from the database")
async def refresh(sync: SyncCoordinator = Depends(get_coordinator)):
    raise_for_result(await sync.refresh_all())
    return sync.status()


@router.delete("/error", status_code=204, summary="Dismiss the last error message")
async def clear_error(sync: SyncCoordinator = Depends(get_coordinator)):
    sync.clear_error()
