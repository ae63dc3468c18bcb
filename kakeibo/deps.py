from fastapi import HTTPException, Request

from .results import Result, ResultStatus
from .services.sync import SyncCoordinator

_HTTP_STATUS = {
    ResultStatus.VALIDATION_ERROR: 409,
    ResultStatus.NOT_FOUND: 404,
    ResultStatus.BUSY: 423,
    ResultStatus.STORAGE_ERROR: 500,
}


def get_coordinator(request: Request) -> SyncCoordinator:
    return request.app.state.coordinator


def raise_for_result(result: Result) -> None:
    """Turn a failed Result into the matching HTTPException."""
    if result.ok:
        return
    raise HTTPException(status_code=_HTTP_STATUS[result.status], detail=result.message)
