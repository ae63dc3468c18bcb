from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_coordinator, raise_for_result
from ..schemas import (
    BulkDeleteRequest,
    ImportResponse,
    ImportRow,
    TransactionCreate,
    TransactionSchema,
    TransactionUpdate,
)
from ..services.sync import SyncCoordinator

router = APIRouter(prefix="/transactions", tags=["transactions"])


@router.get("/", response_model=list[TransactionSchema], summary="List transactions, newest first")
async def list_transactions(
    category_id: Optional[int] = Query(default=None, description="Filter by category ID"),
    sync: SyncCoordinator = Depends(get_coordinator),
):
    if category_id is not None:
        return sync.transactions_for_category(category_id)
    return sync.transactions


@router.post("/", response_model=TransactionSchema, status_code=201, summary="Record a transaction")
async def create_transaction(
    payload: TransactionCreate, sync: SyncCoordinator = Depends(get_coordinator)
):
    result = await sync.add_transaction(payload)
    raise_for_result(result)
    return _cached_or_500(sync, result.value)


@router.post("/import", response_model=ImportResponse, status_code=201, summary="Bulk import parsed rows")
async def import_transactions(rows: list[ImportRow], sync: SyncCoordinator = Depends(get_coordinator)):
    result = await sync.import_transactions(rows)
    raise_for_result(result)
    return result.value


@router.post("/bulk-delete", summary="Delete several transactions")
async def delete_transactions(
    payload: BulkDeleteRequest, sync: SyncCoordinator = Depends(get_coordinator)
):
    result = await sync.delete_transactions(payload.ids)
    raise_for_result(result)
    return {"deleted": result.value}


@router.put("/{tx_id}", response_model=TransactionSchema, summary="Replace a transaction")
async def update_transaction(
    tx_id: int, payload: TransactionUpdate, sync: SyncCoordinator = Depends(get_coordinator)
):
    result = await sync.update_transaction(tx_id, payload)
    raise_for_result(result)
    return _cached_or_500(sync, tx_id)


@router.delete("/{tx_id}", status_code=204, summary="Delete a transaction")
async def delete_transaction(tx_id: int, sync: SyncCoordinator = Depends(get_coordinator)):
    raise_for_result(await sync.delete_transaction(tx_id))


def _cached_or_500(sync: SyncCoordinator, tx_id: int) -> TransactionSchema:
    for tx in sync.transactions:
        if tx.id == tx_id:
            return tx
    raise HTTPException(status_code=500, detail=sync.error_message or "Transaction cache is stale.")
