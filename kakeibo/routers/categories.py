from fastapi import APIRouter, Depends, HTTPException, Query

from ..deps import get_coordinator, raise_for_result
from ..schemas import (
    CategoryCreate,
    CategoryInfo,
    CategoryOrderItem,
    CategorySchema,
    CategoryUpdate,
    DeletedCategoryUsage,
)
from ..services.sync import SyncCoordinator

router = APIRouter(prefix="/categories", tags=["categories"])


@router.get("/", response_model=list[CategorySchema], summary="List active categories")
async def list_categories(
    visible: bool = Query(default=False, description="Only categories shown in pickers"),
    sync: SyncCoordinator = Depends(get_coordinator),
):
    return sync.visible_categories() if visible else sync.full_categories


@router.get(
    "/all",
    response_model=list[CategorySchema],
    summary="Active categories plus placeholders for deleted ones still in use",
)
async def list_all_categories(sync: SyncCoordinator = Depends(get_coordinator)):
    return sync.all_categories_including_deleted()


@router.get("/deleted-usage", response_model=list[DeletedCategoryUsage])
async def deleted_category_usage(sync: SyncCoordinator = Depends(get_coordinator)):
    return sync.deleted_category_usage()


@router.get("/{cat_id}/info", response_model=CategoryInfo, summary="Display info for any category id")
async def category_info(cat_id: int, sync: SyncCoordinator = Depends(get_coordinator)):
    return sync.category_info(cat_id)


@router.post("/", response_model=CategorySchema, status_code=201, summary="Create a category")
async def create_category(payload: CategoryCreate, sync: SyncCoordinator = Depends(get_coordinator)):
    result = await sync.add_category(payload)
    raise_for_result(result)
    return _cached_or_500(sync, result.value)


@router.put("/order", response_model=list[CategorySchema], summary="Reorder categories")
async def reorder_categories(
    order: list[CategoryOrderItem], sync: SyncCoordinator = Depends(get_coordinator)
):
    raise_for_result(await sync.reorder_categories(order))
    return sync.full_categories


@router.post("/reset", response_model=list[CategorySchema], summary="Restore the default categories")
async def reset_default_categories(sync: SyncCoordinator = Depends(get_coordinator)):
    raise_for_result(await sync.reset_default_categories())
    return sync.full_categories


@router.put("/{cat_id}", response_model=CategorySchema, summary="Update a category")
async def update_category(
    cat_id: int, payload: CategoryUpdate, sync: SyncCoordinator = Depends(get_coordinator)
):
    result = await sync.update_category(cat_id, payload)
    raise_for_result(result)
    return _cached_or_500(sync, result.value)


@router.delete("/{cat_id}", status_code=204, summary="Deactivate a category")
async def delete_category(cat_id: int, sync: SyncCoordinator = Depends(get_coordinator)):
    raise_for_result(await sync.delete_category(cat_id))


def _cached_or_500(sync: SyncCoordinator, cat_id: int) -> CategorySchema:
    cat = sync.get_category(cat_id)
    if cat is None:
        raise HTTPException(status_code=500, detail=sync.error_message or "Category cache is stale.")
    return cat
