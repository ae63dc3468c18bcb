"""Shadow entries for category ids that transactions still reference but that
are no longer active.

Derived purely from the two id sets; never stored.
"""

from typing import Iterable

from ..schemas import CategorySchema, TransactionType
from .seeder import (
    DELETED_CATEGORY_COLOR,
    DELETED_CATEGORY_ICON,
    DELETED_CATEGORY_NAME,
    DELETED_CATEGORY_SORT_ORDER,
)


def orphaned_ids(active_ids: Iterable[int], used_ids: Iterable[int | None]) -> set[int]:
    """Referenced ids minus active ids. ``None`` references are ignored."""
    return {i for i in used_ids if i is not None} - set(active_ids)


def shadow_entry(category_id: int) -> CategorySchema:
    return CategorySchema(
        id=category_id,
        name=DELETED_CATEGORY_NAME,
        icon=DELETED_CATEGORY_ICON,
        color=DELETED_CATEGORY_COLOR,
        is_default=False,
        is_visible=False,
        is_active=False,
        sort_order=DELETED_CATEGORY_SORT_ORDER,
        type=TransactionType.EXPENSE,
    )


def build_shadow_entries(
    active_ids: Iterable[int], used_ids: Iterable[int | None]
) -> dict[int, CategorySchema]:
    return {i: shadow_entry(i) for i in sorted(orphaned_ids(active_ids, used_ids))}
