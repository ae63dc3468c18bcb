"""Database seeder: canonical default categories and display placeholders."""

import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from ..models import Category

logger = logging.getLogger(__name__)

# ─────────────────────────────────────────────────────────────────────────────
# Canonical default categories  (name, icon, color, sort_order)
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_CATEGORIES: list[tuple[str, str, str, int]] = [
    ("食費",   "fork.knife",          "green",  1),
    ("交通費", "car.fill",            "blue",   2),
    ("娯楽",   "gamecontroller.fill", "purple", 3),
    ("家賃",   "house.fill",          "orange", 4),
]

DEFAULT_CATEGORY_NAMES = [name for name, _, _, _ in DEFAULT_CATEGORIES]

# ─────────────────────────────────────────────────────────────────────────────
# Placeholders
#
# DELETED_*         shadow entries for ids referenced by transactions whose
#                   category is no longer active.
# UNKNOWN_*         last-resort lookup result for an id nobody knows about.
# IMPORT_FALLBACK_* persisted category for imported rows with no category.
# ─────────────────────────────────────────────────────────────────────────────

DELETED_CATEGORY_NAME = "削除済みカテゴリ"
DELETED_CATEGORY_ICON = "trash.circle"
DELETED_CATEGORY_COLOR = "gray"
DELETED_CATEGORY_SORT_ORDER = 999

UNKNOWN_CATEGORY_NAME = "不明なカテゴリ"
UNKNOWN_CATEGORY_ICON = "questionmark.circle"
UNKNOWN_CATEGORY_COLOR = "gray"

IMPORT_FALLBACK_NAME = "不明"
IMPORT_FALLBACK_ICON = "questionmark.circle"
IMPORT_FALLBACK_COLOR = "gray"
IMPORT_FALLBACK_SORT_ORDER = 999


def now_timestamp() -> str:
    """UTC timestamp in SQLite's datetime('now') format."""
    return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")


def new_default_category(name: str, icon: str, color: str, sort_order: int) -> Category:
    return Category(
        name=name,
        icon=icon,
        color=color,
        is_default=True,
        is_visible=True,
        is_active=True,
        sort_order=sort_order,
        created_at=now_timestamp(),
        type="expense",
    )


# ─────────────────────────────────────────────────────────────────────────────
# Public API
# ─────────────────────────────────────────────────────────────────────────────


def seed_default_categories(db: Session) -> int:
    """Insert canonical defaults missing among active rows (idempotent by name).

    Returns the number of rows inserted.
    """
    inserted = 0
    for name, icon, color, sort_order in DEFAULT_CATEGORIES:
        exists = (
            db.query(Category.id)
            .filter(Category.name == name, Category.is_active == True)  # noqa: E712
            .first()
        )
        if exists:
            continue
        db.add(new_default_category(name, icon, color, sort_order))
        inserted += 1
        logger.info("Seeded default category %r", name)
    return inserted


def refresh_default_settings(db: Session) -> None:
    """Re-apply canonical icon/color to active default rows.

    Visibility is left alone so a user's choice to hide a default survives
    upgrades; only rows whose visibility was never set get made visible.
    """
    for name, icon, color, _ in DEFAULT_CATEGORIES:
        db.query(Category).filter(
            Category.name == name, Category.is_active == True  # noqa: E712
        ).update(
            {"icon": icon, "color": color, "is_default": True},
            synchronize_session=False,
        )

    db.query(Category).filter(
        Category.is_default == True,  # noqa: E712
        Category.is_active == True,  # noqa: E712
        Category.is_visible == None,  # noqa: E711
    ).update({"is_visible": True}, synchronize_session=False)
