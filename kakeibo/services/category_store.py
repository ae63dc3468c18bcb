"""Category persistence: uniqueness among active rows, default protection,
logical deletion.

Each write method is one transaction and returns a Result; the store does not
serialize calls against each other (SyncCoordinator does).
"""

import logging
from typing import Iterable, Optional, Protocol

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..database import Database
from ..errors import RecordNotFound, ValidationError
from ..models import Category, Transaction
from ..results import Result
from ..schemas import CategoryCreate, CategorySchema, CategoryUpdate, TransactionType
from .seeder import (
    DEFAULT_CATEGORIES,
    DEFAULT_CATEGORY_NAMES,
    IMPORT_FALLBACK_COLOR,
    IMPORT_FALLBACK_ICON,
    IMPORT_FALLBACK_NAME,
    IMPORT_FALLBACK_SORT_ORDER,
    new_default_category,
    now_timestamp,
)

logger = logging.getLogger(__name__)


class SortOrdered(Protocol):
    id: int
    sort_order: int


def _to_schema(cat: Category) -> CategorySchema:
    return CategorySchema(
        id=cat.id,
        name=cat.name,
        icon=cat.icon or "tag.fill",
        color=cat.color or "gray",
        is_default=bool(cat.is_default),
        is_visible=cat.is_visible if cat.is_visible is not None else True,
        is_active=cat.is_active if cat.is_active is not None else True,
        sort_order=cat.sort_order or 0,
        created_at=cat.created_at or "",
        type=cat.type or TransactionType.EXPENSE,
    )


def _active_by_name(db: Session, name: str, exclude_id: Optional[int] = None) -> Optional[Category]:
    q = db.query(Category).filter(Category.name == name, Category.is_active == True)  # noqa: E712
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    return q.first()


def _purge_inactive(db: Session, name: str, exclude_id: Optional[int] = None) -> int:
    """Hard-delete inactive rows named ``name`` so the name can be reused."""
    q = db.query(Category).filter(Category.name == name, Category.is_active == False)  # noqa: E712
    if exclude_id is not None:
        q = q.filter(Category.id != exclude_id)
    purged = q.delete(synchronize_session=False)
    if purged:
        logger.info("Purged %d inactive category row(s) named %r", purged, name)
    return purged


def _usage_count(db: Session, category_id: int) -> int:
    return (
        db.query(func.count(Transaction.id))
        .filter(Transaction.category_id == category_id)
        .scalar()
        or 0
    )


class CategoryStore:
    def __init__(self, database: Database):
        self._db = database

    # ── Reads ────────────────────────────────────────────────────────────────

    def fetch_active(self) -> Result[list[CategorySchema]]:
        def work(db: Session) -> list[CategorySchema]:
            rows = (
                db.query(Category)
                .filter(Category.is_active == True)  # noqa: E712
                .order_by(Category.sort_order, Category.id)
                .all()
            )
            return [_to_schema(c) for c in rows]

        return self._db.run("fetch active categories", work)

    def fetch_visible(self) -> Result[list[CategorySchema]]:
        result = self.fetch_active()
        if not result.ok:
            return result
        return Result.success([c for c in result.value if c.is_visible])

    def get(self, category_id: int) -> Result[Optional[CategorySchema]]:
        """Any row by id, active or not."""
        def work(db: Session) -> Optional[CategorySchema]:
            cat = db.get(Category, category_id)
            return _to_schema(cat) if cat else None

        return self._db.run(f"get category {category_id}", work)

    def usage_count(self, category_id: int) -> Result[int]:
        return self._db.run(
            f"count usage of category {category_id}",
            lambda db: _usage_count(db, category_id),
        )

    # ── Writes ───────────────────────────────────────────────────────────────

    def get_or_create(self, name: str, icon: str, color: str, sort_order: int) -> Result[int]:
        """Id of the active category called ``name``, creating it if needed."""
        def work(db: Session) -> int:
            existing = _active_by_name(db, name)
            if existing:
                return existing.id
            cat = Category(
                name=name,
                icon=icon,
                color=color,
                is_default=False,
                is_visible=True,
                is_active=True,
                sort_order=sort_order,
                created_at=now_timestamp(),
                type=TransactionType.EXPENSE.value,
            )
            db.add(cat)
            db.flush()
            logger.info("Created category %r (id=%d)", name, cat.id)
            return cat.id

        return self._db.run(f"get-or-create category {name!r}", work)

    def ensure_unknown_category(self) -> Result[int]:
        return self.get_or_create(
            IMPORT_FALLBACK_NAME,
            IMPORT_FALLBACK_ICON,
            IMPORT_FALLBACK_COLOR,
            IMPORT_FALLBACK_SORT_ORDER,
        )

    def create_if_needed(self, names: Iterable[str], icon: str, color: str) -> Result[list[int]]:
        """Create every named category not already active, in one transaction.

        Sort orders continue after the current maximum. Blank names and
        repeats are skipped.
        """
        def work(db: Session) -> list[int]:
            sort_order = (db.query(func.coalesce(func.max(Category.sort_order), 0)).scalar() or 0) + 1
            created: list[int] = []
            seen: set[str] = set()
            for raw in names:
                name = raw.strip()
                if not name or name in seen:
                    continue
                seen.add(name)
                if _active_by_name(db, name):
                    continue
                _purge_inactive(db, name)
                cat = Category(
                    name=name,
                    icon=icon,
                    color=color,
                    is_default=False,
                    is_visible=True,
                    is_active=True,
                    sort_order=sort_order,
                    created_at=now_timestamp(),
                    type=TransactionType.EXPENSE.value,
                )
                db.add(cat)
                db.flush()
                created.append(cat.id)
                sort_order += 1
            return created

        return self._db.run("create missing categories", work)

    def insert(self, payload: CategoryCreate) -> Result[int]:
        def work(db: Session) -> int:
            if _active_by_name(db, payload.name):
                raise ValidationError(f"Category '{payload.name}' already exists.")
            _purge_inactive(db, payload.name)
            cat = Category(
                name=payload.name,
                icon=payload.icon,
                color=payload.color,
                is_default=payload.is_default,
                is_visible=payload.is_visible,
                is_active=True,
                sort_order=payload.sort_order,
                created_at=now_timestamp(),
                type=payload.type.value,
            )
            db.add(cat)
            db.flush()
            logger.info("Inserted category %r (id=%d)", cat.name, cat.id)
            return cat.id

        return self._db.run(f"insert category {payload.name!r}", work)

    def update(self, category_id: int, payload: CategoryUpdate) -> Result[int]:
        def work(db: Session) -> int:
            cat = (
                db.query(Category)
                .filter(Category.id == category_id, Category.is_active == True)  # noqa: E712
                .first()
            )
            if not cat:
                raise RecordNotFound(f"Category {category_id} not found.")
            if payload.name != cat.name:
                if _active_by_name(db, payload.name, exclude_id=category_id):
                    raise ValidationError(f"Category '{payload.name}' already exists.")
                _purge_inactive(db, payload.name, exclude_id=category_id)
            cat.name = payload.name
            cat.icon = payload.icon
            cat.color = payload.color
            cat.is_visible = payload.is_visible
            cat.sort_order = payload.sort_order
            cat.type = payload.type.value
            db.flush()
            return cat.id

        return self._db.run(f"update category {category_id}", work)

    def reorder(self, categories: Iterable[SortOrdered]) -> Result[None]:
        """Write ``sort_order`` for each id; nothing else changes."""
        def work(db: Session) -> None:
            for item in categories:
                db.query(Category).filter(
                    Category.id == item.id, Category.is_active == True  # noqa: E712
                ).update({"sort_order": item.sort_order}, synchronize_session=False)

        return self._db.run("reorder categories", work)

    def logical_delete(self, category_id: int) -> Result[None]:
        def work(db: Session) -> None:
            cat = db.get(Category, category_id)
            if cat is None or not cat.is_active:
                raise RecordNotFound(f"Category {category_id} not found.")
            if cat.is_default:
                raise ValidationError("Default categories cannot be deleted.")
            usage = _usage_count(db, category_id)
            if usage:
                logger.warning(
                    "Category %d is used by %d transaction(s); deactivating anyway",
                    category_id, usage,
                )
            cat.is_active = False

        return self._db.run(f"delete category {category_id}", work)

    def reset_defaults(self) -> Result[list[int]]:
        """Deactivate every default row and insert the canonical set with new ids.

        Transactions that pointed at the old defaults keep their ids and are
        resolved through the shadow cache from then on.
        """
        def work(db: Session) -> list[int]:
            deactivated = (
                db.query(Category)
                .filter(Category.is_default == True)  # noqa: E712
                .update({"is_active": False}, synchronize_session=False)
            )
            # A user category may have taken a canonical name after its default
            # was renamed; it would collide with the fresh default.
            clashing = (
                db.query(Category)
                .filter(
                    Category.name.in_(DEFAULT_CATEGORY_NAMES),
                    Category.is_active == True,  # noqa: E712
                )
                .update({"is_active": False}, synchronize_session=False)
            )
            if clashing:
                logger.warning("Deactivated %d user categor(ies) named like a default", clashing)
            ids: list[int] = []
            for name, icon, color, sort_order in DEFAULT_CATEGORIES:
                cat = new_default_category(name, icon, color, sort_order)
                db.add(cat)
                db.flush()
                ids.append(cat.id)
            logger.info("Reset default categories (%d deactivated)", deactivated)
            return ids

        return self._db.run("reset default categories", work)
