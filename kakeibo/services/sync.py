"""SyncCoordinator: the in-memory ledger the UI reads, and the single point
through which every write reaches the stores.

Commands are rejected (not queued) while another one is in flight. Store calls
run on a worker thread; the caches are only ever written back on the event
loop, after the call returns, so they have a single writer.

Failure handling per command:

  optimistic delete, reorder   undo the edit from the pre-edit snapshot
  bulk delete                  re-read the caches; part of the batch may be gone
  anything else                caches untouched (the store rolled back)
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from ..errors import BusyError
from ..results import Result, ResultStatus
from ..schemas import (
    CategoryCreate,
    CategoryInfo,
    CategoryOrderItem,
    CategoryRef,
    CategorySchema,
    CategoryUpdate,
    DeletedCategoryUsage,
    ImportResponse,
    ImportRow,
    SyncStatus,
    TransactionCreate,
    TransactionSchema,
    TransactionType,
    TransactionUpdate,
)
from .category_store import CategoryStore
from .seeder import UNKNOWN_CATEGORY_COLOR, UNKNOWN_CATEGORY_ICON, UNKNOWN_CATEGORY_NAME
from .shadow import build_shadow_entries
from .transaction_store import TransactionStore

logger = logging.getLogger(__name__)

BUSY_MESSAGE = "データ処理中です。しばらくお待ちください。"
DEFAULT_CATEGORY_DELETE_MESSAGE = "デフォルトカテゴリは削除できません。"

IMPORTED_CATEGORY_ICON = "tag.fill"
IMPORTED_CATEGORY_COLOR = "gray"

# What to do with the caches when the store call fails
REVERT = "revert"
RELOAD = "reload"


@dataclass(frozen=True)
class _Snapshot:
    categories: list[CategoryRef] = field(default_factory=list)
    full_categories: list[CategorySchema] = field(default_factory=list)
    transactions: list[TransactionSchema] = field(default_factory=list)


class SyncCoordinator:
    def __init__(self, category_store: CategoryStore, transaction_store: TransactionStore):
        self._category_store = category_store
        self._transaction_store = transaction_store
        self._lock = asyncio.Lock()

        self.categories: list[CategoryRef] = []
        self.full_categories: list[CategorySchema] = []
        self.transactions: list[TransactionSchema] = []
        self.error_message: Optional[str] = None

        self._active_by_id: dict[int, CategorySchema] = {}
        self._shadow: dict[int, CategorySchema] = {}

    @property
    def is_operating(self) -> bool:
        return self._lock.locked()

    # ── Cache plumbing ───────────────────────────────────────────────────────

    def _snapshot(self) -> _Snapshot:
        return _Snapshot(self.categories, self.full_categories, self.transactions)

    def _restore(self, snap: _Snapshot) -> None:
        self._set_categories(snap.full_categories)
        self.categories = snap.categories
        self.transactions = snap.transactions
        self._rebuild_shadow()

    def _set_categories(self, full: list[CategorySchema]) -> None:
        self.full_categories = full
        self.categories = [CategoryRef(id=c.id, name=c.name) for c in full]
        self._active_by_id = {c.id: c for c in full}

    def _rebuild_shadow(self) -> None:
        self._shadow = build_shadow_entries(
            self._active_by_id.keys(),
            (tx.category_id for tx in self.transactions),
        )

    async def _reload(self, categories: bool = True, transactions: bool = True) -> Result[None]:
        if categories:
            fetched = await asyncio.to_thread(self._category_store.fetch_active)
            if not fetched.ok:
                return fetched
            self._set_categories(fetched.value)
        if transactions:
            fetched = await asyncio.to_thread(self._transaction_store.fetch_all)
            if not fetched.ok:
                return fetched
            self.transactions = fetched.value
        self._rebuild_shadow()
        return Result.success()

    def load_initial(self) -> Result[None]:
        """Synchronous first load, before the event loop serves commands."""
        cats = self._category_store.fetch_active()
        if not cats.ok:
            self.error_message = cats.message
            return cats
        txs = self._transaction_store.fetch_all()
        if not txs.ok:
            self.error_message = txs.message
            return txs
        self._set_categories(cats.value)
        self.transactions = txs.value
        self._rebuild_shadow()
        logger.info(
            "Initial load: %d categories, %d transactions",
            len(self.full_categories), len(self.transactions),
        )
        return Result.success()

    async def _operate(
        self,
        action: str,
        call: Optional[Callable[[], Result]] = None,
        *,
        precheck: Optional[Callable[[], Optional[Result]]] = None,
        optimistic: Optional[Callable[[], None]] = None,
        on_failure: Optional[str] = None,
        reload_categories: bool = True,
        reload_transactions: bool = True,
    ) -> Result:
        if self._lock.locked():
            logger.info("%s rejected: another operation is in flight", action)
            self.error_message = BUSY_MESSAGE
            return Result.from_exception(BusyError(BUSY_MESSAGE))

        async with self._lock:
            if precheck is not None:
                refused = precheck()
                if refused is not None:
                    self.error_message = refused.message
                    logger.info("%s refused: %s", action, refused.message)
                    return refused

            before = self._snapshot()
            if optimistic is not None:
                optimistic()

            result: Result = Result.success()
            if call is not None:
                result = await asyncio.to_thread(call)

            if not result.ok:
                if on_failure == REVERT and result.status is not ResultStatus.NOT_FOUND:
                    self._restore(before)
                elif on_failure is not None:
                    reloaded = await self._reload()
                    if not reloaded.ok:
                        self._restore(before)
                self.error_message = result.message
                logger.warning("%s failed: %s", action, result.message)
                return result

            reloaded = await self._reload(reload_categories, reload_transactions)
            if not reloaded.ok:
                self.error_message = reloaded.message
                logger.error("%s succeeded but the cache could not be refreshed", action)
                # refresh-only commands report the failed reload
                return result if call is not None else reloaded

            self.error_message = None
            logger.debug("%s done", action)
            return result

    # ── Category commands ────────────────────────────────────────────────────

    async def add_category(self, payload: CategoryCreate) -> Result[int]:
        return await self._operate(
            f"add category {payload.name!r}",
            lambda: self._category_store.insert(payload),
        )

    async def update_category(self, category_id: int, payload: CategoryUpdate) -> Result[int]:
        return await self._operate(
            f"update category {category_id}",
            lambda: self._category_store.update(category_id, payload),
        )

    async def reorder_categories(self, order: Sequence[CategoryOrderItem]) -> Result[None]:
        """Apply the new order to the caches at once, then persist it."""
        positions = {item.id: item.sort_order for item in order}

        def apply() -> None:
            reordered = [
                c.model_copy(update={"sort_order": positions[c.id]}) if c.id in positions else c
                for c in self.full_categories
            ]
            reordered.sort(key=lambda c: (c.sort_order, c.id))
            self._set_categories(reordered)

        return await self._operate(
            "reorder categories",
            lambda: self._category_store.reorder(order),
            optimistic=apply,
            on_failure=REVERT,
        )

    async def delete_category(self, category_id: int) -> Result[None]:
        def refuse_default() -> Optional[Result]:
            cached = self._active_by_id.get(category_id)
            if cached is not None and cached.is_default:
                return Result.invalid(DEFAULT_CATEGORY_DELETE_MESSAGE)
            return None

        return await self._operate(
            f"delete category {category_id}",
            lambda: self._category_store.logical_delete(category_id),
            precheck=refuse_default,
        )

    async def reset_default_categories(self) -> Result[list[int]]:
        return await self._operate(
            "reset default categories",
            self._category_store.reset_defaults,
        )

    async def fetch_categories(self) -> Result[None]:
        return await self._operate("fetch categories", reload_transactions=False)

    # ── Transaction commands ─────────────────────────────────────────────────

    async def add_transaction(self, payload: TransactionCreate) -> Result[int]:
        return await self._operate(
            "add transaction",
            lambda: self._transaction_store.insert(payload),
        )

    async def update_transaction(self, tx_id: int, payload: TransactionUpdate) -> Result[int]:
        return await self._operate(
            f"update transaction {tx_id}",
            lambda: self._transaction_store.update(tx_id, payload),
        )

    async def delete_transaction(self, tx_id: int) -> Result[None]:
        def remove() -> None:
            self.transactions = [tx for tx in self.transactions if tx.id != tx_id]

        return await self._operate(
            f"delete transaction {tx_id}",
            lambda: self._transaction_store.delete(tx_id),
            optimistic=remove,
            on_failure=REVERT,
        )

    async def delete_transactions(self, ids: Sequence[int]) -> Result[int]:
        """Delete each id in turn; stops at the first failure.

        Not atomic as a group: rows deleted before the failure stay deleted.
        """
        targets = list(dict.fromkeys(ids))
        doomed = set(targets)

        def remove() -> None:
            self.transactions = [tx for tx in self.transactions if tx.id not in doomed]

        def delete_all() -> Result[int]:
            for n, tx_id in enumerate(targets):
                result = self._transaction_store.delete(tx_id)
                if not result.ok:
                    return Result(result.status, n, result.message)
            return Result.success(len(targets))

        return await self._operate(
            f"delete {len(targets)} transactions",
            delete_all,
            optimistic=remove,
            on_failure=RELOAD,
        )

    async def import_transactions(self, rows: Sequence[ImportRow]) -> Result[ImportResponse]:
        """Resolve category names (creating missing ones) and insert all rows atomically.

        Rows with a blank category name land in the import fallback category.
        Categories created for the import stay even if the insert fails.
        """
        def run() -> Result[ImportResponse]:
            names = [r.category_name.strip() for r in rows]
            created = self._category_store.create_if_needed(
                [n for n in names if n], IMPORTED_CATEGORY_ICON, IMPORTED_CATEGORY_COLOR
            )
            if not created.ok:
                return created

            fallback_id: Optional[int] = None
            if any(not n for n in names):
                fallback = self._category_store.ensure_unknown_category()
                if not fallback.ok:
                    return fallback
                fallback_id = fallback.value

            active = self._category_store.fetch_active()
            if not active.ok:
                return active
            ids_by_name = {c.name: c.id for c in active.value}

            payloads = [
                TransactionCreate(
                    amount=row.amount,
                    type=row.type,
                    date=row.date,
                    note=row.note,
                    category_id=ids_by_name.get(name, fallback_id) if name else fallback_id,
                )
                for row, name in zip(rows, names)
            ]
            inserted = self._transaction_store.insert_many(payloads)
            if not inserted.ok:
                return inserted
            return Result.success(
                ImportResponse(imported=len(inserted.value), created_categories=len(created.value))
            )

        return await self._operate(f"import {len(rows)} transactions", run)

    async def fetch_transactions(self) -> Result[None]:
        return await self._operate("fetch transactions", reload_categories=False)

    async def refresh_all(self) -> Result[None]:
        return await self._operate("refresh all")

    # ── Reads (never touch the store) ────────────────────────────────────────

    def visible_categories(self) -> list[CategorySchema]:
        return [c for c in self.full_categories if c.is_visible]

    def all_categories_including_deleted(self) -> list[CategorySchema]:
        merged = list(self.full_categories)
        merged.extend(s for i, s in self._shadow.items() if i not in self._active_by_id)
        return sorted(merged, key=lambda c: c.sort_order)

    def get_category(self, category_id: int) -> Optional[CategorySchema]:
        """Active category, else its shadow entry, else None."""
        cat = self._active_by_id.get(category_id)
        if cat is None:
            cat = self._shadow.get(category_id)
        return cat

    def category_info(self, category_id: int) -> CategoryInfo:
        cat = self.get_category(category_id)
        if cat is None:
            return CategoryInfo(
                id=category_id,
                name=UNKNOWN_CATEGORY_NAME,
                icon=UNKNOWN_CATEGORY_ICON,
                color=UNKNOWN_CATEGORY_COLOR,
                type=TransactionType.EXPENSE,
                is_deleted=False,
            )
        return CategoryInfo(
            id=category_id,
            name=cat.name,
            icon=cat.icon,
            color=cat.color,
            type=cat.type,
            is_deleted=category_id in self._shadow,
        )

    def category_name(self, category_id: int) -> str:
        return self.category_info(category_id).name

    def category_icon(self, category_id: int) -> str:
        return self.category_info(category_id).icon

    def category_color(self, category_id: int) -> str:
        return self.category_info(category_id).color

    def category_type(self, category_id: int) -> TransactionType:
        return self.category_info(category_id).type

    def is_category_deleted(self, category_id: int) -> bool:
        return category_id in self._shadow

    def deleted_category_usage(self) -> list[DeletedCategoryUsage]:
        counts: dict[int, int] = {}
        for tx in self.transactions:
            if tx.category_id in self._shadow:
                counts[tx.category_id] = counts.get(tx.category_id, 0) + 1
        usage = [
            DeletedCategoryUsage(
                category_id=cid,
                category_name=self._shadow[cid].name,
                usage_count=n,
            )
            for cid, n in counts.items()
        ]
        return sorted(usage, key=lambda u: u.usage_count, reverse=True)

    def transactions_for_category(self, category_id: int) -> list[TransactionSchema]:
        return [tx for tx in self.transactions if tx.category_id == category_id]

    def status(self) -> SyncStatus:
        return SyncStatus(
            is_operating=self.is_operating,
            error_message=self.error_message,
            category_count=len(self.full_categories),
            transaction_count=len(self.transactions),
            deleted_category_count=len(self._shadow),
        )

    def clear_error(self) -> None:
        self.error_message = None
