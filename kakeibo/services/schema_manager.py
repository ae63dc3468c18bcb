"""Additive, re-runnable schema migration for the ledger database.

Every step inspects the live schema before changing it, so the whole sequence
is safe to run on every start:

  ensure_schema()              baseline tables if absent
  migrate()                    add missing columns, never drop or rename
  normalize_legacy_data()      repair NULL / integer-coded category types
  rebuild_name_unique_index()  partial unique index on active names
  seed_default_categories()    canonical defaults missing among active rows
  refresh_default_settings()   canonical icon/color on existing defaults
"""

import logging
from typing import Callable

import sqlalchemy as sa
from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import Connection, inspect
from sqlalchemy.exc import SQLAlchemyError

from ..database import Database
from . import seeder

logger = logging.getLogger(__name__)

NAME_INDEX = "ix_categories_name_active"

# ─────────────────────────────────────────────────────────────────────────────
# Baseline shape: what the very first release created.
# ─────────────────────────────────────────────────────────────────────────────

_baseline = sa.MetaData()

sa.Table(
    "categories",
    _baseline,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("name", sa.Text(), nullable=False),
    sqlite_autoincrement=True,
)

sa.Table(
    "transactions",
    _baseline,
    sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("amount", sa.Float(), nullable=False),
    sa.Column("date", sa.DateTime(), nullable=False),
    sa.Column("note", sa.Text(), server_default=""),
    sa.Column("category_id", sa.Integer(), nullable=True),
    sa.Column("user_id", sa.Integer(), server_default="1"),
    sa.CheckConstraint("amount >= 0", name="ck_transactions_amount_non_negative"),
    sqlite_autoincrement=True,
)

# ─────────────────────────────────────────────────────────────────────────────
# Columns added after the baseline  (name, type, server default)
#
# Order matters only for readability; each column is checked independently.
# ─────────────────────────────────────────────────────────────────────────────

_ADDED_COLUMNS: dict[str, list[tuple[str, Callable[[], sa.types.TypeEngine], str]]] = {
    "categories": [
        ("icon",       sa.Text,                    "tag.fill"),
        ("color",      sa.Text,                    "gray"),
        ("is_default", sa.Boolean,                 "0"),
        ("is_visible", sa.Boolean,                 "1"),
        ("is_active",  sa.Boolean,                 "1"),
        ("sort_order", sa.Integer,                 "0"),
        ("created_at", sa.Text,                    ""),
        ("type",       lambda: sa.String(20),      "expense"),
    ],
    "transactions": [
        ("type",       lambda: sa.String(20),      "expense"),
    ],
}


def _operations(conn: Connection) -> Operations:
    return Operations(MigrationContext.configure(conn))


def column_names(conn: Connection, table: str) -> set[str]:
    return {c["name"] for c in inspect(conn).get_columns(table)}


class SchemaManager:
    def __init__(self, database: Database):
        self._db = database
        self._engine = database.engine

    def ensure_schema(self) -> None:
        with self._engine.begin() as conn:
            existing = set(inspect(conn).get_table_names())
            _baseline.create_all(conn, checkfirst=True)
            for table in _baseline.tables:
                if table not in existing:
                    logger.info("Created table %s", table)

    def migrate(self) -> list[str]:
        """Add every missing column. Returns ``table.column`` names added.

        A column that fails to add is logged and skipped; the rest still run.
        """
        added: list[str] = []
        for table, columns in _ADDED_COLUMNS.items():
            for name, type_factory, default in columns:
                try:
                    with self._engine.begin() as conn:
                        if name in column_names(conn, table):
                            logger.debug("Column exists: %s.%s", table, name)
                            continue
                        _operations(conn).add_column(
                            table, sa.Column(name, type_factory(), server_default=default)
                        )
                    added.append(f"{table}.{name}")
                    logger.info("Added column %s.%s", table, name)
                except SQLAlchemyError:
                    logger.exception("Could not add column %s.%s", table, name)
        return added

    def normalize_legacy_data(self) -> None:
        """Give every category a textual type.

        Older databases left ``type`` NULL or stored it as 0 (expense) / 1 (income).
        Guarded by re-checking the column rather than a one-shot flag.
        """
        with self._engine.begin() as conn:
            for table in ("categories", "transactions"):
                if "type" not in column_names(conn, table):
                    continue
                conn.execute(sa.text(
                    f"UPDATE {table} SET type = 'income' WHERE type IN ('1', 1)"
                ))
                conn.execute(sa.text(
                    f"UPDATE {table} SET type = 'expense' "
                    "WHERE type IS NULL OR type IN ('0', 0)"
                ))

    def rebuild_name_unique_index(self) -> None:
        """Replace any unique index on ``categories.name`` with the partial one.

        A plain unique index would block reusing the name of a logically deleted
        category.
        """
        with self._engine.begin() as conn:
            op = _operations(conn)
            for index in inspect(conn).get_indexes("categories"):
                if index["name"] == NAME_INDEX:
                    continue
                if index.get("unique") and index.get("column_names") == ["name"]:
                    op.drop_index(index["name"], table_name="categories")
                    logger.info("Dropped unique index %s", index["name"])
            exists = conn.execute(
                sa.text("SELECT 1 FROM sqlite_master WHERE type = 'index' AND name = :name"),
                {"name": NAME_INDEX},
            ).first()
            if exists:
                return
            op.create_index(
                NAME_INDEX,
                "categories",
                ["name"],
                unique=True,
                sqlite_where=sa.text("is_active = 1"),
            )

    def seed_default_categories(self) -> int:
        with self._db.session() as db:
            return seeder.seed_default_categories(db)

    def refresh_default_settings(self) -> None:
        with self._db.session() as db:
            seeder.refresh_default_settings(db)

    def run(self) -> list[str]:
        """Run every step, best effort. Returns the names of the steps that failed."""
        steps: list[tuple[str, Callable[[], object]]] = [
            ("ensure_schema", self.ensure_schema),
            ("migrate", self.migrate),
            ("normalize_legacy_data", self.normalize_legacy_data),
            ("rebuild_name_unique_index", self.rebuild_name_unique_index),
            ("seed_default_categories", self.seed_default_categories),
            ("refresh_default_settings", self.refresh_default_settings),
        ]
        failed: list[str] = []
        logger.info("Schema migration started")
        for name, step in steps:
            try:
                step()
            except SQLAlchemyError:
                logger.exception("Schema step %s failed; continuing", name)
                failed.append(name)
        logger.info("Schema migration finished (%d failed step(s))", len(failed))
        return failed
