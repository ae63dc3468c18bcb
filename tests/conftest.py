"""
Pytest fixtures: an in-memory ledger database, migrated and seeded.
"""
from datetime import datetime

import pytest

from kakeibo.database import Database
from kakeibo.schemas import TransactionCreate
from kakeibo.services.category_store import CategoryStore
from kakeibo.services.schema_manager import SchemaManager
from kakeibo.services.sync import SyncCoordinator
from kakeibo.services.transaction_store import TransactionStore


@pytest.fixture
def database():
    db = Database("sqlite://")
    yield db
    db.dispose()


@pytest.fixture
def migrated(database):
    assert SchemaManager(database).run() == []
    return database


@pytest.fixture
def category_store(migrated):
    return CategoryStore(migrated)


@pytest.fixture
def transaction_store(migrated):
    return TransactionStore(migrated)


@pytest.fixture
def coordinator(category_store, transaction_store):
    sync = SyncCoordinator(category_store, transaction_store)
    assert sync.load_initial().ok
    return sync


def make_tx(amount=1500.0, category_id=None, day=1, note="", type="expense"):
    return TransactionCreate(
        amount=amount,
        type=type,
        date=datetime(2025, 8, day, 12, 0, 0),
        note=note,
        category_id=category_id,
    )
