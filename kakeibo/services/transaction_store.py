"""Transaction persistence: individual CRUD plus all-or-nothing bulk insert.

``category_id`` is stored as given: nothing checks that the category exists or
is active. Resolving it for display is the cache layer's job.
"""

import logging
from typing import Optional, Sequence

from sqlalchemy.orm import Session

from ..database import Database
from ..errors import RecordNotFound, ValidationError
from ..models import Transaction
from ..results import Result
from ..schemas import TransactionCreate, TransactionSchema, TransactionType, TransactionUpdate

logger = logging.getLogger(__name__)


def _to_schema(tx: Transaction) -> TransactionSchema:
    return TransactionSchema(
        id=tx.id,
        amount=tx.amount,
        type=tx.type or TransactionType.EXPENSE,
        date=tx.date,
        note=tx.note or "",
        category_id=tx.category_id,
        user_id=tx.user_id if tx.user_id is not None else 1,
    )


def _to_model(payload: TransactionCreate) -> Transaction:
    try:
        kind = TransactionType(payload.type)
    except ValueError:
        raise ValidationError(f"Unknown transaction type {payload.type!r}.") from None
    return Transaction(
        amount=payload.amount,
        type=kind.value,
        date=payload.date,
        note=payload.note,
        category_id=payload.category_id,
        user_id=payload.user_id,
    )


class TransactionStore:
    def __init__(self, database: Database):
        self._db = database

    def fetch_all(self) -> Result[list[TransactionSchema]]:
        """All rows, newest first."""
        def work(db: Session) -> list[TransactionSchema]:
            rows = (
                db.query(Transaction)
                .order_by(Transaction.date.desc(), Transaction.id.desc())
                .all()
            )
            return [_to_schema(tx) for tx in rows]

        return self._db.run("fetch transactions", work)

    def get(self, tx_id: int) -> Result[Optional[TransactionSchema]]:
        def work(db: Session) -> Optional[TransactionSchema]:
            tx = db.get(Transaction, tx_id)
            return _to_schema(tx) if tx else None

        return self._db.run(f"get transaction {tx_id}", work)

    def insert(self, payload: TransactionCreate) -> Result[int]:
        def work(db: Session) -> int:
            tx = _to_model(payload)
            db.add(tx)
            db.flush()
            return tx.id

        return self._db.run("insert transaction", work)

    def insert_many(self, payloads: Sequence[TransactionCreate]) -> Result[list[int]]:
        """Insert every row or none of them."""
        if not payloads:
            return Result.success([])

        def work(db: Session) -> list[int]:
            rows = [_to_model(p) for p in payloads]
            db.add_all(rows)
            db.flush()
            return [tx.id for tx in rows]

        result = self._db.run(f"insert {len(payloads)} transactions", work)
        if result.ok:
            logger.info("Inserted %d transactions", len(result.value))
        return result

    def update(self, tx_id: int, payload: TransactionUpdate) -> Result[int]:
        """Replace every field of an existing row."""
        def work(db: Session) -> int:
            tx = db.get(Transaction, tx_id)
            if tx is None:
                raise RecordNotFound(f"Transaction {tx_id} not found.")
            fresh = _to_model(payload)
            tx.amount = fresh.amount
            tx.type = fresh.type
            tx.date = fresh.date
            tx.note = fresh.note
            tx.category_id = fresh.category_id
            tx.user_id = fresh.user_id
            db.flush()
            return tx.id

        return self._db.run(f"update transaction {tx_id}", work)

    def delete(self, tx_id: int) -> Result[None]:
        def work(db: Session) -> None:
            deleted = (
                db.query(Transaction)
                .filter(Transaction.id == tx_id)
                .delete(synchronize_session=False)
            )
            if not deleted:
                raise RecordNotFound(f"Transaction {tx_id} not found.")

        return self._db.run(f"delete transaction {tx_id}", work)
