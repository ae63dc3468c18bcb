import os
from pathlib import Path

# Directory holding the ledger database (created on first start)
DATA_DIR = Path(os.getenv("KAKEIBO_DATA_DIR", "data"))
DB_FILE = os.getenv("KAKEIBO_DB_FILE", "expenses.sqlite")

# Full SQLAlchemy URL; overrides DATA_DIR / DB_FILE when set.
DATABASE_URL = os.getenv("KAKEIBO_DATABASE_URL")

LOG_LEVEL = os.getenv("KAKEIBO_LOG_LEVEL", "INFO").upper()


def get_database_url() -> str:
    if DATABASE_URL:
        return DATABASE_URL
    DATA_DIR.mkdir(parents=True, exist_ok=True)
    return f"sqlite:///{DATA_DIR / DB_FILE}"
