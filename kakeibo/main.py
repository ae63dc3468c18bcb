import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import config
from .database import Database
from .routers import categories, sync as sync_router, transactions
from .schemas import HealthResponse
from .services.category_store import CategoryStore
from .services.schema_manager import SchemaManager
from .services.sync import SyncCoordinator
from .services.transaction_store import TransactionStore

VERSION = "0.3.0"

logger = logging.getLogger(__name__)


def create_app(database: Optional[Database] = None) -> FastAPI:
    """Build the app. Pass ``database`` to serve an existing (e.g. in-memory) store."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # ── Startup ───────────────────────────────────────────────────────────
        logging.basicConfig(
            level=config.LOG_LEVEL,
            format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        )
        owned = database is None
        db = database or Database(config.get_database_url())

        # Schema first: no store may run against a half-migrated database.
        failed = SchemaManager(db).run()
        if failed:
            logger.warning("Started with failed schema steps: %s", ", ".join(failed))

        coordinator = SyncCoordinator(CategoryStore(db), TransactionStore(db))
        coordinator.load_initial()
        app.state.database = db
        app.state.coordinator = coordinator

        yield
        # ── Shutdown ──────────────────────────────────────────────────────────
        if owned:
            db.dispose()

    app = FastAPI(
        title="Kakeibo Ledger",
        description="Local-first household ledger: categories, transactions, synchronized cache.",
        version=VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173", "http://127.0.0.1:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(categories.router)
    app.include_router(transactions.router)
    app.include_router(sync_router.router)

    @app.get("/health", response_model=HealthResponse, tags=["meta"])
    def health():
        return {"status": "ok", "version": VERSION}

    return app


app = create_app()
