import logging
from contextlib import contextmanager
from typing import Callable, Iterator, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

from .errors import RecordNotFound, ValidationError
from .results import Result

logger = logging.getLogger(__name__)

Base = declarative_base()

T = TypeVar("T")


def _is_memory_url(url: str) -> bool:
    return url in ("sqlite://", "sqlite:///:memory:") or "mode=memory" in url


class Database:
    """One SQLite engine plus the session factory every store shares.

    In-memory databases are pinned to a single connection (StaticPool) so that
    worker threads dispatched by the coordinator all see the same data.
    """

    def __init__(self, url: str):
        self.url = url
        if _is_memory_url(url):
            self.engine: Engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
                poolclass=StaticPool,
            )
        else:
            self.engine = create_engine(
                url,
                connect_args={"check_same_thread": False},
            )
        self._SessionLocal = sessionmaker(
            autocommit=False, autoflush=False, expire_on_commit=False, bind=self.engine
        )

    @contextmanager
    def session(self) -> Iterator[Session]:
        """Yield a session whose work is committed on exit, rolled back on error."""
        db = self._SessionLocal()
        try:
            yield db
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def run(self, action: str, work: Callable[[Session], T]) -> Result[T]:
        """Run ``work`` in one transaction and fold the outcome into a Result.

        Rejections (ValidationError, RecordNotFound), database failures and any
        other error raised by ``work`` roll the transaction back; none escapes to
        the caller. Unexpected errors come back as storage errors.
        """
        try:
            with self.session() as db:
                value = work(db)
        except (ValidationError, RecordNotFound) as exc:
            logger.warning("%s rejected: %s", action, exc)
            return Result.from_exception(exc)
        except SQLAlchemyError as exc:
            logger.exception("%s failed; transaction rolled back", action)
            return Result.from_exception(exc)
        except Exception as exc:
            logger.exception("%s failed unexpectedly; transaction rolled back", action)
            return Result.from_exception(exc)
        return Result.success(value)

    def dispose(self) -> None:
        self.engine.dispose()
