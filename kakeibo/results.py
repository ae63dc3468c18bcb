from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, Optional, TypeVar

from sqlalchemy.exc import SQLAlchemyError

from .errors import BusyError, RecordNotFound, ValidationError

T = TypeVar("T")


class ResultStatus(str, Enum):
    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    STORAGE_ERROR = "storage_error"
    BUSY = "busy"


@dataclass(frozen=True)
class Result(Generic[T]):
    """Outcome of a store or coordinator operation."""

    status: ResultStatus
    value: Optional[T] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.OK

    @classmethod
    def success(cls, value: Any = None, message: str = "") -> "Result":
        return cls(ResultStatus.OK, value, message)

    @classmethod
    def invalid(cls, message: str) -> "Result":
        return cls(ResultStatus.VALIDATION_ERROR, None, message)

    @classmethod
    def not_found(cls, message: str) -> "Result":
        return cls(ResultStatus.NOT_FOUND, None, message)

    @classmethod
    def storage_error(cls, message: str) -> "Result":
        return cls(ResultStatus.STORAGE_ERROR, None, message)

    @classmethod
    def busy(cls, message: str) -> "Result":
        return cls(ResultStatus.BUSY, None, message)

    @classmethod
    def from_exception(cls, exc: Exception) -> "Result":
        if isinstance(exc, ValidationError):
            return cls.invalid(str(exc))
        if isinstance(exc, RecordNotFound):
            return cls.not_found(str(exc))
        if isinstance(exc, BusyError):
            return cls.busy(str(exc))
        if isinstance(exc, SQLAlchemyError):
            return cls.storage_error(f"Database error: {exc.__class__.__name__}")
        return cls.storage_error(str(exc) or exc.__class__.__name__)
