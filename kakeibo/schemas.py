from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class TransactionType(str, Enum):
    EXPENSE = "expense"
    INCOME = "income"


# ─────────────────────────────────────────────────────────────────────────────
# Category
# ─────────────────────────────────────────────────────────────────────────────


class CategoryCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    icon: str = "tag.fill"
    color: str = "gray"
    is_default: bool = False
    is_visible: bool = True
    sort_order: int = 0
    type: TransactionType = TransactionType.EXPENSE

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CategoryUpdate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    icon: str
    color: str
    is_visible: bool = True
    sort_order: int = 0
    type: TransactionType = TransactionType.EXPENSE

    @field_validator("name")
    @classmethod
    def _strip_name(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("name must not be blank")
        return v


class CategorySchema(BaseModel):
    id: int
    name: str
    icon: str
    color: str
    is_default: bool
    is_visible: bool
    is_active: bool
    sort_order: int
    created_at: str = ""
    type: TransactionType = TransactionType.EXPENSE


class CategoryRef(BaseModel):
    id: int
    name: str


class CategoryOrderItem(BaseModel):
    id: int
    sort_order: int


class CategoryInfo(BaseModel):
    """Display metadata for a category id; always resolvable."""

    id: int
    name: str
    icon: str
    color: str
    type: TransactionType
    is_deleted: bool = False


class DeletedCategoryUsage(BaseModel):
    category_id: int
    category_name: str
    usage_count: int


# ─────────────────────────────────────────────────────────────────────────────
# Transaction
# ─────────────────────────────────────────────────────────────────────────────


class TransactionCreate(BaseModel):
    amount: float = Field(ge=0)
    type: TransactionType = TransactionType.EXPENSE
    date: datetime
    note: str = ""
    category_id: Optional[int] = None
    user_id: int = 1


class TransactionUpdate(TransactionCreate):
    pass


class TransactionSchema(BaseModel):
    id: int
    amount: float
    type: TransactionType
    date: datetime
    note: str
    category_id: Optional[int] = None
    user_id: int = 1


class ImportRow(BaseModel):
    """A parsed row whose category is named, not yet resolved to an id."""

    amount: float = Field(ge=0)
    type: TransactionType = TransactionType.EXPENSE
    date: datetime
    note: str = ""
    category_name: str = ""


class BulkDeleteRequest(BaseModel):
    ids: list[int]


class ImportResponse(BaseModel):
    imported: int
    created_categories: int


# ─────────────────────────────────────────────────────────────────────────────
# Sync
# ─────────────────────────────────────────────────────────────────────────────


class SyncStatus(BaseModel):
    is_operating: bool
    error_message: Optional[str] = None
    category_count: int
    transaction_count: int
    deleted_category_count: int


class HealthResponse(BaseModel):
    status: str
    version: str
