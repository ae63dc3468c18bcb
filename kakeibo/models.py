from sqlalchemy import Boolean, Column, DateTime, Float, Integer, String, Text

from .database import Base

# Table shape after SchemaManager.run(); the baseline tables it creates are
# narrower and get the remaining columns added by migration.


class Category(Base):
    __tablename__ = "categories"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    name = Column(Text, nullable=False)            # unique among active rows
    icon = Column(Text, default="tag.fill")        # symbol token
    color = Column(Text, default="gray")           # color token
    is_default = Column(Boolean, default=False)
    is_visible = Column(Boolean, default=True)
    is_active = Column(Boolean, default=True)
    sort_order = Column(Integer, default=0)
    created_at = Column(Text, default="")          # "YYYY-MM-DD HH:MM:SS" (UTC)
    type = Column(String(20), default="expense")   # expense | income


class Transaction(Base):
    __tablename__ = "transactions"
    __table_args__ = {"sqlite_autoincrement": True}

    id = Column(Integer, primary_key=True)
    amount = Column(Float, nullable=False)
    type = Column(String(20), default="expense")   # expense | income
    date = Column(DateTime, nullable=False)
    note = Column(Text, default="")
    category_id = Column(Integer, nullable=True)   # not a FK: may reference inactive rows
    user_id = Column(Integer, default=1)
