"""ORM entities for the read-only ledger tables used by reporting."""

from __future__ import annotations

import enum
from datetime import date, datetime
from decimal import Decimal

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    Table,
)
from sqlalchemy import Enum as SQLEnum
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ledger_reports.db.base import Base


class AccountType(str, enum.Enum):
    ASSET = "asset"
    EXPENSE = "expense"
    REVENUE = "revenue"


class JournalType(str, enum.Enum):
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


journal_entry_tags = Table(
    "journal_entry_tags",
    Base.metadata,
    Column("journal_entry_id", Integer, ForeignKey("journal_entries.id"), primary_key=True),
    Column("tag_id", Integer, ForeignKey("tags.id"), primary_key=True),
)


class TransactionCurrency(Base):
    __tablename__ = "transaction_currencies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(3), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    symbol: Mapped[str] = mapped_column(String(12), nullable=False)
    decimal_places: Mapped[int] = mapped_column(Integer, nullable=False, default=2)
    enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (Index("ix_accounts_account_type", "account_type"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    account_type: Mapped[AccountType] = mapped_column(
        SQLEnum(
            AccountType,
            name="account_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    currency_id: Mapped[int] = mapped_column(Integer, ForeignKey("transaction_currencies.id"), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=datetime.utcnow)

    currency: Mapped[TransactionCurrency] = relationship(lazy="joined")


class Budget(Base):
    __tablename__ = "budgets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)


class BudgetLimit(Base):
    __tablename__ = "budget_limits"
    __table_args__ = (Index("ix_budget_limits_budget_range", "budget_id", "start_date", "end_date"),)

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    budget_id: Mapped[int] = mapped_column(Integer, ForeignKey("budgets.id"), nullable=False)
    currency_id: Mapped[int] = mapped_column(Integer, ForeignKey("transaction_currencies.id"), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(32, 12), nullable=False)

    currency: Mapped[TransactionCurrency] = relationship(lazy="joined")


class Category(Base):
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)


class Tag(Base):
    __tablename__ = "tags"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    tag: Mapped[str] = mapped_column(String(1024), nullable=False)


class JournalEntryRow(Base):
    """One transaction leg, amount signed from the asset account's side."""

    __tablename__ = "journal_entries"
    __table_args__ = (
        Index("ix_journal_entries_date", "transaction_date"),
        Index("ix_journal_entries_source", "source_account_id"),
        Index("ix_journal_entries_destination", "destination_account_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)
    description: Mapped[str] = mapped_column(String(1024), nullable=False, default="")
    transaction_type: Mapped[JournalType] = mapped_column(
        SQLEnum(
            JournalType,
            name="journal_type",
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
    )
    source_account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False)
    destination_account_id: Mapped[int] = mapped_column(Integer, ForeignKey("accounts.id"), nullable=False)
    currency_id: Mapped[int] = mapped_column(Integer, ForeignKey("transaction_currencies.id"), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(32, 12), nullable=False)
    budget_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("budgets.id"), nullable=True)
    category_id: Mapped[int | None] = mapped_column(Integer, ForeignKey("categories.id"), nullable=True)

    source_account: Mapped[Account] = relationship(foreign_keys=[source_account_id], lazy="joined")
    destination_account: Mapped[Account] = relationship(foreign_keys=[destination_account_id], lazy="joined")
    currency: Mapped[TransactionCurrency] = relationship(lazy="joined")
    budget: Mapped[Budget | None] = relationship(lazy="joined")
    category: Mapped[Category | None] = relationship(lazy="joined")
    tags: Mapped[list[Tag]] = relationship(secondary=journal_entry_tags, lazy="selectin", order_by=Tag.id)
