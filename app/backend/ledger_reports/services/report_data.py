"""Value objects shared by the collection, layout, and chart stages."""

from __future__ import annotations

import enum
from collections.abc import Hashable, Iterable, Iterator, Mapping
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Any, Generic, TypeVar

from ledger_reports.core.errors import CurrencyMismatchError

ZERO = Decimal("0")

T = TypeVar("T")


class ReportType(str, enum.Enum):
    DEFAULT = "default"
    AUDIT = "audit"
    BUDGET = "budget"
    CATEGORY = "category"
    TAG = "tag"
    DOUBLE = "double"

    @property
    def title(self) -> str:
        return self.value.capitalize()


class TransactionType(str, enum.Enum):
    WITHDRAWAL = "withdrawal"
    DEPOSIT = "deposit"
    TRANSFER = "transfer"


# ---------- Money ----------
@dataclass(frozen=True, slots=True)
class Currency:
    id: int
    code: str
    symbol: str
    name: str
    decimal_places: int = 2

    @property
    def number_format(self) -> str:
        if self.decimal_places <= 0:
            return "#,##0"
        return "#,##0." + "0" * self.decimal_places


@dataclass(frozen=True, slots=True)
class Money:
    amount: Decimal
    currency: Currency

    @classmethod
    def zero(cls, currency: Currency) -> Money:
        return cls(ZERO, currency)

    def _check(self, other: Money) -> None:
        if other.currency.id != self.currency.id:
            raise CurrencyMismatchError(
                f"Cannot combine {self.currency.code} and {other.currency.code} amounts."
            )

    def __add__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount + other.amount, self.currency)

    def __sub__(self, other: Money) -> Money:
        self._check(other)
        return Money(self.amount - other.amount, self.currency)

    def __neg__(self) -> Money:
        return Money(-self.amount, self.currency)

    def clamp_min_zero(self) -> Money:
        return self if self.amount > ZERO else Money.zero(self.currency)

    def clamp_max_zero(self) -> Money:
        return self if self.amount < ZERO else Money.zero(self.currency)

    @property
    def is_zero(self) -> bool:
        return self.amount == ZERO

    @property
    def is_positive(self) -> bool:
        return self.amount > ZERO

    @property
    def is_negative(self) -> bool:
        return self.amount < ZERO


# ---------- Periods and selectors ----------
@dataclass(frozen=True, slots=True)
class Period:
    """Inclusive date range."""

    start: date
    end: date

    def __post_init__(self) -> None:
        if self.end < self.start:
            raise ValueError("Period end must be greater than or equal to start.")

    def months(self) -> Iterable[Period]:
        from ledger_reports.services.time_buckets import MonthPeriods

        return MonthPeriods(self)

    @property
    def label(self) -> str:
        from ledger_reports.services.time_buckets import month_label

        return month_label(self.start)

    def __str__(self) -> str:
        return f"{self.start.isoformat()} to {self.end.isoformat()}"


@dataclass(frozen=True, slots=True)
class DimensionSelector:
    """Ordered, de-duplicated set of entity ids scoping a report."""

    ids: tuple[int, ...] = ()

    @classmethod
    def of(cls, values: Iterable[int] | None) -> DimensionSelector:
        if not values:
            return cls()
        return cls(tuple(dict.fromkeys(int(value) for value in values)))

    def __bool__(self) -> bool:
        return bool(self.ids)

    def __len__(self) -> int:
        return len(self.ids)

    def __iter__(self) -> Iterator[int]:
        return iter(self.ids)

    def __contains__(self, value: object) -> bool:
        return value in self.ids


@dataclass(frozen=True, slots=True)
class ExportRequest:
    """Everything one export needs, fixed at construction."""

    report_type: ReportType
    start: date
    end: date
    accounts: DimensionSelector = field(default_factory=DimensionSelector)
    budgets: DimensionSelector = field(default_factory=DimensionSelector)
    categories: DimensionSelector = field(default_factory=DimensionSelector)
    tags: DimensionSelector = field(default_factory=DimensionSelector)
    expense_accounts: DimensionSelector = field(default_factory=DimensionSelector)
    generated_by: str | None = None

    @property
    def period(self) -> Period:
        return Period(self.start, self.end)


# ---------- Journals ----------
@dataclass(frozen=True, slots=True)
class JournalQuery:
    """Filter handed to the journal source; empty selectors do not filter."""

    accounts: DimensionSelector
    transaction_types: tuple[TransactionType, ...] = (TransactionType.WITHDRAWAL, TransactionType.DEPOSIT)
    budgets: DimensionSelector = field(default_factory=DimensionSelector)
    categories: DimensionSelector = field(default_factory=DimensionSelector)
    tags: DimensionSelector = field(default_factory=DimensionSelector)
    counterparties: DimensionSelector = field(default_factory=DimensionSelector)


@dataclass(frozen=True, slots=True)
class JournalEntry:
    id: int
    date: date
    description: str
    transaction_type: TransactionType
    source_account_id: int
    source_account_name: str
    destination_account_id: int
    destination_account_name: str
    currency: Currency
    amount: Decimal
    budget_id: int | None = None
    budget_name: str | None = None
    category_id: int | None = None
    category_name: str | None = None
    tags: tuple[tuple[int, str], ...] = ()

    @property
    def money(self) -> Money:
        return Money(self.amount, self.currency)

    def delta_for(self, account_id: int) -> Decimal:
        """Balance effect of this entry on one asset account."""

        if self.transaction_type is TransactionType.DEPOSIT:
            return self.amount if self.destination_account_id == account_id else ZERO
        if self.transaction_type is TransactionType.WITHDRAWAL:
            return self.amount if self.source_account_id == account_id else ZERO
        delta = ZERO
        if self.source_account_id == account_id:
            delta += self.amount
        if self.destination_account_id == account_id:
            delta -= self.amount
        return delta


# ---------- Aggregates ----------
@dataclass(frozen=True, slots=True)
class DimensionKey:
    id: Hashable
    name: str


@dataclass(frozen=True, slots=True)
class AggregateBucket:
    dimension_id: Hashable
    dimension_name: str
    currency: Currency
    sum: Money
    entry_count: int


@dataclass(frozen=True, slots=True)
class CurrencySum:
    currency: Currency
    sum: Money


@dataclass(frozen=True, slots=True)
class AggregationResult:
    buckets: Mapping[tuple[Hashable, int], AggregateBucket]
    sums: Mapping[int, CurrencySum]

    def __len__(self) -> int:
        return len(self.buckets)


# ---------- Section rows ----------
@dataclass(frozen=True, slots=True)
class AccountBalanceRow:
    account_id: int
    name: str
    start_balance: Money
    end_balance: Money

    @property
    def currency(self) -> Currency:
        return self.start_balance.currency

    @property
    def difference(self) -> Money:
        return self.end_balance - self.start_balance


@dataclass(frozen=True, slots=True)
class OperationsRow:
    currency: Currency
    in_: Money
    out: Money

    @property
    def sum(self) -> Money:
        return self.in_ + self.out


@dataclass(frozen=True, slots=True)
class BalanceSummary:
    operations: Mapping[int, OperationsRow]


@dataclass(frozen=True, slots=True)
class BudgetPerformanceRow:
    budget_id: int | None
    name: str
    budgeted: Money
    spent: Money

    @property
    def currency(self) -> Currency:
        return self.spent.currency


@dataclass(frozen=True, slots=True)
class DimensionAnalysisRow:
    dimension_id: Hashable
    name: str
    earned: Money
    spent: Money

    @property
    def currency(self) -> Currency:
        return self.earned.currency


@dataclass(frozen=True, slots=True)
class DoubleComparisonRow:
    asset_account: str
    expense_account: str
    amount: Money

    @property
    def currency(self) -> Currency:
        return self.amount.currency


@dataclass(frozen=True, slots=True)
class AuditRow:
    date: date
    description: str
    source: str
    destination: str
    amount: Money

    @property
    def currency(self) -> Currency:
        return self.amount.currency


# ---------- Monthly series ----------
@dataclass(frozen=True, slots=True)
class MonthlyAmounts:
    income: Money
    expense: Money


@dataclass(frozen=True, slots=True)
class MonthlySeriesRow:
    name: str
    currency: Currency
    months: tuple[MonthlyAmounts, ...]

    @property
    def total_income(self) -> Money:
        total = Money.zero(self.currency)
        for month in self.months:
            total = total + month.income
        return total

    @property
    def total_expense(self) -> Money:
        total = Money.zero(self.currency)
        for month in self.months:
            total = total + month.expense
        return total


@dataclass(frozen=True, slots=True)
class MonthlySeries:
    labels: tuple[str, ...]
    rows: tuple[MonthlySeriesRow, ...]

    def row(self, name: str, currency_id: int | None = None) -> MonthlySeriesRow | None:
        for row in self.rows:
            if row.name == name and (currency_id is None or row.currency.id == currency_id):
                return row
        return None

    def month(self, name: str, label: str, currency_id: int | None = None) -> MonthlyAmounts | None:
        row = self.row(name, currency_id)
        if row is None or label not in self.labels:
            return None
        return row.months[self.labels.index(label)]


# ---------- Report data tree ----------
@dataclass(frozen=True, slots=True)
class StructuredSection(Generic[T]):
    data: T


@dataclass(frozen=True, slots=True)
class RawMarkupSection:
    html: str


@dataclass(frozen=True, slots=True)
class FailedSection:
    error: str


Section = StructuredSection[Any] | RawMarkupSection | FailedSection

EMPTY_SECTION: StructuredSection[Any] = StructuredSection(())


@dataclass(frozen=True, slots=True)
class ReportDataTree:
    request: ExportRequest
    sections: Mapping[str, Section]

    def section(self, name: str) -> Section:
        return self.sections.get(name, EMPTY_SECTION)

    def __contains__(self, name: object) -> bool:
        return name in self.sections
