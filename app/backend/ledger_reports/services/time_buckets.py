"""Calendar-month bucketing of report periods."""

from __future__ import annotations

from calendar import monthrange
from collections.abc import Callable, Iterator, Sequence
from datetime import date

from ledger_reports.services.aggregation import NONE_LABEL, Dimension, aggregate, by_category
from ledger_reports.services.report_data import (
    Currency,
    JournalEntry,
    Money,
    MonthlyAmounts,
    MonthlySeries,
    MonthlySeriesRow,
    Period,
    TransactionType,
)

MonthFetch = Callable[[Period], Sequence[JournalEntry]]


def month_start(value: date) -> date:
    return date(value.year, value.month, 1)


def month_end(value: date) -> date:
    return date(value.year, value.month, monthrange(value.year, value.month)[1])


def next_month(value: date) -> date:
    if value.month == 12:
        return date(value.year + 1, 1, 1)
    return date(value.year, value.month + 1, 1)


def month_label(value: date) -> str:
    return value.strftime("%b %Y")


def month_sequence(start_month: date, end_month: date) -> list[date]:
    current = month_start(start_month)
    end = month_start(end_month)
    months: list[date] = []
    while current <= end:
        months.append(current)
        current = next_month(current)
    return months


class MonthPeriods:
    """Restartable walk over the calendar months touched by a period.

    The first and last months are clipped to the period bounds.
    """

    def __init__(self, period: Period) -> None:
        self.period = period

    def __iter__(self) -> Iterator[Period]:
        current = month_start(self.period.start)
        while current <= self.period.end:
            yield Period(
                max(current, self.period.start),
                min(month_end(current), self.period.end),
            )
            current = next_month(current)

    def __len__(self) -> int:
        return len(month_sequence(self.period.start, self.period.end))


def bucket_by_month(
    period: Period,
    fetch: MonthFetch,
    dimension: Dimension = by_category,
    *,
    none_label: str = NONE_LABEL,
) -> MonthlySeries:
    """Replay aggregation month by month into a rectangular series.

    Every row key seen in any month gets an entry for every month. Row
    order is first-seen order during the walk, grouped by currency.
    """

    labels: list[str] = []
    monthly: list[dict[tuple[str, int], MonthlyAmounts]] = []
    row_order: list[tuple[str, int]] = []
    currencies: dict[int, Currency] = {}

    for month in MonthPeriods(period):
        labels.append(month.label)
        entries = list(fetch(month))
        income = aggregate(
            (entry for entry in entries if entry.transaction_type is TransactionType.DEPOSIT),
            dimension,
            none_label=none_label,
        )
        expense = aggregate(
            (entry for entry in entries if entry.transaction_type is TransactionType.WITHDRAWAL),
            dimension,
            none_label=none_label,
        )

        amounts: dict[tuple[str, int], MonthlyAmounts] = {}
        for result, is_income in ((income, True), (expense, False)):
            for bucket in result.buckets.values():
                key = (bucket.dimension_name, bucket.currency.id)
                currencies.setdefault(bucket.currency.id, bucket.currency)
                if key not in row_order:
                    row_order.append(key)
                current = amounts.get(key) or MonthlyAmounts(
                    income=Money.zero(bucket.currency),
                    expense=Money.zero(bucket.currency),
                )
                if is_income:
                    current = MonthlyAmounts(income=current.income + bucket.sum, expense=current.expense)
                else:
                    current = MonthlyAmounts(income=current.income, expense=current.expense + bucket.sum)
                amounts[key] = current
        monthly.append(amounts)

    currency_order = list(dict.fromkeys(currency_id for _, currency_id in row_order))
    ordered_keys = sorted(row_order, key=lambda key: currency_order.index(key[1]))

    rows: list[MonthlySeriesRow] = []
    for name, currency_id in ordered_keys:
        currency = currencies[currency_id]
        zero = MonthlyAmounts(income=Money.zero(currency), expense=Money.zero(currency))
        rows.append(
            MonthlySeriesRow(
                name=name,
                currency=currency,
                months=tuple(amounts.get((name, currency_id), zero) for amounts in monthly),
            )
        )
    return MonthlySeries(labels=tuple(labels), rows=tuple(rows))
