"""Currency-aware aggregation of journal entries into dimension buckets."""

from __future__ import annotations

from collections.abc import Callable, Hashable, Iterable, Sequence

from ledger_reports.services.report_data import (
    AggregateBucket,
    AggregationResult,
    Currency,
    CurrencySum,
    DimensionKey,
    JournalEntry,
    Money,
)

NONE_LABEL = "(none)"

Dimension = Callable[[JournalEntry], Sequence[DimensionKey]]


def by_source_account(entry: JournalEntry) -> Sequence[DimensionKey]:
    return [DimensionKey(entry.source_account_id, entry.source_account_name)]


def by_destination_account(entry: JournalEntry) -> Sequence[DimensionKey]:
    return [DimensionKey(entry.destination_account_id, entry.destination_account_name)]


def by_budget(entry: JournalEntry) -> Sequence[DimensionKey]:
    if entry.budget_id is None:
        return []
    return [DimensionKey(entry.budget_id, entry.budget_name or str(entry.budget_id))]


def by_category(entry: JournalEntry) -> Sequence[DimensionKey]:
    if entry.category_id is None:
        return []
    return [DimensionKey(entry.category_id, entry.category_name or str(entry.category_id))]


def by_tags(entry: JournalEntry) -> Sequence[DimensionKey]:
    return [DimensionKey(tag_id, tag_name) for tag_id, tag_name in entry.tags]


def by_account_pair(entry: JournalEntry) -> Sequence[DimensionKey]:
    return [
        DimensionKey(
            (entry.source_account_id, entry.destination_account_id),
            f"{entry.source_account_name} → {entry.destination_account_name}",
        )
    ]


def aggregate(
    entries: Iterable[JournalEntry],
    dimension: Dimension = by_source_account,
    *,
    none_label: str = NONE_LABEL,
) -> AggregationResult:
    """Sum entries per (dimension id, currency id) and per currency.

    Buckets and currency sums keep first-seen order. Entries without a
    resolvable dimension land in a sentinel bucket with id ``None``.
    """

    running: dict[tuple[Hashable, int], Money] = {}
    names: dict[tuple[Hashable, int], str] = {}
    counts: dict[tuple[Hashable, int], int] = {}
    currency_sums: dict[int, Money] = {}
    currencies: dict[int, Currency] = {}

    for entry in entries:
        money = entry.money
        currency_id = entry.currency.id
        currencies.setdefault(currency_id, entry.currency)

        keys = list(dimension(entry)) or [DimensionKey(None, none_label)]
        for key in keys:
            bucket_key = (key.id, currency_id)
            if bucket_key not in running:
                running[bucket_key] = Money.zero(entry.currency)
                names[bucket_key] = key.name
                counts[bucket_key] = 0
            running[bucket_key] = running[bucket_key] + money
            counts[bucket_key] += 1

        currency_sums[currency_id] = currency_sums.get(currency_id, Money.zero(entry.currency)) + money

    buckets = {
        bucket_key: AggregateBucket(
            dimension_id=bucket_key[0],
            dimension_name=names[bucket_key],
            currency=currencies[bucket_key[1]],
            sum=total,
            entry_count=counts[bucket_key],
        )
        for bucket_key, total in running.items()
    }
    sums = {
        currency_id: CurrencySum(currency=currencies[currency_id], sum=total)
        for currency_id, total in currency_sums.items()
    }
    return AggregationResult(buckets=buckets, sums=sums)


def buckets_by_currency(result: AggregationResult) -> list[AggregateBucket]:
    """Buckets reordered so each currency's buckets are contiguous."""

    order = {currency_id: index for index, currency_id in enumerate(result.sums)}
    return sorted(result.buckets.values(), key=lambda bucket: order.get(bucket.currency.id, len(order)))


def sum_by_currency(result: AggregationResult) -> dict[int, Money]:
    """Per-currency totals keyed by currency id, in first-seen order."""

    return {currency_id: currency_sum.sum for currency_id, currency_sum in result.sums.items()}
