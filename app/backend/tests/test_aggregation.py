from __future__ import annotations

from datetime import date
from decimal import Decimal

import pytest

from ledger_reports.core.errors import CurrencyMismatchError
from ledger_reports.services.aggregation import (
    aggregate,
    buckets_by_currency,
    by_account_pair,
    by_category,
    by_destination_account,
    by_tags,
    sum_by_currency,
)
from ledger_reports.services.report_data import Currency, JournalEntry, Money, TransactionType
from ledger_reports.services.section_sources import analysis_rows

USD = Currency(id=1, code="USD", symbol="$", name="US Dollar")
EUR = Currency(id=2, code="EUR", symbol="€", name="Euro")


def _entry(
    entry_id: int,
    amount: str,
    *,
    currency: Currency = USD,
    transaction_type: TransactionType = TransactionType.WITHDRAWAL,
    source: tuple[int, str] = (1, "Checking"),
    destination: tuple[int, str] = (10, "Market"),
    category: tuple[int, str] | None = None,
    tags: tuple[tuple[int, str], ...] = (),
) -> JournalEntry:
    return JournalEntry(
        id=entry_id,
        date=date(2024, 1, entry_id),
        description=f"entry {entry_id}",
        transaction_type=transaction_type,
        source_account_id=source[0],
        source_account_name=source[1],
        destination_account_id=destination[0],
        destination_account_name=destination[1],
        currency=currency,
        amount=Decimal(amount),
        category_id=category[0] if category else None,
        category_name=category[1] if category else None,
        tags=tags,
    )


def test_aggregate_groups_by_dimension_and_currency() -> None:
    entries = [
        _entry(1, "-10.10", destination=(10, "Market")),
        _entry(2, "-5.05", destination=(11, "Cafe")),
        _entry(3, "-1.01", destination=(10, "Market"), currency=EUR),
        _entry(4, "-0.20", destination=(10, "Market")),
    ]

    result = aggregate(entries, by_destination_account)

    assert list(result.buckets) == [(10, 1), (11, 1), (10, 2)]
    assert result.buckets[(10, 1)].sum == Money(Decimal("-10.30"), USD)
    assert result.buckets[(10, 1)].entry_count == 2
    assert result.buckets[(10, 2)].sum == Money(Decimal("-1.01"), EUR)
    assert result.sums[1].sum.amount == Decimal("-15.35")
    assert result.sums[2].sum.amount == Decimal("-1.01")


def test_aggregate_currency_sums_are_order_independent() -> None:
    amounts = ["0.10", "0.20", "0.30", "-0.60", "1234567.89", "-0.01"]
    entries = [_entry(index + 1, amount) for index, amount in enumerate(amounts)]

    forward = aggregate(entries)
    backward = aggregate(list(reversed(entries)))

    expected = sum((Decimal(amount) for amount in amounts), Decimal("0"))
    assert forward.sums[USD.id].sum.amount == expected
    assert backward.sums[USD.id].sum.amount == expected
    assert str(forward.sums[USD.id].sum.amount) == str(backward.sums[USD.id].sum.amount)
    bucket_total = sum(
        (bucket.sum.amount for bucket in forward.buckets.values() if bucket.currency.id == USD.id),
        Decimal("0"),
    )
    assert bucket_total == expected


def test_missing_dimension_lands_in_sentinel_bucket() -> None:
    entries = [_entry(1, "-3.00"), _entry(2, "-4.00", category=(7, "Food"))]

    result = aggregate(entries, by_category, none_label="(none)")

    sentinel = result.buckets[(None, USD.id)]
    assert sentinel.dimension_name == "(none)"
    assert sentinel.sum.amount == Decimal("-3.00")
    assert result.buckets[(7, USD.id)].dimension_name == "Food"


def test_zero_amount_entry_still_creates_bucket() -> None:
    result = aggregate([_entry(1, "0.00", destination=(12, "Free stuff"))], by_destination_account)

    bucket = result.buckets[(12, USD.id)]
    assert bucket.sum.is_zero
    assert bucket.entry_count == 1


def test_multi_tag_entry_counts_once_in_currency_sum() -> None:
    entry = _entry(1, "-20.00", tags=((1, "holiday"), (2, "family")))

    result = aggregate([entry], by_tags)

    assert len(result) == 2
    assert result.buckets[(1, USD.id)].sum.amount == Decimal("-20.00")
    assert result.buckets[(2, USD.id)].sum.amount == Decimal("-20.00")
    assert result.sums[USD.id].sum.amount == Decimal("-20.00")


def test_account_pair_dimension_names_both_sides() -> None:
    result = aggregate([_entry(1, "-9.99")], by_account_pair)

    bucket = result.buckets[((1, 10), USD.id)]
    assert bucket.dimension_name == "Checking → Market"


def test_buckets_by_currency_makes_groups_contiguous() -> None:
    entries = [
        _entry(1, "-1.00", destination=(10, "Market")),
        _entry(2, "-2.00", destination=(10, "Market"), currency=EUR),
        _entry(3, "-3.00", destination=(11, "Cafe")),
    ]

    ordered = buckets_by_currency(aggregate(entries, by_destination_account))

    assert [(bucket.dimension_name, bucket.currency.code) for bucket in ordered] == [
        ("Market", "USD"),
        ("Cafe", "USD"),
        ("Market", "EUR"),
    ]


def test_money_refuses_mixed_currency_arithmetic() -> None:
    with pytest.raises(CurrencyMismatchError):
        Money(Decimal("1.00"), USD) + Money(Decimal("1.00"), EUR)


def test_money_clamps() -> None:
    assert Money(Decimal("-4"), USD).clamp_min_zero().is_zero
    assert Money(Decimal("4"), USD).clamp_min_zero().amount == Decimal("4")
    assert Money(Decimal("4"), USD).clamp_max_zero().is_zero
    assert Money(Decimal("-4"), USD).clamp_max_zero().amount == Decimal("-4")


def test_sum_by_currency_keeps_first_seen_order() -> None:
    entries = [
        _entry(1, "-3.00", currency=EUR),
        _entry(2, "-10.00"),
        _entry(3, "-2.50", currency=EUR),
    ]

    totals = sum_by_currency(aggregate(entries, by_destination_account))

    assert list(totals) == [EUR.id, USD.id]
    assert totals == {EUR.id: Money(Decimal("-5.50"), EUR), USD.id: Money(Decimal("-10.00"), USD)}


def test_analysis_rows_fill_the_missing_side_with_zero() -> None:
    groceries = (5, "Groceries")
    salary = (6, "Salary")
    earned = aggregate(
        [_entry(1, "1000.00", transaction_type=TransactionType.DEPOSIT, category=salary)],
        by_category,
    )
    spent = aggregate([_entry(2, "-40.00", currency=EUR, category=groceries)], by_category)

    rows = analysis_rows(earned, spent)

    assert [(row.name, row.currency.code) for row in rows] == [("Salary", "USD"), ("Groceries", "EUR")]
    assert rows[0].earned == Money(Decimal("1000.00"), USD)
    assert rows[0].spent == Money.zero(USD)
    assert rows[1].earned == Money.zero(EUR)
    assert rows[1].spent == Money(Decimal("-40.00"), EUR)
