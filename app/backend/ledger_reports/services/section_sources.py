"""Data sources feeding the report collector.

Sources may hand back structured rows or, for sections that only exist as a
rendered view, an opaque markup string. The collector tolerates both.
"""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from datetime import date, timedelta
from decimal import Decimal
from typing import Protocol

from ledger_reports.repositories.ledger_repository import LedgerRepository, to_currency
from ledger_reports.services.aggregation import (
    NONE_LABEL,
    aggregate,
    by_account_pair,
    by_budget,
    by_category,
    by_tags,
)
from ledger_reports.services.report_data import (
    ZERO,
    AccountBalanceRow,
    AggregationResult,
    AuditRow,
    BudgetPerformanceRow,
    Currency,
    DimensionAnalysisRow,
    DimensionKey,
    DimensionSelector,
    DoubleComparisonRow,
    ExportRequest,
    JournalEntry,
    JournalQuery,
    Money,
    Period,
    TransactionType,
)


class JournalSource(Protocol):
    def query_journals(self, period: Period, query: JournalQuery) -> Sequence[JournalEntry]: ...

    def list_entries_until(self, until: date, accounts: DimensionSelector) -> Sequence[JournalEntry]: ...


class ReportSectionSource(Protocol):
    def account_balances(self, request: ExportRequest) -> Sequence[AccountBalanceRow] | str: ...

    def budget_performance(self, request: ExportRequest) -> Sequence[BudgetPerformanceRow] | str: ...

    def category_analysis(self, request: ExportRequest) -> Sequence[DimensionAnalysisRow] | str: ...

    def tag_analysis(self, request: ExportRequest) -> Sequence[DimensionAnalysisRow] | str: ...

    def double_comparison(self, request: ExportRequest) -> Sequence[DoubleComparisonRow] | str: ...

    def transaction_audit(self, request: ExportRequest) -> Sequence[AuditRow] | str: ...


def analysis_rows(earned: AggregationResult, spent: AggregationResult) -> list[DimensionAnalysisRow]:
    """Merge earned and spent buckets into one row per (dimension, currency)."""

    keys: list[tuple[Hashable, int]] = list(dict.fromkeys([*earned.buckets, *spent.buckets]))
    rows: list[DimensionAnalysisRow] = []
    for key in keys:
        earned_bucket = earned.buckets.get(key)
        spent_bucket = spent.buckets.get(key)
        reference = earned_bucket if earned_bucket is not None else spent_bucket
        if reference is None:
            continue
        currency = reference.currency
        rows.append(
            DimensionAnalysisRow(
                dimension_id=key[0],
                name=reference.dimension_name,
                earned=earned_bucket.sum if earned_bucket else Money.zero(currency),
                spent=spent_bucket.sum if spent_bucket else Money.zero(currency),
            )
        )
    return rows


class LedgerSectionSource:
    """Section source computing every section from the ledger tables."""

    def __init__(self, repo: LedgerRepository, *, none_label: str = NONE_LABEL) -> None:
        self.repo = repo
        self.none_label = none_label

    def account_balances(self, request: ExportRequest) -> list[AccountBalanceRow]:
        accounts = self.repo.list_accounts(request.accounts)
        entries = self.repo.list_entries_until(request.end, request.accounts)
        day_before = request.start - timedelta(days=1)

        rows: list[AccountBalanceRow] = []
        for account in accounts:
            currency = to_currency(account.currency)
            start_balance = ZERO
            end_balance = ZERO
            for entry in entries:
                if entry.currency.id != currency.id:
                    continue
                delta = entry.delta_for(account.id)
                if entry.date <= day_before:
                    start_balance += delta
                end_balance += delta
            rows.append(
                AccountBalanceRow(
                    account_id=account.id,
                    name=account.name,
                    start_balance=Money(start_balance, currency),
                    end_balance=Money(end_balance, currency),
                )
            )
        return rows

    def budget_performance(self, request: ExportRequest) -> list[BudgetPerformanceRow]:
        entries = self.repo.query_journals(
            request.period,
            JournalQuery(
                accounts=request.accounts,
                transaction_types=(TransactionType.WITHDRAWAL,),
                budgets=request.budgets,
            ),
        )
        spent = aggregate(entries, by_budget, none_label=self.none_label)

        budgeted: dict[tuple[int, int], Money] = {}
        currencies: dict[int, Currency] = {}
        for limit in self.repo.list_budget_limits(request.budgets, request.period):
            currency = to_currency(limit.currency)
            currencies[currency.id] = currency
            key = (limit.budget_id, currency.id)
            budgeted[key] = budgeted.get(key, Money.zero(currency)) + Money(Decimal(limit.amount), currency)
        for bucket in spent.buckets.values():
            currencies.setdefault(bucket.currency.id, bucket.currency)

        rows: list[BudgetPerformanceRow] = []
        for budget in self.repo.list_budgets(request.budgets):
            for currency_id, currency in currencies.items():
                key = (budget.id, currency_id)
                bucket = spent.buckets.get(key)
                if bucket is None and key not in budgeted:
                    continue
                rows.append(
                    BudgetPerformanceRow(
                        budget_id=budget.id,
                        name=budget.name,
                        budgeted=budgeted.get(key, Money.zero(currency)),
                        spent=bucket.sum if bucket else Money.zero(currency),
                    )
                )
        return rows

    def _earned_and_spent(self, request: ExportRequest, query: JournalQuery, dimension) -> list[DimensionAnalysisRow]:
        entries = self.repo.query_journals(request.period, query)
        earned = aggregate(
            (entry for entry in entries if entry.transaction_type is TransactionType.DEPOSIT),
            dimension,
            none_label=self.none_label,
        )
        spent = aggregate(
            (entry for entry in entries if entry.transaction_type is TransactionType.WITHDRAWAL),
            dimension,
            none_label=self.none_label,
        )
        return analysis_rows(earned, spent)

    def category_analysis(self, request: ExportRequest) -> list[DimensionAnalysisRow]:
        return self._earned_and_spent(
            request,
            JournalQuery(accounts=request.accounts, categories=request.categories),
            by_category,
        )

    def tag_analysis(self, request: ExportRequest) -> list[DimensionAnalysisRow]:
        selected = set(request.tags)

        def selected_tags(entry: JournalEntry) -> list[DimensionKey]:
            return [key for key in by_tags(entry) if key.id in selected]

        return self._earned_and_spent(
            request,
            JournalQuery(accounts=request.accounts, tags=request.tags),
            selected_tags,
        )

    def double_comparison(self, request: ExportRequest) -> list[DoubleComparisonRow]:
        entries = self.repo.query_journals(
            request.period,
            JournalQuery(
                accounts=request.accounts,
                transaction_types=(TransactionType.WITHDRAWAL,),
                counterparties=request.expense_accounts,
            ),
        )
        names = {
            (entry.source_account_id, entry.destination_account_id): (
                entry.source_account_name,
                entry.destination_account_name,
            )
            for entry in entries
        }
        result = aggregate(entries, by_account_pair, none_label=self.none_label)
        return [
            DoubleComparisonRow(
                asset_account=names[bucket.dimension_id][0],
                expense_account=names[bucket.dimension_id][1],
                amount=bucket.sum,
            )
            for bucket in result.buckets.values()
        ]

    def transaction_audit(self, request: ExportRequest) -> list[AuditRow]:
        entries = self.repo.query_journals(
            request.period,
            JournalQuery(
                accounts=request.accounts,
                transaction_types=(
                    TransactionType.WITHDRAWAL,
                    TransactionType.DEPOSIT,
                    TransactionType.TRANSFER,
                ),
            ),
        )
        return [
            AuditRow(
                date=entry.date,
                description=entry.description,
                source=entry.source_account_name,
                destination=entry.destination_account_name,
                amount=entry.money,
            )
            for entry in entries
        ]
