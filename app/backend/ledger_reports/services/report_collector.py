"""Collection of every report section into one read-only data tree."""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping, Sequence
from decimal import Decimal
from typing import Any

from ledger_reports.core.errors import SectionCollectionError
from ledger_reports.services.aggregation import (
    NONE_LABEL,
    aggregate,
    by_category,
    by_destination_account,
    by_source_account,
    sum_by_currency,
)
from ledger_reports.services.report_data import (
    ZERO,
    AggregationResult,
    BalanceSummary,
    BudgetPerformanceRow,
    Currency,
    DimensionAnalysisRow,
    DoubleComparisonRow,
    ExportRequest,
    FailedSection,
    JournalQuery,
    Money,
    MonthlySeries,
    OperationsRow,
    RawMarkupSection,
    ReportDataTree,
    ReportType,
    Section,
    StructuredSection,
    TransactionType,
)
from ledger_reports.services.section_sources import JournalSource, ReportSectionSource
from ledger_reports.services.time_buckets import bucket_by_month

logger = logging.getLogger(__name__)

ChartData = dict[str, Any]

BASE_SECTIONS = ("accounts", "income", "expenses", "balance", "charts")

SECTIONS_BY_REPORT_TYPE: dict[ReportType, tuple[str, ...]] = {
    ReportType.DEFAULT: ("category_months",),
    ReportType.AUDIT: ("audit",),
    ReportType.BUDGET: ("budgets",),
    ReportType.CATEGORY: ("categories",),
    ReportType.TAG: ("tags",),
    ReportType.DOUBLE: ("double",),
}

# report type -> (chart section, chart key, section the chart is derived from)
CHART_SECTIONS_BY_REPORT_TYPE: dict[ReportType, tuple[str, str, str]] = {
    ReportType.DEFAULT: ("default_charts", "income_vs_expenses", "category_months"),
    ReportType.BUDGET: ("budget_charts", "budget_spending", "budgets"),
    ReportType.CATEGORY: ("category_charts", "category_spending", "categories"),
    ReportType.TAG: ("tag_charts", "tag_spending", "tags"),
    ReportType.DOUBLE: ("double_charts", "double_report", "double"),
}


def _series_label(prefix: str, currency: Currency) -> str:
    return f"{prefix} ({currency.code})"


def _add_slice(slices: ChartData, currency: Currency, label: str, amount: Decimal) -> None:
    """Pie slices are kept per currency code; each currency becomes its own pie."""

    if amount == ZERO:
        return
    per_currency = slices.setdefault(currency.code, {})
    per_currency[label] = per_currency.get(label, ZERO) + amount


def budget_spending_chart(rows: Sequence[BudgetPerformanceRow]) -> ChartData:
    slices: ChartData = {}
    for row in rows:
        _add_slice(slices, row.currency, row.name, abs(row.spent.amount))
    return slices


def dimension_spending_chart(rows: Sequence[DimensionAnalysisRow]) -> ChartData:
    slices: ChartData = {}
    for row in rows:
        _add_slice(slices, row.currency, row.name, abs(row.spent.clamp_max_zero().amount))
    return slices


def double_report_chart(rows: Sequence[DoubleComparisonRow]) -> ChartData:
    labels = list(dict.fromkeys(f"{row.asset_account} → {row.expense_account}" for row in rows))
    datasets: dict[int, dict[str, Any]] = {}
    for row in rows:
        dataset = datasets.setdefault(
            row.currency.id,
            {"label": _series_label("Amount", row.currency), "data": [ZERO] * len(labels)},
        )
        index = labels.index(f"{row.asset_account} → {row.expense_account}")
        dataset["data"][index] += abs(row.amount.amount)
    return {"labels": labels, "datasets": list(datasets.values())}


def income_vs_expenses_chart(series: MonthlySeries) -> ChartData:
    datasets: list[dict[str, Any]] = []
    currencies: dict[int, Currency] = {}
    for row in series.rows:
        currencies.setdefault(row.currency.id, row.currency)
    for currency in currencies.values():
        income = [ZERO] * len(series.labels)
        expenses = [ZERO] * len(series.labels)
        for row in series.rows:
            if row.currency.id != currency.id:
                continue
            for index, month in enumerate(row.months):
                income[index] += month.income.amount
                expenses[index] += abs(month.expense.amount)
        datasets.append({"label": _series_label("Income", currency), "data": income})
        datasets.append({"label": _series_label("Expenses", currency), "data": expenses})
    return {"labels": list(series.labels), "datasets": datasets}


CHART_BUILDERS: dict[str, Callable[[Any], ChartData]] = {
    "income_vs_expenses": income_vs_expenses_chart,
    "budget_spending": budget_spending_chart,
    "category_spending": dimension_spending_chart,
    "tag_spending": dimension_spending_chart,
    "double_report": double_report_chart,
}


class ReportDataCollector:
    """Build a ``ReportDataTree`` for one export request.

    Every section is collected in isolation: a section whose source raises is
    logged and replaced by a ``FailedSection`` so the remaining sections, and
    the export as a whole, still go through.
    """

    def __init__(
        self,
        journals: JournalSource,
        sources: ReportSectionSource,
        *,
        none_label: str = NONE_LABEL,
    ) -> None:
        self.journals = journals
        self.sources = sources
        self.none_label = none_label
        self._producers: Mapping[str, Callable[[ExportRequest], Any]] = {
            "accounts": self.collect_account_data,
            "income": self.collect_income_data,
            "expenses": self.collect_expense_data,
            "balance": self.collect_balance_data,
            "charts": self.collect_chart_data,
            "category_months": self.collect_category_months,
            "audit": self.collect_audit_data,
            "budgets": self.collect_budget_data,
            "categories": self.collect_category_data,
            "tags": self.collect_tag_data,
            "double": self.collect_double_data,
        }

    def collect_report_data(self, request: ExportRequest) -> ReportDataTree:
        sections: dict[str, Section] = {}
        for name in BASE_SECTIONS + SECTIONS_BY_REPORT_TYPE.get(request.report_type, ()):
            sections[name] = self._isolated(request, name, self._producers[name])

        chart_section = CHART_SECTIONS_BY_REPORT_TYPE.get(request.report_type)
        if chart_section is not None:
            chart_name, chart_key, source_name = chart_section
            sections[chart_name] = self._isolated(
                request,
                chart_name,
                lambda _: {chart_key: self._derive_chart(chart_key, sections[source_name])},
            )
        return ReportDataTree(request=request, sections=sections)

    def _isolated(self, request: ExportRequest, name: str, producer: Callable[[ExportRequest], Any]) -> Section:
        try:
            value = producer(request)
            if value is None:
                raise SectionCollectionError(name, f"Section '{name}' returned no data.")
        except SectionCollectionError as exc:
            logger.warning(
                "Section %s of %s report for %s produced nothing: %s",
                exc.section,
                request.report_type.value,
                request.period,
                exc,
            )
            return FailedSection(str(exc))
        except Exception as exc:
            logger.error(
                "Failed to collect section %s of %s report for %s",
                name,
                request.report_type.value,
                request.period,
                exc_info=True,
            )
            return FailedSection(str(exc))

        if isinstance(value, str):
            return RawMarkupSection(value)
        if isinstance(value, list):
            value = tuple(value)
        return StructuredSection(value)

    def _derive_chart(self, chart_key: str, source: Section) -> ChartData:
        if not isinstance(source, StructuredSection):
            return {}
        return CHART_BUILDERS[chart_key](source.data)

    # ---------- Always collected ----------
    def collect_account_data(self, request: ExportRequest) -> Any:
        return self.sources.account_balances(request)

    def _aggregate(self, request: ExportRequest, transaction_type: TransactionType, dimension) -> AggregationResult:
        entries = self.journals.query_journals(
            request.period,
            JournalQuery(accounts=request.accounts, transaction_types=(transaction_type,)),
        )
        return aggregate(entries, dimension, none_label=self.none_label)

    def collect_income_data(self, request: ExportRequest) -> AggregationResult:
        return self._aggregate(request, TransactionType.DEPOSIT, by_source_account)

    def collect_expense_data(self, request: ExportRequest) -> AggregationResult:
        return self._aggregate(request, TransactionType.WITHDRAWAL, by_destination_account)

    def collect_balance_data(self, request: ExportRequest) -> BalanceSummary:
        income = sum_by_currency(self.collect_income_data(request))
        expenses = sum_by_currency(self.collect_expense_data(request))

        operations: dict[int, OperationsRow] = {}
        for currency_id in dict.fromkeys([*income, *expenses]):
            currency = (income.get(currency_id) or expenses[currency_id]).currency
            operations[currency_id] = OperationsRow(
                currency=currency,
                in_=income[currency_id] if currency_id in income else Money.zero(currency),
                out=expenses[currency_id] if currency_id in expenses else Money.zero(currency),
            )
        return BalanceSummary(operations=operations)

    def collect_chart_data(self, request: ExportRequest) -> dict[str, ChartData]:
        return {
            "operations": self._operations_chart(request),
            "net_worth": self._net_worth_chart(request),
        }

    def _operations_chart(self, request: ExportRequest) -> ChartData:
        months = list(request.period.months())
        labels = [month.label for month in months]
        income: dict[int, list[Decimal]] = {}
        expenses: dict[int, list[Decimal]] = {}
        currencies: dict[int, Currency] = {}

        for index, month in enumerate(months):
            entries = self.journals.query_journals(month, JournalQuery(accounts=request.accounts))
            for entry in entries:
                currencies.setdefault(entry.currency.id, entry.currency)
                income.setdefault(entry.currency.id, [ZERO] * len(months))
                expenses.setdefault(entry.currency.id, [ZERO] * len(months))
                if entry.transaction_type is TransactionType.DEPOSIT:
                    income[entry.currency.id][index] += entry.amount
                elif entry.transaction_type is TransactionType.WITHDRAWAL:
                    expenses[entry.currency.id][index] += abs(entry.amount)

        datasets: list[dict[str, Any]] = []
        for currency_id, currency in currencies.items():
            datasets.append({"label": _series_label("Income", currency), "data": income[currency_id]})
            datasets.append({"label": _series_label("Expenses", currency), "data": expenses[currency_id]})
        return {"labels": labels, "datasets": datasets}

    def _net_worth_chart(self, request: ExportRequest) -> ChartData:
        months = list(request.period.months())
        entries = self.journals.list_entries_until(request.end, request.accounts)
        currencies: dict[int, Currency] = {}
        for entry in entries:
            currencies.setdefault(entry.currency.id, entry.currency)

        datasets: list[dict[str, Any]] = []
        for currency_id, currency in currencies.items():
            closing: list[Decimal] = []
            for month in months:
                balance = ZERO
                for entry in entries:
                    if entry.currency.id != currency_id or entry.date > month.end:
                        continue
                    for account_id in request.accounts:
                        balance += entry.delta_for(account_id)
                closing.append(balance)
            datasets.append({"label": _series_label("Net worth", currency), "data": closing})
        return {"labels": [month.label for month in months], "datasets": datasets}

    # ---------- Per report type ----------
    def collect_category_months(self, request: ExportRequest) -> MonthlySeries:
        return bucket_by_month(
            request.period,
            lambda month: self.journals.query_journals(month, JournalQuery(accounts=request.accounts)),
            by_category,
            none_label=self.none_label,
        )

    def collect_audit_data(self, request: ExportRequest) -> Any:
        return self.sources.transaction_audit(request)

    def collect_budget_data(self, request: ExportRequest) -> Any:
        if not request.budgets:
            return ()
        return self.sources.budget_performance(request)

    def collect_category_data(self, request: ExportRequest) -> Any:
        if not request.categories:
            return ()
        return self.sources.category_analysis(request)

    def collect_tag_data(self, request: ExportRequest) -> Any:
        if not request.tags:
            return ()
        return self.sources.tag_analysis(request)

    def collect_double_data(self, request: ExportRequest) -> Any:
        if not request.expense_accounts:
            return ()
        return self.sources.double_comparison(request)
