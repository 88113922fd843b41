"""Deterministic workbook layout for collected report data."""

from __future__ import annotations

import enum
import html
import logging
import re
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Any, TypeVar

from openpyxl import Workbook
from openpyxl.cell.cell import Cell as SheetCell
from openpyxl.formatting.rule import CellIsRule
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from ledger_reports.core.config import Settings, get_settings
from ledger_reports.services.aggregation import buckets_by_currency
from ledger_reports.services.report_data import (
    ZERO,
    AccountBalanceRow,
    AggregationResult,
    AuditRow,
    BalanceSummary,
    BudgetPerformanceRow,
    Currency,
    DimensionAnalysisRow,
    DoubleComparisonRow,
    FailedSection,
    MonthlySeries,
    MonthlySeriesRow,
    RawMarkupSection,
    ReportDataTree,
    ReportType,
    StructuredSection,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

PRIMARY_COLOR = "357CA4"
SUCCESS_COLOR = "28A745"
DANGER_COLOR = "DC3545"
ZERO_COLOR = "808080"

HEADER_FILL = PatternFill(fill_type="solid", start_color=PRIMARY_COLOR, end_color=PRIMARY_COLOR)
HEADER_FONT = Font(bold=True, color="FFFFFF")
ROW_FILLS = (
    PatternFill(fill_type="solid", start_color="FFFFFF", end_color="FFFFFF"),
    PatternFill(fill_type="solid", start_color="F2F2F2", end_color="F2F2F2"),
)
TOTAL_FILL = PatternFill(fill_type="solid", start_color="D6E6F0", end_color="D6E6F0")

THIN = Side(style="thin", color="000000")
MEDIUM = Side(style="medium", color="000000")
HEADER_BORDER = Border(left=THIN, right=THIN, top=THIN, bottom=THIN)
TOTAL_BORDER = Border(top=MEDIUM, bottom=MEDIUM)

MARKUP_PLACEHOLDER = ("Data available in HTML format", "See original report")
MARKUP_UNAVAILABLE = "see web report"

_ROW_PATTERN = re.compile(r"<tr\b[^>]*>(.*?)</tr>", re.IGNORECASE | re.DOTALL)
_CELL_PATTERN = re.compile(r"<t([dh])\b[^>]*>(.*?)</t[dh]>", re.IGNORECASE | re.DOTALL)
_TAG_PATTERN = re.compile(r"<[^>]+>")


# ---------- Cells ----------
@dataclass(frozen=True, slots=True)
class Literal:
    value: Any


@dataclass(frozen=True, slots=True)
class Formula:
    """Spreadsheet formula without the leading ``=``; evaluated by the reader."""

    expression: str

    def __str__(self) -> str:
        return f"={self.expression}"


Cell = Literal | Formula


class Flavor(str, enum.Enum):
    GENERAL = "general"
    INCOME = "income"
    EXPENSE = "expense"


@dataclass(frozen=True, slots=True)
class Amount:
    """Currency-formatted cell; the flavor drives its font color."""

    cell: Cell
    currency: Currency
    flavor: Flavor = Flavor.GENERAL

    @classmethod
    def of(cls, money, flavor: Flavor = Flavor.GENERAL) -> Amount:
        return cls(Literal(money.amount), money.currency, flavor)


def amount_color(amount: Amount) -> str | None:
    if isinstance(amount.cell, Formula):
        if amount.flavor is Flavor.INCOME:
            return SUCCESS_COLOR
        if amount.flavor is Flavor.EXPENSE:
            return DANGER_COLOR
        return None

    value = amount.cell.value
    if value == ZERO:
        return ZERO_COLOR
    if amount.flavor is Flavor.EXPENSE:
        return DANGER_COLOR
    if amount.flavor is Flavor.INCOME and value > ZERO:
        return SUCCESS_COLOR
    return DANGER_COLOR if value < ZERO else SUCCESS_COLOR


def formula_color_rules(amount: Amount) -> list[tuple[str, str]]:
    """Conditional (operator, color) pairs applied to formula cells against zero."""

    rules = [("equal", ZERO_COLOR)]
    if amount.flavor is Flavor.GENERAL:
        rules += [("lessThan", DANGER_COLOR), ("greaterThan", SUCCESS_COLOR)]
    return rules


def write_value(cell: SheetCell, value: Any, *, bold: bool = False) -> None:
    if isinstance(value, Amount):
        write_value(cell, value.cell)
        cell.number_format = value.currency.number_format
        cell.font = Font(bold=bold, color=amount_color(value))
        if isinstance(value.cell, Formula):
            for operator, color in formula_color_rules(value):
                cell.parent.conditional_formatting.add(
                    cell.coordinate,
                    CellIsRule(operator=operator, formula=["0"], font=Font(bold=bold, color=color)),
                )
        return
    if isinstance(value, Formula):
        cell.value = str(value)
    elif isinstance(value, Literal):
        cell.value = value.value
    else:
        cell.value = value
    if bold:
        cell.font = Font(bold=True)


# ---------- Sheet writer ----------
class SheetWriter:
    """Top-to-bottom row cursor over one worksheet."""

    def __init__(self, worksheet: Worksheet) -> None:
        self.ws = worksheet
        self.row = 1

    def header(self, labels: Sequence[str]) -> int:
        row = self.row
        for column, label in enumerate(labels, start=1):
            cell = self.ws.cell(row=row, column=column, value=label)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = HEADER_BORDER
        self.row += 1
        return row

    def title(self, text: str) -> int:
        row = self.row
        cell = self.ws.cell(row=row, column=1, value=text)
        cell.font = Font(bold=True, size=12)
        self.row += 1
        return row

    def skip(self, count: int = 1) -> None:
        self.row += count

    def data_row(self, values: Sequence[Any], *, first_data_row: int) -> int:
        row = self.row
        fill = ROW_FILLS[(row - first_data_row) % 2]
        for column, value in enumerate(values, start=1):
            cell = self.ws.cell(row=row, column=column)
            write_value(cell, value)
            cell.fill = fill
        self.row += 1
        return row

    def total_row(self, values: Sequence[Any]) -> int:
        row = self.row
        for column, value in enumerate(values, start=1):
            cell = self.ws.cell(row=row, column=column)
            write_value(cell, value, bold=True)
            cell.fill = TOTAL_FILL
            cell.border = TOTAL_BORDER
        self.row += 1
        return row


def group_by_currency(rows: Sequence[T], currency_of: Callable[[T], Currency]) -> list[tuple[Currency, list[T]]]:
    """Stable grouping in first-seen currency order."""

    groups: dict[int, tuple[Currency, list[T]]] = {}
    for row in rows:
        currency = currency_of(row)
        groups.setdefault(currency.id, (currency, []))[1].append(row)
    return list(groups.values())


def write_currency_table(
    writer: SheetWriter,
    rows: Sequence[T],
    *,
    currency_of: Callable[[T], Currency],
    render: Callable[[T, int], list[Any]],
    amount_columns: Mapping[int, Flavor],
    currency_column: int,
    always_total: bool = False,
) -> list[tuple[Currency, int, int]]:
    """Write rows grouped by currency, then one SUM total row per currency.

    A currency gets a total row once it has at least two data rows (or always,
    with ``always_total``). Returns the (currency, first, last) data row spans.
    """

    first_data_row = writer.row
    spans: list[tuple[Currency, int, int]] = []
    for currency, items in group_by_currency(rows, currency_of):
        start = writer.row
        for item in items:
            writer.data_row(render(item, writer.row), first_data_row=first_data_row)
        spans.append((currency, start, writer.row - 1))

    totalled = [span for span in spans if always_total or span[2] > span[1]]
    if not totalled:
        return spans

    writer.skip()
    width = max(currency_column, *amount_columns)
    for currency, start, end in totalled:
        values: list[Any] = [None] * width
        values[0] = "Total"
        for column, flavor in amount_columns.items():
            letter = get_column_letter(column)
            values[column - 1] = Amount(Formula(f"SUM({letter}{start}:{letter}{end})"), currency, flavor)
        values[currency_column - 1] = currency.code
        writer.total_row(values)
    return spans


# ---------- Section writers ----------
def write_account_balances(writer: SheetWriter, rows: Sequence[AccountBalanceRow]) -> None:
    write_currency_table(
        writer,
        rows,
        currency_of=lambda row: row.currency,
        render=lambda row, r: [
            row.name,
            Amount.of(row.start_balance),
            Amount.of(row.end_balance),
            Amount(Formula(f"C{r}-B{r}"), row.currency),
            row.currency.code,
        ],
        amount_columns={2: Flavor.GENERAL, 3: Flavor.GENERAL, 4: Flavor.GENERAL},
        currency_column=5,
    )


def _bucket_writer(flavor: Flavor) -> Callable[[SheetWriter, AggregationResult], None]:
    def write(writer: SheetWriter, result: AggregationResult) -> None:
        if not result:
            return
        write_currency_table(
            writer,
            buckets_by_currency(result),
            currency_of=lambda bucket: bucket.currency,
            render=lambda bucket, _: [
                bucket.dimension_name,
                Amount.of(bucket.sum, flavor),
                bucket.currency.code,
            ],
            amount_columns={2: flavor},
            currency_column=3,
        )

    return write


write_income = _bucket_writer(Flavor.INCOME)
write_expenses = _bucket_writer(Flavor.EXPENSE)


def write_operations(writer: SheetWriter, summary: BalanceSummary, *, total_label: str) -> None:
    """Income, Expenses and a live total row per currency."""

    if not isinstance(summary, BalanceSummary) or not summary.operations:
        return
    first_data_row = writer.row
    for operations in summary.operations.values():
        currency = operations.currency
        writer.data_row(
            ["Income", Amount.of(operations.in_, Flavor.INCOME), currency.code],
            first_data_row=first_data_row,
        )
        writer.data_row(
            ["Expenses", Amount.of(operations.out, Flavor.EXPENSE), currency.code],
            first_data_row=first_data_row,
        )
        row = writer.row
        writer.total_row([total_label, Amount(Formula(f"B{row - 2}+B{row - 1}"), currency), currency.code])


def write_income_vs_expenses(writer: SheetWriter, summary: BalanceSummary) -> None:
    write_operations(writer, summary, total_label="Net Result")


def _write_month_table(
    writer: SheetWriter,
    series: MonthlySeries,
    *,
    title: str,
    flavor: Flavor,
    pick: Callable[[Any], Any],
) -> None:
    writer.title(title)
    writer.header(["Category", "Currency", *series.labels, "Total"])
    if not series.rows:
        return

    month_count = len(series.labels)
    first_month = get_column_letter(3)
    last_month = get_column_letter(2 + month_count)

    def render(row: MonthlySeriesRow, r: int) -> list[Any]:
        values: list[Any] = [row.name, row.currency.code]
        values.extend(Amount.of(pick(month), flavor) for month in row.months)
        values.append(Amount(Formula(f"SUM({first_month}{r}:{last_month}{r})"), row.currency, flavor))
        return values

    amount_columns = {column: flavor for column in range(3, 3 + month_count + 1)}
    spans = write_currency_table(
        writer,
        series.rows,
        currency_of=lambda row: row.currency,
        render=render,
        amount_columns=amount_columns,
        currency_column=2,
        always_total=True,
    )
    logger.debug("Wrote %s table with %d currency groups", title, len(spans))


def write_category_months(writer: SheetWriter, series: MonthlySeries) -> None:
    if not isinstance(series, MonthlySeries):
        series = MonthlySeries(labels=(), rows=())
    _write_month_table(
        writer,
        series,
        title="Income by Category",
        flavor=Flavor.INCOME,
        pick=lambda month: month.income,
    )
    writer.skip()
    _write_month_table(
        writer,
        series,
        title="Expenses by Category",
        flavor=Flavor.EXPENSE,
        pick=lambda month: month.expense,
    )


def write_budget_performance(writer: SheetWriter, rows: Sequence[BudgetPerformanceRow]) -> None:
    write_currency_table(
        writer,
        rows,
        currency_of=lambda row: row.currency,
        render=lambda row, r: [
            row.name,
            Amount.of(row.budgeted),
            Amount.of(row.spent, Flavor.EXPENSE),
            Amount(Formula(f"B{r}+C{r}"), row.currency),
            row.currency.code,
        ],
        amount_columns={2: Flavor.GENERAL, 3: Flavor.EXPENSE, 4: Flavor.GENERAL},
        currency_column=5,
    )


def write_dimension_analysis(writer: SheetWriter, rows: Sequence[DimensionAnalysisRow]) -> None:
    write_currency_table(
        writer,
        rows,
        currency_of=lambda row: row.currency,
        render=lambda row, r: [
            row.name,
            Amount.of(row.earned.clamp_min_zero(), Flavor.INCOME),
            Amount.of(row.spent.clamp_max_zero(), Flavor.EXPENSE),
            Amount(Formula(f"B{r}+C{r}"), row.currency),
            row.currency.code,
        ],
        amount_columns={2: Flavor.INCOME, 3: Flavor.EXPENSE, 4: Flavor.GENERAL},
        currency_column=5,
    )


def write_double_comparison(writer: SheetWriter, rows: Sequence[DoubleComparisonRow]) -> None:
    write_currency_table(
        writer,
        rows,
        currency_of=lambda row: row.currency,
        render=lambda row, _: [
            row.asset_account,
            row.expense_account,
            Amount.of(row.amount, Flavor.EXPENSE),
            row.currency.code,
        ],
        amount_columns={3: Flavor.EXPENSE},
        currency_column=4,
    )


def write_transaction_audit(writer: SheetWriter, rows: Sequence[AuditRow]) -> None:
    def render(row: AuditRow, _: int) -> list[Any]:
        return [
            row.date,
            row.description,
            row.source,
            row.destination,
            Amount.of(row.amount),
            row.currency.code,
        ]

    write_currency_table(
        writer,
        rows,
        currency_of=lambda row: row.currency,
        render=render,
        amount_columns={5: Flavor.GENERAL},
        currency_column=6,
    )


# ---------- Dispatch ----------
@dataclass(frozen=True, slots=True)
class SheetSpec:
    title: str
    section: str
    headers: tuple[str, ...]
    widths: tuple[float, ...]
    writer: Callable[[SheetWriter, Any], None]
    # Numeric columns filled with a marker when rows are scraped from markup.
    scrape_columns: int | None = None


ACCOUNT_BALANCES = SheetSpec(
    title="Account Balances",
    section="accounts",
    headers=("Account", "Start Balance", "End Balance", "Difference", "Currency"),
    widths=(30, 15, 15, 15, 10),
    writer=write_account_balances,
    scrape_columns=3,
)
INCOME = SheetSpec(
    title="Income",
    section="income",
    headers=("Revenue Account", "Amount", "Currency"),
    widths=(30, 15, 10),
    writer=write_income,
    scrape_columns=1,
)
EXPENSES = SheetSpec(
    title="Expenses",
    section="expenses",
    headers=("Expense Account", "Amount", "Currency"),
    widths=(30, 15, 10),
    writer=write_expenses,
    scrape_columns=1,
)
INCOME_VS_EXPENSES = SheetSpec(
    title="Income vs Expenses",
    section="balance",
    headers=("Metric", "Amount", "Currency"),
    widths=(25, 15, 10),
    writer=write_income_vs_expenses,
)
CATEGORIES = SheetSpec(
    title="Categories",
    section="category_months",
    headers=(),
    widths=(30, 10),
    writer=write_category_months,
)

SHEETS_BY_REPORT_TYPE: dict[ReportType, tuple[SheetSpec, ...]] = {
    ReportType.DEFAULT: (ACCOUNT_BALANCES, INCOME, EXPENSES, INCOME_VS_EXPENSES, CATEGORIES),
    ReportType.BUDGET: (
        SheetSpec(
            title="Budget Performance",
            section="budgets",
            headers=("Budget", "Budgeted", "Spent", "Left", "Currency"),
            widths=(25, 15, 15, 15, 10),
            writer=write_budget_performance,
        ),
    ),
    ReportType.CATEGORY: (
        SheetSpec(
            title="Category Analysis",
            section="categories",
            headers=("Category", "Income", "Expenses", "Difference", "Currency"),
            widths=(25, 15, 15, 15, 10),
            writer=write_dimension_analysis,
        ),
    ),
    ReportType.TAG: (
        SheetSpec(
            title="Tag Analysis",
            section="tags",
            headers=("Tag", "Income", "Expenses", "Difference", "Currency"),
            widths=(25, 15, 15, 15, 10),
            writer=write_dimension_analysis,
        ),
    ),
    ReportType.DOUBLE: (
        SheetSpec(
            title="Asset vs Expense",
            section="double",
            headers=("Asset Account", "Expense Account", "Amount", "Currency"),
            widths=(28, 28, 15, 10),
            writer=write_double_comparison,
        ),
    ),
    ReportType.AUDIT: (
        SheetSpec(
            title="Transaction Audit",
            section="audit",
            headers=("Date", "Description", "Source", "Destination", "Amount", "Currency"),
            widths=(12, 30, 25, 25, 15, 10),
            writer=write_transaction_audit,
        ),
    ),
}

MONTH_COLUMN_WIDTH = 14
TOTAL_COLUMN_WIDTH = 16


def scrape_markup_rows(markup: str) -> list[str]:
    """Best-effort labels from the first data cell of each ``<tr>``."""

    labels: list[str] = []
    for row in _ROW_PATTERN.findall(markup):
        cells = _CELL_PATTERN.findall(row)
        if not cells or all(kind.lower() == "h" for kind, _ in cells):
            continue
        label = html.unescape(_TAG_PATTERN.sub("", cells[0][1])).strip()
        if label:
            labels.append(" ".join(label.split()))
    return labels


# ---------- Engine ----------
class SpreadsheetLayoutEngine:
    """Lay a ``ReportDataTree`` out as an openpyxl workbook.

    The Summary sheet always comes first; the remaining data sheets are taken
    from ``SHEETS_BY_REPORT_TYPE`` in order.
    """

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def layout(self, tree: ReportDataTree, *, generated_at: datetime | None = None) -> Workbook:
        generated_at = generated_at or datetime.now()
        workbook = Workbook()
        self._set_properties(workbook, tree, generated_at)
        self._write_summary(workbook.active, tree, generated_at)
        for spec in SHEETS_BY_REPORT_TYPE.get(tree.request.report_type, ()):
            self._write_sheet(workbook.create_sheet(spec.title), spec, tree)
        return workbook

    def _set_properties(self, workbook: Workbook, tree: ReportDataTree, generated_at: datetime) -> None:
        brand = self.settings.export_brand_name
        request = tree.request
        properties = workbook.properties
        properties.creator = brand
        properties.lastModifiedBy = brand
        properties.title = f"{brand} {request.report_type.title} Report"
        properties.subject = f"Financial Report: {request.start.isoformat()} to {request.end.isoformat()}"
        properties.description = f"Generated on {generated_at:%Y-%m-%d %H:%M:%S} by {brand}"
        properties.keywords = f"{brand.lower().replace(' ', '-')} financial report export"
        properties.category = "Financial Report"

    def _write_summary(self, worksheet: Worksheet, tree: ReportDataTree, generated_at: datetime) -> None:
        worksheet.title = "Summary"
        request = tree.request
        brand = self.settings.export_brand_name
        for row, text in enumerate(
            (
                f"{brand} Report Export",
                f"{request.report_type.title} Report",
                f"Period: {request.start.isoformat()} to {request.end.isoformat()}",
                f"Generated: {generated_at:%Y-%m-%d %H:%M:%S}",
                f"User: {request.generated_by or 'n/a'}",
            ),
            start=1,
        ):
            worksheet.cell(row=row, column=1, value=text)
            for column in range(1, 6):
                cell = worksheet.cell(row=row, column=column)
                cell.fill = HEADER_FILL
                cell.font = HEADER_FONT
                cell.border = HEADER_BORDER
        for index, width in enumerate((30, 15, 15, 15, 15), start=1):
            worksheet.column_dimensions[get_column_letter(index)].width = width

        writer = SheetWriter(worksheet)
        writer.skip(6)
        writer.header(("Metric", "Amount", "Currency"))
        self._write_section(
            writer,
            tree.section("balance"),
            lambda w, data: write_operations(w, data, total_label="Total"),
        )

    def _write_sheet(self, worksheet: Worksheet, spec: SheetSpec, tree: ReportDataTree) -> None:
        for index, width in enumerate(spec.widths, start=1):
            worksheet.column_dimensions[get_column_letter(index)].width = width

        section = tree.section(spec.section)
        if spec is CATEGORIES and isinstance(section, StructuredSection) and isinstance(section.data, MonthlySeries):
            month_count = len(section.data.labels)
            for column in range(3, 3 + month_count):
                worksheet.column_dimensions[get_column_letter(column)].width = MONTH_COLUMN_WIDTH
            worksheet.column_dimensions[get_column_letter(3 + month_count)].width = TOTAL_COLUMN_WIDTH

        writer = SheetWriter(worksheet)
        if spec.headers:
            writer.header(spec.headers)
        self._write_section(writer, section, spec.writer, spec=spec)

    def _write_section(
        self,
        writer: SheetWriter,
        section: Any,
        write: Callable[[SheetWriter, Any], None],
        *,
        spec: SheetSpec | None = None,
    ) -> None:
        if isinstance(section, StructuredSection):
            write(writer, section.data)
        elif isinstance(section, RawMarkupSection):
            self._write_markup(writer, section.html, spec)
        elif isinstance(section, FailedSection):
            writer.data_row([f"Error collecting data: {section.error}"], first_data_row=writer.row)

    def _write_markup(self, writer: SheetWriter, markup: str, spec: SheetSpec | None) -> None:
        labels = scrape_markup_rows(markup) if spec is not None and spec.scrape_columns else []
        if not labels:
            writer.data_row(MARKUP_PLACEHOLDER, first_data_row=writer.row)
            return
        first_data_row = writer.row
        for label in labels:
            writer.data_row([label, *([MARKUP_UNAVAILABLE] * spec.scrape_columns)], first_data_row=first_data_row)
