from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal

from openpyxl.worksheet.worksheet import Worksheet

from ledger_reports.core.config import Settings
from ledger_reports.services.report_data import (
    AccountBalanceRow,
    BalanceSummary,
    Currency,
    DimensionAnalysisRow,
    DimensionSelector,
    ExportRequest,
    FailedSection,
    Money,
    MonthlyAmounts,
    MonthlySeries,
    MonthlySeriesRow,
    OperationsRow,
    RawMarkupSection,
    ReportDataTree,
    ReportType,
    StructuredSection,
)
from ledger_reports.services.spreadsheet_layout import SpreadsheetLayoutEngine, scrape_markup_rows

USD = Currency(id=1, code="USD", symbol="$", name="US Dollar")
EUR = Currency(id=2, code="EUR", symbol="€", name="Euro")
GENERATED_AT = datetime(2024, 4, 1, 12, 0, 0)


def usd(amount: str) -> Money:
    return Money(Decimal(amount), USD)


def _tree(report_type: ReportType = ReportType.DEFAULT, **sections) -> ReportDataTree:
    request = ExportRequest(
        report_type=report_type,
        start=date(2024, 1, 1),
        end=date(2024, 3, 31),
        accounts=DimensionSelector.of([1]),
        generated_by="alice",
    )
    return ReportDataTree(request=request, sections=sections)


def _layout(tree: ReportDataTree):
    engine = SpreadsheetLayoutEngine(Settings(export_brand_name="Firefly III"))
    return engine.layout(tree, generated_at=GENERATED_AT)


def _rgb(color) -> str:
    return color.rgb if color is not None else ""


def _balance(account_id: int, name: str, start: str, end: str, currency: Currency = USD) -> AccountBalanceRow:
    return AccountBalanceRow(
        account_id=account_id,
        name=name,
        start_balance=Money(Decimal(start), currency),
        end_balance=Money(Decimal(end), currency),
    )


def test_default_workbook_sheet_order_and_properties() -> None:
    workbook = _layout(_tree())

    assert workbook.sheetnames == [
        "Summary",
        "Account Balances",
        "Income",
        "Expenses",
        "Income vs Expenses",
        "Categories",
    ]
    assert workbook.properties.title == "Firefly III Default Report"
    assert workbook.properties.creator == "Firefly III"
    assert workbook.properties.subject == "Financial Report: 2024-01-01 to 2024-03-31"


def test_summary_sheet_header_block_and_live_total() -> None:
    summary = BalanceSummary(operations={USD.id: OperationsRow(USD, usd("1000.00"), usd("-75.00"))})
    ws: Worksheet = _layout(_tree(balance=StructuredSection(summary)))["Summary"]

    assert [ws.cell(row=row, column=1).value for row in range(1, 6)] == [
        "Firefly III Report Export",
        "Default Report",
        "Period: 2024-01-01 to 2024-03-31",
        "Generated: 2024-04-01 12:00:00",
        "User: alice",
    ]
    assert _rgb(ws["E1"].fill.start_color).endswith("357CA4")
    assert [ws.cell(row=7, column=column).value for column in range(1, 4)] == ["Metric", "Amount", "Currency"]
    assert ws["A8"].value == "Income"
    assert ws["B8"].value == Decimal("1000.00")
    assert ws["A9"].value == "Expenses"
    assert ws["B9"].value == Decimal("-75.00")
    assert ws["A10"].value == "Total"
    assert ws["B10"].value == "=B8+B9"
    assert ws["C10"].value == "USD"
    assert _rgb(ws["B8"].font.color).endswith("28A745")
    assert _rgb(ws["B9"].font.color).endswith("DC3545")
    assert ws["B8"].number_format == "#,##0.00"


def test_account_balances_total_row_covers_exact_range() -> None:
    rows = (_balance(1, "Checking", "100.00", "250.00"), _balance(2, "Savings", "0.00", "40.00"))
    ws = _layout(_tree(accounts=StructuredSection(rows)))["Account Balances"]

    assert ws["A1"].value == "Account"
    assert _rgb(ws["A1"].fill.start_color).endswith("357CA4")
    assert ws["A1"].font.bold
    assert ws["D2"].value == "=C2-B2"
    assert ws["D3"].value == "=C3-B3"
    assert ws["A4"].value is None
    assert ws["A5"].value == "Total"
    assert ws["B5"].value == "=SUM(B2:B3)"
    assert ws["C5"].value == "=SUM(C2:C3)"
    assert ws["D5"].value == "=SUM(D2:D3)"
    assert ws["E5"].value == "USD"
    assert ws["B5"].font.bold
    assert ws["B5"].border.top.style == "medium"


def test_single_row_currency_gets_no_total_row() -> None:
    ws = _layout(_tree(accounts=StructuredSection((_balance(1, "Checking", "1.00", "2.00"),))))["Account Balances"]

    assert ws.max_row == 2
    assert ws["A2"].value == "Checking"


def test_totals_are_written_per_currency() -> None:
    rows = (
        _balance(1, "Checking", "1.00", "2.00"),
        _balance(3, "Euro Checking", "5.00", "6.00", EUR),
        _balance(2, "Savings", "3.00", "4.00"),
    )
    ws = _layout(_tree(accounts=StructuredSection(rows)))["Account Balances"]

    assert [ws.cell(row=row, column=1).value for row in range(2, 5)] == ["Checking", "Savings", "Euro Checking"]
    assert ws["A6"].value == "Total"
    assert ws["B6"].value == "=SUM(B2:B3)"
    assert ws.max_row == 6


def test_data_rows_alternate_fills() -> None:
    rows = tuple(_balance(index, f"Account {index}", "0.00", "1.00") for index in range(1, 4))
    ws = _layout(_tree(accounts=StructuredSection(rows)))["Account Balances"]

    assert _rgb(ws["A2"].fill.start_color).endswith("FFFFFF")
    assert _rgb(ws["A3"].fill.start_color).endswith("F2F2F2")
    assert _rgb(ws["A4"].fill.start_color).endswith("FFFFFF")


def test_zero_amount_is_grey() -> None:
    ws = _layout(_tree(accounts=StructuredSection((_balance(1, "Checking", "0.00", "5.00"),))))["Account Balances"]

    assert _rgb(ws["B2"].font.color).endswith("808080")
    assert _rgb(ws["C2"].font.color).endswith("28A745")


def test_markup_rows_are_scraped_with_placeholder_values() -> None:
    markup = (
        "<table><tr><th>Account</th><th>Start</th></tr>"
        "<tr><td><a href='/accounts/1'>Checking</a></td><td>$ 1.00</td></tr>"
        "<tr><td>Tom &amp; Jerry</td><td>$ 2.00</td></tr></table>"
    )
    ws = _layout(_tree(accounts=RawMarkupSection(markup)))["Account Balances"]

    assert ws["A2"].value == "Checking"
    assert [ws.cell(row=2, column=column).value for column in range(2, 5)] == ["see web report"] * 3
    assert ws["A3"].value == "Tom & Jerry"


def test_unscrapable_markup_falls_back_to_placeholder() -> None:
    ws = _layout(_tree(income=RawMarkupSection("<div>chart only</div>")))["Income"]

    assert ws["A2"].value == "Data available in HTML format"
    assert ws["B2"].value == "See original report"


def test_failed_section_writes_diagnostic_row() -> None:
    ws = _layout(_tree(ReportType.BUDGET, budgets=FailedSection("budget source is down")))["Budget Performance"]

    assert ws["A1"].value == "Budget"
    assert ws["A2"].value == "Error collecting data: budget source is down"


def test_empty_budget_section_leaves_header_only() -> None:
    workbook = _layout(_tree(ReportType.BUDGET))

    assert workbook.sheetnames == ["Summary", "Budget Performance"]
    ws = workbook["Budget Performance"]
    assert ws.max_row == 1
    assert [cell.value for cell in ws[1]] == ["Budget", "Budgeted", "Spent", "Left", "Currency"]


def test_category_analysis_clamps_and_difference_formula() -> None:
    rows = (
        DimensionAnalysisRow(dimension_id=7, name="Refunds", earned=usd("-5.00"), spent=usd("3.00")),
        DimensionAnalysisRow(dimension_id=8, name="Groceries", earned=usd("10.00"), spent=usd("-75.00")),
    )
    ws = _layout(_tree(ReportType.CATEGORY, categories=StructuredSection(rows)))["Category Analysis"]

    assert ws["B2"].value == Decimal("0")
    assert ws["C2"].value == Decimal("0")
    assert ws["D2"].value == "=B2+C2"
    assert ws["B3"].value == Decimal("10.00")
    assert ws["C3"].value == Decimal("-75.00")
    assert ws["B5"].value == "=SUM(B2:B3)"


def test_category_months_grid_formulas() -> None:
    series = MonthlySeries(
        labels=("Jan 2024", "Feb 2024"),
        rows=(
            MonthlySeriesRow(
                name="Groceries",
                currency=USD,
                months=(
                    MonthlyAmounts(income=usd("0"), expense=usd("-75.00")),
                    MonthlyAmounts(income=usd("0"), expense=usd("0")),
                ),
            ),
        ),
    )
    ws = _layout(_tree(category_months=StructuredSection(series)))["Categories"]

    assert ws["A1"].value == "Income by Category"
    assert [cell.value for cell in ws[2]][:5] == ["Category", "Currency", "Jan 2024", "Feb 2024", "Total"]
    assert ws["E3"].value == "=SUM(C3:D3)"
    assert ws["A5"].value == "Total"
    assert ws["B5"].value == "USD"
    assert ws["C5"].value == "=SUM(C3:C3)"
    assert ws["A7"].value == "Expenses by Category"
    assert ws["A9"].value == "Groceries"
    assert ws["C9"].value == Decimal("-75.00")
    assert ws["E9"].value == "=SUM(C9:D9)"
    assert ws["E11"].value == "=SUM(E9:E9)"
    assert ws.column_dimensions["E"].width == 16

def _formula_rules(ws: Worksheet, coordinate: str) -> dict[str, str]:
    return {
        rule.operator: rule.dxf.font.color.rgb
        for formatting in ws.conditional_formatting
        if str(formatting.sqref) == coordinate
        for rule in formatting.rules
    }


def test_summary_without_operations_keeps_header_only() -> None:
    workbook = _layout(_tree(balance=StructuredSection(BalanceSummary(operations={}))))

    assert workbook["Summary"].max_row == 7
    assert workbook["Income vs Expenses"].max_row == 1


def test_general_formula_cells_are_colored_by_sign() -> None:
    rows = (_balance(1, "Checking", "100.00", "50.00"), _balance(2, "Savings", "0.00", "40.00"))
    ws = _layout(_tree(accounts=StructuredSection(rows)))["Account Balances"]

    rules = _formula_rules(ws, "D2")
    assert set(rules) == {"equal", "lessThan", "greaterThan"}
    assert rules["equal"].endswith("808080")
    assert rules["lessThan"].endswith("DC3545")
    assert rules["greaterThan"].endswith("28A745")
    assert set(_formula_rules(ws, "D5")) == {"equal", "lessThan", "greaterThan"}
    assert _formula_rules(ws, "B2") == {}


def test_flavored_formula_totals_only_grey_out_zero() -> None:
    rows = (
        DimensionAnalysisRow(dimension_id=7, name="Bonus", earned=usd("5.00"), spent=usd("0")),
        DimensionAnalysisRow(dimension_id=8, name="Groceries", earned=usd("10.00"), spent=usd("-75.00")),
    )
    ws = _layout(_tree(ReportType.CATEGORY, categories=StructuredSection(rows)))["Category Analysis"]

    assert ws["B5"].value == "=SUM(B2:B3)"
    assert set(_formula_rules(ws, "B5")) == {"equal"}
    assert set(_formula_rules(ws, "C5")) == {"equal"}
    assert set(_formula_rules(ws, "D5")) == {"equal", "lessThan", "greaterThan"}



def test_scrape_markup_rows_skips_header_rows() -> None:
    markup = "<tr><th>Name</th></tr><tr>\n<td> <b>Savings</b>\n account </td><td>1</td></tr><tr><td></td></tr>"

    assert scrape_markup_rows(markup) == ["Savings account"]
