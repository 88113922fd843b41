"""Chart sheets built from chart-shaped report sections."""

from __future__ import annotations

import enum
import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from openpyxl import Workbook
from openpyxl.chart import BarChart, LineChart, PieChart, Reference
from openpyxl.chart.label import DataLabelList
from openpyxl.drawing.spreadsheet_drawing import AnchorMarker, TwoCellAnchor
from openpyxl.worksheet.worksheet import Worksheet

from ledger_reports.core.errors import ChartBuildError
from ledger_reports.services.report_data import ZERO, ReportDataTree, ReportType, StructuredSection
from ledger_reports.services.spreadsheet_layout import HEADER_BORDER, HEADER_FILL, HEADER_FONT

logger = logging.getLogger(__name__)

FIRST_DATA_ROW = 3
# Zero-based (column, row) corners; E2 to N21.
CHART_FROM = (4, 1)
CHART_TO = (13, 20)


class ChartKind(str, enum.Enum):
    LINE = "line"
    PIE = "pie"
    BAR = "bar"


@dataclass(frozen=True, slots=True)
class ChartSeries:
    label: str
    values: tuple[Decimal, ...]


@dataclass(frozen=True, slots=True)
class ChartTable:
    header: str
    labels: tuple[str, ...]
    series: tuple[ChartSeries, ...]


@dataclass(frozen=True, slots=True)
class ChartSpec:
    title: str
    section: str
    key: str
    kind: ChartKind
    # Data keyed by currency code; one chart sheet per currency.
    per_currency: bool = False


GENERAL_CHARTS = (
    ChartSpec("Operations Chart", "charts", "operations", ChartKind.LINE),
    ChartSpec("Net Worth Chart", "charts", "net_worth", ChartKind.LINE),
)

CHARTS_BY_REPORT_TYPE: dict[ReportType, tuple[ChartSpec, ...]] = {
    ReportType.DEFAULT: (
        ChartSpec("Income vs Expenses Chart", "default_charts", "income_vs_expenses", ChartKind.BAR),
    ),
    ReportType.BUDGET: (
        ChartSpec("Budget Spending Chart", "budget_charts", "budget_spending", ChartKind.PIE, per_currency=True),
    ),
    ReportType.CATEGORY: (
        ChartSpec(
            "Category Spending Chart",
            "category_charts",
            "category_spending",
            ChartKind.PIE,
            per_currency=True,
        ),
    ),
    ReportType.TAG: (
        ChartSpec("Tag Spending Chart", "tag_charts", "tag_spending", ChartKind.PIE, per_currency=True),
    ),
    ReportType.DOUBLE: (ChartSpec("Asset vs Expense Chart", "double_charts", "double_report", ChartKind.BAR),),
    ReportType.AUDIT: (),
}


def is_valid_chart_data(data: Any) -> bool:
    """Labeled datasets need labels or datasets; a key-value mapping needs one entry."""

    if not isinstance(data, Mapping) or not data:
        return False
    if "labels" in data or "datasets" in data:
        return bool(data.get("labels")) or bool(data.get("datasets"))
    return True


def _number(value: Any) -> Decimal:
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def normalize_chart_data(data: Mapping[str, Any]) -> ChartTable:
    if "labels" in data or "datasets" in data:
        labels = tuple(str(label) for label in data.get("labels") or ())
        series: list[ChartSeries] = []
        for dataset in data.get("datasets") or ():
            values: Sequence[Any] = dataset.get("data") or ()
            series.append(
                ChartSeries(
                    label=str(dataset.get("label") or "Data"),
                    values=tuple(_number(values[i]) if i < len(values) else ZERO for i in range(len(labels))),
                )
            )
        return ChartTable(header="Label", labels=labels, series=tuple(series))

    return ChartTable(
        header="Category",
        labels=tuple(str(key) for key in data),
        series=(ChartSeries(label="Value", values=tuple(_number(value) for value in data.values())),),
    )


def write_chart_table(worksheet: Worksheet, table: ChartTable, title: str) -> None:
    """Title in A1, headers in row 2, data from row 3."""

    worksheet.cell(row=1, column=1, value=title)
    headers = [table.header, *(series.label for series in table.series)]
    for column, text in enumerate(headers, start=1):
        worksheet.cell(row=2, column=column, value=text)
    for column in range(1, max(len(headers), 3) + 1):
        for row in (1, 2):
            cell = worksheet.cell(row=row, column=column)
            cell.fill = HEADER_FILL
            cell.font = HEADER_FONT
            cell.border = HEADER_BORDER

    for offset, label in enumerate(table.labels):
        row = FIRST_DATA_ROW + offset
        worksheet.cell(row=row, column=1, value=label)
        for column, series in enumerate(table.series, start=2):
            cell = worksheet.cell(row=row, column=column, value=series.values[offset])
            cell.number_format = "#,##0.00"
    worksheet.column_dimensions["A"].width = 30


def chart_anchor() -> TwoCellAnchor:
    anchor = TwoCellAnchor()
    anchor._from = AnchorMarker(col=CHART_FROM[0], row=CHART_FROM[1])
    anchor.to = AnchorMarker(col=CHART_TO[0], row=CHART_TO[1])
    return anchor


def build_chart(worksheet: Worksheet, table: ChartTable, title: str, kind: ChartKind):
    if not table.labels or not table.series:
        raise ChartBuildError(f"{title} has no data rows.")

    last_row = FIRST_DATA_ROW + len(table.labels) - 1
    categories = Reference(worksheet, min_col=1, min_row=FIRST_DATA_ROW, max_row=last_row)
    if kind is ChartKind.PIE:
        chart = PieChart()
        values = Reference(worksheet, min_col=2, min_row=FIRST_DATA_ROW - 1, max_row=last_row)
        chart.add_data(values, titles_from_data=True)
        labels = DataLabelList()
        labels.showPercent = True
        chart.dataLabels = labels
    else:
        if kind is ChartKind.LINE:
            chart = LineChart()
        else:
            chart = BarChart()
            chart.type = "col"
            chart.grouping = "clustered"
        values = Reference(
            worksheet,
            min_col=2,
            max_col=1 + len(table.series),
            min_row=FIRST_DATA_ROW - 1,
            max_row=last_row,
        )
        chart.add_data(values, titles_from_data=True)
        chart.x_axis.title = table.header
        chart.y_axis.title = "Amount"
    chart.set_categories(categories)
    chart.title = title
    chart.anchor = chart_anchor()
    return chart


class ChartEmbeddingEngine:
    """Append one sheet per valid chart section; failures only drop that chart."""

    def embed_charts(self, tree: ReportDataTree, workbook: Workbook) -> Workbook:
        specs = GENERAL_CHARTS + CHARTS_BY_REPORT_TYPE.get(tree.request.report_type, ())
        for spec in specs:
            for title, data in self._charts_for(spec, self._chart_data(tree, spec)):
                if not is_valid_chart_data(data):
                    logger.debug("Skipping %s: no chart data", title)
                    continue
                self._embed(tree, workbook, spec, title, data)
        return workbook

    @staticmethod
    def _chart_data(tree: ReportDataTree, spec: ChartSpec) -> Any:
        section = tree.section(spec.section)
        if not isinstance(section, StructuredSection) or not isinstance(section.data, Mapping):
            return None
        return section.data.get(spec.key)

    @staticmethod
    def _charts_for(spec: ChartSpec, data: Any) -> list[tuple[str, Any]]:
        """Split currency-keyed data into one (title, data) pair per currency."""

        if (
            spec.per_currency
            and isinstance(data, Mapping)
            and data
            and all(isinstance(slices, Mapping) for slices in data.values())
        ):
            return [(f"{spec.title} ({code})", slices) for code, slices in data.items()]
        return [(spec.title, data)]

    def _embed(
        self,
        tree: ReportDataTree,
        workbook: Workbook,
        spec: ChartSpec,
        title: str,
        data: Mapping[str, Any],
    ) -> None:
        worksheet = None
        try:
            worksheet = workbook.create_sheet(title)
            table = normalize_chart_data(data)
            write_chart_table(worksheet, table, title)
            worksheet.add_chart(build_chart(worksheet, table, title, spec.kind))
        except Exception:
            logger.error(
                "Failed to build %s for %s report (%s)",
                title,
                tree.request.report_type.value,
                tree.request.period,
                exc_info=True,
            )
            if worksheet is not None:
                workbook.remove(worksheet)
