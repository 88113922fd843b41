"""Report export orchestration: validate, collect, lay out, chart, serialize."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from io import BytesIO
from pathlib import Path
from uuid import uuid4

from openpyxl import Workbook
from sqlalchemy.orm import Session

from ledger_reports.core.config import Settings, get_settings
from ledger_reports.core.errors import ExportValidationError, FileIntegrityError, WorkbookGenerationError
from ledger_reports.repositories.ledger_repository import LedgerRepository
from ledger_reports.services.chart_embedding import ChartEmbeddingEngine
from ledger_reports.services.report_collector import ReportDataCollector
from ledger_reports.services.report_data import ExportRequest
from ledger_reports.services.section_sources import LedgerSectionSource
from ledger_reports.services.spreadsheet_layout import SpreadsheetLayoutEngine

logger = logging.getLogger(__name__)

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@dataclass(slots=True)
class ExportFilePayload:
    media_type: str
    filename: str
    content: bytes


def content_disposition(filename: str) -> str:
    escaped = filename.replace("\\", "\\\\").replace('"', '\\"')
    return f'attachment; filename="{escaped}"'


def validate_request(request: ExportRequest) -> None:
    if request.end < request.start:
        raise ExportValidationError("End date must be greater than or equal to start date.")
    if not request.accounts:
        raise ExportValidationError("At least one account must be selected.")


class ReportExportService:
    """Service producing one spreadsheet export per request."""

    def __init__(
        self,
        db: Session | None = None,
        *,
        collector: ReportDataCollector | None = None,
        layout: SpreadsheetLayoutEngine | None = None,
        charts: ChartEmbeddingEngine | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()
        if collector is None:
            if db is None:
                raise ValueError("Either a database session or a collector is required.")
            repo = LedgerRepository(db)
            collector = ReportDataCollector(
                repo,
                LedgerSectionSource(repo, none_label=self.settings.export_none_label),
                none_label=self.settings.export_none_label,
            )
        self.collector = collector
        self.layout = layout or SpreadsheetLayoutEngine(self.settings)
        self.charts = charts or ChartEmbeddingEngine()

    def build_filename(self, request: ExportRequest, generated_at: datetime) -> str:
        return (
            f"{self.settings.export_filename_prefix}_{request.report_type.title}Report_"
            f"{request.start.isoformat()}_to_{request.end.isoformat()}_"
            f"{generated_at:%Y-%m-%d_%H-%M-%S}.xlsx"
        )

    def generate_export(self, request: ExportRequest) -> ExportFilePayload:
        validate_request(request)
        generated_at = datetime.now()

        tree = self.collector.collect_report_data(request)
        workbook = self.layout.layout(tree, generated_at=generated_at)
        self.charts.embed_charts(tree, workbook)

        filename = self.build_filename(request, generated_at)
        content = self._serialize(workbook, filename)
        logger.info(
            "Generated %s report export %s (%d bytes, %d sheets)",
            request.report_type.value,
            filename,
            len(content),
            len(workbook.sheetnames),
        )
        return ExportFilePayload(media_type=XLSX_MEDIA_TYPE, filename=filename, content=content)

    def _serialize(self, workbook: Workbook, filename: str) -> bytes:
        if self.settings.export_directory is None:
            output = BytesIO()
            try:
                workbook.save(output)
            except Exception as exc:
                logger.exception("Could not serialize workbook %s", filename)
                raise WorkbookGenerationError(f"Could not generate report export: {exc}") from exc
            return output.getvalue()
        return self._round_trip(workbook, filename, Path(self.settings.export_directory))

    def _round_trip(self, workbook: Workbook, filename: str, directory: Path) -> bytes:
        path = directory / f"{Path(filename).stem}_{uuid4().hex}.xlsx"
        try:
            try:
                directory.mkdir(parents=True, exist_ok=True)
                workbook.save(path)
            except Exception as exc:
                logger.exception("Could not write workbook %s to %s", filename, directory)
                raise WorkbookGenerationError(f"Could not generate report export: {exc}") from exc

            if not path.is_file():
                raise FileIntegrityError(f"Export file {path.name} was not created.")
            try:
                content = path.read_bytes()
            except OSError as exc:
                raise FileIntegrityError(f"Export file {path.name} could not be read.") from exc
            if not content:
                raise FileIntegrityError(f"Export file {path.name} is empty.")
            return content
        finally:
            path.unlink(missing_ok=True)
