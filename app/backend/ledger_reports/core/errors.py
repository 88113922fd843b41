"""Error taxonomy for report collection and workbook export."""

from __future__ import annotations

from fastapi import HTTPException, status


class ReportExportError(HTTPException):
    """Base for errors that abort an export and surface to the caller."""

    default_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, detail: str, *, status_code: int | None = None) -> None:
        super().__init__(status_code=status_code or self.default_status, detail=detail)


class ExportValidationError(ReportExportError):
    """Request parameters rejected before any collection work starts."""

    default_status = status.HTTP_400_BAD_REQUEST


class WorkbookGenerationError(ReportExportError):
    """Workbook could not be serialized; the underlying cause is chained."""


class FileIntegrityError(WorkbookGenerationError):
    """Serialized export file is missing or unreadable after the write."""


class SectionCollectionError(Exception):
    """One report section's data source failed; absorbed by the collector."""

    def __init__(self, section: str, message: str) -> None:
        super().__init__(message)
        self.section = section


class ChartBuildError(Exception):
    """Chart data could not be turned into a chart; the chart is omitted."""


class CurrencyMismatchError(ValueError):
    """Arithmetic attempted between amounts of different currencies."""
