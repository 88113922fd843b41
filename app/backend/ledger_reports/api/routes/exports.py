"""Spreadsheet export endpoints for ledger reports."""

from __future__ import annotations

from datetime import date

from fastapi import APIRouter, Depends, Query
from fastapi.responses import Response
from sqlalchemy.orm import Session

from ledger_reports.db.dependencies import get_db_session
from ledger_reports.services.report_data import DimensionSelector, ExportRequest, ReportType
from ledger_reports.services.report_export_service import ReportExportService, content_disposition

router = APIRouter(prefix="/exports", tags=["exports"])


def _service(db: Session) -> ReportExportService:
    return ReportExportService(db)


@router.get("/status")
def export_status() -> dict[str, str]:
    return {"status": "ready", "message": "Export service is ready"}


@router.get("/{report_type}")
def export_report(
    report_type: ReportType,
    start: date = Query(...),
    end: date = Query(...),
    account_id: list[int] | None = Query(default=None),
    budget_id: list[int] | None = Query(default=None),
    category_id: list[int] | None = Query(default=None),
    tag_id: list[int] | None = Query(default=None),
    expense_account_id: list[int] | None = Query(default=None),
    generated_by: str | None = Query(default=None, max_length=255),
    db: Session = Depends(get_db_session),
) -> Response:
    request = ExportRequest(
        report_type=report_type,
        start=start,
        end=end,
        accounts=DimensionSelector.of(account_id),
        budgets=DimensionSelector.of(budget_id),
        categories=DimensionSelector.of(category_id),
        tags=DimensionSelector.of(tag_id),
        expense_accounts=DimensionSelector.of(expense_account_id),
        generated_by=generated_by,
    )
    exported = _service(db).generate_export(request)
    return Response(
        content=exported.content,
        media_type=exported.media_type,
        headers={
            "Content-Description": "File Transfer",
            "Content-Disposition": content_disposition(exported.filename),
            "Content-Transfer-Encoding": "binary",
            "Content-Length": str(len(exported.content)),
            "Cache-Control": "must-revalidate, post-check=0, pre-check=0",
            "Pragma": "public",
            "Expires": "0",
        },
    )
