"""Top-level API router."""

from fastapi import APIRouter

from ledger_reports.api.routes.exports import router as exports_router
from ledger_reports.api.routes.health import router as health_router

api_router = APIRouter()
api_router.include_router(health_router, tags=["health"])
api_router.include_router(exports_router)
