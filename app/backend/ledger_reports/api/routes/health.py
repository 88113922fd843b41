"""Health check endpoints."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
def health() -> dict[str, str]:
    """Liveness endpoint; does not touch the ledger database."""

    return {"status": "ok"}

