"""Health check endpoints."""

from fastapi import APIRouter

router = APIRouter()


@router.get("/health")
async def health_check() -> dict:
    """Liveness check endpoint.

    Returns 200 once the application is wired.
    Does not check any other dependency.
    """
    return {"status": "ok"}


@router.get("/ping")
async def ping() -> dict:
    return {"ok": True}
