"""Health check routes."""

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from wallet import __version__
from wallet.core.dependencies import LedgerStoreDep

router = APIRouter(prefix="/health", tags=["Health"])


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str


class ReadyResponse(BaseModel):
    """Readiness check response."""

    status: str
    database: str


@router.get(
    "",
    response_model=HealthResponse,
    summary="Health check",
    description="Check if the service is running.",
)
async def health_check() -> HealthResponse:
    """Return service health status."""
    return HealthResponse(status="healthy", version=__version__)


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness check",
    description="Check if the ledger store is reachable.",
    responses={503: {"model": ReadyResponse}},
)
async def readiness_check(store: LedgerStoreDep) -> ReadyResponse | JSONResponse:
    """Return service readiness status."""
    if await store.ping():
        return ReadyResponse(status="ready", database="connected")
    return JSONResponse(
        status_code=503,
        content=ReadyResponse(status="not_ready", database="disconnected").model_dump(),
    )


@router.get(
    "/live",
    summary="Liveness check",
    description="Kubernetes liveness probe endpoint.",
)
async def liveness_check() -> dict:
    """Return liveness status."""
    return {"status": "alive"}
