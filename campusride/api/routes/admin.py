"""
Admin / observability endpoints
===============================

GET  /api/v1/admin/health -- simple health check
POST /api/v1/admin/sweep  -- run one expiration sweep now
"""

from fastapi import APIRouter, Depends, Request

from campusride.api.dependencies import get_sweeper, require_role
from campusride.api.middleware import limiter
from campusride.api.schemas import HealthResponse, SweepResponse
from campusride.config import settings
from campusride.domain.enums import UserRole
from campusride.workers.expiration import ExpirationSweeper

router = APIRouter(prefix="/admin", tags=["admin"])


@router.post(
    "/sweep",
    response_model=SweepResponse,
    summary="Run one expiration sweep",
    description=(
        "Same pass the background worker runs on its interval.  Safe to "
        "call while the worker is running."
    ),
    dependencies=[Depends(require_role(UserRole.STAFF))],
)
@limiter.limit(settings.rate_limit)
async def run_sweep(
    request: Request,
    sweeper: ExpirationSweeper = Depends(get_sweeper),
):
    result = await sweeper.run_once()
    return SweepResponse.model_validate(result)


@router.get("/health", response_model=HealthResponse, summary="Health check")
async def health():
    return HealthResponse()
