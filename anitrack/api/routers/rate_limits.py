from fastapi import APIRouter, Depends, Request

from anitrack.middleware.rate_limit import RateLimit
from anitrack.utils.rate_limiter import RATE_LIMIT_CONFIGS

router = APIRouter(
    prefix="/rate-limits",
    tags=["rate-limits"],
    dependencies=[Depends(RateLimit(RATE_LIMIT_CONFIGS["admin"]))],
)


@router.get("/stats")
async def get_rate_limit_stats(request: Request):
    """Current in-memory limiter windows."""
    return request.app.state.rate_limiter.get_stats()
