# Central API router include file
from fastapi import APIRouter

from anitrack.api.routers.rate_limits import router as rate_limits_router
from anitrack.cache.router import router as cache_router
from anitrack.workers.router import router as jobs_router

# Create main API router
api_router = APIRouter()

api_router.include_router(cache_router)
api_router.include_router(rate_limits_router)
api_router.include_router(jobs_router)
