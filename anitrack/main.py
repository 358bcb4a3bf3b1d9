from contextlib import asynccontextmanager
import logging

from dotenv import load_dotenv
from fastapi import FastAPI

from anitrack.api.routers.routers import api_router
from anitrack.core.config import settings
from anitrack.core.logging_config import configure_logging
from anitrack.core.redis import close_redis, get_redis
from anitrack.middleware import RequestIDMiddleware
from anitrack.middleware.rate_limit import rate_limit_exceeded_handler
from anitrack.utils.rate_limiter import DistributedRateLimiter, RateLimiter, RateLimitExceeded
from anitrack.utils.ttl_cache import CacheManager
from anitrack.workers.background_jobs import BackgroundJobProcessor


# Load environment variables
load_dotenv()

# Configure logging with request_id and job_id support
configure_logging()

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Start the cache and rate limiter sweep loops on startup; stop them, drain
    background jobs and close Redis on shutdown. Startup failures are logged
    and re-raised; shutdown errors are logged.
    """
    logger.info("Starting AniTrack API application...")

    try:
        await app.state.cache.start()
        await app.state.rate_limiter.start()

        if settings.REDIS_URL:
            try:
                redis_client = await get_redis()
                await redis_client.ping()
                app.state.distributed_rate_limiter = DistributedRateLimiter(
                    redis=redis_client, fallback=app.state.rate_limiter
                )
                logger.info("Distributed rate limiting enabled")
            except Exception as e:
                logger.error(f"Redis connection failed, using in-memory rate limits: {e}")

        logger.info("All services started successfully")
        yield

    except Exception:
        logger.exception("Failed to start services")
        raise
    finally:
        logger.info("Shutting down AniTrack API application...")

        try:
            await app.state.job_processor.stop()
            await app.state.cache.destroy()
            await app.state.rate_limiter.destroy()
            await close_redis()
            logger.info("All services stopped successfully")
        except Exception:
            logger.exception("Error during shutdown")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.PROJECT_NAME,
        version=settings.VERSION,
        lifespan=lifespan,
        openapi_url="/openapi.json" if settings.is_local else None,
    )

    # One instance of each per process, shared through app.state
    app.state.cache = CacheManager(
        default_ttl=settings.CACHE_DEFAULT_TTL_SECONDS,
        max_size=settings.CACHE_MAX_SIZE,
        sweep_interval=settings.CACHE_SWEEP_INTERVAL_SECONDS,
        single_flight=settings.CACHE_SINGLE_FLIGHT,
    )
    app.state.rate_limiter = RateLimiter(
        sweep_interval=settings.RATE_LIMIT_SWEEP_INTERVAL_SECONDS
    )
    app.state.distributed_rate_limiter = None
    app.state.job_processor = BackgroundJobProcessor()

    app.add_exception_handler(RateLimitExceeded, rate_limit_exceeded_handler)
    app.add_middleware(RequestIDMiddleware)

    @app.get("/health")
    async def health_check():
        return {"status": "healthy", "service": settings.PROJECT_NAME}

    app.include_router(api_router, prefix=settings.API_V1_PREFIX)

    return app


app = create_app()
