from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: Optional[str] = None

    # Log Level
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    # Logging Configuration
    LOGGING_FRAME_DEPTH: int = (
        6  # Frame depth for finding logging call origin in stack trace
    )
    RECENT_LOGS_MAX_ENTRIES: int = 1000  # Size of the in-memory recent log buffer

    # API Configuration
    API_V1_PREFIX: str = "/api/v1"
    PROJECT_NAME: str = "AniTrack-API"
    VERSION: str = "1.0.0"

    # Cache Settings
    CACHE_DEFAULT_TTL_SECONDS: float = 300.0  # 5 minutes
    CACHE_MAX_SIZE: int = 1000  # Entries kept after a sweep
    CACHE_SWEEP_INTERVAL_SECONDS: float = 60.0
    CACHE_SINGLE_FLIGHT: bool = (
        False  # Share one fetch between concurrent misses on the same key
    )

    # Rate Limiter Settings
    RATE_LIMIT_SWEEP_INTERVAL_SECONDS: float = 60.0

    # Redis (distributed rate limiting, optional)
    REDIS_URL: Optional[str] = None  # e.g., redis://localhost:6379/0
    REDIS_MAX_CONNECTIONS: int = 100  # Connection pool size
    REDIS_SOCKET_CONNECT_TIMEOUT: float = 5.0  # Seconds
    REDIS_SOCKET_KEEPALIVE: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    # --------- Properties ---------
    @property
    def is_local(self) -> bool:
        """
        Check if running in local development environment.

        Returns True only for "local" or "local_dev"; any other value
        (dev, staging, prod) counts as deployed.
        """
        if not self.ENVIRONMENT:
            return False
        return self.ENVIRONMENT.lower() in ["local", "local_dev"]


settings = Settings()
