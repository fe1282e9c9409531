"""Application settings loaded from environment variables."""

import logging
import os
from dataclasses import dataclass, field
from functools import lru_cache

logger = logging.getLogger(__name__)

_DEV_JWT_SECRET = "dev-secret-change-me"


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    """Runtime configuration for the API, the data layer and maintenance."""

    # Database
    database_path: str = field(default_factory=lambda: os.getenv("DATABASE_PATH", "db/aih.db"))
    pool_size: int = field(default_factory=lambda: _env_int("DB_POOL_SIZE", 25))
    busy_timeout_ms: int = field(default_factory=lambda: _env_int("DB_BUSY_TIMEOUT_MS", 120000))

    # Query cache
    cache_ttl_seconds: int = field(default_factory=lambda: _env_int("QUERY_CACHE_TTL_SECONDS", 900))
    cache_max_entries: int = field(default_factory=lambda: _env_int("QUERY_CACHE_MAX_ENTRIES", 20000))
    cache_sweep_seconds: int = field(default_factory=lambda: _env_int("QUERY_CACHE_SWEEP_SECONDS", 120))

    # Auth
    jwt_secret: str = field(default_factory=lambda: os.getenv("JWT_SECRET", _DEV_JWT_SECRET))
    jwt_algorithm: str = field(default_factory=lambda: os.getenv("JWT_ALGORITHM", "HS256"))
    access_token_expire_hours: int = field(default_factory=lambda: _env_int("ACCESS_TOKEN_EXPIRE_HOURS", 24))
    reauth_token_expire_minutes: int = field(
        default_factory=lambda: _env_int("REAUTH_TOKEN_EXPIRE_MINUTES", 5)
    )
    bcrypt_rounds: int = field(default_factory=lambda: _env_int("BCRYPT_ROUNDS", 10))
    admin_default_password: str = field(default_factory=lambda: os.getenv("ADMIN_DEFAULT_PASSWORD", "admin"))

    # Backups and retention
    backup_dir: str = field(default_factory=lambda: os.getenv("BACKUP_DIR", "backups"))
    max_backups: int = field(default_factory=lambda: _env_int("MAX_BACKUPS", 21))
    access_log_retention_days: int = field(default_factory=lambda: _env_int("ACCESS_LOG_RETENTION_DAYS", 60))
    deletion_log_retention_days: int = field(
        default_factory=lambda: _env_int("DELETION_LOG_RETENTION_DAYS", 1825)
    )

    # Celery
    celery_broker_url: str = field(
        default_factory=lambda: os.getenv("CELERY_BROKER_URL", "redis://localhost:6379/0")
    )
    celery_result_backend: str = field(
        default_factory=lambda: os.getenv("CELERY_RESULT_BACKEND", "redis://localhost:6379/1")
    )

    # Server
    port: int = field(default_factory=lambda: _env_int("PORT", 5000))
    log_level: str = field(default_factory=lambda: os.getenv("LOG_LEVEL", "INFO"))

    def __post_init__(self) -> None:
        if self.jwt_secret == _DEV_JWT_SECRET:
            logger.warning("JWT_SECRET not set, using the development secret. Set it for production.")


@lru_cache
def get_settings() -> Settings:
    """Load settings once per process."""
    return Settings()
