"""
RSS Settlement - Configuration

All settings come from environment variables (the CLI also loads a .env
file first).

Environment Variables:
    STORAGE_BACKEND=memory            memory | postgresql
    DATABASE_URL=postgresql://...     required for postgresql
    DATABASE_POOL_SIZE                connections, default 2 * workers + 2
    SETTLEMENT_MAX_WORKERS=4          worker threads per callback pool
    CALLBACK_TIMEOUT=10               seconds per callback POST
    CALLBACK_MAX_RETRIES=3
    LOG_LEVEL=INFO
    LOG_FORMAT=console                console | json
"""

import os
from dataclasses import dataclass, field
from typing import Any

from retry import RetryConfig


@dataclass
class SettlementConfig:
    """Runtime configuration of the settlement service."""

    storage_backend: str = "memory"
    database_url: str | None = None
    max_workers: int = 4
    database_pool_size: int | None = None
    callback_timeout: float = 10.0
    callback_retry: RetryConfig = field(default_factory=RetryConfig)
    log_level: str = "INFO"
    log_format: str = "console"

    @classmethod
    def from_env(cls) -> "SettlementConfig":
        """Create configuration from environment variables."""
        max_workers = int(os.getenv("SETTLEMENT_MAX_WORKERS", "4"))
        if max_workers < 1:
            raise ValueError("SETTLEMENT_MAX_WORKERS must be at least 1")

        pool_size = os.getenv("DATABASE_POOL_SIZE")
        database_pool_size = int(pool_size) if pool_size else None
        # Each running task holds a connection, plus the job's unit of work
        if database_pool_size is not None and database_pool_size <= max_workers:
            raise ValueError("DATABASE_POOL_SIZE must be greater than SETTLEMENT_MAX_WORKERS")

        return cls(
            storage_backend=os.getenv("STORAGE_BACKEND", "memory").lower(),
            database_url=os.getenv("DATABASE_URL"),
            max_workers=max_workers,
            database_pool_size=database_pool_size,
            callback_timeout=float(os.getenv("CALLBACK_TIMEOUT", "10")),
            callback_retry=RetryConfig.from_env(),
            log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("LOG_FORMAT", "console").lower(),
        )

    @property
    def pool_size(self) -> int:
        """Connection pool size; the default leaves room for two jobs at full width."""
        return self.database_pool_size or 2 * self.max_workers + 2

    def to_dict(self) -> dict[str, Any]:
        """Settings safe to print (the database URL is masked)."""
        return {
            "storage_backend": self.storage_backend,
            "database_url": "configured" if self.database_url else "not set",
            "max_workers": self.max_workers,
            "pool_size": self.pool_size,
            "callback_timeout": self.callback_timeout,
            "callback_max_retries": self.callback_retry.max_retries,
            "log_level": self.log_level,
            "log_format": self.log_format,
        }
