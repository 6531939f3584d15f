"""
Application settings loaded from environment variables.

Uses pydantic-settings so that every config value is validated at startup.
Every value is optional: a gateway that sets nothing gets a working
local pipeline with the defaults below.

Environment variables are prefixed with METRICS_, e.g. METRICS_DB_PATH.
"""

import socket

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# Upper bound for any retention horizon, about a century.
MAX_RETENTION_DAYS = 36_500


class RetentionConfig(BaseModel):
    """Per-table retention horizons, in days."""

    model_config = ConfigDict(frozen=True)

    raw_days: int = Field(default=30, ge=0)
    hourly_days: int = Field(default=90, ge=0)
    daily_days: int = Field(default=365, ge=0)


class Settings(BaseSettings):
    """
    Central configuration.

    DB_PATH may start with ``~/``; it is expanded when the store opens.
    DASHBOARD_DIR defaults to the ``dashboard/`` directory shipped next
    to the package.
    """

    model_config = SettingsConfigDict(
        env_prefix="METRICS_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Storage ─────────────────────────────────────────────
    DB_PATH: str = "~/.gateway-metrics/metrics.db"

    # ── Ingestion ───────────────────────────────────────────
    GATEWAY_ID: str = Field(default_factory=socket.gethostname)
    FLUSH_INTERVAL_SECONDS: float = Field(default=5.0, gt=0)
    BUFFER_SIZE: int = Field(default=100, ge=1)

    # ── Dashboard service ───────────────────────────────────
    DASHBOARD_ENABLED: bool = True
    DASHBOARD_BIND: str = "127.0.0.1"
    DASHBOARD_PORT: int = Field(default=8080, ge=0, le=65535)
    DASHBOARD_DIR: str | None = None

    # ── Retention ───────────────────────────────────────────
    RETENTION_RAW_DAYS: int = Field(default=30, ge=0, le=MAX_RETENTION_DAYS)
    RETENTION_HOURLY_DAYS: int = Field(default=90, ge=0, le=MAX_RETENTION_DAYS)
    RETENTION_DAILY_DAYS: int = Field(default=365, ge=0, le=MAX_RETENTION_DAYS)
    CLEANUP_HOUR_UTC: int = Field(default=4, ge=0, le=23)

    DEBUG: bool = False

    @property
    def retention(self) -> RetentionConfig:
        return RetentionConfig(
            raw_days=self.RETENTION_RAW_DAYS,
            hourly_days=self.RETENTION_HOURLY_DAYS,
            daily_days=self.RETENTION_DAILY_DAYS,
        )


# Singleton, imported by the standalone entry point as
# `from gateway_metrics.core.config import settings`
settings = Settings()
