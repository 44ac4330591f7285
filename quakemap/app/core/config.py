"""
Environment configuration — single source of truth for all settings.

Uses pydantic-settings for type-safe config with .env file support.
All values have sensible defaults for local development.

Usage:
    from quakemap.app.core.config import settings
    print(settings.SEISMIC_API_URL)
"""

from __future__ import annotations

from functools import lru_cache
from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application-wide settings loaded from environment variables or .env file.

    Precedence: env var > .env file > default value
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # ── Application ──
    APP_NAME: str = "Philippines Earthquake Monitoring Map"
    APP_VERSION: str = "1.0.0"
    ENVIRONMENT: str = "development"  # development | staging | production
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"  # DEBUG | INFO | WARNING | ERROR | CRITICAL

    # ── Server ──
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    RELOAD: bool = True  # auto-reload on file changes (dev only)

    # ── CORS ──
    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
        "http://localhost:8000",
    ]
    CORS_ALLOW_ALL: bool = True  # False in production

    # ── Seismic feed ──
    SEISMIC_API_URL: str = "http://localhost:5000/"  # requests go to <base>seismic
    SEISMIC_FETCH_TIMEOUT: float = 30.0  # seconds
    SEISMIC_STALE_SECONDS: float = 300.0  # freshness window (5 min)
    SEISMIC_GC_SECONDS: float = 600.0  # idle eviction window (10 min)
    SEISMIC_RETRY_COUNT: int = 3  # extra attempts after the first failure
    SEISMIC_RETRY_DELAY_CAP: float = 30.0  # seconds
    FEED_TIMEZONE: str = "Asia/Manila"  # wall clock of the feed's timestamps
    DATA_SOURCE_URL: str = "https://earthquake.phivolcs.dost.gov.ph/"

    # ── Map ──
    MAPBOX_TOKEN: Optional[str] = None
    MAP_STYLE: str = "mapbox://styles/mapbox/outdoors-v12"
    MAP_CENTER_LON: float = 123.8854
    MAP_CENTER_LAT: float = 10.3157
    MAP_ZOOM: float = 4.5
    MAP_FLY_DURATION_MS: int = 1000
    MAP_TILES: str = "OpenStreetMap"  # folium base tiles

    # ── Month selector ──
    MONTH_PICKER_MIN_YEAR: int = 2018
    MONTH_PICKER_DISABLE_FUTURE: bool = True

    # ── Event list ──
    EVENT_LIST_HEAD_SIZE: int = 20
    EVENT_LIST_MIN_MAGNITUDE: float = 4.0
    EVENT_LIST_SKELETON_ROWS: int = 8

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT == "development"

    @property
    def seismic_endpoint(self) -> str:
        """Full URL of the seismic feed endpoint."""
        base = self.SEISMIC_API_URL
        if not base.endswith("/"):
            base += "/"
        return f"{base}seismic"


@lru_cache()
def get_settings() -> Settings:
    """Cached settings singleton."""
    return Settings()


settings = get_settings()
