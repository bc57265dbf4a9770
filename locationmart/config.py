"""
Application settings for LocationMart

Loaded once at import from environment variables (and .env when present).
Service modules read their defaults from here.
"""

from typing import Optional

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    PROJECT_NAME: str = "LocationMart"
    VERSION: str = "1.0.0"
    API_PREFIX: str = "/api/location"
    LOG_LEVEL: str = "INFO"
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # --- Composite geocoder ---
    GEOCODE_TIMEOUT_SECONDS: float = Field(default=4.0, gt=0)
    GEOCODE_DEFAULT_RPS: float = Field(default=10.0, gt=0)
    GEOCODE_USER_AGENT: str = "LocationMart/1.0 (noreply@locationmart.com)"
    GEOCODE_EMAIL: Optional[str] = "noreply@locationmart.com"
    GEONAMES_USERNAME: str = "demo"
    GOOGLE_API_KEY: Optional[SecretStr] = None
    GEOCODIO_API_KEY: Optional[SecretStr] = None

    # --- ArcGIS feature services ---
    ARCGIS_TIMEOUT_SECONDS: float = 30.0
    ARCGIS_PAGE_SIZE: int = Field(default=2000, gt=0)
    ARCGIS_MAX_FEATURES: int = Field(default=100_000, gt=0)
    ARCGIS_PAGE_DELAY_SECONDS: float = Field(default=0.1, ge=0)

    # --- Multi-layer enrichment ---
    ENRICHMENT_MAX_CONCURRENCY: int = Field(default=8, gt=0)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


settings = Settings()
