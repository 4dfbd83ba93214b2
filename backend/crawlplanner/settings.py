"""Centralized application settings using Pydantic BaseSettings.

Single import point for provider, storage and HTTP configuration. Search
knobs (trial counts, retry caps) live in ``services.scheduling.config``.
"""
from functools import lru_cache
from pydantic import Field
from typing import Optional
import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Core
    app_name: str = "Running Crawl Planner"
    environment: str = Field("development", alias="ENVIRONMENT")
    debug: bool = False

    # Storage (memory | mongo)
    store_backend: str = Field("memory", alias="STORE_BACKEND")
    mongo_uri: str = Field("mongodb://mongo:27017/crawlplanner", alias="MONGO_URI")
    mongo_db: str = Field("crawlplanner", alias="MONGO_DB")
    mongo_collection: str = Field("kv_store", alias="MONGO_COLLECTION")

    # Routing providers (google | osrm)
    routing_provider: str = Field("google", alias="ROUTING_PROVIDER")
    google_maps_api_key: Optional[str] = Field(None, alias="GOOGLE_MAPS_API_KEY")
    google_geocode_url: str = Field(
        "https://maps.googleapis.com/maps/api/geocode/json", alias="GOOGLE_GEOCODE_URL"
    )
    google_directions_url: str = Field(
        "https://maps.googleapis.com/maps/api/directions/json", alias="GOOGLE_DIRECTIONS_URL"
    )
    osrm_base: str = Field("https://router.project-osrm.org", alias="OSRM_BASE")
    osrm_profile: str = Field("foot", alias="OSRM_PROFILE")
    pelias_base: Optional[str] = Field(None, alias="PELIAS_BASE")
    nominatim_url: str = Field("https://nominatim.openstreetmap.org/search", alias="NOMINATIM_URL")
    geocoder_user_agent: str = Field("crawlplanner/1.0", alias="GEOCODER_USER_AGENT")
    geocoder_disabled: bool = Field(False, alias="GEOCODER_DISABLE")

    # Provider politeness
    http_timeout_seconds: float = Field(10.0, alias="HTTP_TIMEOUT_SECONDS")
    provider_min_interval_seconds: float = Field(0.0, alias="PROVIDER_MIN_INTERVAL_SECONDS")

    # URLs / CORS
    allowed_origins: str = Field("*", alias="ALLOWED_ORIGINS")

    class Config:
        case_sensitive = False
        env_file = ".env"
        env_file_encoding = "utf-8"

    @property
    def use_google(self) -> bool:
        return self.routing_provider.lower() == "google" and bool(self.google_maps_api_key)


@lru_cache()
def get_settings() -> Settings:
    s = Settings()  # type: ignore[arg-type]

    env = (s.environment or os.getenv('ENVIRONMENT', '')).lower()
    if env in ('production', 'prod'):
        if s.routing_provider.lower() == 'google' and not s.google_maps_api_key:
            raise RuntimeError('GOOGLE_MAPS_API_KEY must be set when ROUTING_PROVIDER=google in production')
        if not s.allowed_origins or s.allowed_origins.strip() == '*':
            raise RuntimeError('ALLOWED_ORIGINS must be set to specific origins in production (no "*")')

    return s


__all__ = ["Settings", "get_settings"]
