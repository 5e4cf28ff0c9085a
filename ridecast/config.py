"""Service configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the ridecast service.

    Rider-facing thresholds (rain cutoff, drying rate, ...) are not here: they
    live in the settings store and are edited at runtime by the farm operator.
    """
    model_config = SettingsConfigDict(env_prefix="RIDECAST_", extra="ignore")

    forecast_source: str = "open_meteo"  # options: open_meteo
    open_meteo_url: str = "https://api.open-meteo.com/v1/forecast"
    request_timeout_seconds: float = 10.0
    database_url: str | None = None  # unset -> in-memory stores
    forecast_cache_redis_url: str | None = None
    forecast_cache_ttl_seconds: int = 900
    forecast_days: int = 8
    hourly_horizon_hours: int = 48
    snapshot_retention_days: int = 90
    log_level: str = "INFO"

    @field_validator("open_meteo_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, v: str) -> str:
        """Normalize base URLs to avoid double slashes."""
        return str(v).rstrip("/")


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
