"""Application configuration pulled from environment variables via pydantic."""
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from utils.logging_utils import get_tagged_logger
logger = get_tagged_logger(__name__, tag="config")


class Settings(BaseSettings):
    """Environment-driven configuration for the web settings service."""
    model_config = SettingsConfigDict(env_prefix="WEBSETTINGS_", extra="ignore")

    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    device_api_key: str | None = None
    session_retention_seconds: int = 24 * 60 * 60
    reaper_enabled: bool = True
    reaper_interval_seconds: int = 300
    max_sessions: int = 10000
    key_bytes: int = 16
    secret_bytes: int = 32
    retry_after_seconds: int = 30

    @field_validator("log_level", mode="after")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        """Accept log levels in any case."""
        return str(v).strip().upper()


settings = Settings()


if __name__ == "__main__":
    logger.setLevel("DEBUG")
    logger.debug(f"Loaded settings: {settings.model_dump_json(indent=4)}")
