"""Application configuration settings.

All configuration values are loaded from environment variables (.env file).
Per-location storage keys (``STORAGE_<NAME>_ROOT`` / ``STORAGE_<NAME>_DRIVER``)
are dynamic and are read from the raw environment by the storage resolver.
"""

import json
from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    PROJECT_NAME: str = "hls-publisher"
    VERSION: str = "0.1.0"
    DEBUG: bool = False

    # Logging / tracing
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    OTLP_ENDPOINT: Optional[str] = None

    # Filesystem
    WORKING_DIR: Optional[str] = None  # defaults to the process working directory
    TEMP_SUBDIR: str = "tmp/transcode"

    # Storage locations (CSV or JSON list); the first one is the default
    STORAGE_LOCATIONS: str = ""

    # Public asset endpoint used to download sources held in remote storage
    PUBLIC_URL: Optional[str] = None
    HOST: str = "localhost"
    PORT: str = "8055"

    # Asset store REST API
    ASSET_STORE_URL: str = "http://localhost:8055"
    ASSET_STORE_TOKEN: str = ""

    # External tools
    FFMPEG_PATH: str = "ffmpeg"
    FFPROBE_PATH: str = "ffprobe"
    NICE_PATH: str = "nice"

    # Encoder defaults
    TRANSCODE_THREADS: int = 1  # 0 = all available cores
    TRANSCODE_NICE: Optional[int] = None  # 0 (highest) .. 19 (lowest)

    # Timeouts (None = wait indefinitely)
    COMMAND_TIMEOUT_SECONDS: Optional[float] = None
    DOWNLOAD_TIMEOUT_SECONDS: Optional[float] = None

    # Celery
    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/0"

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"

    @property
    def storage_locations(self) -> list[str]:
        """Configured storage location names, in declaration order."""
        raw = self.STORAGE_LOCATIONS.strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                return [str(loc).strip() for loc in json.loads(raw) if str(loc).strip()]
            except json.JSONDecodeError:
                pass
        return [loc.strip() for loc in raw.split(",") if loc.strip()]


settings = Settings()
