import json
from functools import lru_cache
from typing import Literal

from pydantic import computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Application
    app_name: str = "TakeLog API"
    app_version: str = "0.1.0"
    environment: Literal["development", "staging", "production"] = "development"
    debug: bool = True
    log_level: str = "INFO"

    # Persistence
    storage_backend: Literal["memory", "database"] = "memory"
    database_url: str = "sqlite:///./takelog.db"
    database_echo: bool = False

    # Numbering
    file_number_width: int = 4  # slate convention: 0001
    max_take_number: int = 9999
    max_file_number: int = 9999

    # Cameras
    default_camera_configuration: int = 1
    max_camera_configuration: int = 16

    # Pending duplicate resolutions are dropped after this many seconds
    resolution_ttl_seconds: int = 1800

    # CORS - stored as string, parsed via computed property
    cors_origins_raw: str = "http://localhost:5173,http://localhost:8081"

    @computed_field
    @property
    def cors_origins(self) -> list[str]:
        """Parse CORS origins from pipe/comma-separated string or JSON array."""
        v = self.cors_origins_raw
        if v.startswith("["):
            try:
                return json.loads(v)
            except json.JSONDecodeError:
                pass
        if "|" in v:
            return [origin.strip() for origin in v.split("|") if origin.strip()]
        return [origin.strip() for origin in v.split(",") if origin.strip()]


@lru_cache
def get_settings() -> Settings:
    return Settings()
