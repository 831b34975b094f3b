from __future__ import annotations

import os
from pathlib import Path
from typing import List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")
    """Application runtime configuration."""

    app_name: str = "Pomo Timer"
    environment: str = "development"
    host: str = os.getenv("POMO_HOST", "127.0.0.1")
    port: int = int(os.getenv("POMO_PORT", "8080"))
    log_level: str = os.getenv("POMO_LOG_LEVEL", "INFO")

    sqlite_path: Path = Path(os.getenv("POMO_SQLITE_PATH", "./data/pomo.db"))

    timezone: str = os.getenv("TZ", "UTC")

    tick_interval_ms: int = int(os.getenv("POMO_TICK_INTERVAL_MS", "250"))
    event_queue_size: int = int(os.getenv("POMO_EVENT_QUEUE_SIZE", "256"))
    event_keepalive_seconds: float = float(os.getenv("POMO_EVENT_KEEPALIVE_SECONDS", "15"))

    cors_origins: List[str] = Field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv(
                "POMO_CORS_ORIGINS", "http://127.0.0.1:5173,http://localhost:5173"
            ).split(",")
            if origin.strip()
        ]
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def _split_origins(cls, value: str | List[str]) -> List[str]:
        if isinstance(value, list):
            return value
        if not value:
            return []
        return [origin.strip() for origin in value.split(",") if origin.strip()]

    @field_validator("tick_interval_ms")
    @classmethod
    def _clamp_tick(cls, value: int) -> int:
        return max(10, int(value))

    @field_validator("event_queue_size")
    @classmethod
    def _clamp_queue(cls, value: int) -> int:
        return max(1, int(value))

    @property
    def tick_seconds(self) -> float:
        return self.tick_interval_ms / 1000


settings = Settings()

# Ensure essential directories exist
settings.sqlite_path.parent.mkdir(parents=True, exist_ok=True)
