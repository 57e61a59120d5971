"""Process configuration read from environment variables.

`.env` loading is opt-in via APP_LOAD_DOTENV so tests never pick up a
developer's local file by accident.
"""
from __future__ import annotations
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List

_TRUTHY = {"1", "true", "TRUE", "yes", "on"}


def _split_csv(raw: str | None, default: List[str]) -> List[str]:
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(",") if item.strip()]


@dataclass
class Settings:
    cors_allow_origins: List[str] = field(default_factory=lambda: ["http://localhost:3000"])
    channel_store_backend: str = "memory"
    redis_url: str = "redis://localhost:6379/0"
    channel_store_max_entries: int = 500
    google_api_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> "Settings":
        if os.getenv("APP_LOAD_DOTENV") in _TRUTHY:  # pragma: no cover
            from dotenv import load_dotenv

            # Respect existing env (override=False). Default search walks up from CWD.
            load_dotenv(override=False)
        return cls(
            cors_allow_origins=_split_csv(os.getenv("CORS_ALLOW_ORIGINS"), ["http://localhost:3000"]),
            channel_store_backend=os.getenv("CHANNEL_STORE_BACKEND", "memory").lower(),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            channel_store_max_entries=int(os.getenv("CHANNEL_STORE_MAX_ENTRIES", "500")),
            google_api_timeout_seconds=float(os.getenv("GOOGLE_API_TIMEOUT_SECONDS", "30")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "text"),
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
