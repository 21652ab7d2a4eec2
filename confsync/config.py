"""Server configuration with environment variable overrides."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass

from confsync.schemas import CONFIG_SCHEMAS

try:
    from dotenv import load_dotenv

    load_dotenv(override=False)
except ImportError:
    # Optional dependency; env vars still work without .env loading.
    pass


_LOG_LEVELS = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
_MAX_PAGE_BALLS = 500


@dataclass(slots=True)
class Settings:
    """Config sync server settings. Override any field via environment variable."""

    config_source_url: str = os.environ.get(
        "CONFIG_SOURCE_URL", "http://localhost:8080/config"
    )
    config_schema: str = os.environ.get("CONFIG_SCHEMA", "feature").strip().lower()
    poll_interval_s: float = float(os.environ.get("POLL_INTERVAL_S", "5.0"))
    fetch_timeout_s: float = float(os.environ.get("FETCH_TIMEOUT_S", "5.0"))
    host: str = os.environ.get("SERVER_HOST", "127.0.0.1")
    port: int = int(os.environ.get("SERVER_PORT", "8081"))
    log_level: str = os.environ.get("LOG_LEVEL", "INFO").strip().upper()
    page_ball_count: int = int(os.environ.get("PAGE_BALL_COUNT", "50"))

    def __post_init__(self) -> None:
        if self.config_schema not in CONFIG_SCHEMAS:
            raise ValueError(
                "CONFIG_SCHEMA must be one of: " + ", ".join(sorted(CONFIG_SCHEMAS))
            )
        if self.poll_interval_s <= 0.0:
            raise ValueError("POLL_INTERVAL_S must be > 0")
        if self.fetch_timeout_s <= 0.0:
            raise ValueError("FETCH_TIMEOUT_S must be > 0")
        if not (1 <= self.port <= 65535):
            raise ValueError("SERVER_PORT must be in [1, 65535]")
        if not (1 <= self.page_ball_count <= _MAX_PAGE_BALLS):
            raise ValueError(f"PAGE_BALL_COUNT must be in [1, {_MAX_PAGE_BALLS}]")
        if self.log_level not in _LOG_LEVELS:
            raise ValueError("LOG_LEVEL must be one of: " + ", ".join(sorted(_LOG_LEVELS)))

    @property
    def log_level_no(self) -> int:
        return getattr(logging, self.log_level)


settings = Settings()
