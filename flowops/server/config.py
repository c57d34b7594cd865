"""
Server settings, read from the environment.

main.py loads a .env file from the project root first, so anything below can
be set there instead of exported by hand.
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from typing import List

logger = logging.getLogger(__name__)

DEFAULT_DB_PATH = "flowops.db"
DEFAULT_DEBOUNCE_MS = 500
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 3001


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        logger.warning("Invalid %s=%r, using %d", name, raw, default)
        return default


@dataclass
class Settings:
    db_path: str = DEFAULT_DB_PATH
    save_debounce_ms: int = DEFAULT_DEBOUNCE_MS
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    log_level: str = "INFO"

    @property
    def save_debounce_seconds(self) -> float:
        return max(0, self.save_debounce_ms) / 1000.0

    @classmethod
    def from_env(cls) -> "Settings":
        origins = os.environ.get("FLOWOPS_CORS_ORIGINS", "*")
        return cls(
            db_path=os.environ.get("FLOWOPS_DB_PATH", DEFAULT_DB_PATH),
            save_debounce_ms=_env_int("FLOWOPS_SAVE_DEBOUNCE_MS", DEFAULT_DEBOUNCE_MS),
            host=os.environ.get("FLOWOPS_HOST", DEFAULT_HOST),
            port=_env_int("FLOWOPS_PORT", DEFAULT_PORT),
            cors_origins=[o.strip() for o in origins.split(",") if o.strip()] or ["*"],
            log_level=os.environ.get("FLOWOPS_LOG_LEVEL", "INFO").upper(),
        )
