from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from dashboard.scheduler import HEALTH_INTERVAL, STATS_INTERVAL
from gateway.client import DEFAULT_TIMEOUT


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    api_url: str
    api_timeout: float
    stats_interval: float
    health_interval: float
    discard_stale: bool
    ui: str
    web_host: str
    web_port: int
    refresh: float
    log_level: str


def get_settings(env_file: Optional[str] = None) -> Settings:
    # Real environment variables win over the .env file.
    env_file = env_file or os.getenv("DASH_ENV_FILE", ".env")
    if env_file and Path(env_file).exists():
        load_dotenv(env_file, override=False)

    return Settings(
        api_url=os.getenv("SEQUENCE_API_URL", "http://localhost:8080"),
        api_timeout=float(os.getenv("SEQUENCE_API_TIMEOUT", str(DEFAULT_TIMEOUT))),
        stats_interval=float(os.getenv("DASH_STATS_INTERVAL", str(STATS_INTERVAL))),
        health_interval=float(os.getenv("DASH_HEALTH_INTERVAL", str(HEALTH_INTERVAL))),
        discard_stale=_flag("DASH_DISCARD_STALE", "false"),
        ui=os.getenv("DASH_UI", "web"),
        web_host=os.getenv("DASH_WEB_HOST", "127.0.0.1"),
        web_port=int(os.getenv("DASH_WEB_PORT", "8000")),
        refresh=float(os.getenv("DASH_REFRESH", "0.5")),
        log_level=os.getenv("DASH_LOG_LEVEL", "INFO").upper(),
    )
