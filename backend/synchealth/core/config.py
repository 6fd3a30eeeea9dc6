from __future__ import annotations

import json
from functools import lru_cache
from typing import Any, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

SPAN_COUNT_MODES = ("optimized", "stepwise")


class Settings(BaseSettings):
    """Sync health settings loaded from environment variables."""

    start_time_of_day: str = Field(default="00:00:00", alias="SYNC_HEALTH_START_TIME")
    stop_time_of_day: str = Field(default="00:10:00", alias="SYNC_HEALTH_STOP_TIME")
    max_num_peers: int = Field(default=10, ge=0, alias="MAX_NUM_PEERS")
    primary_node: str = Field(default="hoyt.farcaster.xyz:2281", alias="PRIMARY_NODE")
    outfile: str = Field(default="sync_health.log", alias="SYNC_HEALTH_OUTFILE")
    rpc_timeout_sec: float = Field(default=2.0, gt=0, alias="RPC_TIMEOUT_SEC")
    span_count_mode: str = Field(default="optimized", alias="SPAN_COUNT_MODE")
    # NOTE: Keep as string to avoid pydantic-settings JSON-decoding complex types from .env.
    allowed_peers: str = Field(default="", alias="ALLOWED_PEERS")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    app_host: str = Field(default="127.0.0.1", alias="APP_HOST")
    app_port: int = Field(default=2281, alias="APP_PORT")

    model_config = SettingsConfigDict(env_file=(".env", "backend/.env"), extra="ignore")

    def parsed_allowed_peers(self) -> List[str]:
        """Return allowed peer ids parsed from env var.

        Supports comma-delimited strings (recommended) and JSON list strings.
        An empty list means every peer is allowed.
        """

        raw = (self.allowed_peers or "").strip()
        if not raw:
            return []
        if raw.startswith("["):
            try:
                value: Any = json.loads(raw)
            except json.JSONDecodeError:
                value = None
            if isinstance(value, list):
                items = [str(item).strip() for item in value]
                return [item for item in items if item]
        return [item.strip() for item in raw.split(",") if item.strip()]

    def normalized_span_count_mode(self) -> str:
        """Return the configured span count mode, defaulting to optimized."""

        mode = (self.span_count_mode or "").strip().lower()
        return mode if mode in SPAN_COUNT_MODES else "optimized"


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached sync health settings."""

    return Settings()
