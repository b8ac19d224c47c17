"""Runtime settings, loaded from ``LARDER_*`` environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevelType = Literal["debug", "info", "warning", "error"]

DEFAULT_DATA_DIR = str(Path.home() / ".larder")
DEFAULT_MAX_LOGIN_ATTEMPTS = 5
DEFAULT_LOCKOUT_MINUTES = 30
DEFAULT_MAX_SUSPENSION_DAYS = 365
DEFAULT_SESSION_TTL_HOURS = 7 * 24
DEFAULT_LOG_LEVEL: LogLevelType = "info"


class Settings(BaseModel):
    data_dir: str = DEFAULT_DATA_DIR
    max_login_attempts: int = Field(default=DEFAULT_MAX_LOGIN_ATTEMPTS, ge=1)
    lockout_minutes: int = Field(default=DEFAULT_LOCKOUT_MINUTES, ge=1)
    max_suspension_days: int = Field(default=DEFAULT_MAX_SUSPENSION_DAYS, ge=1, le=DEFAULT_MAX_SUSPENSION_DAYS)
    session_ttl_hours: int = Field(default=DEFAULT_SESSION_TTL_HOURS, ge=1)
    require_verification: bool = False
    log_level: LogLevelType = DEFAULT_LOG_LEVEL

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        return v.lower() if isinstance(v, str) else v

    @property
    def store_dir(self) -> Path:
        return Path(self.data_dir).expanduser() / "store"

    @property
    def sessions_dir(self) -> Path:
        return Path(self.data_dir).expanduser() / "sessions"


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    environ = os.environ if environ is None else environ
    return Settings(
        data_dir=environ.get("LARDER_DATA_DIR", DEFAULT_DATA_DIR),
        max_login_attempts=environ.get("LARDER_MAX_LOGIN_ATTEMPTS", DEFAULT_MAX_LOGIN_ATTEMPTS),
        lockout_minutes=environ.get("LARDER_LOCKOUT_MINUTES", DEFAULT_LOCKOUT_MINUTES),
        max_suspension_days=environ.get("LARDER_MAX_SUSPENSION_DAYS", DEFAULT_MAX_SUSPENSION_DAYS),
        session_ttl_hours=environ.get("LARDER_SESSION_TTL_HOURS", DEFAULT_SESSION_TTL_HOURS),
        require_verification=environ.get("LARDER_REQUIRE_VERIFICATION", "false").lower() in ("1", "true", "yes"),
        log_level=environ.get("LARDER_LOG_LEVEL", DEFAULT_LOG_LEVEL),
    )
