"""Settings loaded from environment variables.

One Settings object for the whole app; every value has a default so nothing
is required at import time.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional


ENV_PREFIX = "GANTT_SYNC"


def _k(suffix: str) -> str:
    return f"{ENV_PREFIX}_{suffix}"


ENV_URL_PARAM = _k("URL_PARAM")
ENV_AVATAR_TIMEOUT = _k("AVATAR_TIMEOUT")
ENV_AVATAR_RETRIES = _k("AVATAR_RETRIES")
ENV_MAX_CONCURRENT_FETCHES = _k("MAX_CONCURRENT_FETCHES")
ENV_LOG_LEVEL = _k("LOG_LEVEL")


def _getenv(name: str, default: Optional[str] = None) -> Optional[str]:
    v = os.environ.get(name)
    return v if v not in (None, "") else default


def _env_int(name: str, default: int) -> int:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = _getenv(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    url_param: str = "data"
    avatar_timeout: float = 10.0
    avatar_retries: int = 3
    max_concurrent_fetches: int = 8
    log_level: str = "INFO"


def get_settings() -> Settings:
    defaults = Settings()
    return Settings(
        url_param=_getenv(ENV_URL_PARAM, defaults.url_param) or defaults.url_param,
        avatar_timeout=max(_env_float(ENV_AVATAR_TIMEOUT, defaults.avatar_timeout), 0.1),
        avatar_retries=max(_env_int(ENV_AVATAR_RETRIES, defaults.avatar_retries), 0),
        max_concurrent_fetches=max(_env_int(ENV_MAX_CONCURRENT_FETCHES, defaults.max_concurrent_fetches), 1),
        log_level=(_getenv(ENV_LOG_LEVEL, defaults.log_level) or defaults.log_level).upper(),
    )


__all__ = ["ENV_PREFIX", "Settings", "get_settings"]
