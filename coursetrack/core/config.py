from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Literal

AppEnv = Literal["dev", "test", "prod"]
LogLevel = Literal["debug", "info", "warning", "error"]

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _getenv(name: str, default: str) -> str:
    # Centralize env access so casting and validation live in one place
    return os.environ.get(name, default).strip()


def _getbool(name: str, default: bool) -> bool:
    raw = _getenv(name, "true" if default else "false").lower()
    if raw in _TRUE:
        return True
    if raw in _FALSE:
        return False
    raise ValueError(f"{name} must be a boolean (got {raw!r})")


def _getint(name: str, default: int) -> int:
    raw = _getenv(name, str(default))
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer (got {raw!r})") from None


@dataclass(frozen=True)
class Settings:
    app_env: AppEnv
    log_level: LogLevel
    log_json: bool
    port: int
    database_url: str | None
    redis_url: str | None
    # Progress / assessment policy knobs
    video_completion_threshold: int = 90
    abandoned_attempts_consume_slot: bool = True
    attempt_grace_seconds: int = 0
    progress_cache_ttl: int = 300

    @property
    def is_dev(self) -> bool:
        return self.app_env == "dev"

    @property
    def is_test(self) -> bool:
        return self.app_env == "test"

    @property
    def is_prod(self) -> bool:
        return self.app_env == "prod"


def load_settings() -> Settings:
    app_env_raw = _getenv("APP_ENV", "dev").lower()
    log_level_raw = _getenv("LOG_LEVEL", "info").lower()

    if app_env_raw not in ("dev", "test", "prod"):
        raise ValueError(f"APP_ENV must be dev|test|prod (got {app_env_raw!r})")

    if log_level_raw not in ("debug", "info", "warning", "error"):
        raise ValueError(
            f"LOG_LEVEL must be debug|info|warning|error (got {log_level_raw!r})"
        )

    port = _getint("PORT", 8000)

    threshold = _getint("VIDEO_COMPLETION_THRESHOLD", 90)
    if not 0 <= threshold <= 100:
        raise ValueError(
            f"VIDEO_COMPLETION_THRESHOLD must be between 0 and 100 (got {threshold})"
        )

    grace = _getint("ATTEMPT_GRACE_SECONDS", 0)
    if grace < 0:
        raise ValueError(f"ATTEMPT_GRACE_SECONDS must be >= 0 (got {grace})")

    cache_ttl = _getint("PROGRESS_CACHE_TTL", 300)
    if cache_ttl <= 0:
        raise ValueError(f"PROGRESS_CACHE_TTL must be > 0 (got {cache_ttl})")

    database_url = _getenv("DATABASE_URL", "") or None
    redis_url = _getenv("REDIS_URL", "") or None

    return Settings(  # type: ignore[arg-type]
        app_env=app_env_raw,
        log_level=log_level_raw,
        log_json=_getbool("LOG_JSON", False),
        port=port,
        database_url=database_url,
        redis_url=redis_url,
        video_completion_threshold=threshold,
        abandoned_attempts_consume_slot=_getbool(
            "ABANDONED_ATTEMPTS_CONSUME_SLOT", True
        ),
        attempt_grace_seconds=grace,
        progress_cache_ttl=cache_ttl,
    )


SETTINGS = load_settings()
