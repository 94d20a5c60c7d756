"""Runtime configuration.

All settings come from environment variables.  ``Settings.from_env`` reads
them at call time so the application factory and the tests can build a
fresh configuration after changing the environment.  Nothing here is
validated eagerly: a missing Apify token only becomes an error when a job
is actually started.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

DEFAULT_APIFY_BASE_URL = "https://api.apify.com/v2"
DEFAULT_DISCOVERY_ACTOR = "thenetaji/instagram-related-user-scraper"
DEFAULT_ANALYTICS_ACTOR = "apify/instagram-reel-scraper"


def _env_flag(name: str, default: str = "false") -> bool:
    value = os.getenv(name, default)
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw else default


@dataclass
class Settings:
    apify_token: Optional[str] = None
    apify_base_url: str = DEFAULT_APIFY_BASE_URL
    discovery_actor_id: str = DEFAULT_DISCOVERY_ACTOR
    analytics_actor_id: str = DEFAULT_ANALYTICS_ACTOR

    # Job engine polling
    poll_interval_seconds: float = 4.0
    max_poll_attempts: int = 60
    finalize_delay_seconds: float = 1.0

    # Partnership refresh polling
    refresh_poll_interval_seconds: float = 5.0
    refresh_max_poll_attempts: int = 60

    local_cache_dir: str = "./.creatorlogic"
    database_url: str = "sqlite+aiosqlite:///./creatorlogic.db"
    remote_sync_enabled: bool = True
    sqlalchemy_echo: bool = False

    jwt_secret_key: str = "changeme"
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    admin_email: Optional[str] = None

    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            apify_token=os.getenv("APIFY_TOKEN") or None,
            apify_base_url=os.getenv("APIFY_BASE_URL", DEFAULT_APIFY_BASE_URL),
            discovery_actor_id=os.getenv("DISCOVERY_ACTOR_ID", DEFAULT_DISCOVERY_ACTOR),
            analytics_actor_id=os.getenv("ANALYTICS_ACTOR_ID", DEFAULT_ANALYTICS_ACTOR),
            poll_interval_seconds=_env_float("POLL_INTERVAL_SECONDS", 4.0),
            max_poll_attempts=_env_int("MAX_POLL_ATTEMPTS", 60),
            finalize_delay_seconds=_env_float("FINALIZE_DELAY_SECONDS", 1.0),
            refresh_poll_interval_seconds=_env_float("REFRESH_POLL_INTERVAL_SECONDS", 5.0),
            refresh_max_poll_attempts=_env_int("REFRESH_MAX_POLL_ATTEMPTS", 60),
            local_cache_dir=os.getenv("LOCAL_CACHE_DIR", "./.creatorlogic"),
            database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./creatorlogic.db"),
            remote_sync_enabled=_env_flag("REMOTE_SYNC_ENABLED", "true"),
            sqlalchemy_echo=_env_flag("SQLALCHEMY_ECHO", "false"),
            jwt_secret_key=os.getenv("JWT_SECRET_KEY", "changeme"),
            jwt_algorithm=os.getenv("JWT_ALGORITHM", "HS256"),
            access_token_expire_minutes=_env_int("ACCESS_TOKEN_EXPIRE_MINUTES", 30),
            admin_email=os.getenv("ADMIN_EMAIL") or None,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )
