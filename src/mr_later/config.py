# src/mr_later/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app, built once by the composition root.
- No secrets required at import time (adapters complain on first use).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "MRLATER"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv() -> None:
    """Load a local .env (if present) without overriding real environment variables."""
    load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _first_env(*names: str, default: str | None = None) -> str | None:
    for n in names:
        v = os.getenv(n)
        if v is not None and v.strip() != "":
            return v
    return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Backend ----
    supabase_url: str
    supabase_anon_key: str | None
    http_timeout_seconds: float

    # ---- Deep links ----
    app_scheme: str
    oauth_redirect_url: str

    # ---- Local behaviour ----
    timezone: str
    leaderboard_limit: int

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    secrets_path: Path

    @property
    def functions_url(self) -> str:
        return f"{self.supabase_url.rstrip('/')}/functions/v1"

    @staticmethod
    def from_env() -> "Settings":
        _load_dotenv()

        app_name = _env(_k("APP_NAME"), "Mr. Later")
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        supabase_url = (_first_env(_k("SUPABASE_URL"), "SUPABASE_URL", default="") or "").strip()
        supabase_anon_key = _first_env(_k("SUPABASE_ANON_KEY"), "SUPABASE_ANON_KEY", default=None)
        http_timeout_seconds = _env_float(_k("HTTP_TIMEOUT_SECONDS"), 15.0)

        app_scheme = _env(_k("APP_SCHEME"), "mrlater")
        # OAuth/OTP links come back to the app via its custom scheme.
        oauth_redirect_url = _env(_k("OAUTH_REDIRECT_URL"), f"{app_scheme}://login")

        timezone = _env(_k("TIMEZONE"), "UTC")
        leaderboard_limit = _env_int(_k("LEADERBOARD_LIMIT"), 50)

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/mr_later"))
        secrets_path = _env_path(_k("SECRETS_PATH"), data_dir / "secrets.json")

        return Settings(
            app_name=app_name,
            log_level=log_level,
            supabase_url=supabase_url,
            supabase_anon_key=supabase_anon_key,
            http_timeout_seconds=http_timeout_seconds,
            app_scheme=app_scheme,
            oauth_redirect_url=oauth_redirect_url,
            timezone=timezone,
            leaderboard_limit=leaderboard_limit,
            data_dir=data_dir,
            secrets_path=secrets_path,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings.from_env()
