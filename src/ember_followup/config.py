# src/ember_followup/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- No secrets required at import time.
- Every component takes settings as an argument, so tests pass their own.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "EMBER"

load_dotenv(override=False)


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


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

    # ---- Local data (ignored by git) ----
    data_dir: Path
    db_filename: str
    seed_demo_data: bool

    # ---- Identity ----
    bcrypt_rounds: int

    # ---- Reports ----
    week_start: int  # 0 = Sunday
    digest_interval_seconds: float
    digest_tolerance_minutes: float

    # ---- Background sweep ----
    sweep_interval_seconds: float

    # ---- Email ----
    smtp_timeout_seconds: float

    # ---- Front-end ----
    console_enabled: bool

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_filename

    @property
    def uploads_dir(self) -> Path:
        return self.data_dir / "uploads"

    @property
    def reports_dir(self) -> Path:
        return self.data_dir / "reports"

    @property
    def sync_dir(self) -> Path:
        return self.data_dir / "sync"

    @property
    def outbox_dir(self) -> Path:
        return self.data_dir / "mail-outbox"

    @staticmethod
    def from_env() -> "Settings":
        data_dir = _env_path(_k("DATA_DIR"), Path(".local/ember"))

        return Settings(
            app_name=_env(_k("APP_NAME"), "ember") or "ember",
            log_level=_env(_k("LOG_LEVEL"), "INFO"),
            data_dir=data_dir,
            db_filename=_env(_k("DB_FILENAME"), "ember-db.json") or "ember-db.json",
            seed_demo_data=_env_bool(_k("SEED_DEMO_DATA"), True),
            bcrypt_rounds=_env_int(_k("BCRYPT_ROUNDS"), 10),
            week_start=_env_int(_k("WEEK_START"), 0) % 7,
            digest_interval_seconds=_env_float(_k("DIGEST_INTERVAL_SECONDS"), 60.0),
            digest_tolerance_minutes=_env_float(_k("DIGEST_TOLERANCE_MINUTES"), 5.0),
            sweep_interval_seconds=_env_float(_k("SWEEP_INTERVAL_SECONDS"), 300.0),
            smtp_timeout_seconds=_env_float(_k("SMTP_TIMEOUT_SECONDS"), 10.0),
            console_enabled=_env_bool(_k("CONSOLE_ENABLED"), True),
        )


_SETTINGS: Settings | None = None


def get_settings() -> Settings:
    global _SETTINGS
    if _SETTINGS is None:
        _SETTINGS = Settings.from_env()
    return _SETTINGS
