from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path


def _as_bool(value: str | None, default: bool) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _as_str(value: str | None, fallback: str) -> str:
    raw = (value or fallback).strip() or fallback
    # Some dashboards accidentally store quoted values.
    if (raw.startswith('"') and raw.endswith('"')) or (raw.startswith("'") and raw.endswith("'")):
        raw = raw[1:-1].strip()
    return raw or fallback


def sqlite_url(path: str | Path) -> str:
    return f"sqlite:///{path}"


@dataclass(frozen=True)
class Settings:
    data_dir: str
    db_filename: str
    log_level: str
    sql_echo: bool

    @property
    def db_path(self) -> Path:
        return Path(self.data_dir) / self.db_filename

    @property
    def database_url(self) -> str:
        return sqlite_url(self.db_path)


def load_settings() -> Settings:
    return Settings(
        # Serverless hosts only allow writes under /tmp.
        data_dir=_as_str(os.getenv("DATA_DIR"), "/tmp"),
        db_filename=_as_str(os.getenv("DB_FILENAME"), "users.db"),
        log_level=os.getenv("LOG_LEVEL", "INFO").strip().upper(),
        sql_echo=_as_bool(os.getenv("SQL_ECHO"), False),
    )


settings = load_settings()
