from __future__ import annotations

from dataclasses import dataclass
import logging
from pathlib import Path
import sqlite3
from typing import Any, Mapping, Optional

from sqlalchemy import Engine, create_engine, event

from .config import settings, sqlite_url
from .migrations import get_schema_version, run_migrations
from .schema import DEPENDENT_TABLES, INDEXES, users

logger = logging.getLogger("userdb.db")

Row = dict[str, Any]


@dataclass(frozen=True)
class RunResult:
    changes: int
    last_row_id: Optional[int]


def _build_engine(database_url: str) -> Engine:
    return create_engine(
        database_url,
        connect_args={"check_same_thread": False},
        echo=settings.sql_echo,
        future=True,
    )


@event.listens_for(Engine, "connect")
def _set_sqlite_pragma(dbapi_connection, _connection_record) -> None:
    if isinstance(dbapi_connection, sqlite3.Connection):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


def _bind_params(params: tuple[Any, ...]) -> Any:
    # A lone mapping binds :name placeholders, a lone list/tuple is spread over ? placeholders.
    if len(params) == 1:
        only = params[0]
        if isinstance(only, Mapping):
            return dict(only)
        if isinstance(only, (list, tuple)):
            return tuple(only)
    return tuple(params)


class Statement:
    """A SQL string bound to a database, executed on demand."""

    def __init__(self, database: "Database", sql: str) -> None:
        self._database = database
        self.sql = sql

    def get(self, *params: Any) -> Optional[Row]:
        return self._database.get(self.sql, *params)

    def all(self, *params: Any) -> list[Row]:
        return self._database.all(self.sql, *params)

    def run(self, *params: Any) -> RunResult:
        return self._database.run(self.sql, *params)


class Database:
    """Thin statement-execution handle over the SQLite engine.

    Every call runs in its own short transaction. Rows come back as plain
    dicts keyed by column name.
    """

    def __init__(self, engine: Engine, path: Path) -> None:
        self._engine = engine
        self.path = path

    @property
    def raw(self) -> Engine:
        return self._engine

    def get(self, sql: str, *params: Any) -> Optional[Row]:
        with self._engine.begin() as connection:
            row = connection.exec_driver_sql(sql, _bind_params(params)).mappings().first()
        return dict(row) if row is not None else None

    def all(self, sql: str, *params: Any) -> list[Row]:
        with self._engine.begin() as connection:
            rows = connection.exec_driver_sql(sql, _bind_params(params)).mappings().all()
        return [dict(row) for row in rows]

    def run(self, sql: str, *params: Any) -> RunResult:
        with self._engine.begin() as connection:
            result = connection.exec_driver_sql(sql, _bind_params(params))
            return RunResult(changes=result.rowcount, last_row_id=result.lastrowid)

    def prepare(self, sql: str) -> Statement:
        return Statement(self, sql)

    def exec(self, script: str) -> None:
        """Run a semicolon separated script with no parameters."""
        with self._engine.connect() as connection:
            connection.connection.driver_connection.executescript(script)
            connection.commit()

    def schema_version(self) -> int:
        return get_schema_version(self._engine)

    def journal_mode(self) -> str:
        row = self.get("PRAGMA journal_mode")
        return str(row["journal_mode"]) if row else ""

    def close(self) -> None:
        self._engine.dispose()

    def __enter__(self) -> "Database":
        return self

    def __exit__(self, *_exc_info: Any) -> None:
        self.close()


def initialize(db_path: str | Path | None = None) -> Database:
    """Open or create the users database and bring its schema up to date.

    Directory, file and table creation errors propagate. Column migration
    errors are logged by :func:`userdb.migrations.run_migrations` and do not
    stop the bootstrap.
    """
    path = Path(db_path) if db_path is not None else settings.db_path
    path.parent.mkdir(parents=True, exist_ok=True)

    engine = _build_engine(sqlite_url(path))
    try:
        with engine.connect() as connection:
            journal_mode = connection.exec_driver_sql("PRAGMA journal_mode=WAL").scalar()
        logger.info(
            "Database opened",
            extra={"event": "db_open", "db_path": str(path), "journal_mode": journal_mode},
        )

        with engine.begin() as connection:
            users.create(connection, checkfirst=True)

        applied = run_migrations(engine)

        with engine.begin() as connection:
            for table in DEPENDENT_TABLES:
                table.create(connection, checkfirst=True)
            for index in INDEXES:
                index.create(connection, checkfirst=True)
    except Exception:
        engine.dispose()
        raise

    logger.info(
        "Database bootstrap complete",
        extra={
            "event": "bootstrap_complete",
            "db_path": str(path),
            "version": get_schema_version(engine),
            "applied": applied,
        },
    )
    return Database(engine, path)
