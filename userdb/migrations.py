"""Schema migrations applied on every start.

Every step inspects the live schema before changing it, so the whole
list can be replayed against any file, fresh or years old. The SQLite
``user_version`` pragma records the highest step that has been verified.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Optional, Sequence

from alembic.migration import MigrationContext
from alembic.operations import Operations
import sqlalchemy as sa
from sqlalchemy import Engine, inspect, text

logger = logging.getLogger("userdb.migrations")


@dataclass(frozen=True)
class MigrationStep:
    version: int
    table: str

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.table}"

    def apply(self, engine: Engine) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class AddColumn(MigrationStep):
    name: str
    type_: sa.types.TypeEngine
    server_default: Optional[str] = None
    # Runs after the ALTER, only if the table already had rows before it.
    backfill_existing: Optional[str] = None

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.table}_{self.name}"

    def build_column(self) -> sa.Column:
        default = sa.text(self.server_default) if self.server_default is not None else None
        return sa.Column(self.name, self.type_, server_default=default)

    def apply(self, engine: Engine) -> bool:
        """Add the column if it is missing. Returns True when an ALTER ran."""
        existing_rows = 0
        with engine.begin() as connection:
            columns = {column["name"] for column in inspect(connection).get_columns(self.table)}
            if self.name in columns:
                return False

            # Counted before the ALTER: the backfill must only cover rows that predate the column.
            if self.backfill_existing:
                existing_rows = connection.execute(
                    text(f"SELECT COUNT(*) FROM {self.table}")
                ).scalar_one()

            Operations(MigrationContext.configure(connection=connection)).add_column(
                self.table, self.build_column()
            )

        logger.info(
            "Column added",
            extra={"event": "column_added", "table": self.table, "column": self.name, "version": self.version},
        )

        if self.backfill_existing and existing_rows > 0:
            with engine.begin() as connection:
                result = connection.execute(text(self.backfill_existing))
            logger.info(
                "Backfilled existing rows",
                extra={
                    "event": f"{self.name}_backfill",
                    "table": self.table,
                    "column": self.name,
                    "backfilled": result.rowcount,
                },
            )
        return True


@dataclass(frozen=True)
class DropForeignKey(MigrationStep):
    column: str
    referred_table: str

    @property
    def label(self) -> str:
        return f"{self.version:04d}_{self.table}_{self.column}_fk"

    def apply(self, engine: Engine) -> bool:
        """Rebuild the table without its FK on ``column``. Returns True when a rebuild ran."""
        with engine.begin() as connection:
            inspector = inspect(connection)
            if not inspector.has_table(self.table):
                return False
            matching = [
                fk
                for fk in inspector.get_foreign_keys(self.table)
                if fk["referred_table"] == self.referred_table and self.column in fk["constrained_columns"]
            ]
            if not matching:
                return False

            # SQLite cannot drop a constraint in place and the old DDL left it unnamed;
            # the naming convention gives the reflected FK a name batch mode can drop.
            constraint_name = f"fk_{self.table}_{self.column}_{self.referred_table}"
            operations = Operations(MigrationContext.configure(connection=connection))
            with operations.batch_alter_table(
                self.table,
                recreate="always",
                naming_convention={"fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s"},
            ) as batch:
                batch.drop_constraint(constraint_name, type_="foreignkey")

        logger.info(
            "Foreign key dropped",
            extra={"event": "foreign_key_dropped", "table": self.table, "column": self.column, "version": self.version},
        )
        return True


MIGRATIONS: tuple[MigrationStep, ...] = (
    # Accounts created before verification existed are grandfathered in.
    AddColumn(
        1,
        "users",
        "email_verified",
        sa.Integer(),
        server_default="0",
        backfill_existing="UPDATE users SET email_verified = 1",
    ),
    AddColumn(2, "users", "verification_token", sa.Text()),
    AddColumn(3, "users", "is_admin", sa.Integer(), server_default="0"),
    AddColumn(4, "users", "school", sa.Text()),
    AddColumn(5, "users", "age", sa.Integer()),
    AddColumn(6, "users", "ip", sa.Text()),
    # Changelog entries outlive their author; an enforced FK would block deleting the user.
    DropForeignKey(7, "changelog", "author_id", "users"),
)

LATEST_VERSION = MIGRATIONS[-1].version


def get_schema_version(engine: Engine) -> int:
    with engine.connect() as connection:
        return int(connection.exec_driver_sql("PRAGMA user_version").scalar_one())


def _raise_schema_version(engine: Engine, version: int) -> None:
    if get_schema_version(engine) >= version:
        return
    with engine.begin() as connection:
        # PRAGMA does not accept bound parameters.
        connection.exec_driver_sql(f"PRAGMA user_version = {int(version)}")


def run_migrations(engine: Engine, steps: Optional[Sequence[MigrationStep]] = None) -> int:
    """Apply every pending step in order and return how many changed the schema.

    Failures are logged and swallowed: a partially migrated schema must not
    stop the process from starting. Steps after the failing one are skipped
    until the next start.
    """
    if steps is None:
        steps = MIGRATIONS

    applied = 0
    current: Optional[MigrationStep] = None
    try:
        for step in steps:
            current = step
            if step.apply(engine):
                applied += 1
            _raise_schema_version(engine, step.version)
    except Exception:
        logger.exception(
            "Migration error",
            extra={
                "event": "migration_error",
                "step": current.label if current is not None else None,
            },
        )
    return applied
