from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Iterable, List

from seriate.exception import (
    MigrationError,
    MigrationErrorKind,
    SqlError,
    SqlErrorKind,
)
from seriate.sqlite.interface import SQLiteConnection
from seriate.transaction.coordinator import TransactionCoordinator

from .models import (
    CREATE_MIGRATIONS_TABLE,
    MIGRATIONS_TABLE,
    Migration,
    MigrationLike,
    MigrationRecord,
    validate_migrations,
)

logger = logging.getLogger(__name__)


def utc_timestamp() -> str:
    """Current time as ISO-8601 UTC with millisecond precision"""
    now = datetime.now(timezone.utc)
    return now.isoformat(timespec="milliseconds").replace("+00:00", "Z")


class MigrationEngine:
    """Applies pending migrations, one top-level transaction per version.

    Each transaction runs the migration's ``up`` script and records the
    version in the bookkeeping table, so a version is recorded if and
    only if its script committed.
    """

    def __init__(self, coordinator: TransactionCoordinator):
        self._coordinator = coordinator

    @property
    def connection(self) -> SQLiteConnection:
        return self._coordinator.connection  # type: ignore

    async def ensure_table(self) -> None:
        await self.connection.exec(CREATE_MIGRATIONS_TABLE)

    async def get_migration_version(self) -> int:
        """Highest applied version, or 0 when nothing has been applied"""
        try:
            row = await self.connection.get(
                f"SELECT MAX(version) AS version FROM {MIGRATIONS_TABLE}"
            )
        except SqlError as e:
            if e.kind is SqlErrorKind.NOT_FOUND:
                return 0
            raise
        if not row or row["version"] is None:
            return 0
        return row["version"]

    async def get_applied_migrations(self) -> List[MigrationRecord]:
        try:
            rows = await self.connection.all(
                f"SELECT version, applied_at FROM {MIGRATIONS_TABLE} "
                "ORDER BY version ASC"
            )
        except SqlError as e:
            if e.kind is SqlErrorKind.NOT_FOUND:
                return []
            raise
        return [MigrationRecord(**row) for row in rows]

    async def migrate(self, migrations: Iterable[MigrationLike]) -> List[int]:
        """Apply every migration newer than the current version

        Args:
            migrations (Iterable[MigrationLike]): Migrations in any order

        Raises:
            MigrationError: ``VALIDATION`` kind if the list is malformed
                (nothing is applied), or ``EXECUTION`` kind carrying the
                failing version. Versions before it stay applied and no
                later version is attempted.

        Returns:
            List[int]: Newly applied versions, ascending
        """
        validated = validate_migrations(migrations)
        self.connection.ensure_open()

        await self.ensure_table()
        current = await self.get_migration_version()
        pending = [
            migration
            for migration in sorted(validated, key=lambda m: m.version)
            if migration.version > current
        ]
        if not pending:
            logger.debug("No pending migrations (version %d)", current)
            return []

        applied: List[int] = []
        for migration in pending:
            try:
                await self._coordinator.transaction(
                    lambda migration=migration: self._apply(migration)
                )
            except Exception as e:
                logger.error(
                    "Migration %d failed: %s", migration.version, e
                )
                raise MigrationError(
                    f"Migration {migration.version} failed: {e}",
                    MigrationErrorKind.EXECUTION,
                    migration.version,
                ) from e
            applied.append(migration.version)
            logger.info("Applied migration %d", migration.version)

        return applied

    async def _apply(self, migration: Migration) -> None:
        await self.connection.exec(migration.up)
        await self.connection.run(
            f"INSERT INTO {MIGRATIONS_TABLE} (version, applied_at) "
            "VALUES (?, ?)",
            [migration.version, utc_timestamp()],
        )
