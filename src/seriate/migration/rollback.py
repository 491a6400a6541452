from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from seriate.exception import MigrationError, MigrationErrorKind

from .engine import MigrationEngine
from .models import (
    MIGRATIONS_TABLE,
    Migration,
    MigrationLike,
    is_valid_version,
    validate_migrations,
)

logger = logging.getLogger(__name__)


class RollbackEngine(MigrationEngine):
    """Reverses applied migrations, newest first, one transaction each"""

    async def rollback(
        self,
        target_version: int = 0,
        migrations: Optional[Iterable[MigrationLike]] = None,
    ) -> List[int]:
        """Roll back every applied version above ``target_version``

        Args:
            target_version (int, optional): Version to end up at.
                Defaults to `0`.
            migrations (Iterable[MigrationLike], optional): Migrations
                providing the ``down`` scripts

        Raises:
            MigrationError: ``VALIDATION`` kind for a bad target,
                ``CONSISTENCY`` kind when a version to roll back has no
                down script, ``EXECUTION`` kind when a down script fails.
                Versions below the failing one are left untouched.

        Returns:
            List[int]: Rolled back versions, descending
        """
        if not is_valid_version(target_version, minimum=0):
            raise MigrationError(
                "Target version must be a non-negative integer",
                MigrationErrorKind.VALIDATION,
            )
        by_version: Dict[int, Migration] = {
            migration.version: migration
            for migration in validate_migrations(migrations or ())
        }
        self.connection.ensure_open()

        current = await self.get_migration_version()
        if target_version > current:
            raise MigrationError(
                f"Target version {target_version} is greater than current "
                f"version {current}",
                MigrationErrorKind.VALIDATION,
            )
        if current == 0:
            return []

        rows = await self.connection.all(
            f"SELECT version FROM {MIGRATIONS_TABLE} WHERE version > ? "
            "ORDER BY version DESC",
            [target_version],
        )
        versions = [row["version"] for row in rows]

        if versions and not by_version:
            raise MigrationError(
                "Rollback requires migrations with down scripts",
                MigrationErrorKind.CONSISTENCY,
                versions[0],
            )

        rolled_back: List[int] = []
        for version in versions:
            migration = by_version.get(version)
            if migration is None or not migration.down:
                raise MigrationError(
                    f"Migration {version} has no down script",
                    MigrationErrorKind.CONSISTENCY,
                    version,
                )
            try:
                await self._coordinator.transaction(
                    lambda migration=migration: self._revert(migration)
                )
            except Exception as e:
                logger.error("Rollback of migration %d failed: %s", version, e)
                raise MigrationError(
                    f"Rollback of migration {version} failed: {e}",
                    MigrationErrorKind.EXECUTION,
                    version,
                ) from e
            rolled_back.append(version)
            logger.info("Rolled back migration %d", version)

        return rolled_back

    async def _revert(self, migration: Migration) -> None:
        await self.connection.exec(migration.down)  # type: ignore
        await self.connection.run(
            f"DELETE FROM {MIGRATIONS_TABLE} WHERE version = ?",
            [migration.version],
        )
