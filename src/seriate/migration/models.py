from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from seriate.exception import MigrationError, MigrationErrorKind

MIGRATIONS_TABLE = "_migrations"

CREATE_MIGRATIONS_TABLE = f"""
CREATE TABLE IF NOT EXISTS {MIGRATIONS_TABLE} (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    """A versioned schema change.

    Args:
        version (int): Version number, at least 1
        up (str): SQL script that applies the change
        down (str, optional): SQL script that reverses it
    """

    version: int
    up: str
    down: Optional[str] = None


@dataclass(frozen=True)
class MigrationRecord:
    """A row of the bookkeeping table"""

    version: int
    applied_at: str


MigrationLike = Union[Migration, Mapping[str, Any]]


def _invalid(message: str, version: Optional[int] = None) -> MigrationError:
    return MigrationError(message, MigrationErrorKind.VALIDATION, version)


def coerce_migration(item: MigrationLike) -> Migration:
    if isinstance(item, Migration):
        return item
    if isinstance(item, Mapping):
        return Migration(
            version=item.get("version"),  # type: ignore
            up=item.get("up"),  # type: ignore
            down=item.get("down"),
        )
    raise _invalid(
        f"Migration must be a Migration or a mapping, got "
        f"{type(item).__name__}"
    )


def is_valid_version(version: Any, minimum: int = 1) -> bool:
    return (
        isinstance(version, int)
        and not isinstance(version, bool)
        and version >= minimum
    )


def validate_migrations(migrations: Iterable[MigrationLike]) -> List[Migration]:
    """Check a migration list without touching the database

    Raises:
        MigrationError: ``VALIDATION`` kind on a bad version, a missing
            up script, or a duplicate version
    """
    validated = [coerce_migration(item) for item in migrations]

    for migration in validated:
        if not is_valid_version(migration.version):
            raise _invalid("Migration version must be >= 1")
        if not isinstance(migration.up, str) or not migration.up.strip():
            raise _invalid(
                'Migration must have an "up" script', migration.version
            )

    seen: Dict[int, Migration] = {}
    for migration in validated:
        if migration.version in seen:
            raise _invalid(
                f"Duplicate migration version: {migration.version}",
                migration.version,
            )
        seen[migration.version] = migration

    return validated
