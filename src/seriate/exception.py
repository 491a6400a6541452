from __future__ import annotations

from enum import Enum
from typing import Any, Optional


class SqlErrorKind(Enum):
    """Classification of a failed SQL statement"""

    SYNTAX = "syntax"
    CONSTRAINT = "constraint"
    NOT_FOUND = "not_found"
    GENERIC = "generic"


class MigrationErrorKind(Enum):
    """Why a migrate() or rollback() call was rejected"""

    VALIDATION = "validation"
    EXECUTION = "execution"
    CONSISTENCY = "consistency"


class SeriateError(Exception):
    """Base exception for all seriate errors"""

    def __init__(self, message: str = "", *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DatabaseClosedError(SeriateError):
    """Raised when using a database that has been closed"""

    def __init__(self, message: str = "Database is closed") -> None:
        super().__init__(message)


class SqlError(SeriateError):
    """A statement failed, or its parameters did not match its SQL.

    The ``kind`` attribute identifies the failure; ``code`` holds the
    SQLite error name (e.g. ``SQLITE_CONSTRAINT_UNIQUE``) when known.
    """

    def __init__(
        self,
        message: str,
        kind: SqlErrorKind = SqlErrorKind.GENERIC,
        code: str = "SQLITE_ERROR",
        sql: Optional[str] = None,
        params: Any = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.code = code
        self.sql = sql
        self.params = params


class MigrationError(SeriateError):
    """A migration could not be applied or rolled back.

    ``version`` is the migration version the failure belongs to, if any.
    The underlying error, when there is one, is chained as ``__cause__``.
    """

    def __init__(
        self,
        message: str,
        kind: MigrationErrorKind = MigrationErrorKind.EXECUTION,
        version: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.version = version
