from importlib.metadata import version

from .database import Database, connect
from .exception import (
    DatabaseClosedError,
    MigrationError,
    MigrationErrorKind,
    SeriateError,
    SqlError,
    SqlErrorKind,
)
from .migration import Migration, MigrationRecord
from .models import ColumnInfo, IndexInfo, RunResult
from .sqlite import SQLiteConnection
from .transaction import TransactionError

__version__ = version("seriate")

__all__ = (
    "connect",
    "Database",
    "SQLiteConnection",
    "Migration",
    "MigrationRecord",
    "RunResult",
    "ColumnInfo",
    "IndexInfo",
    "SeriateError",
    "SqlError",
    "SqlErrorKind",
    "MigrationError",
    "MigrationErrorKind",
    "DatabaseClosedError",
    "TransactionError",
)
