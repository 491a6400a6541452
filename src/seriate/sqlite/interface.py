from __future__ import annotations

import logging
import sqlite3
from sqlite3 import Cursor
from typing import Any, Dict, List, Optional, Tuple

import aiosqlite

from seriate.base.interface import BaseInterface
from seriate.convert import Params, convert_params, validate_params
from seriate.exception import SqlError, SqlErrorKind
from seriate.models import RunResult

logger = logging.getLogger(__name__)

SYNTAX_MARKERS = (
    "syntax error",
    "unrecognized token",
    "incomplete input",
    "near ",
    "parse",
    "unexpected",
)
CONSTRAINT_MARKERS = {
    "UNIQUE constraint": "SQLITE_CONSTRAINT_UNIQUE",
    "NOT NULL constraint": "SQLITE_CONSTRAINT_NOTNULL",
    "FOREIGN KEY constraint": "SQLITE_CONSTRAINT_FOREIGNKEY",
    "CHECK constraint": "SQLITE_CONSTRAINT_CHECK",
    "PRIMARY KEY": "SQLITE_CONSTRAINT_PRIMARYKEY",
}
NOT_FOUND_MARKERS = ("no such table", "no such column", "not found")


def split_statements(script: str) -> List[str]:
    """Split a SQL script into complete statements.

    ``executescript`` is not used because the driver commits any open
    transaction before running a script.
    """
    statements: List[str] = []
    start = 0
    end = script.find(";")
    while end != -1:
        candidate = script[start : end + 1]
        if sqlite3.complete_statement(candidate):
            statement = candidate.strip()
            if statement != ";":
                statements.append(statement)
            start = end + 1
        end = script.find(";", end + 1)
    remainder = script[start:].strip()
    if remainder:
        statements.append(remainder)
    return statements


def translate_error(
    error: sqlite3.Error, sql: Optional[str] = None, params: Any = None
) -> SqlError:
    message = str(error)
    code = getattr(error, "sqlite_errorname", None) or "SQLITE_ERROR"

    if (
        isinstance(error, sqlite3.IntegrityError)
        or "constraint failed" in message
        or any(marker in message for marker in CONSTRAINT_MARKERS)
    ):
        if code in ("SQLITE_ERROR", "SQLITE_CONSTRAINT"):
            code = next(
                (
                    specific
                    for marker, specific in CONSTRAINT_MARKERS.items()
                    if marker in message
                ),
                "SQLITE_CONSTRAINT",
            )
        return SqlError(
            message, SqlErrorKind.CONSTRAINT, code, sql=sql, params=params
        )

    if any(marker in message for marker in NOT_FOUND_MARKERS):
        return SqlError(
            message, SqlErrorKind.NOT_FOUND, code, sql=sql, params=params
        )

    if code == "SQLITE_ERROR" and any(
        marker in message for marker in SYNTAX_MARKERS
    ):
        return SqlError(
            message, SqlErrorKind.SYNTAX, code, sql=sql, params=params
        )

    return SqlError(message, SqlErrorKind.GENERIC, code, sql=sql, params=params)


class SQLiteConnection(BaseInterface):
    """Interface for a single SQLite connection.

    The connection is opened in autocommit mode so that transaction
    statements (``BEGIN``, ``SAVEPOINT``, ...) are only ever issued
    explicitly by the transaction coordinator.
    """

    scheme = "sqlite"

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self._db: Optional[aiosqlite.Connection] = None

    @property
    def is_open(self) -> bool:
        return self._db is not None

    async def open(self):
        """Open the connection"""
        if self._db is not None:
            return
        self._db = await aiosqlite.connect(
            self._db_path,
            isolation_level=None,
            check_same_thread=self._check_same_thread,
        )
        self._db.row_factory = self._dict_factory
        if self._foreign_keys:
            await self._db.execute("PRAGMA foreign_keys = ON")
        logger.debug("Opened SQLite connection to %s", self._db_path)

    async def close(self):
        """Close the connection. Closing twice is a no-op."""
        if self._db is None:
            return
        db, self._db = self._db, None
        await db.close()
        logger.debug("Closed SQLite connection to %s", self._db_path)

    async def execute(self, sql: str, params: Optional[Params] = None):
        """Run exactly one statement and return its cursor

        Args:
            sql (str): The statement
            params (Params, optional): Positional (sequence) or named
                (mapping) parameters. Defaults to `None`.

        Raises:
            SqlError: If the parameters do not match the SQL, or the
                statement fails
        """
        self.ensure_open()
        exec_values = convert_params(params)
        validate_params(sql, exec_values)
        try:
            return await self._db.execute(  # type: ignore
                sql, exec_values if exec_values is not None else ()
            )
        except sqlite3.Error as e:
            raise translate_error(e, sql, params) from e

    async def run(
        self, sql: str, params: Optional[Params] = None
    ) -> RunResult:
        cursor = await self.execute(sql, params)
        changes = max(cursor.rowcount, 0)
        last_insert_rowid = 0
        if changes and sql.lstrip().upper().startswith("INSERT"):
            last_insert_rowid = cursor.lastrowid or 0
        await cursor.close()
        return RunResult(changes=changes, last_insert_rowid=last_insert_rowid)

    async def get(
        self, sql: str, params: Optional[Params] = None
    ) -> Optional[Dict[str, Any]]:
        cursor = await self.execute(sql, params)
        row = await cursor.fetchone()
        await cursor.close()
        return row

    async def all(
        self, sql: str, params: Optional[Params] = None
    ) -> List[Dict[str, Any]]:
        cursor = await self.execute(sql, params)
        rows = await cursor.fetchall()
        await cursor.close()
        return list(rows)

    async def exec(self, script: str) -> None:
        """Run every statement of a script, in order, one at a time"""
        self.ensure_open()
        for statement in split_statements(script):
            cursor = await self.execute(statement)
            await cursor.close()

    @staticmethod
    def _dict_factory(cursor: Cursor, row: Tuple[Any, ...]) -> Dict[str, Any]:
        return {val[0]: row[idx] for idx, val in enumerate(cursor.description)}
