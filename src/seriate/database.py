from __future__ import annotations

import asyncio
import logging
from os import PathLike
from typing import (
    Any,
    Dict,
    Iterable,
    List,
    Mapping,
    Optional,
    Sequence,
    Union,
)

from seriate.convert import Params
from seriate.exception import (
    DatabaseClosedError,
    SeriateError,
    SqlError,
    SqlErrorKind,
)
from seriate.migration.engine import MigrationEngine
from seriate.migration.models import (
    MIGRATIONS_TABLE,
    MigrationLike,
    MigrationRecord,
)
from seriate.migration.rollback import RollbackEngine
from seriate.models import ColumnInfo, IndexInfo, RunResult
from seriate.sqlite.interface import SQLiteConnection
from seriate.transaction.coordinator import Callback, TransactionCoordinator
from seriate.transaction.interfaces import TransactionError

logger = logging.getLogger(__name__)

UNSAFE_IDENTIFIER_PARTS = (";", "--", "/*")


def quote_identifier(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise SeriateError("Identifier cannot be empty")
    if any(part in name for part in UNSAFE_IDENTIFIER_PARTS):
        raise SeriateError(f"Invalid identifier: {name}")
    return '"' + name.replace('"', '""') + '"'


class Database:
    """Main entryway for working with a single SQLite database.

    Example:

    ```python
    async def run():
        db = await seriate.connect("app.db")
        await db.migrate([{"version": 1, "up": "CREATE TABLE t (x)"}])

        async def work():
            await db.run("INSERT INTO t (x) VALUES (?)", [1])

        await db.transaction(work)
        await db.close()
    ```
    """

    def __init__(
        self,
        db_path: Union[str, PathLike] = ":memory:",
        *,
        connection: Optional[SQLiteConnection] = None,
        foreign_keys: bool = True,
        check_same_thread: bool = False,
    ):
        """Initializer for Database instance

        The `db_path` and the `connection` are mutually exclusive. When a
        connection is given, the remaining options are ignored.

        Args:
            db_path (Union[str, PathLike], optional): Path to a SQLite
                database. Defaults to `":memory:"`.
            connection (SQLiteConnection, optional): An existing,
                unopened connection interface. Defaults to `None`.
            foreign_keys (bool, optional): Enforce foreign keys.
                Defaults to `True`.
            check_same_thread (bool, optional): Passed to the driver.
                Defaults to `False`.

        Raises:
            SeriateError: If there is a conflicting data source
        """
        if connection is not None and db_path != ":memory:":
            raise SeriateError("Conflict with connection and DB path")

        if connection is None:
            connection = SQLiteConnection(
                db_path,
                foreign_keys=foreign_keys,
                check_same_thread=check_same_thread,
            )
        self._connection = connection
        self._coordinator = TransactionCoordinator(connection)
        self._migrations = MigrationEngine(self._coordinator)
        self._rollbacks = RollbackEngine(self._coordinator)
        self._closed = False

    def __str__(self) -> str:
        return f"<Database {self._connection.db_path}>"

    @property
    def connection(self) -> SQLiteConnection:
        return self._connection

    @property
    def coordinator(self) -> TransactionCoordinator:
        return self._coordinator

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise DatabaseClosedError()
        self._connection.ensure_open()

    async def open(self) -> Database:
        """Open the underlying connection"""
        if self._closed:
            raise DatabaseClosedError()
        await self._connection.open()
        return self

    async def close(self) -> None:
        """Close the database

        Transactions that are still queued are rejected with
        `DatabaseClosedError`. A transaction that is already running is
        allowed to settle before the connection is closed. Closing twice
        is a no-op.

        Raises:
            TransactionError: If called from inside a transaction callback,
                which would otherwise wait on itself
        """
        if self._closed:
            return
        frame = self._connection.current_frame()
        if frame is not None and frame.is_active:
            raise TransactionError(
                f"Cannot close the database inside transaction {frame.name}"
            )
        self._closed = True
        await self._coordinator.close(
            DatabaseClosedError("Database closed with pending transactions")
        )
        await self._connection.close()

    async def __aenter__(self) -> Database:
        return await self.open()

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
        return False

    # Queries

    async def run(self, sql: str, params: Optional[Params] = None) -> RunResult:
        self._ensure_open()
        return await self._connection.run(sql, params)

    async def get(
        self, sql: str, params: Optional[Params] = None
    ) -> Optional[Dict[str, Any]]:
        self._ensure_open()
        return await self._connection.get(sql, params)

    async def all(
        self, sql: str, params: Optional[Params] = None
    ) -> List[Dict[str, Any]]:
        self._ensure_open()
        return await self._connection.all(sql, params)

    async def exec(self, script: str) -> None:
        self._ensure_open()
        await self._connection.exec(script)

    # Transactions

    def transaction(self, callback: Callback) -> asyncio.Future:
        """Run a callback inside a transaction.

        Called from inside a running transaction callback, this nests
        using a savepoint. Otherwise the transaction waits for every
        top-level transaction requested before it.

        Example:

        ```python
        async def transfer():
            await db.run("UPDATE accounts SET balance = balance - 10 WHERE id = 1")
            await db.run("UPDATE accounts SET balance = balance + 10 WHERE id = 2")

        await db.transaction(transfer)
        ```

        Args:
            callback (Callback): Called with no arguments; may return a
                value or an awaitable

        Raises:
            DatabaseClosedError: If the database has been closed

        Returns:
            asyncio.Future: Resolves with the callback's result
        """  # noqa
        self._ensure_open()
        return self._coordinator.transaction(callback)

    @property
    def in_transaction(self) -> bool:
        return self._coordinator.in_transaction

    # Migrations

    async def migrate(self, migrations: Iterable[MigrationLike]) -> List[int]:
        self._ensure_open()
        return await self._migrations.migrate(migrations)

    async def rollback(
        self,
        target_version: int = 0,
        migrations: Optional[Iterable[MigrationLike]] = None,
    ) -> List[int]:
        self._ensure_open()
        return await self._rollbacks.rollback(target_version, migrations)

    async def get_migration_version(self) -> int:
        self._ensure_open()
        return await self._migrations.get_migration_version()

    async def get_applied_migrations(self) -> List[MigrationRecord]:
        self._ensure_open()
        return await self._migrations.get_applied_migrations()

    # Database info

    async def get_tables(self) -> List[str]:
        self._ensure_open()
        rows = await self._connection.all(
            "SELECT name FROM sqlite_master WHERE type = 'table' "
            "AND name NOT LIKE 'sqlite_%' AND name != ? ORDER BY name",
            [MIGRATIONS_TABLE],
        )
        return [row["name"] for row in rows]

    async def get_table_info(self, table: str) -> List[ColumnInfo]:
        self._ensure_open()
        exists = await self._connection.get(
            "SELECT COUNT(*) AS count FROM sqlite_master "
            "WHERE type = 'table' AND name = ?",
            [table],
        )
        if not exists or not exists["count"]:
            raise SqlError(
                f'Table "{table}" not found', SqlErrorKind.NOT_FOUND
            )
        rows = await self._connection.all(
            f"PRAGMA table_info({quote_identifier(table)})"
        )
        return [
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                nullable=row["notnull"] == 0,
                default_value=row["dflt_value"],
                primary_key=row["pk"] > 0,
            )
            for row in rows
        ]

    async def get_indexes(self, table: Optional[str] = None) -> List[IndexInfo]:
        self._ensure_open()
        sql = (
            "SELECT name, tbl_name, sql FROM sqlite_master "
            "WHERE type = 'index' AND name NOT LIKE 'sqlite_autoindex_%'"
        )
        params: Optional[List[Any]] = None
        if table is not None:
            sql += " AND tbl_name = ?"
            params = [table]
        rows = await self._connection.all(sql + " ORDER BY name", params)

        indexes = []
        for row in rows:
            columns = await self._connection.all(
                f"PRAGMA index_info({quote_identifier(row['name'])})"
            )
            indexes.append(
                IndexInfo(
                    name=row["name"],
                    table=row["tbl_name"],
                    unique="UNIQUE INDEX" in (row["sql"] or "").upper(),
                    columns=[
                        column["name"] for column in columns if column["name"]
                    ],
                )
            )
        return indexes

    # Bulk helpers

    async def insert_many(
        self, table: str, rows: Sequence[Mapping[str, Any]]
    ) -> List[int]:
        """Insert rows in a single transaction

        Every row may only use the columns of the first row; missing
        columns are inserted as NULL.

        Returns:
            List[int]: The rowid of each inserted row
        """
        self._ensure_open()
        if not rows:
            return []

        columns = list(rows[0].keys())
        for row in rows:
            if any(key not in columns for key in row):
                raise SeriateError("All rows must have the same columns")

        sql = (
            f"INSERT INTO {quote_identifier(table)} "
            f"({', '.join(quote_identifier(c) for c in columns)}) "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )

        async def insert_rows() -> List[int]:
            ids = []
            for row in rows:
                result = await self._connection.run(
                    sql, [row.get(column) for column in columns]
                )
                ids.append(result.last_insert_rowid)
            return ids

        return await self.transaction(insert_rows)

    async def clear(self) -> None:
        """Delete every row of every user table, keeping the schema"""
        self._ensure_open()
        tables = await self.get_tables()

        async def delete_rows() -> None:
            for table in tables:
                await self._connection.run(
                    f"DELETE FROM {quote_identifier(table)}"
                )
            sequence = await self._connection.get(
                "SELECT name FROM sqlite_master "
                "WHERE type = 'table' AND name = 'sqlite_sequence'"
            )
            if sequence:
                await self._connection.run("DELETE FROM sqlite_sequence")

        await self.transaction(delete_rows)


async def connect(
    db_path: Union[str, PathLike] = ":memory:", **options: Any
) -> Database:
    """Create a `Database` and open its connection"""
    return await Database(db_path, **options).open()
