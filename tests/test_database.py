import pytest

import seriate
from seriate import (
    ColumnInfo,
    Database,
    DatabaseClosedError,
    IndexInfo,
    SeriateError,
    SqlError,
    SqlErrorKind,
)
from seriate.sqlite import SQLiteConnection


async def test_connect():
    db = await seriate.connect(":memory:")

    assert db.connection.is_open
    assert await db.get("SELECT 1 AS one") == {"one": 1}

    await db.close()
    assert db.closed


async def test_context_manager():
    async with Database() as db:
        await db.exec("CREATE TABLE t (x)")
        assert await db.get_tables() == ["t"]

    assert db.closed
    assert not db.connection.is_open


async def test_connect_with_file(tmp_path):
    path = tmp_path / "app.db"

    async with await seriate.connect(path) as db:
        await db.migrate([{"version": 1, "up": "CREATE TABLE t (x)"}])

    async with await seriate.connect(str(path)) as db:
        assert await db.get_migration_version() == 1


def test_conflicting_sources():
    with pytest.raises(SeriateError, match="Conflict"):
        Database("app.db", connection=SQLiteConnection(":memory:"))


async def test_closed_database_rejects_operations(db):
    await db.close()
    await db.close()

    with pytest.raises(DatabaseClosedError, match="Database is closed"):
        await db.run("SELECT 1")
    with pytest.raises(DatabaseClosedError):
        await db.migrate([])
    with pytest.raises(DatabaseClosedError):
        await db.get_migration_version()
    with pytest.raises(DatabaseClosedError):
        await db.open()


async def test_get_table_info(db):
    await db.exec(
        """
        CREATE TABLE users (
            id INTEGER PRIMARY KEY,
            name TEXT NOT NULL,
            role TEXT DEFAULT 'member'
        )
        """
    )

    assert await db.get_table_info("users") == [
        ColumnInfo("id", "INTEGER", True, None, True),
        ColumnInfo("name", "TEXT", False, None, False),
        ColumnInfo("role", "TEXT", True, "'member'", False),
    ]


async def test_get_table_info_unknown_table(db):
    with pytest.raises(SqlError, match='Table "nope" not found') as exc_info:
        await db.get_table_info("nope")

    assert exc_info.value.kind is SqlErrorKind.NOT_FOUND


async def test_get_indexes(db):
    await db.exec(
        """
        CREATE TABLE users (id INTEGER PRIMARY KEY, email TEXT, name TEXT);
        CREATE UNIQUE INDEX users_email ON users (email);
        CREATE INDEX users_name_email ON users (name, email);
        CREATE TABLE other (x);
        CREATE INDEX other_x ON other (x);
        """
    )

    assert await db.get_indexes("users") == [
        IndexInfo("users_email", "users", True, ["email"]),
        IndexInfo("users_name_email", "users", False, ["name", "email"]),
    ]
    assert len(await db.get_indexes()) == 3


async def test_insert_many(db, connection):
    await db.exec("CREATE TABLE items (id INTEGER PRIMARY KEY, a, b)")
    connection.reset()

    ids = await db.insert_many("items", [{"a": 1, "b": 2}, {"a": 3}])

    assert ids == [1, 2]
    assert await db.all("SELECT a, b FROM items ORDER BY id") == [
        {"a": 1, "b": 2},
        {"a": 3, "b": None},
    ]
    assert connection.transaction_statements == ["BEGIN", "COMMIT"]


async def test_insert_many_is_atomic(db):
    await db.exec("CREATE TABLE items (id INTEGER PRIMARY KEY, a UNIQUE)")

    with pytest.raises(SqlError):
        await db.insert_many("items", [{"a": 1}, {"a": 1}])

    assert await db.all("SELECT * FROM items") == []


async def test_insert_many_rejects_mismatched_columns(db):
    await db.exec("CREATE TABLE items (a, b)")

    with pytest.raises(SeriateError, match="same columns"):
        await db.insert_many("items", [{"a": 1}, {"b": 2}])


async def test_insert_many_rejects_unsafe_names(db):
    with pytest.raises(SeriateError, match="Invalid identifier"):
        await db.insert_many("items; DROP TABLE x", [{"a": 1}])


async def test_insert_many_empty(db):
    assert await db.insert_many("items", []) == []


async def test_clear(db):
    await db.migrate(
        [
            {
                "version": 1,
                "up": "CREATE TABLE t (id INTEGER PRIMARY KEY AUTOINCREMENT, x)",
            }
        ]
    )
    await db.insert_many("t", [{"x": 1}, {"x": 2}])

    await db.clear()

    assert await db.all("SELECT * FROM t") == []
    assert await db.get_migration_version() == 1
    assert (await db.run("INSERT INTO t (x) VALUES (3)")).last_insert_rowid == 1


def test_version():
    assert isinstance(seriate.__version__, str)


async def test_closed_database_stays_closed(db):
    await db.close()
    await db.connection.open()

    for operation in (
        db.run("SELECT 1"),
        db.get("SELECT 1"),
        db.all("SELECT 1"),
        db.exec("SELECT 1"),
    ):
        with pytest.raises(DatabaseClosedError):
            await operation

    await db.connection.close()
