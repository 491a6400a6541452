from typing import List

import pytest

from seriate import Database
from seriate.sqlite import SQLiteConnection

TRANSACTION_KEYWORDS = ("BEGIN", "COMMIT", "ROLLBACK", "SAVEPOINT", "RELEASE")


class RecordingConnection(SQLiteConnection):
    """SQLite connection that remembers every statement it executes"""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.statements: List[str] = []

    async def execute(self, sql, params=None):
        self.statements.append(sql)
        return await super().execute(sql, params)

    @property
    def transaction_statements(self) -> List[str]:
        return [
            statement
            for statement in self.statements
            if statement.split(" ", 1)[0] in TRANSACTION_KEYWORDS
        ]

    def reset(self):
        self.statements.clear()


@pytest.fixture
def connection():
    return RecordingConnection(":memory:")


@pytest.fixture
async def db(connection):
    database = Database(connection=connection)
    await database.open()
    yield database
    await database.close()


@pytest.fixture
async def items_db(db, connection):
    await db.exec(
        "CREATE TABLE items (id INTEGER PRIMARY KEY, name TEXT UNIQUE)"
    )
    connection.reset()
    return db


@pytest.fixture
def item_names(db):
    async def item_names() -> List[str]:
        rows = await db.all("SELECT name FROM items ORDER BY id")
        return [row["name"] for row in rows]

    return item_names
