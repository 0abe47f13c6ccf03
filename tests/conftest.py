from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import pytest

from dbgateway.connectors.mongo_client import MongoHandle
from dbgateway.connectors.sql import SQLiteConnector
from dbgateway.dispatcher import ToolDispatcher
from dbgateway.registry import ConnectionRegistry


USERS_TABLE = (
    "CREATE TABLE test_users ("
    "id INTEGER PRIMARY KEY, "
    "name TEXT NOT NULL, "
    "email TEXT UNIQUE, "
    "age INTEGER)"
)

USERS = [
    {"name": "Alice", "email": "alice@example.com", "age": 30},
    {"name": "Bob", "email": "bob@example.com", "age": 25},
    {"name": "Charlie", "email": "charlie@example.com", "age": 35},
]


class FakeResult:
    """Stand-in for a SQLAlchemy CursorResult."""

    def __init__(self, rows=None, rowcount=0, lastrowid=None):
        self._rows = rows
        self.returns_rows = rows is not None
        self.rowcount = rowcount
        self.lastrowid = lastrowid

    def keys(self):
        return list(self._rows[0].keys()) if self._rows else []

    def __iter__(self):
        return iter(SimpleNamespace(_mapping=row) for row in self._rows or [])


class FakeConnection:
    """Records driver-level statements and replays canned results."""

    def __init__(self, results=None):
        self.calls = []
        self._results = list(results or [])

    def exec_driver_sql(self, statement, parameters=None, execution_options=None):
        self.calls.append((statement, parameters))
        if self._results:
            return self._results.pop(0)
        return FakeResult(rowcount=0)


@pytest.fixture
def fake_sql(monkeypatch):
    """Route a connector module's transactions to a FakeConnection."""

    def install(module, results=None):
        connection = FakeConnection(results)

        async def fake_run(handle, work):
            return work(connection)

        monkeypatch.setattr(module, "run_in_transaction", fake_run)
        return connection

    return install


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def dispatcher(registry):
    return ToolDispatcher(registry)


@pytest.fixture
def sqlite_connector():
    return SQLiteConnector()


@pytest.fixture
async def sqlite_handle(sqlite_connector):
    handle = await sqlite_connector.connect({"database": ":memory:"})
    await sqlite_connector.execute_query(handle, USERS_TABLE)
    yield handle
    if not handle.closed:
        await sqlite_connector.close_connection(handle)


@pytest.fixture
async def users_connection(dispatcher):
    """Connection id of an in-memory SQLite database holding three users."""
    connected = await dispatcher.invoke(
        "connect_to_database", {"type": "sqlite", "database": ":memory:"}
    )
    connection_id = connected["connection_id"]
    await dispatcher.invoke("execute_query", {"connection_id": connection_id, "query": USERS_TABLE})
    await dispatcher.invoke(
        "insert_data",
        {"connection_id": connection_id, "table_name": "test_users", "data": USERS},
    )
    yield connection_id
    await dispatcher.close_all()


@pytest.fixture
def mongo():
    """A MongoHandle over mocked pymongo client, database and collection."""
    collection = MagicMock()
    database = MagicMock()
    database.__getitem__.return_value = collection
    client = MagicMock()
    client.close = AsyncMock()
    return SimpleNamespace(
        handle=MongoHandle(client=client, database=database),
        client=client,
        database=database,
        collection=collection,
    )


def mock_cursor(documents):
    cursor = MagicMock()
    cursor.sort.return_value = cursor
    cursor.skip.return_value = cursor
    cursor.limit.return_value = cursor
    cursor.to_list = AsyncMock(return_value=documents)
    return cursor


@pytest.fixture
def make_cursor():
    return mock_cursor
