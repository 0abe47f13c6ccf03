import pytest

from dbgateway.core.exceptions import (
    DatabaseConnectionError, NotFoundError, QueryError, ValidationError
)
from conftest import USERS


async def test_connect_requires_database(sqlite_connector):
    with pytest.raises(ValidationError):
        await sqlite_connector.connect({})


async def test_foreign_keys_are_enabled(sqlite_connector, sqlite_handle):
    result = await sqlite_connector.execute_query(sqlite_handle, "PRAGMA foreign_keys")
    assert result["results"] == [{"foreign_keys": 1}]

    await sqlite_connector.execute_query(
        sqlite_handle,
        "CREATE TABLE orders (id INTEGER PRIMARY KEY, "
        "user_id INTEGER NOT NULL REFERENCES test_users(id))"
    )
    with pytest.raises(QueryError, match="^SQLite: .*FOREIGN KEY"):
        await sqlite_connector.insert_data(sqlite_handle, "orders", {"user_id": 42})


async def test_list_databases_is_main(sqlite_connector, sqlite_handle):
    assert await sqlite_connector.list_databases(sqlite_handle) == ["main"]


async def test_list_tables_excludes_internal_tables(sqlite_connector, sqlite_handle):
    await sqlite_connector.execute_query(
        sqlite_handle, "CREATE TABLE counters (id INTEGER PRIMARY KEY AUTOINCREMENT, n INTEGER)"
    )
    await sqlite_connector.insert_data(sqlite_handle, "counters", {"n": 1})

    # AUTOINCREMENT creates sqlite_sequence
    assert await sqlite_connector.list_tables(sqlite_handle) == ["counters", "test_users"]


async def test_table_structure(sqlite_connector, sqlite_handle):
    structure = await sqlite_connector.get_table_structure(sqlite_handle, "test_users")

    assert structure["table_name"] == "test_users"
    assert [column["name"] for column in structure["columns"]] == ["id", "name", "email", "age"]

    id_column, name_column, email_column, _ = structure["columns"]
    assert id_column["primary_key"] is True
    assert id_column["auto_increment"] is True
    assert name_column["nullable"] is False
    assert email_column["nullable"] is True

    types = {index["type"] for index in structure["indexes"]}
    assert "PRIMARY" in types
    unique = [index for index in structure["indexes"] if index["type"] == "UNIQUE"]
    assert unique[0]["columns"] == ["email"]
    assert unique[0]["unique"] is True


async def test_three_column_table_reports_primary_index(sqlite_connector, sqlite_handle):
    await sqlite_connector.execute_query(
        sqlite_handle,
        "CREATE TABLE people (id INTEGER PRIMARY KEY, name TEXT NOT NULL, email TEXT UNIQUE)"
    )

    structure = await sqlite_connector.get_table_structure(sqlite_handle, "people")

    assert len(structure["columns"]) == 3
    primary = [index for index in structure["indexes"] if index["type"] == "PRIMARY"]
    assert primary and primary[0]["columns"] == ["id"]


async def test_composite_index_keeps_column_order(sqlite_connector, sqlite_handle):
    await sqlite_connector.execute_query(
        sqlite_handle, "CREATE INDEX idx_age_name ON test_users (age, name)"
    )

    structure = await sqlite_connector.get_table_structure(sqlite_handle, "test_users")

    index = next(i for i in structure["indexes"] if i["name"] == "idx_age_name")
    assert index["columns"] == ["age", "name"]
    assert index["type"] == "INDEX"
    assert index["unique"] is False


async def test_unknown_table_structure_is_not_found(sqlite_connector, sqlite_handle):
    with pytest.raises(NotFoundError):
        await sqlite_connector.get_table_structure(sqlite_handle, "missing")


async def test_insert_then_select_round_trips(sqlite_connector, sqlite_handle):
    inserted = await sqlite_connector.insert_data(sqlite_handle, "test_users", USERS)

    assert inserted["affected_rows"] == 3
    assert inserted["inserted_ids"] == [1, 2, 3]

    result = await sqlite_connector.execute_query(
        sqlite_handle, "SELECT name, email, age FROM test_users ORDER BY id"
    )
    assert result["results"] == USERS
    assert result["fields"] == ["name", "email", "age"]
    assert result["affected_rows"] == 3


async def test_insert_is_all_or_nothing(sqlite_connector, sqlite_handle):
    records = [
        {"name": "Dana", "email": "dana@example.com"},
        {"name": "Eve", "email": "dana@example.com"},
    ]
    with pytest.raises(QueryError):
        await sqlite_connector.insert_data(sqlite_handle, "test_users", records)

    result = await sqlite_connector.execute_query(sqlite_handle, "SELECT COUNT(*) AS n FROM test_users")
    assert result["results"] == [{"n": 0}]


async def test_insert_rejects_empty_data(sqlite_connector, sqlite_handle):
    with pytest.raises(ValidationError):
        await sqlite_connector.insert_data(sqlite_handle, "test_users", [])


async def test_positional_params(sqlite_connector, sqlite_handle):
    await sqlite_connector.insert_data(sqlite_handle, "test_users", USERS)

    result = await sqlite_connector.execute_query(
        sqlite_handle, "SELECT name FROM test_users WHERE age > ? ORDER BY name", [25]
    )

    assert result["results"] == [{"name": "Alice"}, {"name": "Charlie"}]


async def test_write_statement_returns_write_shape(sqlite_connector, sqlite_handle):
    await sqlite_connector.insert_data(sqlite_handle, "test_users", USERS)

    result = await sqlite_connector.execute_query(
        sqlite_handle, "UPDATE test_users SET age = age + 1 WHERE age >= ?", [30]
    )

    assert "results" not in result
    assert result["affected_rows"] == 2


async def test_update_only_touches_matching_rows(sqlite_connector, sqlite_handle):
    await sqlite_connector.insert_data(sqlite_handle, "test_users", USERS)

    updated = await sqlite_connector.update_data(
        sqlite_handle, "test_users", {"age": 26}, {"name": "Bob", "email": "bob@example.com"}
    )

    assert updated["affected_rows"] == 1
    result = await sqlite_connector.execute_query(
        sqlite_handle, "SELECT name, age FROM test_users ORDER BY id"
    )
    assert result["results"] == [
        {"name": "Alice", "age": 30},
        {"name": "Bob", "age": 26},
        {"name": "Charlie", "age": 35},
    ]


async def test_update_and_delete_require_where(sqlite_connector, sqlite_handle):
    with pytest.raises(ValidationError):
        await sqlite_connector.update_data(sqlite_handle, "test_users", {"age": 1}, {})
    with pytest.raises(ValidationError):
        await sqlite_connector.delete_data(sqlite_handle, "test_users", {})


async def test_delete_matching_rows(sqlite_connector, sqlite_handle):
    await sqlite_connector.insert_data(sqlite_handle, "test_users", USERS)

    deleted = await sqlite_connector.delete_data(sqlite_handle, "test_users", {"age": 25})

    assert deleted["affected_rows"] == 1
    result = await sqlite_connector.execute_query(sqlite_handle, "SELECT COUNT(*) AS n FROM test_users")
    assert result["results"] == [{"n": 2}]


async def test_bad_sql_is_a_prefixed_query_error(sqlite_connector, sqlite_handle):
    with pytest.raises(QueryError, match="^SQLite: "):
        await sqlite_connector.execute_query(sqlite_handle, "SELEC nonsense")


async def test_closing_twice_raises(sqlite_connector, sqlite_handle):
    await sqlite_connector.close_connection(sqlite_handle)

    with pytest.raises(DatabaseConnectionError):
        await sqlite_connector.close_connection(sqlite_handle)


async def test_file_database(sqlite_connector, tmp_path):
    path = str(tmp_path / "gateway.db")
    handle = await sqlite_connector.connect({"database": path})
    await sqlite_connector.execute_query(handle, "CREATE TABLE notes (body TEXT)")
    await sqlite_connector.insert_data(handle, "notes", {"body": "100% done"})
    await sqlite_connector.close_connection(handle)

    reopened = await sqlite_connector.connect({"database": path})
    result = await sqlite_connector.execute_query(
        reopened, "SELECT body FROM notes WHERE body LIKE '100%'"
    )
    await sqlite_connector.close_connection(reopened)

    assert result["results"] == [{"body": "100% done"}]
