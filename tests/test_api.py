import time

import pytest
from fastapi.testclient import TestClient

from dbgateway.core.config import Settings
from dbgateway.main import create_application
from dbgateway.registry import ConnectionRegistry
from conftest import USERS, USERS_TABLE


@pytest.fixture
def registry():
    return ConnectionRegistry()


@pytest.fixture
def client(registry):
    with TestClient(create_application(registry=registry)) as test_client:
        yield test_client


def call(client, tool_name, **args):
    response = client.post("/mcp/tool", json={"tool_name": tool_name, "args": args})
    return response.status_code, response.json()


def test_root(client):
    response = client.get("/")

    assert response.status_code == 200
    assert response.json()["name"] == "database-viewer"
    assert response.json()["status"] == "running"


def test_health(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_list_tools(client):
    response = client.get("/mcp/tools")

    tools = response.json()["tools"]
    assert len(tools) == 9
    connect = tools[0]
    assert connect["name"] == "connect_to_database"
    assert connect["required"] == ["type"]


def test_unknown_tool_is_rejected(client):
    status, body = call(client, "format_disk")

    assert status == 400
    assert body["error_type"] == "UnknownToolError"


def test_unknown_server_is_rejected(client):
    response = client.post(
        "/mcp/tool",
        json={"server_name": "other-server", "tool_name": "list_tables", "args": {}},
    )

    assert response.status_code == 400
    assert response.json()["success"] is False


def test_tool_failures_are_enveloped(client):
    status, body = call(client, "list_tables")

    assert status == 200
    assert body == {
        "success": False,
        "error": "Missing required argument 'connection_id' for tool 'list_tables'",
        "error_type": "MissingArgumentError",
    }


def test_sqlite_session_over_http(client, registry):
    status, connected = call(client, "connect_to_database", type="sqlite", database=":memory:")
    assert status == 200
    connection_id = connected["connection_id"]

    call(client, "execute_query", connection_id=connection_id, query=USERS_TABLE)
    _, inserted = call(client, "insert_data", connection_id=connection_id,
                       table_name="test_users", data=USERS)
    assert inserted["affected_rows"] == 3

    _, selected = call(client, "execute_query", connection_id=connection_id,
                       query="SELECT name FROM test_users WHERE age > ? ORDER BY name", params=[25])
    assert selected == {
        "success": True,
        "results": [{"name": "Alice"}, {"name": "Charlie"}],
        "fields": ["name"],
        "affected_rows": 2,
    }

    _, closed = call(client, "close_connection", connection_id=connection_id)
    assert closed["success"] is True
    assert len(registry) == 0


def test_shutdown_closes_open_connections(registry):
    with TestClient(create_application(registry=registry)) as test_client:
        call(test_client, "connect_to_database", type="sqlite", database=":memory:")
        assert len(registry) == 1

    assert len(registry) == 0


def test_idle_connections_are_reaped(registry):
    app_settings = Settings()
    app_settings.CONNECTION_IDLE_TIMEOUT_SECONDS = 0.05
    app_settings.IDLE_SWEEP_INTERVAL_SECONDS = 0.02

    application = create_application(registry=registry, app_settings=app_settings)
    with TestClient(application) as test_client:
        call(test_client, "connect_to_database", type="sqlite", database=":memory:")

        deadline = time.monotonic() + 5
        while len(registry) and time.monotonic() < deadline:
            time.sleep(0.05)

        assert len(registry) == 0


def test_dispatcher_is_bound_to_the_given_registry(registry):
    application = create_application(registry=registry)

    assert application.state.registry is registry
    assert application.state.dispatcher.registry is registry
