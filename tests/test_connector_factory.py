import pytest

from dbgateway.connectors import ConnectorFactory
from dbgateway.connectors.mongo_client import MongoDBConnector
from dbgateway.connectors.sql import MSSQLConnector, PostgresConnector, SQLiteConnector
from dbgateway.core.exceptions import ValidationError
from dbgateway.utils.database_connection_schema import DatabaseType


@pytest.mark.parametrize("name, expected", [
    ("postgres", DatabaseType.POSTGRES),
    ("PostgreSQL", DatabaseType.POSTGRES),
    ("mariadb", DatabaseType.MYSQL),
    ("sqlserver", DatabaseType.MSSQL),
    ("mongo", DatabaseType.MONGODB),
    (" sqlite ", DatabaseType.SQLITE),
])
def test_resolve_type_accepts_aliases(name, expected):
    assert ConnectorFactory.resolve_type(name) == expected


def test_get_connector_returns_matching_connector():
    assert isinstance(ConnectorFactory.get_connector("postgres"), PostgresConnector)
    assert isinstance(ConnectorFactory.get_connector(DatabaseType.SQLITE), SQLiteConnector)
    assert isinstance(ConnectorFactory.get_connector("mssql"), MSSQLConnector)
    assert isinstance(ConnectorFactory.get_connector("mongodb"), MongoDBConnector)


def test_connectors_are_shared():
    assert ConnectorFactory.get_connector("mysql") is ConnectorFactory.get_connector("mariadb")


def test_unsupported_type():
    with pytest.raises(ValidationError, match="oracle"):
        ConnectorFactory.get_connector("oracle")


def test_supported_databases():
    assert set(ConnectorFactory.get_supported_databases()) == set(DatabaseType)
