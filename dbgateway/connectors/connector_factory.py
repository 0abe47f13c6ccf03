"""Capability table mapping backend types to their connectors."""
import logging
from typing import Dict, List

from dbgateway.connectors.interfaces import DatabaseConnectorInterface
from dbgateway.connectors.sql import MySQLConnector, PostgresConnector, SQLiteConnector, MSSQLConnector
from dbgateway.connectors.mongo_client import MongoDBConnector
from dbgateway.core.exceptions import ValidationError
from dbgateway.utils.database_connection_schema import DatabaseType


logger = logging.getLogger(__name__)

# Alternate spellings accepted for the `type` argument
_TYPE_ALIASES = {
    "postgresql": DatabaseType.POSTGRES,
    "pg": DatabaseType.POSTGRES,
    "mariadb": DatabaseType.MYSQL,
    "sqlserver": DatabaseType.MSSQL,
    "mongo": DatabaseType.MONGODB,
}

# Connectors are stateless, one instance serves every connection of a type
_CONNECTORS: Dict[DatabaseType, DatabaseConnectorInterface] = {
    DatabaseType.MYSQL: MySQLConnector(),
    DatabaseType.POSTGRES: PostgresConnector(),
    DatabaseType.SQLITE: SQLiteConnector(),
    DatabaseType.MSSQL: MSSQLConnector(),
    DatabaseType.MONGODB: MongoDBConnector(),
}


class ConnectorFactory:
    """
    Resolves backend type identifiers to connector instances.

    Supported databases:
    - SQL: MySQL/MariaDB, PostgreSQL, SQLite, SQL Server (via SQLAlchemy)
    - NoSQL: MongoDB (via pymongo)
    """

    @staticmethod
    def resolve_type(db_type: str) -> DatabaseType:
        """
        Normalize a backend type identifier.

        Args:
            db_type: Type name as given by the caller, case-insensitive;
                aliases such as postgresql or sqlserver are accepted

        Returns:
            DatabaseType member

        Raises:
            ValidationError: If the type is not supported
        """
        if isinstance(db_type, DatabaseType):
            return db_type
        name = str(db_type or "").strip().lower()
        if name in _TYPE_ALIASES:
            return _TYPE_ALIASES[name]
        try:
            return DatabaseType(name)
        except ValueError:
            supported = ", ".join(t.value for t in ConnectorFactory.get_supported_databases())
            raise ValidationError(
                f"Unsupported database type: {db_type}. Supported types: {supported}"
            ) from None

    @staticmethod
    def get_connector(db_type) -> DatabaseConnectorInterface:
        """Return the connector for a DatabaseType or type name."""
        return _CONNECTORS[ConnectorFactory.resolve_type(db_type)]

    @staticmethod
    def get_supported_databases() -> List[DatabaseType]:
        return list(_CONNECTORS)
