import os
from typing import List, Dict, Any
from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings."""

    def __init__(self):
        # Project metadata
        self.PROJECT_NAME: str = os.getenv("PROJECT_NAME", "Database Viewer Gateway")
        self.PROJECT_DESCRIPTION: str = os.getenv(
            "PROJECT_DESCRIPTION",
            "Tool gateway for MySQL, PostgreSQL, SQL Server, SQLite and MongoDB."
        )
        self.VERSION: str = "0.1.0"
        self.MCP_SERVER_NAME: str = os.getenv("MCP_SERVER_NAME", "database-viewer")

        # Server
        self.HOST: str = os.getenv("HOST", "0.0.0.0")
        self.PORT: int = int(os.getenv("PORT", "3000"))

        # CORS configuration
        self.CORS_ORIGINS: List[str] = [
            origin.strip()
            for origin in os.getenv("CORS_ORIGINS", "*").split(",")
            if origin.strip()
        ]

        # Logging
        self.LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()
        self.LOG_FILE: str = os.getenv("LOG_FILE")

        # Idle connection sweep, 0 disables reaping
        self.CONNECTION_IDLE_TIMEOUT_SECONDS: float = float(
            os.getenv("CONNECTION_IDLE_TIMEOUT_SECONDS", "0")
        )
        self.IDLE_SWEEP_INTERVAL_SECONDS: float = float(
            os.getenv("IDLE_SWEEP_INTERVAL_SECONDS", "60")
        )


# (variable, default) per connect argument
_CONNECTION_ENV = {
    "mysql": {
        "host": ("MYSQL_HOST", "localhost"),
        "port": ("MYSQL_PORT", "3306"),
        "user": ("MYSQL_USER", "root"),
        "password": ("MYSQL_PASSWORD", ""),
        "database": ("MYSQL_DATABASE", None),
    },
    "postgres": {
        "host": ("PG_HOST", "localhost"),
        "port": ("PG_PORT", "5432"),
        "user": ("PG_USER", "postgres"),
        "password": ("PG_PASSWORD", ""),
        "database": ("PG_DATABASE", None),
    },
    "mssql": {
        "server": ("MSSQL_SERVER", "localhost"),
        "port": ("MSSQL_PORT", "1433"),
        "user": ("MSSQL_USER", "sa"),
        "password": ("MSSQL_PASSWORD", ""),
        "database": ("MSSQL_DATABASE", None),
        "driver": ("MSSQL_ODBC_DRIVER", "ODBC Driver 18 for SQL Server"),
    },
    "mongodb": {
        "host": ("MONGO_HOST", "localhost"),
        "port": ("MONGO_PORT", "27017"),
        "user": ("MONGO_USER", None),
        "password": ("MONGO_PASSWORD", None),
        "database": ("MONGO_DATABASE", "test"),
    },
}


def connection_defaults(backend_type: str) -> Dict[str, Any]:
    """
    Read connection defaults for a backend from the environment.

    Called at connect time, not import time, so changes to the environment
    after startup are honored.

    Args:
        backend_type: Canonical backend type (mysql, postgres, mssql, mongodb)

    Returns:
        Dict of connect arguments; sqlite and unknown types have none
    """
    defaults = {}
    for key, (variable, default) in _CONNECTION_ENV.get(backend_type, {}).items():
        value = os.getenv(variable, default)
        if value is not None:
            defaults[key] = value
    return defaults


def resolve_connection_args(backend_type: str, args: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge environment defaults, explicit tool arguments and the options bag.

    Precedence is defaults < explicit arguments < options, so options can
    override the computed host, user and password as well.
    """
    resolved = connection_defaults(backend_type)
    for key, value in args.items():
        if key in ("type", "options") or value is None:
            continue
        resolved[key] = value
    options = args.get("options") or {}
    resolved.update(options)
    return resolved


settings = Settings()
