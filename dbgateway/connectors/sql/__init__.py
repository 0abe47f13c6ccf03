"""SQLAlchemy-backed dialect connectors."""
from .mysql_connector import MySQLConnector
from .postgres_connector import PostgresConnector
from .sqlite_connector import SQLiteConnector
from .mssql_connector import MSSQLConnector

__all__ = ['MySQLConnector', 'PostgresConnector', 'SQLiteConnector', 'MSSQLConnector']
