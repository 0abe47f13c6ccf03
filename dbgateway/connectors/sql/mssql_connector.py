"""SQL Server connector using SQLAlchemy with the pyodbc driver."""
import asyncio
import logging
from typing import Dict, Any, List, Optional, Union

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError, ResourceClosedError

from dbgateway.connectors.interfaces import DatabaseConnectorInterface
from dbgateway.connectors.sql.sql_handle import (
    SQLHandle, open_handle, run_in_transaction, close_handle, execute,
    fetch_dicts, read_or_write_result, driver_message, split_connect_args
)
from dbgateway.core.exceptions import DatabaseConnectionError, NotFoundError, QueryError
from dbgateway.utils.database_connection_schema import (
    DatabaseType, ColumnInfo, TableStructure, fold_index_rows
)
from dbgateway.utils.placeholders import translate_placeholders, QMARK
from dbgateway.utils.records import normalize_records, require_mapping

logger = logging.getLogger(__name__)

DRIVER_NAME = "mssql+pyodbc"

_KNOWN_ARGS = (
    "url", "host", "server", "port", "user", "password", "database",
    "driver", "trust_server_certificate",
)

_LIST_DATABASES = "SELECT name FROM sys.databases WHERE database_id > 4 ORDER BY name"

_LIST_TABLES = (
    "SELECT TABLE_NAME FROM INFORMATION_SCHEMA.TABLES "
    "WHERE TABLE_TYPE = 'BASE TABLE' ORDER BY TABLE_NAME"
)

_LIST_COLUMNS = (
    "SELECT c.COLUMN_NAME AS column_name, c.DATA_TYPE AS data_type, "
    "c.IS_NULLABLE AS is_nullable, c.COLUMN_DEFAULT AS column_default, "
    "COLUMNPROPERTY(OBJECT_ID(QUOTENAME(c.TABLE_SCHEMA) + '.' + QUOTENAME(c.TABLE_NAME)), "
    "c.COLUMN_NAME, 'IsIdentity') AS is_identity "
    "FROM INFORMATION_SCHEMA.COLUMNS c "
    "WHERE c.TABLE_NAME = ? AND c.TABLE_SCHEMA = SCHEMA_NAME() "
    "ORDER BY c.ORDINAL_POSITION"
)

_LIST_INDEXES = (
    "SELECT i.name AS index_name, col.name AS column_name, "
    "i.is_unique AS is_unique, i.is_primary_key AS is_primary "
    "FROM sys.indexes i "
    "JOIN sys.index_columns ic ON ic.object_id = i.object_id AND ic.index_id = i.index_id "
    "JOIN sys.columns col ON col.object_id = ic.object_id AND col.column_id = ic.column_id "
    "WHERE i.object_id = OBJECT_ID(?) AND i.name IS NOT NULL AND ic.is_included_column = 0 "
    "ORDER BY i.index_id, ic.key_ordinal"
)


def _quote(identifier: str) -> str:
    return "[" + identifier.replace("]", "]]") + "]"


def _where_clause(where: Dict[str, Any]):
    conditions = []
    values = []
    for column, value in where.items():
        if value is None:
            conditions.append(f"{_quote(column)} IS NULL")
        else:
            conditions.append(f"{_quote(column)} = ?")
            values.append(value)
    return " AND ".join(conditions), values


class MSSQLConnector(DatabaseConnectorInterface):
    """
    Connector for Microsoft SQL Server.

    The host is given as `server`; the ODBC driver name comes from
    MSSQL_ODBC_DRIVER unless `driver` is passed. Server certificates are
    trusted by default. Inserts, updates and deletes report the affected
    rows through OUTPUT clauses.
    """

    database_type = DatabaseType.MSSQL
    dialect_name = "SQL Server"

    def _build_url(self, args: Dict[str, Any]) -> URL:
        if args.get("url"):
            url = make_url(args["url"])
            if url.drivername == "mssql":
                url = url.set(drivername=DRIVER_NAME)
            return url

        trust = args.get("trust_server_certificate", True)
        query = {"TrustServerCertificate": "yes" if trust else "no"}
        if args.get("driver"):
            query["driver"] = args["driver"]

        return URL.create(
            DRIVER_NAME,
            username=args.get("user"),
            password=args.get("password"),
            host=args.get("server") or args.get("host"),
            port=int(args["port"]) if args.get("port") else None,
            database=args.get("database") or None,
            query=query,
        )

    async def connect(self, args: Dict[str, Any]) -> SQLHandle:
        connect_args = split_connect_args(args, _KNOWN_ARGS)

        try:
            url = self._build_url(args)
            handle = await asyncio.to_thread(open_handle, url, connect_args=connect_args)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to connect to SQL Server: {e}")
            raise DatabaseConnectionError(f"SQL Server: {driver_message(e)}") from e

        logger.info(f"Connected to SQL Server {url.host}:{url.port or 1433}")
        return handle

    async def list_databases(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, _LIST_DATABASES)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing SQL Server databases: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e

    async def list_tables(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, _LIST_TABLES)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing SQL Server tables: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e

    async def get_table_structure(self, handle: SQLHandle, table_name: str) -> Dict[str, Any]:
        def _describe(conn) -> TableStructure:
            column_rows = fetch_dicts(execute(conn, _LIST_COLUMNS, (table_name,)))
            if not column_rows:
                raise NotFoundError(f"SQL Server: table '{table_name}' does not exist")
            index_rows = fetch_dicts(execute(conn, _LIST_INDEXES, (_quote(table_name),)))
            return self._build_structure(table_name, column_rows, index_rows)

        try:
            structure = await run_in_transaction(handle, _describe)
        except SQLAlchemyError as e:
            logger.error(f"Error describing SQL Server table {table_name}: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e
        return structure.to_dict()

    def _build_structure(
        self,
        table_name: str,
        column_rows: List[Dict[str, Any]],
        index_rows: List[Dict[str, Any]]
    ) -> TableStructure:
        indexes = fold_index_rows(
            {
                "name": row["index_name"],
                "column": row["column_name"],
                "unique": bool(row["is_unique"]),
                "primary": bool(row["is_primary"]),
            }
            for row in index_rows
        )
        primary_columns = {
            row["column_name"] for row in index_rows if row["is_primary"]
        }

        columns = [
            ColumnInfo(
                name=row["column_name"],
                type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                default=row["column_default"],
                primary_key=row["column_name"] in primary_columns,
                auto_increment=row["is_identity"] == 1,
            )
            for row in column_rows
        ]
        return TableStructure(table_name=table_name, columns=columns, indexes=indexes)

    async def execute_query(
        self,
        handle: SQLHandle,
        query: str,
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        statement, bound = translate_placeholders(query, params, QMARK)

        try:
            return await run_in_transaction(
                handle, lambda conn: read_or_write_result(execute(conn, statement, bound))
            )
        except SQLAlchemyError as e:
            logger.error(f"SQL Server query error: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e

    async def insert_data(
        self,
        handle: SQLHandle,
        table_name: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        records, columns = normalize_records(data)
        statement = (
            f"INSERT INTO {_quote(table_name)} "
            f"({', '.join(_quote(column) for column in columns)}) "
            f"OUTPUT INSERTED.* "
            f"VALUES ({', '.join('?' for _ in columns)})"
        )

        def _insert(conn) -> List[Dict[str, Any]]:
            returned = []
            for record in records:
                result = execute(conn, statement, tuple(record.get(column) for column in columns))
                returned.extend(fetch_dicts(result))
            return returned

        try:
            returned = await run_in_transaction(handle, _insert)
        except SQLAlchemyError as e:
            logger.error(f"SQL Server insert into {table_name} failed: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e
        return {"affected_rows": len(returned), "returned_rows": returned}

    async def update_data(
        self,
        handle: SQLHandle,
        table_name: str,
        data: Dict[str, Any],
        where: Dict[str, Any]
    ) -> Dict[str, Any]:
        require_mapping(data, "data")
        require_mapping(where, "where")
        conditions, where_values = _where_clause(where)
        assignments = ", ".join(f"{_quote(column)} = ?" for column in data)
        statement = (
            f"UPDATE {_quote(table_name)} SET {assignments} "
            f"OUTPUT INSERTED.* WHERE {conditions}"
        )
        values = tuple(data.values()) + tuple(where_values)

        try:
            returned = await run_in_transaction(
                handle, lambda conn: fetch_dicts(execute(conn, statement, values))
            )
        except SQLAlchemyError as e:
            logger.error(f"SQL Server update of {table_name} failed: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e
        return {"affected_rows": len(returned), "returned_rows": returned}

    async def delete_data(self, handle: SQLHandle, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        require_mapping(where, "where")
        conditions, values = _where_clause(where)
        statement = f"DELETE FROM {_quote(table_name)} OUTPUT DELETED.* WHERE {conditions}"

        try:
            returned = await run_in_transaction(
                handle, lambda conn: fetch_dicts(execute(conn, statement, tuple(values)))
            )
        except SQLAlchemyError as e:
            logger.error(f"SQL Server delete from {table_name} failed: {e}")
            raise QueryError(f"SQL Server: {driver_message(e)}") from e
        return {"affected_rows": len(returned), "returned_rows": returned}

    async def close_connection(self, handle: SQLHandle) -> None:
        try:
            await close_handle(handle)
        except ResourceClosedError as e:
            raise DatabaseConnectionError("SQL Server: connection is already closed") from e
        except Exception as e:
            logger.error(f"Error closing SQL Server connection: {e}")
            raise DatabaseConnectionError(f"SQL Server: {driver_message(e)}") from e
        logger.info("SQL Server connection closed")
