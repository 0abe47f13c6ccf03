"""MySQL / MariaDB connector using SQLAlchemy with the PyMySQL driver."""
import asyncio
import logging
from typing import Dict, Any, List, Optional, Union

from sqlalchemy.engine import URL, make_url
from sqlalchemy.exc import SQLAlchemyError, ResourceClosedError, DBAPIError

from dbgateway.connectors.interfaces import DatabaseConnectorInterface
from dbgateway.connectors.sql.sql_handle import (
    SQLHandle, open_handle, run_in_transaction, close_handle, execute,
    fetch_dicts, read_or_write_result, driver_message, split_connect_args
)
from dbgateway.core.exceptions import DatabaseConnectionError, NotFoundError, QueryError
from dbgateway.utils.database_connection_schema import (
    DatabaseType, ColumnInfo, TableStructure, fold_index_rows
)
from dbgateway.utils.placeholders import translate_placeholders, FORMAT
from dbgateway.utils.records import normalize_records, require_mapping

logger = logging.getLogger(__name__)

DRIVER_NAME = "mysql+pymysql"

_KNOWN_ARGS = ("url", "host", "server", "port", "user", "password", "database")

# ER_NO_SUCH_TABLE
_NO_SUCH_TABLE = 1146


def _quote(identifier: str) -> str:
    return "`" + identifier.replace("`", "``") + "`"


def _param_quote(identifier: str) -> str:
    """Quote an identifier for a statement the driver will %-format."""
    return _quote(identifier).replace("%", "%%")


def _where_clause(where: Dict[str, Any]):
    conditions = []
    values = []
    for column, value in where.items():
        if value is None:
            conditions.append(f"{_param_quote(column)} IS NULL")
        else:
            conditions.append(f"{_param_quote(column)} = %s")
            values.append(value)
    return " AND ".join(conditions), values


def _error_code(error: SQLAlchemyError) -> Optional[int]:
    if isinstance(error, DBAPIError) and error.orig is not None and error.orig.args:
        return error.orig.args[0]
    return None


class MySQLConnector(DatabaseConnectorInterface):
    """Connector for MySQL and MariaDB servers."""

    database_type = DatabaseType.MYSQL
    dialect_name = "MySQL"

    def _build_url(self, args: Dict[str, Any]) -> URL:
        if args.get("url"):
            url = make_url(args["url"])
            if url.drivername == "mysql":
                url = url.set(drivername=DRIVER_NAME)
            return url

        return URL.create(
            DRIVER_NAME,
            username=args.get("user"),
            password=args.get("password"),
            host=args.get("host"),
            port=int(args["port"]) if args.get("port") else None,
            database=args.get("database") or None,
        )

    async def connect(self, args: Dict[str, Any]) -> SQLHandle:
        connect_args = split_connect_args(args, _KNOWN_ARGS)
        connect_args.setdefault("connect_timeout", 10)

        try:
            url = self._build_url(args)
            handle = await asyncio.to_thread(open_handle, url, connect_args=connect_args)
        except (SQLAlchemyError, ValueError) as e:
            logger.error(f"Failed to connect to MySQL: {e}")
            raise DatabaseConnectionError(f"MySQL: {driver_message(e)}") from e

        logger.info(f"Connected to MySQL server {url.host}:{url.port or 3306}")
        return handle

    async def list_databases(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, "SHOW DATABASES")]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing MySQL databases: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e

    async def list_tables(self, handle: SQLHandle) -> List[str]:
        statement = "SHOW FULL TABLES WHERE Table_type = 'BASE TABLE'"
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, statement)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing MySQL tables: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e

    async def get_table_structure(self, handle: SQLHandle, table_name: str) -> Dict[str, Any]:
        def _describe(conn) -> TableStructure:
            column_rows = fetch_dicts(execute(conn, f"DESCRIBE {_quote(table_name)}"))
            index_rows = fetch_dicts(execute(conn, f"SHOW INDEX FROM {_quote(table_name)}"))
            return self._build_structure(table_name, column_rows, index_rows)

        try:
            structure = await run_in_transaction(handle, _describe)
        except SQLAlchemyError as e:
            if _error_code(e) == _NO_SUCH_TABLE:
                raise NotFoundError(f"MySQL: table '{table_name}' does not exist") from e
            logger.error(f"Error describing MySQL table {table_name}: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e
        return structure.to_dict()

    def _build_structure(
        self,
        table_name: str,
        column_rows: List[Dict[str, Any]],
        index_rows: List[Dict[str, Any]]
    ) -> TableStructure:
        columns = [
            ColumnInfo(
                name=row["Field"],
                type=row["Type"],
                nullable=row["Null"] == "YES",
                default=row["Default"],
                primary_key=row["Key"] == "PRI",
                auto_increment="auto_increment" in (row.get("Extra") or "").lower(),
            )
            for row in column_rows
        ]

        # SHOW INDEX lists key columns in Seq_in_index order already
        indexes = fold_index_rows(
            {
                "name": row["Key_name"],
                "column": row["Column_name"],
                "unique": not int(row["Non_unique"]),
            }
            for row in index_rows
        )
        return TableStructure(table_name=table_name, columns=columns, indexes=indexes)

    async def execute_query(
        self,
        handle: SQLHandle,
        query: str,
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        statement, bound = translate_placeholders(query, params, FORMAT)

        def _execute(conn) -> Dict[str, Any]:
            result = execute(conn, statement, bound)
            shaped = read_or_write_result(result)
            if not result.returns_rows:
                shaped["insert_id"] = result.lastrowid
            return shaped

        try:
            return await run_in_transaction(handle, _execute)
        except SQLAlchemyError as e:
            logger.error(f"MySQL query error: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e

    async def insert_data(
        self,
        handle: SQLHandle,
        table_name: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        records, columns = normalize_records(data)
        row_placeholders = "(" + ", ".join("%s" for _ in columns) + ")"
        statement = (
            f"INSERT INTO {_param_quote(table_name)} "
            f"({', '.join(_param_quote(column) for column in columns)}) "
            f"VALUES {', '.join(row_placeholders for _ in records)}"
        )
        values = tuple(record.get(column) for record in records for column in columns)

        def _insert(conn) -> Dict[str, Any]:
            result = execute(conn, statement, values)
            return {"affected_rows": result.rowcount, "insert_id": result.lastrowid}

        try:
            return await run_in_transaction(handle, _insert)
        except SQLAlchemyError as e:
            logger.error(f"MySQL insert into {table_name} failed: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e

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
        assignments = ", ".join(f"{_param_quote(column)} = %s" for column in data)
        statement = f"UPDATE {_param_quote(table_name)} SET {assignments} WHERE {conditions}"
        values = tuple(data.values()) + tuple(where_values)

        try:
            rowcount = await run_in_transaction(
                handle, lambda conn: execute(conn, statement, values).rowcount
            )
        except SQLAlchemyError as e:
            logger.error(f"MySQL update of {table_name} failed: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e
        return {"affected_rows": rowcount}

    async def delete_data(self, handle: SQLHandle, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        require_mapping(where, "where")
        conditions, values = _where_clause(where)
        statement = f"DELETE FROM {_param_quote(table_name)} WHERE {conditions}"

        try:
            rowcount = await run_in_transaction(
                handle, lambda conn: execute(conn, statement, tuple(values)).rowcount
            )
        except SQLAlchemyError as e:
            logger.error(f"MySQL delete from {table_name} failed: {e}")
            raise QueryError(f"MySQL: {driver_message(e)}") from e
        return {"affected_rows": rowcount}

    async def close_connection(self, handle: SQLHandle) -> None:
        try:
            await close_handle(handle)
        except ResourceClosedError as e:
            raise DatabaseConnectionError("MySQL: connection is already closed") from e
        except Exception as e:
            logger.error(f"Error closing MySQL connection: {e}")
            raise DatabaseConnectionError(f"MySQL: {driver_message(e)}") from e
        logger.info("MySQL connection closed")
