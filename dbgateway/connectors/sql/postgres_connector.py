"""PostgreSQL connector using SQLAlchemy with the psycopg2 driver."""
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
from dbgateway.utils.placeholders import translate_placeholders, PYFORMAT
from dbgateway.utils.records import normalize_records, require_mapping

logger = logging.getLogger(__name__)

DRIVER_NAME = "postgresql+psycopg2"

_KNOWN_ARGS = ("url", "host", "server", "port", "user", "password", "database")

_LIST_DATABASES = (
    "SELECT datname FROM pg_database WHERE datistemplate = false ORDER BY datname"
)

_LIST_TABLES = (
    "SELECT table_name FROM information_schema.tables "
    "WHERE table_schema = current_schema() AND table_type = 'BASE TABLE' "
    "ORDER BY table_name"
)

_LIST_COLUMNS = (
    "SELECT column_name, data_type, is_nullable, column_default, is_identity "
    "FROM information_schema.columns "
    "WHERE table_schema = current_schema() AND table_name = %(table)s "
    "ORDER BY ordinal_position"
)

_LIST_INDEXES = (
    "SELECT i.relname AS index_name, a.attname AS column_name, "
    "ix.indisunique AS is_unique, ix.indisprimary AS is_primary "
    "FROM pg_class t "
    "JOIN pg_namespace n ON n.oid = t.relnamespace "
    "JOIN pg_index ix ON ix.indrelid = t.oid "
    "JOIN pg_class i ON i.oid = ix.indexrelid "
    "JOIN pg_attribute a ON a.attrelid = t.oid AND a.attnum = ANY(ix.indkey) "
    "WHERE t.relname = %(table)s AND n.nspname = current_schema() "
    "ORDER BY ix.indisprimary DESC, i.relname, "
    "array_position(ix.indkey::int2[], a.attnum)"
)


def _quote(identifier: str) -> str:
    """Quote an identifier for a statement the driver will %-format."""
    return ('"' + identifier.replace('"', '""') + '"').replace("%", "%%")


def _where_clause(where: Dict[str, Any]):
    conditions = []
    values = []
    for column, value in where.items():
        if value is None:
            conditions.append(f"{_quote(column)} IS NULL")
        else:
            conditions.append(f"{_quote(column)} = %s")
            values.append(value)
    return " AND ".join(conditions), values


class PostgresConnector(DatabaseConnectorInterface):
    """
    Connector for PostgreSQL servers.

    Statements passed to `execute_query` may use `?` or the native `$1`
    numbered placeholders; both are bound through psycopg2's named style.
    Inserts, updates and deletes report the affected rows via RETURNING.
    """

    database_type = DatabaseType.POSTGRES
    dialect_name = "PostgreSQL"

    def _build_url(self, args: Dict[str, Any]) -> URL:
        if args.get("url"):
            url = make_url(args["url"].replace("postgres://", "postgresql://", 1))
            if url.drivername == "postgresql":
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
            logger.error(f"Failed to connect to PostgreSQL: {e}")
            raise DatabaseConnectionError(f"PostgreSQL: {driver_message(e)}") from e

        logger.info(f"Connected to PostgreSQL server {url.host}:{url.port or 5432}")
        return handle

    async def list_databases(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, _LIST_DATABASES)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing PostgreSQL databases: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e

    async def list_tables(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, _LIST_TABLES)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing PostgreSQL tables: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e

    async def get_table_structure(self, handle: SQLHandle, table_name: str) -> Dict[str, Any]:
        params = {"table": table_name}

        def _describe(conn) -> TableStructure:
            column_rows = fetch_dicts(execute(conn, _LIST_COLUMNS, params))
            if not column_rows:
                raise NotFoundError(f"PostgreSQL: table '{table_name}' does not exist")
            index_rows = fetch_dicts(execute(conn, _LIST_INDEXES, params))
            return self._build_structure(table_name, column_rows, index_rows)

        try:
            structure = await run_in_transaction(handle, _describe)
        except SQLAlchemyError as e:
            logger.error(f"Error describing PostgreSQL table {table_name}: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e
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
                "unique": row["is_unique"],
                "primary": row["is_primary"],
            }
            for row in index_rows
        )
        primary_columns = {
            row["column_name"] for row in index_rows if row["is_primary"]
        }

        columns = []
        for row in column_rows:
            default = row["column_default"]
            columns.append(ColumnInfo(
                name=row["column_name"],
                type=row["data_type"],
                nullable=row["is_nullable"] == "YES",
                default=default,
                primary_key=row["column_name"] in primary_columns,
                auto_increment=(
                    row.get("is_identity") == "YES"
                    or (isinstance(default, str) and default.startswith("nextval("))
                ),
            ))

        return TableStructure(table_name=table_name, columns=columns, indexes=indexes)

    async def execute_query(
        self,
        handle: SQLHandle,
        query: str,
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        statement, bound = translate_placeholders(query, params, PYFORMAT)

        try:
            return await run_in_transaction(
                handle, lambda conn: read_or_write_result(execute(conn, statement, bound))
            )
        except SQLAlchemyError as e:
            logger.error(f"PostgreSQL query error: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e

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
            f"VALUES ({', '.join('%s' for _ in columns)}) RETURNING *"
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
            logger.error(f"PostgreSQL insert into {table_name} failed: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e
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
        assignments = ", ".join(f"{_quote(column)} = %s" for column in data)
        statement = (
            f"UPDATE {_quote(table_name)} SET {assignments} WHERE {conditions} RETURNING *"
        )
        values = tuple(data.values()) + tuple(where_values)

        try:
            returned = await run_in_transaction(
                handle, lambda conn: fetch_dicts(execute(conn, statement, values))
            )
        except SQLAlchemyError as e:
            logger.error(f"PostgreSQL update of {table_name} failed: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e
        return {"affected_rows": len(returned), "returned_rows": returned}

    async def delete_data(self, handle: SQLHandle, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        require_mapping(where, "where")
        conditions, values = _where_clause(where)
        statement = f"DELETE FROM {_quote(table_name)} WHERE {conditions} RETURNING *"

        try:
            returned = await run_in_transaction(
                handle, lambda conn: fetch_dicts(execute(conn, statement, tuple(values)))
            )
        except SQLAlchemyError as e:
            logger.error(f"PostgreSQL delete from {table_name} failed: {e}")
            raise QueryError(f"PostgreSQL: {driver_message(e)}") from e
        return {"affected_rows": len(returned), "returned_rows": returned}

    async def close_connection(self, handle: SQLHandle) -> None:
        try:
            await close_handle(handle)
        except ResourceClosedError as e:
            raise DatabaseConnectionError("PostgreSQL: connection is already closed") from e
        except Exception as e:
            logger.error(f"Error closing PostgreSQL connection: {e}")
            raise DatabaseConnectionError(f"PostgreSQL: {driver_message(e)}") from e
        logger.info("PostgreSQL connection closed")
