"""SQLite connector using SQLAlchemy over the standard sqlite3 driver."""
import asyncio
import logging
from typing import Dict, Any, List, Optional, Union

from sqlalchemy.engine import URL
from sqlalchemy.exc import SQLAlchemyError, ResourceClosedError
from sqlalchemy.pool import StaticPool

from dbgateway.connectors.interfaces import DatabaseConnectorInterface
from dbgateway.connectors.sql.sql_handle import (
    SQLHandle, open_handle, run_in_transaction, close_handle, execute,
    fetch_dicts, read_or_write_result, driver_message, split_connect_args
)
from dbgateway.core.exceptions import (
    DatabaseConnectionError, NotFoundError, QueryError, ValidationError
)
from dbgateway.utils.database_connection_schema import (
    DatabaseType, ColumnInfo, IndexInfo, IndexType, TableStructure, fold_index_rows
)
from dbgateway.utils.placeholders import translate_placeholders, QMARK
from dbgateway.utils.records import normalize_records, require_mapping

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

_KNOWN_ARGS = ("database", "url", "host", "server", "port", "user", "password")

_LIST_TABLES = (
    "SELECT name FROM sqlite_master "
    "WHERE type = 'table' AND name NOT LIKE 'sqlite\\_%' ESCAPE '\\' "
    "ORDER BY name"
)

_LIST_INDEXES = (
    'SELECT il.name AS name, il."unique" AS is_unique, il.origin AS origin, '
    "ii.name AS column_name "
    "FROM pragma_index_list(?) AS il "
    "JOIN pragma_index_info(il.name) AS ii "
    "ORDER BY il.seq, ii.seqno"
)


def _quote(identifier: str) -> str:
    return '"' + identifier.replace('"', '""') + '"'


def _enable_foreign_keys(dbapi_connection) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys = ON")
    cursor.close()


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


class SQLiteConnector(DatabaseConnectorInterface):
    """
    Connector for SQLite database files and in-memory databases.

    `database` is mandatory: a filesystem path or ``:memory:``. Foreign key
    enforcement is switched on for every connection.
    """

    database_type = DatabaseType.SQLITE
    dialect_name = "SQLite"

    async def connect(self, args: Dict[str, Any]) -> SQLHandle:
        database = args.get("database")
        if not database:
            raise ValidationError("SQLite: database is required (a file path or ':memory:')")

        connect_args = split_connect_args(args, _KNOWN_ARGS)
        # worker threads share the one connection under the handle lock
        connect_args["check_same_thread"] = False
        engine_kwargs = {"connect_args": connect_args}
        if database == MEMORY_DATABASE:
            engine_kwargs["poolclass"] = StaticPool

        url = URL.create("sqlite", database=database)
        try:
            handle = await asyncio.to_thread(
                open_handle, url, on_connect=_enable_foreign_keys, **engine_kwargs
            )
        except SQLAlchemyError as e:
            logger.error(f"Failed to connect to SQLite database {database}: {e}")
            raise DatabaseConnectionError(f"SQLite: {driver_message(e)}") from e

        logger.info(f"Connected to SQLite database: {database}")
        return handle

    async def list_databases(self, handle: SQLHandle) -> List[str]:
        return ["main"]

    async def list_tables(self, handle: SQLHandle) -> List[str]:
        try:
            return await run_in_transaction(
                handle, lambda conn: [row[0] for row in execute(conn, _LIST_TABLES)]
            )
        except SQLAlchemyError as e:
            logger.error(f"Error listing SQLite tables: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e

    async def get_table_structure(self, handle: SQLHandle, table_name: str) -> Dict[str, Any]:
        def _describe(conn) -> TableStructure:
            column_rows = fetch_dicts(execute(conn, f"PRAGMA table_info({_quote(table_name)})"))
            if not column_rows:
                raise NotFoundError(f"SQLite: table '{table_name}' does not exist")
            index_rows = fetch_dicts(execute(conn, _LIST_INDEXES, (table_name,)))
            return self._build_structure(table_name, column_rows, index_rows)

        try:
            structure = await run_in_transaction(handle, _describe)
        except SQLAlchemyError as e:
            logger.error(f"Error describing SQLite table {table_name}: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e
        return structure.to_dict()

    def _build_structure(
        self,
        table_name: str,
        column_rows: List[Dict[str, Any]],
        index_rows: List[Dict[str, Any]]
    ) -> TableStructure:
        pk_rows = sorted((row for row in column_rows if row["pk"]), key=lambda row: row["pk"])
        primary_columns = [row["name"] for row in pk_rows]

        # a lone INTEGER PRIMARY KEY aliases the rowid
        rowid_alias = len(pk_rows) == 1 and (pk_rows[0]["type"] or "").upper() == "INTEGER"

        columns = [
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                nullable=not row["notnull"] and not row["pk"],
                default=row["dflt_value"],
                primary_key=bool(row["pk"]),
                auto_increment=rowid_alias and bool(row["pk"]),
            )
            for row in column_rows
        ]

        indexes = fold_index_rows(
            {
                "name": row["name"],
                "column": row["column_name"],
                "unique": bool(row["is_unique"]),
                "primary": row["origin"] == "pk",
            }
            for row in index_rows
        )

        # rowid tables keep their primary key outside any index
        if primary_columns and not any(index.type == IndexType.PRIMARY for index in indexes):
            indexes.insert(0, IndexInfo(
                name="PRIMARY", columns=primary_columns, unique=True, type=IndexType.PRIMARY
            ))

        return TableStructure(table_name=table_name, columns=columns, indexes=indexes)

    async def execute_query(
        self,
        handle: SQLHandle,
        query: str,
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        statement, bound = translate_placeholders(query, params, QMARK)

        def _execute(conn) -> Dict[str, Any]:
            result = execute(conn, statement, bound)
            shaped = read_or_write_result(result)
            if not result.returns_rows:
                shaped["insert_id"] = result.lastrowid
            return shaped

        try:
            return await run_in_transaction(handle, _execute)
        except SQLAlchemyError as e:
            logger.error(f"SQLite query error: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e

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
            f"VALUES ({', '.join('?' for _ in columns)})"
        )

        def _insert(conn) -> List[int]:
            inserted_ids = []
            for record in records:
                result = execute(conn, statement, tuple(record.get(column) for column in columns))
                inserted_ids.append(result.lastrowid)
            return inserted_ids

        try:
            inserted_ids = await run_in_transaction(handle, _insert)
        except SQLAlchemyError as e:
            logger.error(f"SQLite insert into {table_name} failed: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e

        return {
            "affected_rows": len(inserted_ids),
            "insert_id": inserted_ids[-1],
            "inserted_ids": inserted_ids,
        }

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
        statement = f"UPDATE {_quote(table_name)} SET {assignments} WHERE {conditions}"
        values = tuple(data.values()) + tuple(where_values)

        try:
            rowcount = await run_in_transaction(
                handle, lambda conn: execute(conn, statement, values).rowcount
            )
        except SQLAlchemyError as e:
            logger.error(f"SQLite update of {table_name} failed: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e
        return {"affected_rows": rowcount}

    async def delete_data(self, handle: SQLHandle, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        require_mapping(where, "where")
        conditions, values = _where_clause(where)
        statement = f"DELETE FROM {_quote(table_name)} WHERE {conditions}"

        try:
            rowcount = await run_in_transaction(
                handle, lambda conn: execute(conn, statement, tuple(values)).rowcount
            )
        except SQLAlchemyError as e:
            logger.error(f"SQLite delete from {table_name} failed: {e}")
            raise QueryError(f"SQLite: {driver_message(e)}") from e
        return {"affected_rows": rowcount}

    async def close_connection(self, handle: SQLHandle) -> None:
        try:
            await close_handle(handle)
        except ResourceClosedError as e:
            raise DatabaseConnectionError("SQLite: connection is already closed") from e
        except Exception as e:
            logger.error(f"Error closing SQLite connection: {e}")
            raise DatabaseConnectionError(f"SQLite: {driver_message(e)}") from e
        logger.info("SQLite connection closed")
