"""
Connection handles for the SQLAlchemy-backed connectors.

All blocking driver I/O runs in ``asyncio.to_thread`` so the event loop is
never starved. Each handle owns one DBAPI connection guarded by a
``threading.Lock``: operations on the same handle are serialized, and every
operation runs inside its own transaction that commits or rolls back before
the call returns.
"""
import asyncio
import threading
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Connection, CursorResult, Engine
from sqlalchemy.exc import DBAPIError, ResourceClosedError

from dbgateway.utils.serialization import serialize_document

T = TypeVar("T")

_NO_PARAMETERS = {"no_parameters": True}


@dataclass
class SQLHandle:
    engine: Engine
    connection: Connection
    lock: threading.Lock = field(default_factory=threading.Lock)
    closed: bool = False


def open_handle(
    url: Any,
    on_connect: Optional[Callable[[Any], None]] = None,
    **engine_kwargs
) -> SQLHandle:
    """
    Create an engine and check out its single connection (blocking).

    `on_connect` receives each new DBAPI connection before first use, for
    session settings such as pragmas.
    """
    engine = create_engine(url, **engine_kwargs)
    if on_connect is not None:
        event.listen(
            engine, "connect",
            lambda dbapi_connection, connection_record: on_connect(dbapi_connection)
        )
    try:
        connection = engine.connect()
    except Exception:
        engine.dispose()
        raise
    return SQLHandle(engine=engine, connection=connection)


async def run_in_transaction(handle: SQLHandle, work: Callable[[Connection], T]) -> T:
    """Run `work(connection)` in a worker thread inside one transaction."""

    def _inner() -> T:
        with handle.lock:
            if handle.closed:
                raise ResourceClosedError("This connection is closed")
            with handle.connection.begin():
                return work(handle.connection)

    return await asyncio.to_thread(_inner)


async def close_handle(handle: SQLHandle) -> None:
    """
    Close the handle's connection and dispose of its engine.

    The handle is only marked closed once the driver close succeeded, so a
    failed close can be retried.
    """

    def _inner() -> None:
        with handle.lock:
            if handle.closed:
                raise ResourceClosedError("Connection is already closed")
            try:
                handle.connection.close()
            finally:
                handle.engine.dispose()
            handle.closed = True

    await asyncio.to_thread(_inner)


def execute(connection: Connection, sql: str, params: Any = None) -> CursorResult:
    """
    Execute driver-native SQL.

    Without parameters the statement reaches the cursor untouched, so
    literal percent signs need no escaping.
    """
    if params is None:
        return connection.exec_driver_sql(sql, execution_options=_NO_PARAMETERS)
    return connection.exec_driver_sql(sql, params)


def fetch_dicts(result: CursorResult) -> List[Dict[str, Any]]:
    if not result.returns_rows:
        return []
    return [serialize_document(dict(row._mapping)) for row in result]


def read_or_write_result(result: CursorResult) -> Dict[str, Any]:
    """
    Shape a cursor result from its descriptor, never from the SQL text.

    Returns the read shape when the statement produced a row description,
    otherwise a write shape with the driver's row count.
    """
    if result.returns_rows:
        fields = list(result.keys())
        rows = fetch_dicts(result)
        return {"results": rows, "fields": fields, "affected_rows": len(rows)}
    return {"affected_rows": result.rowcount}


def driver_message(error: Exception) -> str:
    """Prefer the DBAPI exception's own message over SQLAlchemy's wrapper text."""
    if isinstance(error, DBAPIError) and error.orig is not None:
        return str(error.orig)
    return str(error)


def split_connect_args(args: Dict[str, Any], known: tuple) -> Dict[str, Any]:
    """Return the argument keys no connector field claims, for the driver."""
    return {key: value for key, value in args.items() if key not in known}
