"""Routes tool invocations to connectors and wraps the outcome in an envelope."""
import logging
from datetime import timedelta
from typing import Dict, Any, List, Optional

from dbgateway.connectors import ConnectorFactory
from dbgateway.core.config import resolve_connection_args
from dbgateway.core.exceptions import (
    GatewayError, MissingArgumentError, UnknownToolError, ValidationError
)
from dbgateway.dispatcher.tools import TOOLS, CONNECT_TO_DATABASE, CLOSE_CONNECTION
from dbgateway.registry import ConnectionRegistry, ConnectionRecord
from dbgateway.utils.database_connection_schema import DatabaseType


logger = logging.getLogger(__name__)


def _is_missing(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


class ToolDispatcher:
    """
    Validates tool calls, resolves their connection and connector, and
    normalizes results.

    `invoke` never raises: success is ``{"success": True, **result}`` and any
    failure is ``{"success": False, "error": ..., "error_type": ...}``.
    """

    def __init__(self, registry: ConnectionRegistry, connector_factory=ConnectorFactory):
        self.registry = registry
        self.connectors = connector_factory
        self._handlers = {
            "list_databases": self._list_databases,
            "list_tables": self._list_tables,
            "get_table_structure": self._get_table_structure,
            "execute_query": self._execute_query,
            "insert_data": self._insert_data,
            "update_data": self._update_data,
            "delete_data": self._delete_data,
        }

    @staticmethod
    def tool_definitions() -> List[Dict[str, Any]]:
        return [tool.to_dict() for tool in TOOLS.values()]

    @staticmethod
    def has_tool(tool_name: str) -> bool:
        return tool_name in TOOLS

    async def invoke(self, tool_name: str, args: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """
        Execute a tool and return its envelope.

        Args:
            tool_name: One of the names in TOOLS
            args: Free-form tool arguments

        Returns:
            Success or failure envelope
        """
        logger.info(f"Invoking tool {tool_name}")
        try:
            result = await self._dispatch(tool_name, args if args is not None else {})
        except GatewayError as e:
            logger.error(f"Tool {tool_name} failed: {type(e).__name__}: {e}")
            return {"success": False, "error": str(e), "error_type": type(e).__name__}
        except Exception as e:
            logger.exception(f"Unexpected error in tool {tool_name}")
            return {"success": False, "error": str(e), "error_type": "InternalError"}

        return {"success": True, **result}

    async def _dispatch(self, tool_name: str, args: Dict[str, Any]) -> Dict[str, Any]:
        tool = TOOLS.get(tool_name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {tool_name}")
        if not isinstance(args, dict):
            raise ValidationError("args must be an object")

        for argument in tool.required:
            if _is_missing(args.get(argument)):
                raise MissingArgumentError(argument, tool_name)

        if tool_name == CONNECT_TO_DATABASE:
            return await self._connect(args)

        record = self.registry.touch(args["connection_id"])
        if tool_name == CLOSE_CONNECTION:
            return await self._close(record)
        return await self._handlers[tool_name](record, args)

    async def _connect(self, args: Dict[str, Any]) -> Dict[str, Any]:
        options = args.get("options")
        if options is not None and not isinstance(options, dict):
            raise ValidationError("options must be an object")

        backend_type = self.connectors.resolve_type(args["type"])
        connector = self.connectors.get_connector(backend_type)
        handle = await connector.connect(resolve_connection_args(backend_type.value, args))
        connection_id = self.registry.register(backend_type, handle)

        return {
            "connection_id": connection_id,
            "type": backend_type.value,
            "message": f"Connected to {connector.dialect_name} database",
        }

    async def _close(self, record: ConnectionRecord) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        await connector.close_connection(record.handle)
        self.registry.remove(record.id)
        return {"message": f"Connection {record.id} closed"}

    async def _list_databases(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return {"databases": await connector.list_databases(record.handle)}

    async def _list_tables(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return {"tables": await connector.list_tables(record.handle)}

    async def _get_table_structure(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return await connector.get_table_structure(record.handle, self._table_name(args))

    async def _execute_query(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        query = args["query"]
        # MongoDB operations may arrive already decoded
        if not isinstance(query, str) and not (
            record.backend_type == DatabaseType.MONGODB and isinstance(query, dict)
        ):
            raise ValidationError("query must be a string")

        params = args.get("params")
        if params is not None and not isinstance(params, (list, dict)):
            raise ValidationError("params must be a list or an object")

        connector = self.connectors.get_connector(record.backend_type)
        return await connector.execute_query(record.handle, query, params)

    async def _insert_data(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return await connector.insert_data(record.handle, self._table_name(args), args["data"])

    async def _update_data(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return await connector.update_data(
            record.handle, self._table_name(args), args["data"], args["where"]
        )

    async def _delete_data(self, record: ConnectionRecord, args: Dict[str, Any]) -> Dict[str, Any]:
        connector = self.connectors.get_connector(record.backend_type)
        return await connector.delete_data(record.handle, self._table_name(args), args["where"])

    @staticmethod
    def _table_name(args: Dict[str, Any]) -> str:
        table_name = args["table_name"]
        if not isinstance(table_name, str):
            raise ValidationError("table_name must be a string")
        return table_name

    async def reap_idle(self, max_idle_seconds: float) -> List[str]:
        """
        Close and forget connections unused for longer than the limit.

        A connection whose close fails is forgotten anyway.

        Returns:
            Ids of the reaped connections
        """
        max_idle = timedelta(seconds=max_idle_seconds)
        reaped = []
        for record in self.registry.idle_records(max_idle):
            # used again while an earlier record was being closed
            if record.id not in self.registry or record.idle_for() <= max_idle:
                continue
            await self._discard(record)
            reaped.append(record.id)

        if reaped:
            logger.info(f"Reaped {len(reaped)} idle connection(s): {', '.join(reaped)}")
        return reaped

    async def close_all(self) -> None:
        """Close every registered connection."""
        for record in self.registry.records():
            await self._discard(record)

    async def _discard(self, record: ConnectionRecord) -> None:
        connector = self.connectors.get_connector(record.backend_type)
        try:
            await connector.close_connection(record.handle)
        except GatewayError as e:
            logger.warning(f"Error closing connection {record.id}: {e}")
        if record.id in self.registry:
            self.registry.remove(record.id)
