"""Interface for dialect connectors across different backends."""
from abc import ABC, abstractmethod
from typing import Dict, Any, List, Optional, Union

from dbgateway.utils.database_connection_schema import DatabaseType


class DatabaseConnectorInterface(ABC):
    """
    Abstract interface for dialect connectors.

    Implementations hold no connection state of their own: every method
    receives the handle returned by `connect`, so one connector instance
    serves every connection of its backend type. Driver errors are re-raised
    as gateway errors whose message starts with the dialect name.
    """

    database_type: DatabaseType
    dialect_name: str

    @abstractmethod
    async def connect(self, args: Dict[str, Any]) -> Any:
        """
        Open a connection to the backend.

        Args:
            args: Connect arguments already merged with environment defaults
                and the options bag

        Returns:
            Backend-specific handle
        """
        pass

    @abstractmethod
    async def list_databases(self, handle: Any) -> List[str]:
        """List the databases visible to the connection."""
        pass

    @abstractmethod
    async def list_tables(self, handle: Any) -> List[str]:
        """List user tables (or collections) of the current database."""
        pass

    @abstractmethod
    async def get_table_structure(self, handle: Any, table_name: str) -> Dict[str, Any]:
        """
        Describe the columns and indexes of a table.

        Args:
            handle: Connection handle
            table_name: Table or collection name

        Returns:
            Dict with table_name, columns and indexes
        """
        pass

    @abstractmethod
    async def execute_query(
        self,
        handle: Any,
        query: str,
        params: Optional[Union[List[Any], Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """
        Execute a backend-native query.

        Args:
            handle: Connection handle
            query: Statement text, or a JSON operation for document backends
            params: Positional values for `?` placeholders, or a mapping in
                the driver's native named style

        Returns:
            Read shape {results, fields, affected_rows} or a write shape
            carrying affected_rows plus backend-specific counters
        """
        pass

    @abstractmethod
    async def insert_data(
        self,
        handle: Any,
        table_name: str,
        data: Union[Dict[str, Any], List[Dict[str, Any]]]
    ) -> Dict[str, Any]:
        """Insert one record or a homogeneous list of records."""
        pass

    @abstractmethod
    async def update_data(
        self,
        handle: Any,
        table_name: str,
        data: Dict[str, Any],
        where: Dict[str, Any]
    ) -> Dict[str, Any]:
        """Set `data` on every row matching the equality conjunction `where`."""
        pass

    @abstractmethod
    async def delete_data(self, handle: Any, table_name: str, where: Dict[str, Any]) -> Dict[str, Any]:
        """Delete every row matching the equality conjunction `where`."""
        pass

    @abstractmethod
    async def close_connection(self, handle: Any) -> None:
        """Release the handle; closing twice raises DatabaseConnectionError."""
        pass
