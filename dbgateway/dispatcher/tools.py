"""Definitions of the tools exposed by the gateway."""
from dataclasses import dataclass
from typing import Dict, Any, Tuple


@dataclass(frozen=True)
class ToolDefinition:
    name: str
    description: str
    required: Tuple[str, ...]
    optional: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "description": self.description,
            "required": list(self.required),
            "optional": list(self.optional),
        }


CONNECT_TO_DATABASE = "connect_to_database"
CLOSE_CONNECTION = "close_connection"

TOOLS: Dict[str, ToolDefinition] = {
    tool.name: tool
    for tool in (
        ToolDefinition(
            name=CONNECT_TO_DATABASE,
            description="Open a connection to a MySQL, PostgreSQL, SQLite, SQL Server or MongoDB database",
            required=("type",),
            optional=("host", "server", "port", "user", "password", "database", "url", "options"),
        ),
        ToolDefinition(
            name="list_databases",
            description="List the databases visible to a connection",
            required=("connection_id",),
        ),
        ToolDefinition(
            name="list_tables",
            description="List the tables (or collections) of the connected database",
            required=("connection_id",),
        ),
        ToolDefinition(
            name="get_table_structure",
            description="Describe the columns and indexes of a table or collection",
            required=("connection_id", "table_name"),
        ),
        ToolDefinition(
            name="execute_query",
            description=(
                "Run a backend-native query; SQL may use ? placeholders bound from params, "
                "MongoDB takes a JSON operation {collection, action, ...}"
            ),
            required=("connection_id", "query"),
            optional=("params",),
        ),
        ToolDefinition(
            name="insert_data",
            description="Insert one record or a list of records into a table or collection",
            required=("connection_id", "table_name", "data"),
        ),
        ToolDefinition(
            name="update_data",
            description="Update rows matching every equality in where",
            required=("connection_id", "table_name", "data", "where"),
        ),
        ToolDefinition(
            name="delete_data",
            description="Delete rows matching every equality in where",
            required=("connection_id", "table_name", "where"),
        ),
        ToolDefinition(
            name=CLOSE_CONNECTION,
            description="Close a connection and forget its id",
            required=("connection_id",),
        ),
    )
}
