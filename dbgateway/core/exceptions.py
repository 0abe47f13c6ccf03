"""Error taxonomy shared by connectors, the connection registry and the dispatcher."""


class GatewayError(Exception):
    """Base class for every error reported in a tool envelope."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class DatabaseConnectionError(GatewayError):
    """Connecting to or closing a backend failed."""


class NotFoundError(GatewayError):
    """A connection id, table or tool does not exist."""


class UnknownToolError(NotFoundError):
    pass


class ValidationError(GatewayError):
    """Tool arguments are missing or have the wrong shape."""


class MissingArgumentError(ValidationError):

    def __init__(self, argument: str, tool_name: str = None):
        self.argument = argument
        if tool_name:
            message = f"Missing required argument '{argument}' for tool '{tool_name}'"
        else:
            message = f"Missing required argument '{argument}'"
        super().__init__(message)


class MalformedQueryError(ValidationError):
    """A document query could not be parsed into a known operation."""


class QueryError(GatewayError):
    """The backend rejected a statement or operation."""


class UnsupportedOperationError(GatewayError):
    pass
