from .exceptions import (
    GatewayError,
    DatabaseConnectionError,
    NotFoundError,
    UnknownToolError,
    ValidationError,
    MissingArgumentError,
    MalformedQueryError,
    QueryError,
    UnsupportedOperationError,
)

__all__ = [
    'GatewayError', 'DatabaseConnectionError', 'NotFoundError', 'UnknownToolError',
    'ValidationError', 'MissingArgumentError', 'MalformedQueryError', 'QueryError',
    'UnsupportedOperationError',
]
