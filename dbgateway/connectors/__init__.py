"""Dialect connectors behind one asynchronous interface."""
from .interfaces import DatabaseConnectorInterface
from .connector_factory import ConnectorFactory

__all__ = ['DatabaseConnectorInterface', 'ConnectorFactory']
