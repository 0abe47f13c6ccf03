"""Connector interfaces for multi-backend support."""
from .connector_interface import DatabaseConnectorInterface

__all__ = ['DatabaseConnectorInterface']
