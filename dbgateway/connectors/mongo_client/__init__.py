from .mongodb_connector import MongoDBConnector, MongoHandle
from .operations import parse_operation, SUPPORTED_ACTIONS

__all__ = ['MongoDBConnector', 'MongoHandle', 'parse_operation', 'SUPPORTED_ACTIONS']
