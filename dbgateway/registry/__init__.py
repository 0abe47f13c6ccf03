from .connection_registry import ConnectionRegistry, ConnectionRecord

__all__ = ['ConnectionRegistry', 'ConnectionRecord']
