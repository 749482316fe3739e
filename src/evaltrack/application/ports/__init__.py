"""Application ports (interfaces) used by the application layer."""

from .storage_port import StoragePort, StorageSession

__all__ = [
    "StoragePort",
    "StorageSession",
]
