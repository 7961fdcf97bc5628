"""Clients for external collaborators."""

from ephemera.clients.storage import (
    InMemoryStorageDelegate,
    S3StorageDelegate,
    StorageDelegate,
)

__all__ = [
    "InMemoryStorageDelegate",
    "S3StorageDelegate",
    "StorageDelegate",
]
