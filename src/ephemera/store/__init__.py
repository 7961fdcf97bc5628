"""Metadata store implementations."""

from ephemera.store.base import ConsumeResult, MetadataStore
from ephemera.store.memory import InMemoryMetadataStore
from ephemera.store.sql import SqlMetadataStore

__all__ = [
    "ConsumeResult",
    "InMemoryMetadataStore",
    "MetadataStore",
    "SqlMetadataStore",
]
