"""Persistence contract and reference providers."""

from .base import PersistenceProvider, SupportsCleanup, prune_storage_data
from .file import STORAGE_VERSION, JsonFilePersistenceProvider
from .memory import InMemoryPersistenceProvider

__all__ = [
    "STORAGE_VERSION",
    "InMemoryPersistenceProvider",
    "JsonFilePersistenceProvider",
    "PersistenceProvider",
    "SupportsCleanup",
    "prune_storage_data",
]
