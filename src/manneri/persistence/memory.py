"""In-process persistence provider."""

from __future__ import annotations

from datetime import timedelta

from ..models import StorageData
from .base import prune_storage_data


class InMemoryPersistenceProvider:
    """Keeps a deep copy of the last saved snapshot."""

    def __init__(self, data: StorageData | None = None) -> None:
        self._data = data.model_copy(deep=True) if data else None

    def save(self, data: StorageData) -> bool:
        """Replace the stored snapshot."""
        self._data = data.model_copy(deep=True)
        return True

    def load(self) -> StorageData | None:
        """Return a copy of the stored snapshot."""
        return self._data.model_copy(deep=True) if self._data else None

    def clear(self) -> bool:
        """Forget the stored snapshot."""
        self._data = None
        return True

    def cleanup(self, max_age: timedelta) -> int:
        """Prune stale patterns and interventions from the snapshot."""
        if self._data is None:
            return 0
        pruned, removed = prune_storage_data(self._data, max_age)
        if removed:
            self._data = pruned
        return removed
