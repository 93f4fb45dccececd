"""Persistence provider contract."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Protocol, runtime_checkable

from ..models import StorageData, utc_now


@runtime_checkable
class PersistenceProvider(Protocol):
    """Durable mirror of detector state.

    Providers store full snapshots: every ``save`` replaces the previous
    one. Failures may be reported by returning False or by raising; the
    detector handles both.
    """

    def save(self, data: StorageData) -> bool:
        """Replace the stored snapshot.

        Args:
            data: Snapshot to store

        Returns:
            True if the snapshot was stored
        """
        ...

    def load(self) -> StorageData | None:
        """Read the stored snapshot, or None when nothing is stored."""
        ...

    def clear(self) -> bool:
        """Remove the stored snapshot."""
        ...


@runtime_checkable
class SupportsCleanup(Protocol):
    """Optional capability: age-based pruning of the stored snapshot."""

    def cleanup(self, max_age: timedelta) -> int:
        """Remove patterns and interventions older than ``max_age``.

        Returns:
            Number of items removed
        """
        ...


def prune_storage_data(
    data: StorageData,
    max_age: timedelta,
    now: datetime | None = None,
) -> tuple[StorageData, int]:
    """Drop patterns and interventions older than ``max_age``.

    Returns:
        Tuple of (pruned snapshot, number of items removed)
    """
    now = now or utc_now()
    cutoff = now - max_age
    patterns = [p for p in data.patterns if p.last_seen > cutoff]
    interventions = [t for t in data.interventions if t > cutoff]
    removed = (
        len(data.patterns) - len(patterns)
        + len(data.interventions) - len(interventions)
    )
    pruned = data.model_copy(update={
        "patterns": patterns,
        "interventions": interventions,
        "last_cleanup": now,
    })
    return pruned, removed
