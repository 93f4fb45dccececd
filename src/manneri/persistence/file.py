"""JSON file persistence provider."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path
from typing import Any

from loguru import logger
from pydantic import ValidationError

from ..exceptions import PersistenceError
from ..models import StorageData
from .base import prune_storage_data

STORAGE_VERSION = "1.0.0"


class JsonFilePersistenceProvider:
    """Stores snapshots as a versioned JSON envelope on disk.

    The envelope is ``{"version": ..., "data": ...}``; the version tag belongs
    to the provider, not to the payload. A stored snapshot written under a
    different version is discarded on load.
    """

    def __init__(self, path: Path | str, version: str = STORAGE_VERSION) -> None:
        """Initialize the provider.

        Args:
            path: File holding the snapshot
            version: Storage format version written into the envelope
        """
        self.path = Path(path)
        self.version = version

    def save(self, data: StorageData) -> bool:
        """Atomically replace the stored snapshot.

        Raises:
            PersistenceError: If the file cannot be written
        """
        envelope = {"version": self.version, "data": data.model_dump(mode="json")}
        tmp_path = self.path.with_name(f"{self.path.name}.tmp")
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(
                json.dumps(envelope, ensure_ascii=False, indent=2, sort_keys=True),
                encoding="utf-8",
            )
            tmp_path.replace(self.path)
        except OSError as e:
            msg = f"Failed to write storage file: {e}"
            raise PersistenceError(msg, details={"path": str(self.path)}) from e
        return True

    def _read_envelope(self) -> dict[str, Any] | None:
        if not self.path.exists():
            return None

        try:
            with self.path.open(encoding="utf-8") as f:
                envelope = json.load(f)
        except json.JSONDecodeError as e:
            msg = f"Failed to parse storage file: {e}"
            raise PersistenceError(msg, details={"path": str(self.path)}) from e
        except OSError as e:
            msg = f"Failed to read storage file: {e}"
            raise PersistenceError(msg, details={"path": str(self.path)}) from e

        if not isinstance(envelope, dict):
            msg = "Storage file does not contain a JSON object"
            raise PersistenceError(msg, details={"path": str(self.path)})
        return envelope

    def load(self) -> StorageData | None:
        """Read the stored snapshot.

        Raises:
            PersistenceError: If the file exists but cannot be read or parsed
        """
        envelope = self._read_envelope()
        if envelope is None:
            return None

        if envelope.get("version") != self.version:
            logger.warning(
                f"Storage version mismatch in {self.path} "
                f"({envelope.get('version')!r} != {self.version!r}), clearing data",
            )
            self.clear()
            return None

        try:
            return StorageData.model_validate(envelope.get("data", {}))
        except ValidationError as e:
            msg = f"Stored snapshot is invalid: {e}"
            raise PersistenceError(msg, details={"path": str(self.path)}) from e

    def clear(self) -> bool:
        """Delete the storage file.

        Raises:
            PersistenceError: If the file exists but cannot be removed
        """
        try:
            self.path.unlink(missing_ok=True)
        except OSError as e:
            msg = f"Failed to remove storage file: {e}"
            raise PersistenceError(msg, details={"path": str(self.path)}) from e
        return True

    def cleanup(self, max_age: timedelta) -> int:
        """Prune stale patterns and interventions from the stored snapshot."""
        data = self.load()
        if data is None:
            return 0

        pruned, removed = prune_storage_data(data, max_age)
        if removed:
            self.save(pruned)
        return removed

    def storage_info(self) -> dict[str, Any]:
        """Describe where and how snapshots are stored."""
        return {
            "path": str(self.path),
            "version": self.version,
            "has_data": self.path.exists(),
        }
