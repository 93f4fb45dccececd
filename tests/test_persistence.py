"""Tests for persistence providers."""

import json
from datetime import timedelta
from pathlib import Path

import pytest
from conftest import START

from manneri.exceptions import PersistenceError
from manneri.models import ConversationPattern, Message, MessageRole, StorageData, utc_now
from manneri.persistence import (
    STORAGE_VERSION,
    InMemoryPersistenceProvider,
    JsonFilePersistenceProvider,
    PersistenceProvider,
    SupportsCleanup,
    prune_storage_data,
)


def snapshot(seen=START) -> StorageData:
    """Snapshot with one pattern and one intervention."""
    return StorageData(
        patterns=[
            ConversationPattern(
                id="4fa2b1c0d9e8f7a6",
                pattern="genki",
                frequency=3,
                first_seen=seen,
                last_seen=seen,
                messages=[Message(role=MessageRole.USER, content="genki?", timestamp=seen)],
            ),
        ],
        interventions=[seen],
        settings={"language": "en"},
        last_cleanup=seen,
    )


class TestPruneStorageData:
    """Test age-based pruning."""

    def test_prunes_old_items(self) -> None:
        """Test stale patterns and interventions are counted and removed."""
        pruned, removed = prune_storage_data(
            snapshot(),
            timedelta(days=7),
            now=START + timedelta(days=8),
        )
        assert removed == 2
        assert pruned.patterns == []
        assert pruned.interventions == []
        assert pruned.last_cleanup == START + timedelta(days=8)

    def test_keeps_recent_items(self) -> None:
        """Test recent data is untouched."""
        data = snapshot()
        pruned, removed = prune_storage_data(data, timedelta(days=7), now=START + timedelta(days=1))
        assert removed == 0
        assert len(pruned.patterns) == 1
        assert len(data.patterns) == 1


class TestInMemoryPersistenceProvider:
    """Test the in-process provider."""

    def test_protocols(self) -> None:
        """Test the provider satisfies the persistence contract."""
        provider = InMemoryPersistenceProvider()
        assert isinstance(provider, PersistenceProvider)
        assert isinstance(provider, SupportsCleanup)

    def test_save_load_clear(self) -> None:
        """Test saving replaces and clearing forgets the snapshot."""
        provider = InMemoryPersistenceProvider()
        assert provider.load() is None

        assert provider.save(snapshot()) is True
        loaded = provider.load()
        assert loaded is not None
        assert loaded.model_dump() == snapshot().model_dump()

        assert provider.clear() is True
        assert provider.load() is None

    def test_stores_copies(self) -> None:
        """Test later mutation of a saved snapshot does not leak into storage."""
        provider = InMemoryPersistenceProvider()
        data = snapshot()
        provider.save(data)

        data.patterns[0].frequency = 99

        loaded = provider.load()
        assert loaded is not None
        assert loaded.patterns[0].frequency == 3

    def test_cleanup(self) -> None:
        """Test stale entries are pruned from the snapshot."""
        provider = InMemoryPersistenceProvider(snapshot(seen=utc_now() - timedelta(days=30)))
        assert provider.cleanup(timedelta(days=7)) == 2
        loaded = provider.load()
        assert loaded is not None
        assert loaded.patterns == []


class TestJsonFilePersistenceProvider:
    """Test the JSON file provider."""

    def test_protocols(self, tmp_path: Path) -> None:
        """Test the provider satisfies the persistence contract."""
        provider = JsonFilePersistenceProvider(tmp_path / "state.json")
        assert isinstance(provider, PersistenceProvider)
        assert isinstance(provider, SupportsCleanup)

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test loading before any save."""
        provider = JsonFilePersistenceProvider(tmp_path / "state.json")
        assert provider.load() is None
        assert provider.clear() is True

    def test_round_trip(self, tmp_path: Path) -> None:
        """Test a saved snapshot loads back unchanged."""
        provider = JsonFilePersistenceProvider(tmp_path / "nested" / "state.json")
        provider.save(snapshot())

        loaded = provider.load()

        assert loaded is not None
        assert loaded.model_dump(mode="json") == snapshot().model_dump(mode="json")
        assert loaded.patterns[0].messages[0].role == MessageRole.USER

    def test_save_of_load_is_stable(self, tmp_path: Path) -> None:
        """Test re-saving a loaded snapshot writes the same file."""
        path = tmp_path / "state.json"
        provider = JsonFilePersistenceProvider(path)
        provider.save(snapshot())
        first = path.read_text(encoding="utf-8")

        loaded = provider.load()
        assert loaded is not None
        provider.save(loaded)

        assert path.read_text(encoding="utf-8") == first

    def test_envelope(self, tmp_path: Path) -> None:
        """Test the file carries the storage version next to the data."""
        path = tmp_path / "state.json"
        JsonFilePersistenceProvider(path).save(snapshot())

        envelope = json.loads(path.read_text(encoding="utf-8"))

        assert envelope["version"] == STORAGE_VERSION
        assert envelope["data"]["settings"] == {"language": "en"}
        assert not (tmp_path / "state.json.tmp").exists()

    def test_version_mismatch_discards(self, tmp_path: Path) -> None:
        """Test a snapshot from another storage version is dropped."""
        path = tmp_path / "state.json"
        JsonFilePersistenceProvider(path, version="0.9.0").save(snapshot())

        assert JsonFilePersistenceProvider(path).load() is None
        assert not path.exists()

    def test_corrupt_file(self, tmp_path: Path) -> None:
        """Test unreadable JSON raises PersistenceError."""
        path = tmp_path / "state.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(PersistenceError, match="Failed to parse"):
            JsonFilePersistenceProvider(path).load()

    def test_invalid_payload(self, tmp_path: Path) -> None:
        """Test a payload that fails validation raises PersistenceError."""
        path = tmp_path / "state.json"
        path.write_text(
            json.dumps({"version": STORAGE_VERSION, "data": {"interventions": "soon"}}),
            encoding="utf-8",
        )

        with pytest.raises(PersistenceError, match="invalid"):
            JsonFilePersistenceProvider(path).load()

    def test_cleanup(self, tmp_path: Path) -> None:
        """Test stale entries are pruned from the stored file."""
        provider = JsonFilePersistenceProvider(tmp_path / "state.json")
        provider.save(snapshot(seen=utc_now() - timedelta(days=30)))

        assert provider.cleanup(timedelta(days=7)) == 2

        loaded = provider.load()
        assert loaded is not None
        assert loaded.interventions == []

    def test_storage_info(self, tmp_path: Path) -> None:
        """Test storage description."""
        path = tmp_path / "state.json"
        provider = JsonFilePersistenceProvider(path)
        assert provider.storage_info() == {
            "path": str(path),
            "version": STORAGE_VERSION,
            "has_data": False,
        }
