"""
Tests for RecipeStorage.

Covers:
- Wrapped entries (data, timestamp, version, expiresAt)
- Expiry through an injected clock
- Corrupt and foreign entries
- FileBackend persistence across instances
"""

import json

from create_recipe.storage import (
    STORAGE_VERSION,
    FileBackend,
    MemoryBackend,
    RecipeStorage,
)


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class BrokenBackend(MemoryBackend):
    def set(self, key, value):
        raise OSError("disk full")


class TestRecipeStorage:

    def test_set_and_get(self):
        storage = RecipeStorage()
        assert storage.set_item("health-concern", {"health_concern": "insomnia"}) is True
        assert storage.get_item("health-concern") == {"health_concern": "insomnia"}
        assert storage.has_item("health-concern") is True

    def test_entry_is_wrapped_and_prefixed(self):
        clock = FakeClock()
        backend = MemoryBackend()
        storage = RecipeStorage(backend, retention_seconds=60, clock=clock)

        storage.set_item("current-step", "causes")

        raw = json.loads(backend.get("recipe-creator:current-step"))
        assert raw == {
            "data": "causes",
            "timestamp": int(clock.now * 1000),
            "version": STORAGE_VERSION,
            "expiresAt": int(clock.now * 1000) + 60_000,
        }

    def test_missing_key(self):
        assert RecipeStorage().get_item("nothing") is None

    def test_expired_entry_is_evicted(self):
        clock = FakeClock()
        backend = MemoryBackend()
        storage = RecipeStorage(backend, retention_seconds=10, clock=clock)
        storage.set_item("session-id", "abc")

        clock.advance(11)

        assert storage.get_item("session-id") is None
        assert backend.keys() == []

    def test_refresh_extends_expiry(self):
        clock = FakeClock()
        storage = RecipeStorage(retention_seconds=10, clock=clock)
        storage.set_item("session-id", "abc")

        clock.advance(8)
        assert storage.refresh_item("session-id") is True
        clock.advance(8)

        assert storage.get_item("session-id") == "abc"

    def test_corrupt_entry_is_removed(self):
        backend = MemoryBackend()
        backend.set("recipe-creator:demographics", "{not json")
        storage = RecipeStorage(backend)

        assert storage.get_item("demographics") is None
        assert backend.keys() == []

    def test_entry_without_expiry_is_corrupt(self):
        backend = MemoryBackend()
        backend.set("recipe-creator:demographics", json.dumps({"data": 1}))
        assert RecipeStorage(backend).get_item("demographics") is None

    def test_version_mismatch_still_returns_data(self, caplog):
        writer = RecipeStorage(version="0.9.0")
        reader = RecipeStorage(writer.backend)
        writer.set_item("current-step", "symptoms")

        assert reader.get_item("current-step") == "symptoms"
        assert "version mismatch" in caplog.text

    def test_keys_are_namespaced(self):
        backend = MemoryBackend()
        backend.set("other-app:theme", "dark")
        storage = RecipeStorage(backend)
        storage.set_item("a", 1)
        storage.set_item("b", 2)

        assert sorted(storage.get_keys()) == ["a", "b"]

        assert storage.clear_all() is True
        assert storage.get_keys() == []
        assert backend.get("other-app:theme") == "dark"

    def test_remove_item(self):
        storage = RecipeStorage()
        storage.set_item("a", 1)
        assert storage.remove_item("a") is True
        assert storage.has_item("a") is False

    def test_backend_failure_returns_false(self):
        storage = RecipeStorage(BrokenBackend())
        assert storage.set_item("a", 1) is False

    def test_unserialisable_data_returns_false(self):
        assert RecipeStorage().set_item("a", object()) is False

    def test_cleanup_expired(self):
        clock = FakeClock()
        backend = MemoryBackend()
        storage = RecipeStorage(backend, retention_seconds=10, clock=clock)
        storage.set_item("old", 1)
        clock.advance(20)
        storage.set_item("new", 2)
        backend.set("recipe-creator:broken", "???")

        assert storage.cleanup_expired() == 2
        assert storage.get_keys() == ["new"]

    def test_storage_info(self):
        clock = FakeClock()
        storage = RecipeStorage(clock=clock)
        storage.set_item("a", 1)
        clock.advance(5)
        storage.set_item("b", 2)

        info = storage.get_storage_info()

        assert info["total_keys"] == 2
        assert info["total_size"] > 0
        assert (info["newest_item"] - info["oldest_item"]).total_seconds() == 5

    def test_storage_info_empty(self):
        info = RecipeStorage().get_storage_info()
        assert info["total_keys"] == 0
        assert info["oldest_item"] is None


class TestFileBackend:

    def test_survives_new_instance(self, tmp_path):
        path = tmp_path / "nested" / "storage.json"
        RecipeStorage(FileBackend(path)).set_item("wizard-state", {"current_step": "causes"})

        assert path.exists()
        assert RecipeStorage(FileBackend(path)).get_item("wizard-state") == {"current_step": "causes"}

    def test_missing_file_is_empty(self, tmp_path):
        backend = FileBackend(tmp_path / "none.json")
        assert backend.keys() == []
        assert backend.get("x") is None

    def test_remove(self, tmp_path):
        backend = FileBackend(tmp_path / "s.json")
        backend.set("k", "v")
        backend.remove("k")
        backend.remove("missing")
        assert backend.keys() == []

    def test_unreadable_file_is_reported_not_raised(self, tmp_path):
        path = tmp_path / "s.json"
        path.write_text("[1, 2, 3]", encoding="utf-8")
        storage = RecipeStorage(FileBackend(path))

        assert storage.get_keys() == []
        assert storage.set_item("a", 1) is False
