"""
Recipe Wizard - Storage adapter.

Namespaced key/value storage with time-based expiry. Every value is wrapped as

    {"data": ..., "timestamp": ms, "version": "1.0.0", "expiresAt": ms}

and serialised to JSON. Reads evict expired or corrupt entries.

Backends only move strings around:
- MemoryBackend: process-lifetime storage (session storage analogue).
- FileBackend: a single JSON file on disk (local storage analogue).

Storage is best effort: backend failures are logged and reported through
return values, never raised.
"""

import json
import logging
import os
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Protocol

logger = logging.getLogger(__name__)

STORAGE_PREFIX = "recipe-creator"
STORAGE_VERSION = "1.0.0"
RETENTION_SECONDS = 7 * 24 * 60 * 60

# Keys used by the wizard
RECIPE_STORAGE_KEYS = {
    "HEALTH_CONCERN": "health-concern",
    "DEMOGRAPHICS": "demographics",
    "SELECTED_CAUSES": "selected-causes",
    "SELECTED_SYMPTOMS": "selected-symptoms",
    "THERAPEUTIC_PROPERTIES": "therapeutic-properties",
    "SUGGESTED_OILS": "suggested-oils",
    "CURRENT_STEP": "current-step",
    "COMPLETED_STEPS": "completed-steps",
    "SESSION_ID": "session-id",
    "POTENTIAL_CAUSES": "potential-causes",
    "POTENTIAL_SYMPTOMS": "potential-symptoms",
    "WIZARD_STATE": "wizard-state",
}


class StorageBackend(Protocol):
    def get(self, key: str) -> str | None: ...
    def set(self, key: str, value: str) -> None: ...
    def remove(self, key: str) -> None: ...
    def keys(self) -> list[str]: ...


class MemoryBackend:
    """In-process dict. Lost when the process exits."""

    def __init__(self):
        self._data: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._data)


class FileBackend:
    """
    All keys in one JSON object on disk.

    The file is re-read on every operation so separate processes see each
    other's writes. Writes go through a temp file and `os.replace`.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path).expanduser()

    def _load(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        with self.path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"Storage file {self.path} does not contain an object")
        return data

    def _save(self, data: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=f".{self.path.name}.")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise

    def get(self, key: str) -> str | None:
        return self._load().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._load()
        data[key] = value
        self._save(data)

    def remove(self, key: str) -> None:
        data = self._load()
        if key in data:
            del data[key]
            self._save(data)

    def keys(self) -> list[str]:
        return list(self._load())


_BACKEND_ERRORS = (OSError, ValueError, TypeError)


class RecipeStorage:
    """Expiring, versioned, namespaced storage on top of a backend."""

    def __init__(
        self,
        backend: StorageBackend | None = None,
        prefix: str = STORAGE_PREFIX,
        retention_seconds: float = RETENTION_SECONDS,
        version: str = STORAGE_VERSION,
        clock: Callable[[], float] = time.time,
    ):
        self.backend = backend if backend is not None else MemoryBackend()
        self.prefix = prefix
        self.retention_seconds = retention_seconds
        self.version = version
        self._clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _read_wrapped(self, key: str) -> dict | None:
        raw = self.backend.get(self._key(key))
        if raw is None:
            return None
        item = json.loads(raw)
        if not isinstance(item, dict) or not isinstance(item.get("expiresAt"), (int, float)):
            raise ValueError(f"Malformed storage entry for {key}")
        return item

    def set_item(self, key: str, data: Any) -> bool:
        now = self._now_ms()
        item = {
            "data": data,
            "timestamp": now,
            "version": self.version,
            "expiresAt": now + int(self.retention_seconds * 1000),
        }
        try:
            self.backend.set(self._key(key), json.dumps(item))
            return True
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to save '{key}' to storage: {e}")
            return False

    def get_item(self, key: str) -> Any | None:
        """Return stored data, or None if missing, expired or corrupt."""
        try:
            item = self._read_wrapped(key)
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to read '{key}' from storage, removing it: {e}")
            self.remove_item(key)
            return None

        if item is None:
            return None

        if self._now_ms() > item["expiresAt"]:
            self.remove_item(key)
            return None

        if item.get("version") != self.version:
            logger.warning(
                f"Storage version mismatch for key {key}. "
                f"Expected {self.version}, got {item.get('version')}"
            )

        return item.get("data")

    def remove_item(self, key: str) -> bool:
        try:
            self.backend.remove(self._key(key))
            return True
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to remove '{key}' from storage: {e}")
            return False

    def get_keys(self) -> list[str]:
        """Un-prefixed keys belonging to this namespace."""
        marker = f"{self.prefix}:"
        try:
            return [k[len(marker):] for k in self.backend.keys() if k.startswith(marker)]
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to list storage keys: {e}")
            return []

    def clear_all(self) -> bool:
        try:
            for key in self.get_keys():
                self.backend.remove(self._key(key))
            return True
        except _BACKEND_ERRORS as e:
            logger.error(f"Failed to clear storage: {e}")
            return False

    def has_item(self, key: str) -> bool:
        return self.get_item(key) is not None

    def refresh_item(self, key: str) -> bool:
        """Re-save an entry to push its expiry forward."""
        data = self.get_item(key)
        if data is None:
            return False
        return self.set_item(key, data)

    def cleanup_expired(self) -> int:
        """Remove expired and corrupt entries. Returns how many were removed."""
        now = self._now_ms()
        cleaned = 0
        for key in self.get_keys():
            try:
                item = self._read_wrapped(key)
                expired = item is not None and now > item["expiresAt"]
            except _BACKEND_ERRORS:
                expired = True
            if expired and self.remove_item(key):
                cleaned += 1

        if cleaned:
            logger.info(f"Cleaned up {cleaned} expired storage items")
        return cleaned

    def get_storage_info(self) -> dict:
        keys = self.get_keys()
        total_size = 0
        timestamps = []

        for key in keys:
            try:
                raw = self.backend.get(self._key(key))
                if raw is None:
                    continue
                total_size += len(raw)
                timestamps.append(json.loads(raw)["timestamp"])
            except (*_BACKEND_ERRORS, KeyError):
                continue  # corrupt entries are reported by count only

        def to_dt(ms: int | None) -> datetime | None:
            return datetime.fromtimestamp(ms / 1000, tz=timezone.utc) if ms is not None else None

        return {
            "total_keys": len(keys),
            "total_size": total_size,
            "oldest_item": to_dt(min(timestamps, default=None)),
            "newest_item": to_dt(max(timestamps, default=None)),
        }
