"""
Recipe Wizard - Persistence manager.

Best-effort mirroring of the wizard store into RecipeStorage for crash and
navigation recovery.

Triggers:
- a periodic asyncio task (1s / 5s / 30s depending on mode) that saves when
  the persistable state changed
- store changes: aggressive mode saves on every change, balanced mode only for
  important fields, conservative mode waits for the timer
- on_visibility_hidden(): save now
- on_before_unload(): synchronous emergency backup to a separate storage

Restoring is opt-in. A new wizard session starts fresh unless the caller
explicitly calls restore_state() (or passes auto_restore=True).

Nothing in here raises: failures are logged and counted in stats.
"""

import asyncio
import json
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from .storage import RECIPE_STORAGE_KEYS, RecipeStorage
from .store import TRANSIENT_FIELDS, RecipeStore, StateChange

logger = logging.getLogger(__name__)


class PersistenceMode(str, Enum):
    AGGRESSIVE = "aggressive"
    BALANCED = "balanced"
    CONSERVATIVE = "conservative"


SAVE_INTERVALS: dict[PersistenceMode, float] = {
    PersistenceMode.AGGRESSIVE: 1.0,
    PersistenceMode.BALANCED: 5.0,
    PersistenceMode.CONSERVATIVE: 30.0,
}

# Saved immediately in balanced mode
IMPORTANT_FIELDS = ("health_concern", "demographics", "current_step")

STATE_KEY = RECIPE_STORAGE_KEYS["WIZARD_STATE"]
EMERGENCY_BACKUP_KEY = "recipe_wizard_emergency_backup"


@dataclass(frozen=True)
class FieldChange:
    timestamp: float
    change_type: str  # create | update | delete


@dataclass
class PersistenceStats:
    save_count: int = 0
    restore_count: int = 0
    error_count: int = 0
    total_save_ms: float = 0.0
    total_restore_ms: float = 0.0
    last_save_size: int = 0
    is_enabled: bool = True

    @property
    def average_save_ms(self) -> float:
        return self.total_save_ms / self.save_count if self.save_count else 0.0

    @property
    def average_restore_ms(self) -> float:
        return self.total_restore_ms / self.restore_count if self.restore_count else 0.0


class WizardPersistence:
    """Mirrors one RecipeStore into storage."""

    def __init__(
        self,
        store: RecipeStore,
        storage: RecipeStorage,
        mode: PersistenceMode | str = PersistenceMode.BALANCED,
        emergency_storage: RecipeStorage | None = None,
        enabled: bool = True,
        track_changes: bool = True,
        auto_restore: bool = False,
        interval: float | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.store = store
        self.storage = storage
        self.mode = PersistenceMode(mode)
        self.emergency_storage = emergency_storage
        self.enabled = enabled
        self.track_changes = track_changes
        self.interval = interval if interval is not None else SAVE_INTERVALS[self.mode]
        self._sleep = sleep

        self.stats = PersistenceStats(is_enabled=enabled)
        self._last_saved: str = ""
        self._restoring = False
        self._field_changes: dict[str, FieldChange] = {}
        self._task: asyncio.Task | None = None
        self._unsubscribe: Callable[[], None] | None = None

        if enabled and track_changes:
            self._unsubscribe = store.subscribe(self._on_change)
        if enabled and auto_restore:
            self.restore_state()

    # -------------------------------------------------------------------------
    # Snapshot
    # -------------------------------------------------------------------------

    def persistable_state(self) -> dict[str, Any]:
        """Store state minus transient fields, as a JSON-safe dict."""
        return {k: v for k, v in self.store.state.to_dict().items() if k not in TRANSIENT_FIELDS}

    @staticmethod
    def _fingerprint(state: dict[str, Any]) -> str:
        return json.dumps(state, sort_keys=True)

    def has_state_changed(self) -> bool:
        return self._fingerprint(self.persistable_state()) != self._last_saved

    # -------------------------------------------------------------------------
    # Save / restore
    # -------------------------------------------------------------------------

    def save_state(self) -> bool:
        if not self.enabled or self._restoring:
            return False

        started = time.perf_counter()
        state = self.persistable_state()
        if not self.storage.set_item(STATE_KEY, state):
            self.stats.error_count += 1
            logger.warning("Wizard state save failed")
            return False

        fingerprint = self._fingerprint(state)
        self._last_saved = fingerprint
        self.stats.save_count += 1
        self.stats.total_save_ms += (time.perf_counter() - started) * 1000
        self.stats.last_save_size = len(fingerprint)
        logger.debug(f"Saved wizard state ({len(fingerprint)} bytes)")
        return True

    def restore_state(self) -> bool:
        """
        Hydrate the store from storage.

        Falls back to the emergency backup when no regular snapshot exists.
        Returns False when there is nothing to restore or hydration fails.
        """
        if not self.enabled:
            return False

        started = time.perf_counter()
        data = self.storage.get_item(STATE_KEY)
        source = "storage"
        if data is None and self.emergency_storage is not None:
            data = self.emergency_storage.get_item(EMERGENCY_BACKUP_KEY)
            source = "emergency backup"
        if not isinstance(data, dict):
            return False

        self._restoring = True
        try:
            restored = self.store.hydrate(data)
        finally:
            self._restoring = False

        if not restored:
            self.stats.error_count += 1
            return False

        self._last_saved = self._fingerprint(self.persistable_state())
        self.stats.restore_count += 1
        self.stats.total_restore_ms += (time.perf_counter() - started) * 1000
        logger.info(f"Restored wizard session {self.store.state.session_id} from {source}")
        return True

    def clear_persisted_data(self) -> bool:
        ok = self.storage.remove_item(STATE_KEY)
        if self.emergency_storage is not None:
            ok = self.emergency_storage.remove_item(EMERGENCY_BACKUP_KEY) and ok
        if ok:
            self._last_saved = ""
            self._field_changes.clear()
        else:
            self.stats.error_count += 1
        return ok

    # -------------------------------------------------------------------------
    # Change tracking
    # -------------------------------------------------------------------------

    def _on_change(self, change: StateChange) -> None:
        if self._restoring:
            return

        changed = [f for f in change.changed_fields if f not in TRANSIENT_FIELDS and f != "last_updated"]
        if not changed:
            return

        for name in changed:
            old, new = getattr(change.previous, name), getattr(change.current, name)
            if not old and old != 0:
                change_type = "create"
            elif not new and new != 0:
                change_type = "delete"
            else:
                change_type = "update"
            self._field_changes[name] = FieldChange(timestamp=change.timestamp, change_type=change_type)

        if self.mode is PersistenceMode.AGGRESSIVE:
            self.save_state()
        elif self.mode is PersistenceMode.BALANCED and any(f in IMPORTANT_FIELDS for f in changed):
            self.save_state()

    def get_field_change_history(self, field_name: str | None = None) -> Any:
        if field_name is not None:
            return self._field_changes.get(field_name)
        return dict(self._field_changes)

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def _periodic_save(self) -> None:
        while True:
            await self._sleep(self.interval)
            if self.has_state_changed():
                self.save_state()

    def start(self) -> None:
        """Start the periodic save task on the running loop."""
        if not self.enabled or self._task is not None:
            return
        self._task = asyncio.create_task(self._periodic_save())
        logger.debug(f"Persistence started ({self.mode.value}, every {self.interval}s)")

    async def stop(self) -> None:
        """Cancel the periodic task and flush pending changes."""
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        if self.enabled and self.has_state_changed():
            self.save_state()

    def close(self) -> None:
        """Unsubscribe from the store."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_visibility_hidden(self) -> bool:
        if self.enabled and self.has_state_changed():
            return self.save_state()
        return False

    def on_before_unload(self) -> bool:
        """Write an emergency backup of unsaved state."""
        if not self.enabled or self.emergency_storage is None or not self.has_state_changed():
            return False
        if self.emergency_storage.set_item(EMERGENCY_BACKUP_KEY, self.persistable_state()):
            return True
        self.stats.error_count += 1
        logger.error("Failed to create emergency backup")
        return False
