"""
Recipe Wizard - State change monitoring.

Observer that subscribes to a RecipeStore and records what each action
changed and how long it took. Attach in development or when debugging a
session; the store works identically without it.
"""

import logging
from collections import Counter, deque
from dataclasses import dataclass
from typing import Callable

from .store import RecipeStore, StateChange

logger = logging.getLogger(__name__)

DEFAULT_MAX_HISTORY = 1000
DEFAULT_SLOW_THRESHOLD_MS = 5.0


@dataclass(frozen=True)
class ChangeRecord:
    action: str
    changed_fields: tuple[str, ...]
    duration_ms: float
    timestamp: float


class StateChangeMonitor:
    """Bounded history of store changes with per-action counts and slow-change warnings."""

    def __init__(
        self,
        store_name: str = "recipe",
        max_history: int = DEFAULT_MAX_HISTORY,
        slow_threshold_ms: float = DEFAULT_SLOW_THRESHOLD_MS,
        enabled: bool = True,
    ):
        self.store_name = store_name
        self.slow_threshold_ms = slow_threshold_ms
        self.enabled = enabled
        self._history: deque[ChangeRecord] = deque(maxlen=max_history)
        self._action_counts: Counter[str] = Counter()
        self._slow_count = 0

    def attach(self, store: RecipeStore) -> Callable[[], None]:
        """Subscribe to `store`. Returns the unsubscribe callable."""
        return store.subscribe(self)

    def __call__(self, change: StateChange) -> None:
        if not self.enabled:
            return

        record = ChangeRecord(
            action=change.action,
            changed_fields=change.changed_fields,
            duration_ms=change.duration_ms,
            timestamp=change.timestamp,
        )
        self._history.append(record)
        self._action_counts[change.action] += 1

        if change.duration_ms > self.slow_threshold_ms:
            self._slow_count += 1
            logger.warning(
                f"[{self.store_name}] Slow state change '{change.action}': "
                f"{change.duration_ms:.2f}ms (threshold {self.slow_threshold_ms}ms)"
            )
        else:
            logger.debug(
                f"[{self.store_name}] {change.action}: {', '.join(change.changed_fields)}"
            )

    @property
    def history(self) -> list[ChangeRecord]:
        return list(self._history)

    @property
    def action_counts(self) -> dict[str, int]:
        return dict(self._action_counts)

    def slow_changes(self) -> list[ChangeRecord]:
        return [r for r in self._history if r.duration_ms > self.slow_threshold_ms]

    def summary(self) -> dict:
        durations = [r.duration_ms for r in self._history]
        return {
            "store": self.store_name,
            "total_changes": sum(self._action_counts.values()),
            "recorded": len(durations),
            "slow_changes": self._slow_count,
            "average_duration_ms": sum(durations) / len(durations) if durations else 0.0,
            "max_duration_ms": max(durations, default=0.0),
            "most_frequent_actions": self._action_counts.most_common(5),
        }

    def clear(self) -> None:
        self._history.clear()
        self._action_counts.clear()
        self._slow_count = 0
