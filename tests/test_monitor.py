"""Tests for StateChangeMonitor."""

import logging

from create_recipe.monitor import StateChangeMonitor


class TestStateChangeMonitor:

    def test_records_changes(self, store, health_concern):
        monitor = StateChangeMonitor()
        monitor.attach(store)

        store.update_health_concern(health_concern)
        store.set_loading(True)
        store.set_loading(False)

        assert [r.action for r in monitor.history] == [
            "update_health_concern",
            "set_loading",
            "set_loading",
        ]
        assert monitor.action_counts == {"update_health_concern": 1, "set_loading": 2}
        assert "health_concern" in monitor.history[0].changed_fields

    def test_history_is_bounded(self, store):
        monitor = StateChangeMonitor(max_history=3)
        monitor.attach(store)

        for i in range(5):
            store.set_error(f"error {i}")

        assert len(monitor.history) == 3
        assert monitor.summary()["total_changes"] == 5
        assert monitor.summary()["recorded"] == 3

    def test_slow_changes_warn(self, store, caplog):
        monitor = StateChangeMonitor(store_name="test", slow_threshold_ms=-1)
        monitor.attach(store)

        with caplog.at_level(logging.WARNING, logger="create_recipe.monitor"):
            store.set_loading(True)

        assert len(monitor.slow_changes()) == 1
        assert monitor.summary()["slow_changes"] == 1
        assert "Slow state change 'set_loading'" in caplog.text

    def test_disabled_monitor_records_nothing(self, store):
        monitor = StateChangeMonitor(enabled=False)
        monitor.attach(store)
        store.set_loading(True)
        assert monitor.history == []

    def test_detach_and_clear(self, store):
        monitor = StateChangeMonitor()
        detach = monitor.attach(store)
        store.set_loading(True)
        detach()
        store.set_loading(False)

        assert len(monitor.history) == 1
        monitor.clear()
        assert monitor.history == []
        assert monitor.summary()["average_duration_ms"] == 0.0
