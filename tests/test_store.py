"""
Tests for the recipe wizard store.

Covers:
- Initial state and session ids
- Cascade invalidation when earlier step data changes
- completed_steps stays a contiguous prefix
- Streaming flags, errors, reset and hydrate
"""

from dataclasses import FrozenInstanceError

import pytest

from create_recipe.steps import RecipeStep
from create_recipe.store import TRANSIENT_FIELDS, RecipeStore, WizardState


class TestInitialState:

    def test_defaults(self, store):
        state = store.state
        assert state.current_step == RecipeStep.HEALTH_CONCERN
        assert state.completed_steps == ()
        assert state.health_concern is None
        assert state.demographics is None
        assert state.selected_causes == ()
        assert state.potential_causes == ()
        assert state.is_loading is False
        assert state.error is None
        assert state.streaming_error is None

    def test_each_store_gets_its_own_session(self):
        assert RecipeStore().state.session_id != RecipeStore().state.session_id

    def test_state_is_immutable(self, store):
        with pytest.raises(FrozenInstanceError):
            store.state.error = "nope"

    def test_get_state_matches_property(self, store):
        assert store.get_state() is store.state


class TestSubscriptions:

    def test_listener_receives_change(self, store, health_concern):
        changes = []
        store.subscribe(changes.append)

        store.update_health_concern(health_concern)

        assert len(changes) == 1
        change = changes[0]
        assert change.action == "update_health_concern"
        assert "health_concern" in change.changed_fields
        assert change.previous.health_concern is None
        assert change.current.health_concern == health_concern

    def test_unsubscribe(self, store):
        changes = []
        unsubscribe = store.subscribe(changes.append)
        unsubscribe()

        store.set_loading(True)

        assert changes == []

    def test_no_op_update_does_not_notify(self, store):
        changes = []
        store.subscribe(changes.append)

        assert store.set_loading(False) is False
        assert changes == []

    def test_failing_listener_does_not_break_store(self, store):
        def broken(change):
            raise RuntimeError("boom")

        seen = []
        store.subscribe(broken)
        store.subscribe(seen.append)

        assert store.set_loading(True) is True
        assert store.state.is_loading is True
        assert len(seen) == 1

    def test_unchanged_branches_keep_identity(self, filled_store):
        causes = filled_store.state.selected_causes
        filled_store.set_loading(True)
        assert filled_store.state.selected_causes is causes


class TestCascade:

    def test_health_concern_change_clears_everything_downstream(self, filled_store):
        filled_store.update_health_concern({"healthConcern": "frequent headaches at work"})
        state = filled_store.state

        assert state.health_concern.health_concern == "frequent headaches at work"
        assert state.demographics is None
        assert state.selected_causes == ()
        assert state.potential_causes == ()
        assert state.selected_symptoms == ()
        assert state.potential_symptoms == ()
        assert state.therapeutic_properties == ()
        assert state.suggested_oils == ()
        assert state.completed_steps == (RecipeStep.HEALTH_CONCERN,)

    def test_demographics_change_keeps_health_concern(self, filled_store, health_concern):
        filled_store.update_demographics({"gender": "male", "ageCategory": "adult", "specificAge": 40})
        state = filled_store.state

        assert state.health_concern == health_concern
        assert state.demographics.gender == "male"
        assert state.potential_causes == ()
        assert state.selected_causes == ()
        assert state.completed_steps == (RecipeStep.HEALTH_CONCERN, RecipeStep.DEMOGRAPHICS)

    def test_selecting_causes_clears_symptoms_but_keeps_candidates(self, filled_store, sample_causes):
        filled_store.update_selected_causes(sample_causes[1:])
        state = filled_store.state

        assert state.selected_causes == sample_causes[1:]
        assert state.potential_causes == sample_causes
        assert state.potential_symptoms == ()
        assert state.selected_symptoms == ()
        assert state.therapeutic_properties == ()
        assert state.suggested_oils == ()
        assert RecipeStep.SYMPTOMS not in state.completed_steps

    def test_selecting_symptoms_clears_properties_and_oils(self, filled_store, sample_symptoms):
        filled_store.update_selected_symptoms(sample_symptoms[:1])
        state = filled_store.state

        assert state.therapeutic_properties == ()
        assert state.suggested_oils == ()
        assert state.potential_symptoms == sample_symptoms

    def test_new_properties_clear_oils(self, filled_store, sample_properties):
        filled_store.mark_step_completed("properties")
        filled_store.update_therapeutic_properties(sample_properties[:1])
        state = filled_store.state

        assert state.therapeutic_properties == sample_properties[:1]
        assert state.suggested_oils == ()
        assert RecipeStep.PROPERTIES not in state.completed_steps
        assert RecipeStep.SYMPTOMS in state.completed_steps

    def test_identical_data_still_cascades(self, filled_store, health_concern):
        filled_store.update_health_concern(health_concern)
        assert filled_store.state.demographics is None

    def test_candidates_do_not_cascade(self, filled_store, sample_causes):
        filled_store.set_potential_causes(sample_causes[:1])
        state = filled_store.state
        assert state.selected_symptoms != ()
        assert state.potential_causes == sample_causes[:1]

    def test_dict_input_is_coerced(self, store):
        store.update_selected_causes([{"cause_name": "Hormonal changes"}])
        assert store.state.selected_causes[0].cause_name == "Hormonal changes"


class TestCompletedSteps:

    def test_mark_in_order(self, store):
        assert store.mark_step_completed(RecipeStep.HEALTH_CONCERN) is True
        assert store.mark_step_completed(RecipeStep.DEMOGRAPHICS) is True
        assert store.state.completed_steps == (RecipeStep.HEALTH_CONCERN, RecipeStep.DEMOGRAPHICS)

    def test_out_of_order_is_refused(self, store):
        assert store.mark_step_completed(RecipeStep.CAUSES) is False
        assert store.state.completed_steps == ()

    def test_already_completed_is_no_op(self, store):
        store.mark_step_completed(RecipeStep.HEALTH_CONCERN)
        assert store.mark_step_completed(RecipeStep.HEALTH_CONCERN) is False
        assert store.state.completed_steps == (RecipeStep.HEALTH_CONCERN,)

    def test_clear_steps_after(self, filled_store, health_concern, demographics):
        filled_store.clear_steps_after(RecipeStep.DEMOGRAPHICS)
        state = filled_store.state

        assert state.health_concern == health_concern
        assert state.demographics == demographics
        assert state.selected_causes == ()
        assert state.potential_causes == ()
        assert state.completed_steps == (RecipeStep.HEALTH_CONCERN, RecipeStep.DEMOGRAPHICS)

    def test_clear_step_data_includes_later_steps(self, filled_store, health_concern):
        filled_store.clear_step_data(RecipeStep.DEMOGRAPHICS)
        state = filled_store.state

        assert state.health_concern == health_concern
        assert state.demographics is None
        assert state.selected_symptoms == ()
        assert state.completed_steps == (RecipeStep.HEALTH_CONCERN,)

    def test_from_dict_keeps_only_contiguous_prefix(self):
        state = WizardState.from_dict({"completed_steps": ["health-concern", "causes", "symptoms"]})
        assert state.completed_steps == (RecipeStep.HEALTH_CONCERN,)


class TestNavigationChecks:

    def test_first_step_always_reachable(self, store):
        assert store.can_navigate_to_step(RecipeStep.HEALTH_CONCERN) is True

    def test_later_steps_need_data(self, store, health_concern, demographics):
        assert store.can_navigate_to_step(RecipeStep.DEMOGRAPHICS) is False
        store.update_health_concern(health_concern)
        assert store.can_navigate_to_step(RecipeStep.DEMOGRAPHICS) is True
        assert store.can_navigate_to_step(RecipeStep.CAUSES) is False
        store.update_demographics(demographics)
        assert store.can_navigate_to_step(RecipeStep.CAUSES) is True
        assert store.can_navigate_to_step(RecipeStep.SYMPTOMS) is False

    def test_unknown_step(self, store):
        assert store.can_navigate_to_step("oils") is False


class TestLoadingAndErrors:

    def test_set_error_clears_loading(self, store):
        store.set_loading(True)
        store.set_error("Network down")
        assert store.state.error == "Network down"
        assert store.state.is_loading is False

    def test_clear_error(self, store):
        store.set_error("Network down")
        store.clear_error()
        assert store.state.error is None


class TestStreaming:

    def test_start_stream_clears_previous_error(self, store):
        store.set_streaming_error("timeout")
        store.set_streaming_causes(True)
        assert store.state.is_streaming_causes is True
        assert store.state.streaming_error is None

    def test_streaming_error_stops_all_streams(self, store):
        store.set_streaming_symptoms(True)
        store.set_streaming_oils(True)

        store.set_streaming_error("upstream failed")
        state = store.state

        assert state.streaming_error == "upstream failed"
        assert not any([
            state.is_streaming_causes,
            state.is_streaming_symptoms,
            state.is_streaming_properties,
            state.is_streaming_oils,
        ])

    def test_stop_stream_keeps_error(self, store):
        store.set_streaming_properties(True)
        store.set_streaming_error("bad")
        store.set_streaming_properties(False)
        assert store.state.streaming_error == "bad"

    def test_clear_streaming_error(self, store):
        store.set_streaming_error("bad")
        store.clear_streaming_error()
        assert store.state.streaming_error is None


class TestReset:

    def test_reset_restores_defaults_with_new_session(self, filled_store):
        old_session = filled_store.state.session_id
        filled_store.set_error("something")

        filled_store.reset_wizard()
        state = filled_store.state

        assert state.session_id != old_session
        assert state.current_step == RecipeStep.HEALTH_CONCERN
        assert state.completed_steps == ()
        assert state.health_concern is None
        assert state.suggested_oils == ()
        assert state.error is None

    def test_reset_notifies(self, filled_store):
        changes = []
        filled_store.subscribe(changes.append)
        filled_store.reset_wizard()
        assert changes[-1].action == "reset_wizard"
        assert "session_id" in changes[-1].changed_fields


class TestSerialization:

    def test_round_trip(self, filled_store):
        snapshot = filled_store.state.to_dict()
        restored = WizardState.from_dict(snapshot)

        assert restored.current_step == RecipeStep.PROPERTIES
        assert restored.selected_causes == filled_store.state.selected_causes
        assert restored.suggested_oils == filled_store.state.suggested_oils
        assert restored.session_id == filled_store.state.session_id
        assert restored.last_updated == filled_store.state.last_updated

    def test_to_dict_is_json_safe(self, filled_store):
        snapshot = filled_store.state.to_dict()
        assert snapshot["current_step"] == "properties"
        assert snapshot["completed_steps"][0] == "health-concern"
        assert isinstance(snapshot["last_updated"], str)
        assert snapshot["demographics"]["age_category"] == "adult"

    def test_unknown_keys_ignored(self):
        state = WizardState.from_dict({"current_step": "causes", "legacy_field": 1})
        assert state.current_step == RecipeStep.CAUSES


class TestHydrate:

    def test_hydrate_skips_transient_fields(self, filled_store):
        snapshot = filled_store.state.to_dict()
        snapshot["is_loading"] = True
        snapshot["error"] = "stale"
        snapshot["is_streaming_causes"] = True

        store = RecipeStore()
        assert store.hydrate(snapshot) is True

        for name in TRANSIENT_FIELDS:
            assert getattr(store.state, name) == getattr(WizardState(), name)
        assert store.state.selected_symptoms == filled_store.state.selected_symptoms

    def test_hydrate_rejects_garbage(self, store):
        before = store.state
        assert store.hydrate({"current_step": "not-a-step"}) is False
        assert store.state is before

    def test_hydrate_rejects_invalid_model(self, store):
        assert store.hydrate({"demographics": {"gender": "other"}}) is False


class TestInvalidInput:

    @pytest.mark.parametrize("action", [
        "set_current_step",
        "mark_step_completed",
        "clear_steps_after",
        "clear_step_data",
    ])
    def test_unknown_step_is_a_no_op(self, filled_store, action):
        before = filled_store.state
        changes = []
        filled_store.subscribe(changes.append)

        assert getattr(filled_store, action)("bogus") is False

        assert filled_store.state is before
        assert changes == []

    def test_malformed_demographics_leave_state_untouched(self, filled_store):
        before = filled_store.state

        assert filled_store.update_demographics(
            {"gender": "other", "ageCategory": "adult", "specificAge": 28}
        ) is False

        assert filled_store.state is before
        assert filled_store.state.selected_causes != ()

    def test_malformed_health_concern(self, store):
        assert store.update_health_concern({"unexpected": 1}) is False
        assert store.state.health_concern is None

    def test_malformed_selection_does_not_cascade(self, filled_store):
        before = filled_store.state
        assert filled_store.update_selected_causes([{"cause_name": None}]) is False
        assert filled_store.update_selected_causes(42) is False
        assert filled_store.state is before

    def test_malformed_candidates(self, store):
        assert store.set_potential_causes([{"explanation": ["not", "a", "cause"]}]) is False
        assert store.set_potential_symptoms(None) is False
        assert store.state.potential_causes == ()
        assert store.state.potential_symptoms == ()

    def test_update_health_concern_to_none_is_allowed(self, filled_store):
        assert filled_store.update_health_concern(None) is True
        assert filled_store.state.health_concern is None
        assert filled_store.state.demographics is None
