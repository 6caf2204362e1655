"""
Recipe Wizard - Derived selectors.

Narrow, read-only projections over WizardState. Subscribers that only care
about one slice use `watch()` so they are notified only when that slice
actually changes.

Because WizardState is immutable and unchanged branches keep their identity,
one-level shallow comparison is enough to detect a changed slice.
"""

from typing import Any, Callable

from .steps import TOTAL_STEPS, RecipeStep, StreamingStep, step_index
from .store import RecipeStore, StateChange, WizardState

Selector = Callable[[WizardState], Any]


def shallow_equal(a: Any, b: Any) -> bool:
    """Equality one level deep: primitives by value, containers item by item (identity or ==)."""
    if a is b:
        return True

    if isinstance(a, dict) and isinstance(b, dict):
        if a.keys() != b.keys():
            return False
        return all(a[k] is b[k] or a[k] == b[k] for k in a)

    if isinstance(a, (list, tuple)) and isinstance(b, (list, tuple)):
        if len(a) != len(b):
            return False
        return all(x is y or x == y for x, y in zip(a, b))

    return a == b


# =============================================================================
# Selectors
# =============================================================================


def select_navigation(state: WizardState) -> dict:
    return {
        "current_step": state.current_step,
        "completed_steps": state.completed_steps,
        "step_number": step_index(state.current_step) + 1,
        "total_steps": TOTAL_STEPS,
    }


def select_form_data(state: WizardState) -> dict:
    return {
        "health_concern": state.health_concern,
        "demographics": state.demographics,
    }


def select_selection_data(state: WizardState) -> dict:
    return {
        "selected_causes": state.selected_causes,
        "selected_symptoms": state.selected_symptoms,
        "therapeutic_properties": state.therapeutic_properties,
        "suggested_oils": state.suggested_oils,
    }


def select_api_data(state: WizardState) -> dict:
    return {
        "potential_causes": state.potential_causes,
        "potential_symptoms": state.potential_symptoms,
    }


def select_loading_state(state: WizardState) -> dict:
    return {
        "is_loading": state.is_loading,
        "error": state.error,
    }


def select_streaming_state(state: WizardState) -> dict:
    return {
        "is_streaming_causes": state.is_streaming_causes,
        "is_streaming_symptoms": state.is_streaming_symptoms,
        "is_streaming_properties": state.is_streaming_properties,
        "is_streaming_oils": state.is_streaming_oils,
        "streaming_error": state.streaming_error,
    }


def select_step_streaming(step: StreamingStep) -> Selector:
    """Build a selector for a single step's streaming flag. Unknown steps read as False."""
    attr = f"is_streaming_{step}"

    def selector(state: WizardState) -> bool:
        return getattr(state, attr, False)

    return selector


def select_data_counts(state: WizardState) -> dict:
    return {
        "potential_causes_count": len(state.potential_causes),
        "potential_symptoms_count": len(state.potential_symptoms),
        "selected_causes_count": len(state.selected_causes),
        "selected_symptoms_count": len(state.selected_symptoms),
        "therapeutic_properties_count": len(state.therapeutic_properties),
        "suggested_oils_count": len(state.suggested_oils),
    }


def select_wizard_summary(state: WizardState) -> dict:
    """Minimal container-level view."""
    return {
        "current_step": state.current_step,
        "is_loading": state.is_loading,
        "error": state.error,
        "session_id": state.session_id,
    }


def select_step_completion(state: WizardState) -> dict:
    return {
        "completed_steps": state.completed_steps,
        "has_health_concern": state.health_concern is not None,
        "has_demographics": state.demographics is not None,
        "has_selected_causes": len(state.selected_causes) > 0,
        "has_selected_symptoms": len(state.selected_symptoms) > 0,
        "has_therapeutic_properties": len(state.therapeutic_properties) > 0,
    }


def is_step_completed(state: WizardState, step: RecipeStep) -> bool:
    return RecipeStep(step) in state.completed_steps


# =============================================================================
# Subscriptions
# =============================================================================


def watch(
    store: RecipeStore,
    selector: Selector,
    callback: Callable[[Any, Any], None],
    equality: Callable[[Any, Any], bool] = shallow_equal,
) -> Callable[[], None]:
    """
    Call `callback(new_slice, old_slice)` whenever `selector`'s output changes.

    Returns the unsubscribe callable.
    """
    last = selector(store.state)

    def listener(change: StateChange) -> None:
        nonlocal last
        current = selector(change.current)
        if equality(last, current):
            return
        previous, last = last, current
        callback(current, previous)

    return store.subscribe(listener)
