"""
Recipe Wizard - State Store.

Single source of truth for wizard progress and data.

State is an immutable WizardState: every action builds a new state with
`dataclasses.replace`, so unchanged branches keep their identity and
subscribers can rely on reference/shallow equality.

Cascade rule: changing data for step N clears every field owned by steps > N
(and later fields within step N, e.g. properties -> oils), and prunes those
steps from completed_steps.

State is intentionally not persisted by the store itself. A fresh store is a
fresh session (reset-on-refresh); see persistence.py for opt-in mirroring.
"""

import logging
import time
import uuid
from dataclasses import MISSING, dataclass, field, fields, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable

from pydantic import ValidationError

from .steps import (
    DEFAULT_STEP,
    STEP_ORDER,
    STEP_PREREQUISITES,
    WIZARD_STEPS,
    RecipeStep,
    step_index,
    steps_after,
    steps_from,
)
from .types import (
    DemographicsData,
    HealthConcernData,
    PotentialCause,
    PotentialSymptom,
    PropertyOilSuggestions,
    TherapeuticProperty,
)

logger = logging.getLogger(__name__)


def new_session_id() -> str:
    return str(uuid.uuid4())


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class WizardState:
    """Complete wizard state. Never mutated in place."""

    # Navigation
    current_step: RecipeStep = DEFAULT_STEP
    completed_steps: tuple[RecipeStep, ...] = ()

    # Step data
    health_concern: HealthConcernData | None = None
    demographics: DemographicsData | None = None
    selected_causes: tuple[PotentialCause, ...] = ()
    selected_symptoms: tuple[PotentialSymptom, ...] = ()
    therapeutic_properties: tuple[TherapeuticProperty, ...] = ()
    suggested_oils: tuple[PropertyOilSuggestions, ...] = ()

    # API candidates
    potential_causes: tuple[PotentialCause, ...] = ()
    potential_symptoms: tuple[PotentialSymptom, ...] = ()

    # Loading / error
    is_loading: bool = False
    error: str | None = None

    # AI streaming
    is_streaming_causes: bool = False
    is_streaming_symptoms: bool = False
    is_streaming_properties: bool = False
    is_streaming_oils: bool = False
    streaming_error: str | None = None

    # Metadata
    last_updated: datetime = field(default_factory=_utc_now)
    session_id: str = field(default_factory=new_session_id)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-safe dict."""
        data: dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name in _MODEL_FIELDS:
                if isinstance(value, tuple):
                    value = [item.model_dump() for item in value]
                elif value is not None:
                    value = value.model_dump()
            elif isinstance(value, RecipeStep):
                value = value.value
            elif isinstance(value, datetime):
                value = value.isoformat()
            elif f.name == "completed_steps":
                value = [s.value for s in value]
            data[f.name] = value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "WizardState":
        """Deserialize from a dict produced by to_dict(). Unknown keys are ignored."""
        known = {f.name for f in fields(cls)}
        kwargs: dict[str, Any] = {}

        for key, value in data.items():
            if key not in known:
                continue
            if key in _MODEL_FIELDS:
                model, many = _MODEL_FIELDS[key]
                if many:
                    value = tuple(model.model_validate(v) for v in (value or []))
                elif value is not None:
                    value = model.model_validate(value)
            elif key == "current_step":
                value = RecipeStep(value)
            elif key == "completed_steps":
                value = _contiguous_completed({RecipeStep(s) for s in value or []})
            elif key == "last_updated" and isinstance(value, str):
                value = datetime.fromisoformat(value)
            kwargs[key] = value

        return cls(**kwargs)


# field name -> (model, is_collection)
_MODEL_FIELDS: dict[str, tuple[type, bool]] = {
    "health_concern": (HealthConcernData, False),
    "demographics": (DemographicsData, False),
    "selected_causes": (PotentialCause, True),
    "selected_symptoms": (PotentialSymptom, True),
    "therapeutic_properties": (TherapeuticProperty, True),
    "suggested_oils": (PropertyOilSuggestions, True),
    "potential_causes": (PotentialCause, True),
    "potential_symptoms": (PotentialSymptom, True),
}

TRANSIENT_FIELDS: tuple[str, ...] = (
    "is_loading",
    "error",
    "is_streaming_causes",
    "is_streaming_symptoms",
    "is_streaming_properties",
    "is_streaming_oils",
    "streaming_error",
)

STREAMING_FLAGS: tuple[str, ...] = (
    "is_streaming_causes",
    "is_streaming_symptoms",
    "is_streaming_properties",
    "is_streaming_oils",
)

_FIELD_DEFAULTS: dict[str, Any] = {
    f.name: f.default for f in fields(WizardState) if f.default is not MISSING
}

# field -> owning step
_FIELD_OWNER: dict[str, RecipeStep] = {
    name: step
    for step, descriptor in WIZARD_STEPS.items()
    for name in descriptor.owned_fields
}


def _contiguous_completed(completed: set[RecipeStep]) -> tuple[RecipeStep, ...]:
    """Longest prefix of STEP_ORDER contained in `completed`."""
    prefix = []
    for step in STEP_ORDER:
        if step not in completed:
            break
        prefix.append(step)
    return tuple(prefix)


def _coerce(model: type, items: Iterable[Any]) -> tuple:
    return tuple(item if isinstance(item, model) else model.model_validate(item) for item in items)


def _coerce_one(model: type, value: Any) -> Any:
    if value is None or isinstance(value, model):
        return value
    return model.model_validate(value)


# Marks a payload the store refused; None is a legitimate value for single-item fields
_INVALID = object()


def _as_step(step: Any) -> RecipeStep | None:
    try:
        return RecipeStep(step)
    except ValueError:
        logger.warning(f"Ignoring unknown wizard step: {step!r}")
        return None


@dataclass(frozen=True)
class StateChange:
    """One committed store update, as seen by subscribers."""
    action: str
    previous: WizardState
    current: WizardState
    changed_fields: tuple[str, ...]
    duration_ms: float
    timestamp: float


Listener = Callable[[StateChange], None]


class RecipeStore:
    """
    Wizard store with named actions.

    Actions never raise. Invalid transitions are no-ops and return False;
    callers decide whether to block navigation.
    """

    def __init__(self, initial: WizardState | None = None):
        self._state = initial or WizardState()
        self._listeners: list[Listener] = []

    # -------------------------------------------------------------------------
    # Core
    # -------------------------------------------------------------------------

    @property
    def state(self) -> WizardState:
        return self._state

    def get_state(self) -> WizardState:
        return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener. Returns an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _commit(self, action: str, new_state: WizardState, changed: tuple[str, ...], started: float) -> None:
        previous = self._state
        self._state = new_state
        change = StateChange(
            action=action,
            previous=previous,
            current=new_state,
            changed_fields=changed,
            duration_ms=(time.perf_counter() - started) * 1000,
            timestamp=time.time(),
        )
        for listener in list(self._listeners):
            try:
                listener(change)
            except Exception as e:
                logger.error(f"State listener failed after '{action}': {e}")

    def _set(self, action: str, **changes: Any) -> bool:
        """Apply field changes. Fields whose value is unchanged are dropped."""
        started = time.perf_counter()
        current = self._state
        effective = {
            name: value
            for name, value in changes.items()
            if getattr(current, name) is not value and getattr(current, name) != value
        }
        if not effective:
            return False

        new_state = replace(current, last_updated=_utc_now(), **effective)
        self._commit(action, new_state, tuple(effective), started)
        return True

    def _downstream_changes(self, field_name: str) -> dict[str, Any]:
        """Reset values for everything that depends on `field_name`."""
        owner = _FIELD_OWNER[field_name]
        own_fields = WIZARD_STEPS[owner].data_fields
        changes: dict[str, Any] = {}
        removed = set(steps_after(owner))

        # Later data fields within the same step (properties -> oils)
        later_own = own_fields[own_fields.index(field_name) + 1:] if field_name in own_fields else ()
        for name in later_own:
            changes[name] = _FIELD_DEFAULTS[name]
        if later_own:
            removed.add(owner)

        for step in steps_after(owner):
            for name in WIZARD_STEPS[step].owned_fields:
                changes[name] = _FIELD_DEFAULTS[name]

        changes["completed_steps"] = tuple(s for s in self._state.completed_steps if s not in removed)
        return changes

    def _validated(self, action: str, field_name: str, value: Any) -> Any:
        """Coerce a payload for `field_name`, or return _INVALID if it does not fit."""
        model, many = _MODEL_FIELDS[field_name]
        try:
            return _coerce(model, value) if many else _coerce_one(model, value)
        except (ValidationError, TypeError) as e:
            logger.warning(f"Rejected {model.__name__} payload in '{action}': {e}")
            return _INVALID

    def _update_data(self, action: str, field_name: str, value: Any) -> bool:
        value = self._validated(action, field_name, value)
        if value is _INVALID:
            return False
        changes = self._downstream_changes(field_name)
        changes[field_name] = value
        return self._set(action, **changes)

    # -------------------------------------------------------------------------
    # Navigation
    # -------------------------------------------------------------------------

    def set_current_step(self, step: RecipeStep) -> bool:
        step = _as_step(step)
        if step is None:
            return False
        return self._set("set_current_step", current_step=step)

    def mark_step_completed(self, step: RecipeStep) -> bool:
        """Add `step` to completed_steps. Refused unless every earlier step is completed."""
        step = _as_step(step)
        if step is None:
            return False
        completed = self._state.completed_steps
        if step in completed:
            return False

        missing = [s for s in STEP_ORDER[:step_index(step)] if s not in completed]
        if missing:
            logger.debug(
                f"Refusing to complete {step.value}: earlier steps not completed "
                f"({', '.join(s.value for s in missing)})"
            )
            return False

        return self._set("mark_step_completed", completed_steps=_contiguous_completed({*completed, step}))

    def can_navigate_to_step(self, step: RecipeStep | str) -> bool:
        try:
            step = RecipeStep(step)
        except ValueError:
            return False
        return STEP_PREREQUISITES[step](self._state)

    # -------------------------------------------------------------------------
    # Step data
    # -------------------------------------------------------------------------

    def update_health_concern(self, data: HealthConcernData | dict) -> bool:
        return self._update_data("update_health_concern", "health_concern", data)

    def update_demographics(self, data: DemographicsData | dict) -> bool:
        return self._update_data("update_demographics", "demographics", data)

    def update_selected_causes(self, causes: Iterable[PotentialCause | dict]) -> bool:
        return self._update_data("update_selected_causes", "selected_causes", causes)

    def update_selected_symptoms(self, symptoms: Iterable[PotentialSymptom | dict]) -> bool:
        return self._update_data("update_selected_symptoms", "selected_symptoms", symptoms)

    def update_therapeutic_properties(self, properties: Iterable[TherapeuticProperty | dict]) -> bool:
        return self._update_data("update_therapeutic_properties", "therapeutic_properties", properties)

    def update_suggested_oils(self, oils: Iterable[PropertyOilSuggestions | dict]) -> bool:
        return self._update_data("update_suggested_oils", "suggested_oils", oils)

    # -------------------------------------------------------------------------
    # API candidates
    # -------------------------------------------------------------------------

    def set_potential_causes(self, causes: Iterable[PotentialCause | dict]) -> bool:
        causes = self._validated("set_potential_causes", "potential_causes", causes)
        if causes is _INVALID:
            return False
        return self._set("set_potential_causes", potential_causes=causes)

    def set_potential_symptoms(self, symptoms: Iterable[PotentialSymptom | dict]) -> bool:
        symptoms = self._validated("set_potential_symptoms", "potential_symptoms", symptoms)
        if symptoms is _INVALID:
            return False
        return self._set("set_potential_symptoms", potential_symptoms=symptoms)

    # -------------------------------------------------------------------------
    # Loading / error
    # -------------------------------------------------------------------------

    def set_loading(self, loading: bool) -> bool:
        return self._set("set_loading", is_loading=loading)

    def set_error(self, error: str | None) -> bool:
        return self._set("set_error", error=error, is_loading=False)

    def clear_error(self) -> bool:
        return self._set("clear_error", error=None)

    # -------------------------------------------------------------------------
    # Streaming flags
    # -------------------------------------------------------------------------

    def _set_streaming(self, action: str, flag: str, is_streaming: bool) -> bool:
        changes: dict[str, Any] = {flag: is_streaming}
        if is_streaming:
            # A new attempt makes any previous streaming error stale
            changes["streaming_error"] = None
        return self._set(action, **changes)

    def set_streaming_causes(self, is_streaming: bool) -> bool:
        return self._set_streaming("set_streaming_causes", "is_streaming_causes", is_streaming)

    def set_streaming_symptoms(self, is_streaming: bool) -> bool:
        return self._set_streaming("set_streaming_symptoms", "is_streaming_symptoms", is_streaming)

    def set_streaming_properties(self, is_streaming: bool) -> bool:
        return self._set_streaming("set_streaming_properties", "is_streaming_properties", is_streaming)

    def set_streaming_oils(self, is_streaming: bool) -> bool:
        return self._set_streaming("set_streaming_oils", "is_streaming_oils", is_streaming)

    def set_streaming_error(self, error: str | None) -> bool:
        """Record a streaming error. Ends every in-progress stream."""
        changes: dict[str, Any] = {flag: False for flag in STREAMING_FLAGS}
        changes["streaming_error"] = error
        return self._set("set_streaming_error", **changes)

    def clear_streaming_error(self) -> bool:
        return self._set("clear_streaming_error", streaming_error=None)

    # -------------------------------------------------------------------------
    # Clearing / reset
    # -------------------------------------------------------------------------

    def clear_steps_after(self, step: RecipeStep) -> bool:
        """Clear data for every step after `step`. Used when navigating backwards."""
        step = _as_step(step)
        if step is None:
            return False
        cleared = steps_after(step)
        logger.info(f"Clearing steps after {step.value}: {[s.value for s in cleared]}")
        return self._clear_steps("clear_steps_after", cleared)

    def clear_step_data(self, step: RecipeStep) -> bool:
        """Clear data for `step` and, to keep the cascade invariant, every step after it."""
        step = _as_step(step)
        if step is None:
            return False
        logger.info(f"Clearing data for step {step.value}")
        return self._clear_steps("clear_step_data", steps_from(step))

    def _clear_steps(self, action: str, cleared: tuple[RecipeStep, ...]) -> bool:
        changes: dict[str, Any] = {}
        for s in cleared:
            for name in WIZARD_STEPS[s].owned_fields:
                changes[name] = _FIELD_DEFAULTS[name]
        changes["completed_steps"] = tuple(
            s for s in self._state.completed_steps if s not in cleared
        )
        return self._set(action, **changes)

    def reset_wizard(self) -> None:
        """Restore the initial state under a new session id."""
        started = time.perf_counter()
        previous = self._state
        fresh = WizardState()
        changed = tuple(
            f.name for f in fields(WizardState) if getattr(previous, f.name) != getattr(fresh, f.name)
        )
        self._commit("reset_wizard", fresh, changed, started)
        logger.info(f"Recipe wizard reset (session {previous.session_id} -> {fresh.session_id})")

    def hydrate(self, snapshot: dict[str, Any]) -> bool:
        """
        Replace non-transient fields with a persisted snapshot.

        Transient fields (loading, errors, streaming flags) always start clean.
        Returns False if the snapshot cannot be parsed.
        """
        started = time.perf_counter()
        try:
            restored = WizardState.from_dict(
                {k: v for k, v in snapshot.items() if k not in TRANSIENT_FIELDS}
            )
        except (ValueError, TypeError) as e:
            logger.warning(f"Ignoring unreadable wizard snapshot: {e}")
            return False

        previous = self._state
        changed = tuple(
            f.name for f in fields(WizardState) if getattr(previous, f.name) != getattr(restored, f.name)
        )
        self._commit("hydrate", restored, changed, started)
        return True
