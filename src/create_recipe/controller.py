"""
Recipe Wizard - Controller.

Glue between a UI (the terminal wizard, tests) and the store/API: validates
input, dispatches store actions, runs the API calls with loading and
streaming flags, and advances navigation.

API failures are recorded in the store (error + streaming error) and then
re-raised so the UI can decide how to present them.
"""

import logging
from contextlib import asynccontextmanager
from typing import Callable, Iterable

from .errors import RecipeApiError
from .navigation import WizardNavigator
from .service import RecipeApiClient
from .steps import (
    ERROR_MESSAGES,
    RecipeStep,
    ValidationResult,
    validate_demographics,
    validate_health_concern,
    validate_selection,
)
from .store import RecipeStore
from .types import (
    DemographicsData,
    HealthConcernData,
    PotentialCause,
    PotentialSymptom,
    PropertyOilSuggestions,
    TherapeuticProperty,
)

logger = logging.getLogger(__name__)


class WizardController:
    def __init__(self, store: RecipeStore, api: RecipeApiClient, user_language: str | None = None):
        self.store = store
        self.api = api
        self.user_language = user_language
        self.navigator = WizardNavigator(store)

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    def _reject(self, result: ValidationResult) -> ValidationResult:
        if not result.is_valid:
            self.store.set_error(result.errors[0])
        return result

    def _require(self, step: RecipeStep) -> None:
        if not self.store.can_navigate_to_step(step):
            raise RecipeApiError(ERROR_MESSAGES["VALIDATION_ERROR"], 400, "VALIDATION_ERROR")

    @asynccontextmanager
    async def _api_call(self, set_streaming: Callable[[bool], bool]):
        """Toggle loading/streaming around an API call; record failures."""
        self.store.clear_error()
        self.store.set_loading(True)
        set_streaming(True)
        try:
            yield
        except RecipeApiError as e:
            logger.warning(f"Recipe API call failed [{e.code}]: {e.message}")
            self.store.set_streaming_error(e.message)
            self.store.set_error(e.message)
            raise
        finally:
            set_streaming(False)
            self.store.set_loading(False)

    # -------------------------------------------------------------------------
    # Forms
    # -------------------------------------------------------------------------

    def submit_health_concern(self, text: str) -> ValidationResult:
        result = validate_health_concern(text)
        if not result.is_valid:
            return self._reject(result)

        data = HealthConcernData(health_concern=text.strip())
        if self.store.state.health_concern != data:
            self.store.update_health_concern(data)
        self.store.clear_error()
        self.navigator.go_to_next()
        return result

    def submit_demographics(self, gender: str, age_category: str, specific_age: int) -> ValidationResult:
        result = validate_demographics(gender, age_category, specific_age)
        if not result.is_valid:
            return self._reject(result)

        data = DemographicsData(gender=gender, age_category=age_category, specific_age=specific_age)
        if self.store.state.demographics != data:
            self.store.update_demographics(data)
        self.store.clear_error()
        self.navigator.go_to_next()
        return result

    # -------------------------------------------------------------------------
    # Causes
    # -------------------------------------------------------------------------

    async def load_potential_causes(self) -> tuple[PotentialCause, ...]:
        self._require(RecipeStep.CAUSES)
        state = self.store.state
        async with self._api_call(self.store.set_streaming_causes):
            causes = await self.api.fetch_potential_causes(
                state.health_concern, state.demographics, self.user_language
            )
        self.store.set_potential_causes(causes)
        logger.info(f"Loaded {len(causes)} potential causes")
        return causes

    def select_causes(self, causes: Iterable[PotentialCause]) -> ValidationResult:
        """Store the selection and advance to symptoms."""
        causes = tuple(causes)
        result = self._reject(validate_selection(RecipeStep.CAUSES, causes))
        if result.is_valid:
            self.store.update_selected_causes(causes)
            self.store.clear_error()
            self.navigator.go_to_next()
        return result

    # -------------------------------------------------------------------------
    # Symptoms
    # -------------------------------------------------------------------------

    async def load_potential_symptoms(self) -> tuple[PotentialSymptom, ...]:
        self._require(RecipeStep.SYMPTOMS)
        state = self.store.state
        async with self._api_call(self.store.set_streaming_symptoms):
            symptoms = await self.api.fetch_potential_symptoms(
                state.health_concern, state.demographics, state.selected_causes, self.user_language
            )
        self.store.set_potential_symptoms(symptoms)
        logger.info(f"Loaded {len(symptoms)} potential symptoms")
        return symptoms

    def select_symptoms(self, symptoms: Iterable[PotentialSymptom]) -> ValidationResult:
        """Store the selection and advance to properties."""
        symptoms = tuple(symptoms)
        result = self._reject(validate_selection(RecipeStep.SYMPTOMS, symptoms))
        if result.is_valid:
            self.store.update_selected_symptoms(symptoms)
            self.store.clear_error()
            self.navigator.go_to_next()
        return result

    # -------------------------------------------------------------------------
    # Properties & oils
    # -------------------------------------------------------------------------

    async def load_therapeutic_properties(self) -> tuple[TherapeuticProperty, ...]:
        self._require(RecipeStep.PROPERTIES)
        state = self.store.state
        async with self._api_call(self.store.set_streaming_properties):
            properties = await self.api.fetch_therapeutic_properties(
                state.health_concern,
                state.demographics,
                state.selected_causes,
                state.selected_symptoms,
                self.user_language,
            )
        self.store.update_therapeutic_properties(properties)
        logger.info(f"Loaded {len(properties)} therapeutic properties")
        return properties

    async def load_suggested_oils(self) -> tuple[PropertyOilSuggestions, ...]:
        """Fetch oils for every property, then mark the final step completed."""
        self._require(RecipeStep.PROPERTIES)
        state = self.store.state
        async with self._api_call(self.store.set_streaming_oils):
            oils = await self.api.fetch_suggested_oils_for_all_properties(
                state.health_concern,
                state.demographics,
                state.selected_causes,
                state.selected_symptoms,
                state.therapeutic_properties,
                self.user_language,
            )
        self.store.update_suggested_oils(oils)
        self.navigator.mark_current_step_completed()
        logger.info(f"Loaded oil suggestions for {len(oils)} properties")
        return oils
