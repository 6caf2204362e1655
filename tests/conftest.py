"""
Pytest configuration and fixtures for AromaChat tests.
"""

import os

import pytest

# Keep tests independent of a developer's .env
os.environ["AROMACHAT_ENV"] = "development"
os.environ["AROMACHAT_LOG_PROMPTS"] = "0"

from create_recipe.store import RecipeStore  # noqa: E402
from create_recipe.types import (  # noqa: E402
    DemographicsData,
    EssentialOil,
    HealthConcernData,
    PotentialCause,
    PotentialSymptom,
    PropertyOilSuggestions,
    TherapeuticProperty,
)


@pytest.fixture
def health_concern():
    return HealthConcernData(health_concern="chronic anxiety and stress")


@pytest.fixture
def demographics():
    return DemographicsData(gender="female", age_category="adult", specific_age=28)


@pytest.fixture
def sample_causes():
    return (
        PotentialCause(
            cause_name="Work stress",
            cause_suggestion="Long hours and deadlines",
            explanation="Sustained pressure keeps the stress response active.",
        ),
        PotentialCause(
            cause_name="Poor sleep",
            cause_suggestion="Waking up tired",
            explanation="Sleep debt lowers tolerance to stress.",
        ),
        PotentialCause(
            cause_name="Caffeine",
            cause_suggestion="Several coffees a day",
            explanation="Stimulants can amplify anxious feelings.",
        ),
    )


@pytest.fixture
def sample_symptoms():
    return (
        PotentialSymptom(symptom_name="Racing thoughts", explanation="Difficulty switching off."),
        PotentialSymptom(symptom_name="Muscle tension", explanation="Tight neck and shoulders."),
    )


@pytest.fixture
def sample_properties():
    return (
        TherapeuticProperty(
            property_id="prop-1",
            property_name="Calmante",
            property_name_in_english="Calming",
            description="Soothes the nervous system",
            relevancy=5,
        ),
        TherapeuticProperty(
            property_id="prop-2",
            property_name="Relaxante muscular",
            property_name_in_english="Muscle relaxant",
            relevancy=3,
        ),
    )


@pytest.fixture
def sample_oils():
    return (
        PropertyOilSuggestions(
            property_id="prop-1",
            property_name="Calmante",
            suggested_oils=(
                EssentialOil(name_english="Lavender", name_local_language="Lavanda", relevancy=5),
            ),
        ),
    )


@pytest.fixture
def store():
    return RecipeStore()


@pytest.fixture
def filled_store(store, health_concern, demographics, sample_causes, sample_symptoms, sample_properties, sample_oils):
    """Store with every step filled in and completed up to properties."""
    store.update_health_concern(health_concern)
    store.mark_step_completed("health-concern")
    store.update_demographics(demographics)
    store.mark_step_completed("demographics")
    store.set_potential_causes(sample_causes)
    store.update_selected_causes(sample_causes[:2])
    store.mark_step_completed("causes")
    store.set_potential_symptoms(sample_symptoms)
    store.update_selected_symptoms(sample_symptoms)
    store.mark_step_completed("symptoms")
    store.update_therapeutic_properties(sample_properties)
    store.update_suggested_oils(sample_oils)
    store.set_current_step("properties")
    return store
