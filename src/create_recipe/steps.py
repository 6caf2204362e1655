"""
Recipe Wizard - Step Configuration.

Static descriptors for every wizard step: ordering, prerequisites, the state
fields each step owns, validation bounds and display text.

Step order is an explicit total order (STEP_ORDER). Everything that needs to
know "what comes after X" derives it from here rather than hard-coding lists.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Literal


class RecipeStep(str, Enum):
    """Wizard steps in flow order. Oils are nested inside PROPERTIES."""
    HEALTH_CONCERN = "health-concern"
    DEMOGRAPHICS = "demographics"
    CAUSES = "causes"
    SYMPTOMS = "symptoms"
    PROPERTIES = "properties"


STEP_ORDER: tuple[RecipeStep, ...] = tuple(RecipeStep)
DEFAULT_STEP = RecipeStep.HEALTH_CONCERN

# Steps that fetch AI results. Oils are loaded within PROPERTIES but stream separately.
StreamingStep = Literal["causes", "symptoms", "properties", "oils"]


class ApiStep(str, Enum):
    """Step names understood by the external recipe webhook."""
    POTENTIAL_CAUSES = "PotentialCauses"
    POTENTIAL_SYMPTOMS = "PotentialSymptoms"
    MEDICAL_PROPERTIES = "MedicalProperties"
    SUGGESTED_OILS = "SuggestedOils"
    RECIPE_CHOICES = "RecipeChoices"


@dataclass(frozen=True)
class StepDescriptor:
    """Display and data-ownership metadata for one step."""
    key: RecipeStep
    title: str
    description: str
    step_number: int
    path: str
    is_required: bool = True
    has_form: bool = True
    requires_api: bool = False
    # WizardState fields holding the user's input for this step
    data_fields: tuple[str, ...] = ()
    # WizardState fields holding API candidates shown on this step
    candidate_fields: tuple[str, ...] = ()
    min_selection: int = 0
    max_selection: int | None = None

    @property
    def owned_fields(self) -> tuple[str, ...]:
        return self.data_fields + self.candidate_fields


WIZARD_STEPS: dict[RecipeStep, StepDescriptor] = {
    RecipeStep.HEALTH_CONCERN: StepDescriptor(
        key=RecipeStep.HEALTH_CONCERN,
        title="Health Concern",
        description="Describe your health concern",
        step_number=1,
        path="/dashboard/create-recipe/health-concern",
        data_fields=("health_concern",),
    ),
    RecipeStep.DEMOGRAPHICS: StepDescriptor(
        key=RecipeStep.DEMOGRAPHICS,
        title="Demographics",
        description="Tell us about yourself",
        step_number=2,
        path="/dashboard/create-recipe/demographics",
        data_fields=("demographics",),
    ),
    RecipeStep.CAUSES: StepDescriptor(
        key=RecipeStep.CAUSES,
        title="Potential Causes",
        description="Select relevant causes",
        step_number=3,
        path="/dashboard/create-recipe/causes",
        requires_api=True,
        data_fields=("selected_causes",),
        candidate_fields=("potential_causes",),
        min_selection=1,
        max_selection=10,
    ),
    RecipeStep.SYMPTOMS: StepDescriptor(
        key=RecipeStep.SYMPTOMS,
        title="Symptoms",
        description="Choose your symptoms",
        step_number=4,
        path="/dashboard/create-recipe/symptoms",
        requires_api=True,
        data_fields=("selected_symptoms",),
        candidate_fields=("potential_symptoms",),
        min_selection=1,
        max_selection=15,
    ),
    RecipeStep.PROPERTIES: StepDescriptor(
        key=RecipeStep.PROPERTIES,
        title="Therapeutic Properties",
        description="Review therapeutic properties and suggested oils",
        step_number=5,
        path="/dashboard/create-recipe/properties",
        is_required=False,
        has_form=False,
        requires_api=True,
        data_fields=("therapeutic_properties", "suggested_oils"),
        min_selection=1,
        max_selection=8,
    ),
}

TOTAL_STEPS = len(STEP_ORDER)


# =============================================================================
# Ordering helpers
# =============================================================================


def step_index(step: RecipeStep) -> int:
    return STEP_ORDER.index(step)


def steps_after(step: RecipeStep) -> tuple[RecipeStep, ...]:
    """All steps strictly after `step`, in order."""
    return STEP_ORDER[step_index(step) + 1:]


def steps_from(step: RecipeStep) -> tuple[RecipeStep, ...]:
    """`step` and every step after it, in order."""
    return STEP_ORDER[step_index(step):]


def next_step(step: RecipeStep) -> RecipeStep | None:
    idx = step_index(step)
    return STEP_ORDER[idx + 1] if idx + 1 < len(STEP_ORDER) else None


def previous_step(step: RecipeStep) -> RecipeStep | None:
    idx = step_index(step)
    return STEP_ORDER[idx - 1] if idx > 0 else None


# =============================================================================
# Prerequisites
# =============================================================================

# Each predicate receives a WizardState. Kept as plain lambdas so the table
# reads top-to-bottom in flow order.
STEP_PREREQUISITES: dict[RecipeStep, Callable[[Any], bool]] = {
    RecipeStep.HEALTH_CONCERN: lambda s: True,
    RecipeStep.DEMOGRAPHICS: lambda s: s.health_concern is not None,
    RecipeStep.CAUSES: lambda s: (
        s.health_concern is not None and s.demographics is not None
    ),
    RecipeStep.SYMPTOMS: lambda s: (
        s.health_concern is not None
        and s.demographics is not None
        and len(s.selected_causes) > 0
    ),
    RecipeStep.PROPERTIES: lambda s: (
        s.health_concern is not None
        and s.demographics is not None
        and len(s.selected_causes) > 0
        and len(s.selected_symptoms) > 0
    ),
}


# =============================================================================
# Form options & validation
# =============================================================================

GENDER_OPTIONS = [
    {"value": "male", "label": "Male"},
    {"value": "female", "label": "Female"},
]

AGE_CATEGORY_OPTIONS = [
    {"value": "child", "label": "Child (0-12 years)", "min_age": 0, "max_age": 12},
    {"value": "teen", "label": "Teen (13-17 years)", "min_age": 13, "max_age": 17},
    {"value": "adult", "label": "Adult (18-64 years)", "min_age": 18, "max_age": 64},
    {"value": "senior", "label": "Senior (65+ years)", "min_age": 65, "max_age": 120},
    {"value": "elderly", "label": "Elderly (80+ years)", "min_age": 80, "max_age": 120},
]

LANGUAGE_OPTIONS = [
    {"value": "PT_BR", "label": "Portuguese", "code": "pt"},
    {"value": "EN_US", "label": "English", "code": "en"},
    {"value": "ES_ES", "label": "Spanish", "code": "es"},
    {"value": "FR_FR", "label": "French", "code": "fr"},
]

DEFAULT_API_LANGUAGE = "PT_BR"

HEALTH_CONCERN_MIN_LENGTH = 3
HEALTH_CONCERN_MAX_LENGTH = 500
AGE_MIN = 0
AGE_MAX = 120


@dataclass
class ValidationResult:
    is_valid: bool
    errors: list[str] = field(default_factory=list)


def validate_health_concern(text: str) -> ValidationResult:
    """Check a health concern against the length bounds."""
    text = (text or "").strip()
    errors = []
    if not text:
        errors.append("Please describe your health concern")
    elif len(text) < HEALTH_CONCERN_MIN_LENGTH:
        errors.append(f"Health concern must be at least {HEALTH_CONCERN_MIN_LENGTH} characters")
    elif len(text) > HEALTH_CONCERN_MAX_LENGTH:
        errors.append(f"Health concern must be at most {HEALTH_CONCERN_MAX_LENGTH} characters")
    return ValidationResult(is_valid=not errors, errors=errors)


def validate_demographics(gender: str, age_category: str, specific_age: int) -> ValidationResult:
    """Check demographics against the option lists and age bounds."""
    errors = []
    if gender not in {o["value"] for o in GENDER_OPTIONS}:
        errors.append("Please select a gender")

    category = next((o for o in AGE_CATEGORY_OPTIONS if o["value"] == age_category), None)
    if category is None:
        errors.append("Please select an age category")

    if not AGE_MIN <= specific_age <= AGE_MAX:
        errors.append(f"Age must be between {AGE_MIN} and {AGE_MAX}")
    elif category and not category["min_age"] <= specific_age <= category["max_age"]:
        errors.append(f"Age {specific_age} does not match category '{category['label']}'")

    return ValidationResult(is_valid=not errors, errors=errors)


def validate_selection(step: RecipeStep, items: list | tuple) -> ValidationResult:
    """Check a multi-select step against its selection bounds."""
    descriptor = WIZARD_STEPS[step]
    label = descriptor.title.lower()
    count = len(items)
    errors = []

    if descriptor.min_selection and count < descriptor.min_selection:
        errors.append(f"Please select at least {descriptor.min_selection} {label}")
    if descriptor.max_selection is not None and count > descriptor.max_selection:
        errors.append(f"You can select up to {descriptor.max_selection} {label} maximum")

    return ValidationResult(is_valid=not errors, errors=errors)


# =============================================================================
# User-facing messages
# =============================================================================

LOADING_MESSAGES: dict[StreamingStep, str] = {
    "causes": "Analyzing potential causes...",
    "symptoms": "Finding related symptoms...",
    "properties": "Discovering therapeutic properties...",
    "oils": "Suggesting essential oils...",
}

ERROR_MESSAGES = {
    "NETWORK_ERROR": "Network connection failed. Please check your internet connection and try again.",
    "API_ERROR": "We're experiencing technical difficulties. Please try again later.",
    "VALIDATION_ERROR": "Please check your input and try again.",
    "SESSION_EXPIRED": "Your session has expired. Please start over.",
    "STORAGE_ERROR": "Unable to save your progress. Please ensure you have sufficient storage space.",
    "TIMEOUT_ERROR": "The request took too long. Please try again.",
    "GENERIC_ERROR": "Something went wrong. Please try again.",
}
