"""
Recipe Wizard - Step mapping and data transformations.

The LLM-backed wizard endpoint returns items in a localized format
(`name_localized`, `suggestion_localized`, ...). The wizard store works with
the webhook format (`cause_name`, `cause_suggestion`, ...). This module holds
the mapping table between the two and the dependency graph of the AI steps.
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)


# =============================================================================
# Item transforms: localized (LLM) format -> wizard format
# =============================================================================


def _cause(item: dict) -> dict:
    return {
        "cause_name": item.get("name_localized") or item.get("cause_id") or "Unknown cause",
        "cause_suggestion": item.get("suggestion_localized") or "",
        "explanation": item.get("explanation_localized") or "",
    }


def _symptom(item: dict) -> dict:
    return {
        "symptom_name": item.get("name_localized") or item.get("symptom_id") or "Unknown symptom",
        "symptom_suggestion": item.get("suggestion_localized") or "",
        "explanation": item.get("explanation_localized") or "",
    }


def _property(item: dict) -> dict:
    english = item.get("property_name_english") or ""
    relevancy = item.get("relevancy_score") or 1
    return {
        "property_id": item.get("property_id") or english or "unknown",
        "property_name": item.get("property_name_localized") or english or item.get("property_id") or "Unknown property",
        "property_name_in_english": english,
        "description": item.get("description_contextual_localized") or "",
        "causes_addressed": ", ".join(item.get("addresses_cause_ids") or []),
        "symptoms_addressed": ", ".join(item.get("addresses_symptom_ids") or []),
        "relevancy": min(max(int(relevancy), 1), 5),
    }


@dataclass(frozen=True)
class StepMapping:
    step_id: str
    display_name: str
    prompt_name: str
    json_array_path: str
    transform: Callable[[dict], dict]
    dependencies: tuple[str, ...]
    store_property: str
    selected_property: str
    min_selection: int = 1
    max_selection: int = 10
    required: bool = True


STEP_MAPPINGS: dict[str, StepMapping] = {
    "potential-causes": StepMapping(
        step_id="potential-causes",
        display_name="Potential Causes",
        prompt_name="potential-causes",
        json_array_path="data.potential_causes",
        transform=_cause,
        dependencies=("health-concern", "demographics"),
        store_property="potential_causes",
        selected_property="selected_causes",
        max_selection=10,
    ),
    "potential-symptoms": StepMapping(
        step_id="potential-symptoms",
        display_name="Potential Symptoms",
        prompt_name="potential-symptoms",
        json_array_path="data.potential_symptoms",
        transform=_symptom,
        dependencies=("health-concern", "demographics", "potential-causes"),
        store_property="potential_symptoms",
        selected_property="selected_symptoms",
        max_selection=15,
    ),
    "therapeutic-properties": StepMapping(
        step_id="therapeutic-properties",
        display_name="Therapeutic Properties",
        prompt_name="therapeutic-properties",
        json_array_path="data.therapeutic_properties",
        transform=_property,
        dependencies=("health-concern", "demographics", "potential-causes", "potential-symptoms"),
        store_property="therapeutic_properties",
        selected_property="therapeutic_properties",
        max_selection=8,
    ),
}


def get_step_mapping(step_id: str) -> StepMapping | None:
    return STEP_MAPPINGS.get(step_id)


def can_execute_step(step_id: str, completed_steps: list[str] | tuple[str, ...]) -> bool:
    mapping = get_step_mapping(step_id)
    if mapping is None:
        return False
    return all(dep in completed_steps for dep in mapping.dependencies)


def get_next_step(completed_steps: list[str] | tuple[str, ...]) -> str | None:
    """First AI step not yet completed whose dependencies are met."""
    for step_id in STEP_MAPPINGS:
        if step_id not in completed_steps and can_execute_step(step_id, completed_steps):
            return step_id
    return None


def is_final_step(step_id: str) -> bool:
    if step_id not in STEP_MAPPINGS:
        return False
    return not any(step_id in m.dependencies for m in STEP_MAPPINGS.values())


def get_step_progress(completed_steps: list[str] | tuple[str, ...]) -> dict:
    total = len(STEP_MAPPINGS)
    completed = sum(1 for step_id in STEP_MAPPINGS if step_id in completed_steps)
    return {
        "completed": completed,
        "total": total,
        "percentage": round(completed / total * 100),
        "next_step": get_next_step(completed_steps),
    }


def validate_step_selection(step_id: str, selected: list | tuple) -> tuple[bool, list[str]]:
    mapping = get_step_mapping(step_id)
    if mapping is None:
        return False, ["Invalid step configuration"]

    label = mapping.display_name.lower()
    count = len(selected)
    errors = []
    if mapping.required and count == 0:
        errors.append(f"At least {mapping.min_selection} {label} must be selected")
    elif count < mapping.min_selection:
        errors.append(f"Please select at least {mapping.min_selection} {label}")
    if count > mapping.max_selection:
        errors.append(f"You can select up to {mapping.max_selection} {label} maximum")
    return not errors, errors


def transform_data(data: list[dict], step_id: str) -> list[dict]:
    """Convert localized items to wizard format. Unknown steps pass through."""
    mapping = get_step_mapping(step_id)
    if mapping is None:
        return data
    return [mapping.transform(item) for item in data]


def resolve_json_path(obj: Any, path: str) -> Any:
    """Follow a dotted path (`data.potential_causes`). Returns None when a segment is missing."""
    for part in path.split("."):
        if not isinstance(obj, dict) or part not in obj:
            return None
        obj = obj[part]
    return obj


# =============================================================================
# LLM response normalisation
# =============================================================================


def normalize_potential_causes(ai_response: Any) -> list[dict]:
    """
    Extract localized causes from an LLM response.

    Accepts the structured format (`data.potential_causes` with `*_localized`
    fields) and the legacy one (`potential_causes` with `cause_name`,
    `cause_description`, `medical_context`). Raises ValueError otherwise.
    """
    structured = resolve_json_path(ai_response, STEP_MAPPINGS["potential-causes"].json_array_path)
    if isinstance(structured, list):
        return [
            {
                "cause_id": c.get("cause_id"),
                "name_localized": c.get("name_localized"),
                "suggestion_localized": c.get("suggestion_localized"),
                "explanation_localized": c.get("explanation_localized"),
            }
            for c in structured
        ]

    legacy = ai_response.get("potential_causes") if isinstance(ai_response, dict) else None
    if isinstance(legacy, list):
        logger.debug("Using legacy potential_causes format")
        return [
            {
                "cause_id": c.get("cause_id"),
                "name_localized": c.get("cause_name") or c.get("name_localized"),
                "suggestion_localized": c.get("cause_description") or c.get("suggestion_localized"),
                "explanation_localized": c.get("medical_context") or c.get("explanation_localized"),
            }
            for c in legacy
        ]

    keys = list(ai_response) if isinstance(ai_response, dict) else type(ai_response).__name__
    logger.error(f"No potential_causes found in AI response (keys: {keys})")
    raise ValueError("Invalid AI response format: missing potential_causes data")
