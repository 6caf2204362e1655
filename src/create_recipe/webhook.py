"""
Recipe Wizard - Webhook wire format helpers.

The recipe webhook (an n8n workflow) answers in one of two shapes:

    [{"message": {"content": {...step payload...}}}]   # array form
    {...step payload...}                               # direct form

Some workflow versions wrap the payload deeper or send `content` as a JSON
string. These helpers normalise all of that and locate each step's array.
"""

import json
from dataclasses import dataclass
from typing import Any

from .steps import ApiStep


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff: delay before attempt n+1 is base_delay * multiplier**(n-1)."""
    max_attempts: int = 3
    base_delay: float = 1.0
    multiplier: float = 2.0

    def delay_for(self, attempt: int) -> float:
        return self.base_delay * self.multiplier ** (attempt - 1)

    @staticmethod
    def is_retryable_status(status: int) -> bool:
        return status >= 500 or status in (408, 429)


# Array key each step's payload must carry
STEP_RESPONSE_KEYS: dict[ApiStep, str] = {
    ApiStep.POTENTIAL_CAUSES: "potential_causes",
    ApiStep.POTENTIAL_SYMPTOMS: "potential_symptoms",
    ApiStep.MEDICAL_PROPERTIES: "therapeutic_properties",
    ApiStep.SUGGESTED_OILS: "suggested_oils",
}

USER_AGENT = "AromaChat-Recipe-Creator/1.0"


def response_key(step: ApiStep | str) -> str | None:
    try:
        return STEP_RESPONSE_KEYS.get(ApiStep(step))
    except ValueError:
        return None


def _maybe_json(value: Any) -> Any:
    if isinstance(value, str):
        try:
            return json.loads(value)
        except ValueError:
            return value
    return value


def unwrap_message_content(payload: Any) -> Any:
    """
    Return the step payload from either wire shape.

    Array form yields `payload[0].message.content` (decoded if it is a JSON
    string). A dict is returned as-is. Anything else is returned unchanged.
    """
    if isinstance(payload, list) and payload:
        first = payload[0]
        if isinstance(first, dict) and isinstance(first.get("message"), dict):
            content = _maybe_json(first["message"].get("content"))
            if content:
                return content
    return payload


def find_container_with_key(obj: Any, key: str) -> dict | None:
    """Depth-first search for the first dict whose `key` holds a list."""
    if isinstance(obj, dict):
        if isinstance(obj.get(key), list):
            return obj
        children = obj.values()
    elif isinstance(obj, list):
        children = obj
    else:
        return None

    for child in children:
        found = find_container_with_key(_maybe_json(child), key)
        if found is not None:
            return found
    return None


def extract_step_content(payload: Any, step: ApiStep | str) -> Any:
    """
    Unwrap `payload` and, if the step's key is not at the top level, search
    nested structures for it. Returns the best candidate, which may still be
    invalid (see validate_step_content).
    """
    content = unwrap_message_content(payload)
    key = response_key(step)
    if key is None:
        return content

    if isinstance(content, dict) and isinstance(content.get(key), list):
        return content

    found = find_container_with_key(payload, key)
    return found if found is not None else content


def validate_step_content(content: Any, step: ApiStep | str) -> str | None:
    """Return an error message if `content` lacks the step's array, else None."""
    if not isinstance(content, dict):
        return "Invalid response format: response must be an object"

    key = response_key(step)
    if key is not None and not isinstance(content.get(key), list):
        return f"Invalid response format: missing or invalid {key} array"
    return None
