"""
Recipe Wizard - API service.

Async client for the create-recipe proxy endpoint. One method per AI step.

Transient failures (5xx, 408, 429, transport errors) are retried with
exponential backoff. Timeouts cancel the in-flight request and are not
retried. Every failure surfaces as RecipeApiError.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Iterable, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .errors import RecipeApiError
from .steps import DEFAULT_API_LANGUAGE, ERROR_MESSAGES, ApiStep
from .types import (
    DemographicsData,
    HealthConcernData,
    PotentialCause,
    PotentialSymptom,
    PropertyOilSuggestions,
    TherapeuticProperty,
)
from .webhook import RetryPolicy, unwrap_message_content

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

INTERNAL_API_ENDPOINT = "http://127.0.0.1:8000/api/create-recipe"
DEFAULT_TIMEOUT_SECONDS = 30.0


class RecipeApiClient:
    """
    Client for POST /api/create-recipe.

    Usage:
        async with RecipeApiClient(endpoint) as api:
            causes = await api.fetch_potential_causes(concern, demographics)
    """

    def __init__(
        self,
        endpoint: str = INTERNAL_API_ENDPOINT,
        http_client: httpx.AsyncClient | None = None,
        retry: RetryPolicy | None = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        user_language: str = DEFAULT_API_LANGUAGE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.endpoint = endpoint
        self.retry = retry or RetryPolicy()
        self.timeout = timeout
        self.user_language = user_language
        self._sleep = sleep
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def __aenter__(self) -> "RecipeApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    # -------------------------------------------------------------------------
    # Transport
    # -------------------------------------------------------------------------

    @staticmethod
    def _error_details(response: httpx.Response) -> tuple[str, str]:
        message, code = ERROR_MESSAGES["API_ERROR"], "API_ERROR"
        try:
            data = response.json()
            if isinstance(data, dict):
                message = data.get("message") or message
                code = data.get("error") or code
        except ValueError:
            message = response.reason_phrase or message
        return message, code

    async def _backoff(self, attempt: int, reason: str) -> None:
        delay = self.retry.delay_for(attempt)
        logger.warning(f"API request failed (attempt {attempt}): {reason}. Retrying in {delay:.1f}s")
        await self._sleep(delay)

    async def _request(self, body: dict[str, Any]) -> Any:
        """POST `body` with retry. Returns decoded JSON."""
        attempts = self.retry.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                response = await asyncio.wait_for(
                    self._http.post(self.endpoint, json=body), timeout=self.timeout
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.error(f"API request timed out after {self.timeout}s (step {body.get('step')})")
                raise RecipeApiError(ERROR_MESSAGES["TIMEOUT_ERROR"], 408, "TIMEOUT_ERROR", e) from e
            except httpx.TransportError as e:
                if attempt < attempts:
                    await self._backoff(attempt, f"network error {e!r}")
                    continue
                raise RecipeApiError(ERROR_MESSAGES["NETWORK_ERROR"], 0, "NETWORK_ERROR", e) from e

            if response.is_success:
                try:
                    return response.json()
                except ValueError as e:
                    raise RecipeApiError(
                        "Invalid response format: body is not JSON", 500, "INVALID_RESPONSE", e
                    ) from e

            message, code = self._error_details(response)
            if self.retry.is_retryable_status(response.status_code) and attempt < attempts:
                await self._backoff(attempt, f"HTTP {response.status_code} {message}")
                continue
            raise RecipeApiError(message, response.status_code, code)

        # max_attempts < 1
        raise RecipeApiError(ERROR_MESSAGES["GENERIC_ERROR"], 500, "UNKNOWN_ERROR")

    # -------------------------------------------------------------------------
    # Request building
    # -------------------------------------------------------------------------

    def _base_request(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        step: ApiStep,
        user_language: str | None,
    ) -> dict[str, Any]:
        return {
            "health_concern": health_concern.health_concern,
            "gender": demographics.gender,
            "age_category": demographics.age_category,
            "age_specific": str(demographics.specific_age),
            "user_language": user_language or self.user_language,
            "step": step.value,
        }

    @staticmethod
    def _dump(items: Iterable[BaseModel]) -> list[dict]:
        return [item.model_dump() for item in items]

    async def _fetch_list(
        self, body: dict[str, Any], key: str, model: type[M], label: str, error_code: str
    ) -> tuple[M, ...]:
        try:
            content = unwrap_message_content(await self._request(body))
            items = content.get(key) if isinstance(content, dict) else None
            if not isinstance(items, list):
                raise RecipeApiError(f"Invalid response format for {label}", 500, "INVALID_RESPONSE")
            return tuple(model.model_validate(item) for item in items)
        except RecipeApiError:
            raise
        except ValidationError as e:
            raise RecipeApiError(f"Invalid response format for {label}", 500, "INVALID_RESPONSE", e) from e
        except Exception as e:
            raise RecipeApiError(f"Failed to fetch {label}", 500, error_code, e) from e

    # -------------------------------------------------------------------------
    # Steps
    # -------------------------------------------------------------------------

    async def fetch_potential_causes(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        user_language: str | None = None,
    ) -> tuple[PotentialCause, ...]:
        body = self._base_request(health_concern, demographics, ApiStep.POTENTIAL_CAUSES, user_language)
        return await self._fetch_list(
            body, "potential_causes", PotentialCause, "potential causes", "FETCH_CAUSES_ERROR"
        )

    async def fetch_potential_symptoms(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        selected_causes: Iterable[PotentialCause],
        user_language: str | None = None,
    ) -> tuple[PotentialSymptom, ...]:
        selected_causes = list(selected_causes)
        if not selected_causes:
            raise RecipeApiError("At least one cause must be selected", 400, "NO_CAUSES_SELECTED")

        body = self._base_request(health_concern, demographics, ApiStep.POTENTIAL_SYMPTOMS, user_language)
        body["selected_causes"] = self._dump(selected_causes)
        return await self._fetch_list(
            body, "potential_symptoms", PotentialSymptom, "potential symptoms", "FETCH_SYMPTOMS_ERROR"
        )

    async def fetch_therapeutic_properties(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        selected_causes: Iterable[PotentialCause],
        selected_symptoms: Iterable[PotentialSymptom],
        user_language: str | None = None,
    ) -> tuple[TherapeuticProperty, ...]:
        selected_causes, selected_symptoms = list(selected_causes), list(selected_symptoms)
        if not selected_causes:
            raise RecipeApiError("At least one cause must be selected", 400, "NO_CAUSES_SELECTED")
        if not selected_symptoms:
            raise RecipeApiError("At least one symptom must be selected", 400, "NO_SYMPTOMS_SELECTED")

        body = self._base_request(health_concern, demographics, ApiStep.MEDICAL_PROPERTIES, user_language)
        body["selected_causes"] = self._dump(selected_causes)
        body["selected_symptoms"] = self._dump(selected_symptoms)
        return await self._fetch_list(
            body,
            "therapeutic_properties",
            TherapeuticProperty,
            "therapeutic properties",
            "FETCH_PROPERTIES_ERROR",
        )

    async def fetch_suggested_oils_for_property(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        selected_causes: Iterable[PotentialCause],
        selected_symptoms: Iterable[PotentialSymptom],
        therapeutic_property: TherapeuticProperty,
        user_language: str | None = None,
    ) -> PropertyOilSuggestions:
        body = self._base_request(health_concern, demographics, ApiStep.SUGGESTED_OILS, user_language)
        body["selected_causes"] = self._dump(selected_causes)
        body["selected_symptoms"] = self._dump(selected_symptoms)
        body["therapeutic_properties"] = [therapeutic_property.model_dump()]

        try:
            content = unwrap_message_content(await self._request(body))
            if not isinstance(content, dict) or not content:
                raise RecipeApiError("Invalid response format for suggested oils", 500, "INVALID_RESPONSE")
            # Property identity falls back to the one we asked about
            merged = {
                "property_id": therapeutic_property.property_id,
                "property_name": therapeutic_property.property_name,
                "property_name_in_english": therapeutic_property.property_name_in_english,
                "description": therapeutic_property.description,
                **{k: v for k, v in content.items() if v is not None},
            }
            return PropertyOilSuggestions.model_validate(merged)
        except RecipeApiError:
            raise
        except ValidationError as e:
            raise RecipeApiError("Invalid response format for suggested oils", 500, "INVALID_RESPONSE", e) from e
        except Exception as e:
            raise RecipeApiError("Failed to fetch suggested oils", 500, "FETCH_OILS_ERROR", e) from e

    async def fetch_suggested_oils_for_all_properties(
        self,
        health_concern: HealthConcernData,
        demographics: DemographicsData,
        selected_causes: Iterable[PotentialCause],
        selected_symptoms: Iterable[PotentialSymptom],
        therapeutic_properties: Iterable[TherapeuticProperty],
        user_language: str | None = None,
    ) -> tuple[PropertyOilSuggestions, ...]:
        """
        One concurrent request per property. Partial success is accepted;
        raises ALL_OILS_FETCH_FAILED only when every request failed.
        """
        properties = list(therapeutic_properties)
        if not properties:
            raise RecipeApiError(
                "At least one therapeutic property is required", 400, "NO_PROPERTIES_PROVIDED"
            )
        causes, symptoms = list(selected_causes), list(selected_symptoms)

        results = await asyncio.gather(
            *(
                self.fetch_suggested_oils_for_property(
                    health_concern, demographics, causes, symptoms, prop, user_language
                )
                for prop in properties
            ),
            return_exceptions=True,
        )

        successes: list[PropertyOilSuggestions] = []
        errors: list[str] = []
        for prop, result in zip(properties, results):
            if isinstance(result, PropertyOilSuggestions):
                successes.append(result)
            else:
                errors.append(f"Failed to fetch oils for {prop.property_name}: {result}")

        if not successes:
            logger.error(f"All oil suggestion requests failed: {errors}")
            raise RecipeApiError(
                "Failed to fetch oil suggestions for any therapeutic property",
                500,
                "ALL_OILS_FETCH_FAILED",
            )
        if errors:
            logger.warning(f"Some oil suggestions failed to load: {errors}")
        return tuple(successes)

    async def check_api_health(self) -> bool:
        try:
            response = await asyncio.wait_for(self._http.get(self.endpoint), timeout=self.timeout)
            return response.is_success
        except (asyncio.TimeoutError, httpx.HTTPError):
            return False
