"""
Recipe Wizard - Webhook proxy.

Server-side half of POST /api/create-recipe: validates the wizard's request,
forwards it to the external recipe webhook with the API key, retries
transient failures and checks that the answer carries the step's array.

The upstream body is passed back unchanged; clients unwrap it themselves
(see webhook.unwrap_message_content).
"""

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

import httpx

from .errors import (
    InvalidUpstreamResponseError,
    RequestValidationError,
    ServiceNotConfiguredError,
    UpstreamError,
    UpstreamTimeoutError,
)
from .steps import ApiStep
from .webhook import (
    USER_AGENT,
    RetryPolicy,
    extract_step_content,
    response_key,
    validate_step_content,
)

logger = logging.getLogger(__name__)

REQUIRED_FIELDS = ("health_concern", "gender", "age_category", "age_specific", "step", "user_language")
VALID_GENDERS = ("male", "female")
VALID_STEPS = tuple(s.value for s in ApiStep)


@dataclass(frozen=True)
class WebhookConfig:
    api_key: str | None
    base_url: str | None
    timeout: float = 30.0
    retry: RetryPolicy = field(default_factory=RetryPolicy)

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key) and bool(self.base_url)


def validate_request_body(body: Any) -> dict[str, Any]:
    """Check required fields, gender and step. Raises RequestValidationError."""
    if not isinstance(body, dict):
        raise RequestValidationError("Invalid request body: expected a JSON object")

    for name in REQUIRED_FIELDS:
        if not body.get(name):
            raise RequestValidationError(f"Missing required field: {name}")

    if body["gender"] not in VALID_GENDERS:
        raise RequestValidationError('Invalid gender value. Must be "male" or "female"')

    if body["step"] not in VALID_STEPS:
        raise RequestValidationError(f"Invalid step value. Must be one of: {', '.join(VALID_STEPS)}")

    return body


class WebhookProxy:
    """Forwards validated wizard requests to the external webhook."""

    def __init__(
        self,
        config: WebhookConfig,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.config = config
        self._sleep = sleep
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._http.aclose()

    def require_configured(self) -> None:
        if not self.config.api_key:
            logger.error("Recipe creator API key not configured (CREATE_RECIPE_APIKEY)")
            raise ServiceNotConfiguredError("Recipe creator API key not configured")
        if not self.config.base_url:
            logger.error("Recipe creator API base URL not configured (CREATE_RECIPE_BASE_URL)")
            raise ServiceNotConfiguredError("Recipe creator API base URL not configured")

    async def forward(self, body: dict[str, Any]) -> Any:
        """POST to the webhook with retry. Returns the decoded upstream body."""
        retry = self.config.retry
        step = body.get("step")
        headers = {
            "apikey": self.config.api_key or "",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

        last_error = "no attempts made"
        attempt = 0
        for attempt in range(1, retry.max_attempts + 1):
            logger.info(f"Making external API request (step {step}, attempt {attempt}/{retry.max_attempts})")
            try:
                response = await asyncio.wait_for(
                    self._http.post(self.config.base_url, json=body, headers=headers),
                    timeout=self.config.timeout,
                )
            except (asyncio.TimeoutError, httpx.TimeoutException) as e:
                logger.error(f"External API request timed out after {self.config.timeout}s (attempt {attempt})")
                raise UpstreamTimeoutError("Request timed out") from e
            except httpx.TransportError as e:
                last_error = f"network error: {e!r}"
            else:
                if response.is_success:
                    try:
                        return response.json()
                    except ValueError as e:
                        raise InvalidUpstreamResponseError(
                            "Invalid response format: upstream body is not JSON"
                        ) from e

                last_error = f"{response.status_code} {response.reason_phrase}"
                logger.error(f"External API request failed: {last_error} {response.text[:500]}")
                if not retry.is_retryable_status(response.status_code):
                    break

            if attempt < retry.max_attempts:
                delay = retry.delay_for(attempt)
                logger.warning(f"Retrying external API request in {delay:.1f}s ({last_error})")
                await self._sleep(delay)

        logger.error(f"External API request failed after {attempt} attempt(s): {last_error}")
        raise UpstreamError(f"External API request failed: {last_error}")

    async def handle(self, body: Any) -> Any:
        """Full POST flow: configuration, validation, forward, response check."""
        self.require_configured()
        validated = validate_request_body(body)
        step = validated["step"]
        logger.info(
            f"Processing recipe API request: step={step} "
            f"gender={validated['gender']} age_category={validated['age_category']}"
        )

        payload = await self.forward(validated)

        content = extract_step_content(payload, step)
        error = validate_step_content(content, step)
        if error:
            keys = list(content) if isinstance(content, dict) else type(content).__name__
            logger.error(f"Response validation failed for {step}: {error} (found {keys})")
            raise InvalidUpstreamResponseError(error)
        if response_key(step) is None:
            logger.warning(f"No response validation defined for step {step}")

        return payload

    def health_report(self) -> dict[str, Any]:
        return {
            "status": "healthy",
            "service": "Recipe Creator API Proxy",
            "version": "1.0.0",
            "configured": self.config.is_configured,
            "configuration": {
                "has_api_key": bool(self.config.api_key),
                "has_base_url": bool(self.config.base_url),
                "variables": {
                    "api_key": "CREATE_RECIPE_APIKEY",
                    "base_url": "CREATE_RECIPE_BASE_URL",
                },
            },
            "endpoints": {
                "external": self.config.base_url or "Not configured",
                "timeout": self.config.timeout,
                "retries": self.config.retry.max_attempts,
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
