"""
AromaChat - LLM Client.

Wraps OpenAI with Instructor for structured outputs.
All LLM calls go through here for consistency and prompt logging.
"""

import asyncio
import time
from typing import Any, TypeVar

import instructor
from openai import AsyncOpenAI
from pydantic import BaseModel

from aromachat.config import settings
from aromachat.llm.prompt_logger import log_llm_call

# Type variable for generic structured output
T = TypeVar("T", bound=BaseModel)

DEFAULT_MODEL = "gpt-4o-mini"

# Singleton client instance
_client: instructor.AsyncInstructor | None = None


def get_client() -> instructor.AsyncInstructor:
    """
    Get the Instructor-wrapped async OpenAI client.

    Uses singleton pattern to reuse connection.
    """
    global _client

    if _client is None:
        openai_client = AsyncOpenAI(api_key=settings.openai_api_key)
        _client = instructor.from_openai(openai_client)

    return _client


async def call_llm(
    *,
    response_model: type[T],
    system_prompt: str,
    user_prompt: str,
    prompt_name: str = "unknown",
    trace_id: str | None = None,
    model_config: dict[str, Any] | None = None,
    max_retries: int = 2,
) -> T:
    """
    Make a structured LLM call with schema validation.

    Args:
        response_model: Pydantic model class for the response
        system_prompt: System message (usually a rendered prompt template)
        user_prompt: User message with the actual request
        prompt_name: Name used for the call log
        trace_id: Request trace id; names the call log record
        model_config: `config` section of a prompt file (model, temperature,
            max_tokens, top_p, frequency_penalty, presence_penalty)
        max_retries: Number of retries if response doesn't match schema

    Returns:
        Instance of response_model with validated data
    """
    client = get_client()
    config = dict(model_config or {})
    model = config.get("model") or settings.openai_model or DEFAULT_MODEL

    api_kwargs: dict[str, Any] = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "response_model": response_model,
        "max_retries": max_retries,
        "temperature": config.get("temperature", 0.3),
        "max_tokens": config.get("max_tokens", 1500),
    }
    for key in ("top_p", "frequency_penalty", "presence_penalty"):
        if key in config:
            api_kwargs[key] = config[key]

    log_fields = {
        "trace_id": trace_id,
        "prompt_name": prompt_name,
        "model": model,
        "system_prompt": system_prompt,
        "user_prompt": user_prompt,
        "response_model": response_model.__name__,
        "config": config,
    }
    started = time.perf_counter()
    try:
        response = await client.chat.completions.create(**api_kwargs)
    except (Exception, asyncio.CancelledError) as e:
        # Cancelled when the caller's timeout fires
        log_llm_call(**log_fields, duration_ms=_elapsed_ms(started), error=e)
        raise

    log_llm_call(**log_fields, duration_ms=_elapsed_ms(started), response=response)
    return response


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)
