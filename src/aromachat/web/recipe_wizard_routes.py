"""
API endpoint for the LLM-backed recipe wizard (potential causes analysis).

Renders the `potential-causes` prompt, calls the LLM with a structured
response model under a timeout, and returns causes in the localized format.
"""

import asyncio
import json
import logging
import time
import uuid
from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field, ValidationError

from aromachat.config import settings
from aromachat.llm.client import call_llm
from aromachat.llm.prompt_manager import PromptManagerError, get_prompt_manager
from create_recipe.transforms import STEP_MAPPINGS, normalize_potential_causes

logger = logging.getLogger(__name__)

router = APIRouter(tags=["recipe-wizard"])

SERVICE_NAME = "recipe-wizard-ai"


# =============================================================================
# Request/Response Models
# =============================================================================


class HealthConcernInput(BaseModel):
    healthConcern: str = Field(min_length=10, max_length=500)


class DemographicsInput(BaseModel):
    gender: Literal["male", "female"]
    ageCategory: Literal["child", "teen", "adult", "senior"]
    specificAge: int = Field(ge=1, le=120)
    language: Literal["pt", "en", "es", "fr", "PT_BR", "EN_US", "ES_ES", "FR_FR"]


class RecipeWizardRequest(BaseModel):
    """Body of POST /api/recipe-wizard."""

    healthConcern: HealthConcernInput
    demographics: DemographicsInput


class LocalizedCause(BaseModel):
    cause_id: str
    name_localized: str
    suggestion_localized: str
    explanation_localized: str


class PotentialCausesData(BaseModel):
    potential_causes: list[LocalizedCause]


class PotentialCausesOutput(BaseModel):
    """Structured LLM output for the potential-causes prompt."""

    data: PotentialCausesData


# =============================================================================
# Helpers
# =============================================================================


def _new_trace_id() -> str:
    return f"trace_{int(time.time() * 1000)}_{uuid.uuid4().hex[:13]}"


def _template_variables(req: RecipeWizardRequest) -> dict:
    return {
        "healthConcern": req.healthConcern.healthConcern,
        "gender": req.demographics.gender,
        "ageCategory": req.demographics.ageCategory,
        "specificAge": req.demographics.specificAge,
        "language": req.demographics.language,
        "sessionId": "recipe-wizard-session",
    }


def _agent_input(req: RecipeWizardRequest) -> str:
    d = req.demographics
    return (
        "Please analyze the following information and provide your response "
        "according to the instructions:\n\n"
        f"Health Concern: {req.healthConcern.healthConcern}\n"
        f"Demographics: {d.gender}, {d.ageCategory}, age {d.specificAge}\n"
        f"Language: {d.language}\n\n"
        "Please provide a comprehensive analysis identifying 4-6 potential causes "
        "that could contribute to this health concern, focusing on factors that "
        "can be addressed with aromatherapy approaches."
    )


def _elapsed_ms(started: float) -> int:
    return int((time.perf_counter() - started) * 1000)


# =============================================================================
# Routes
# =============================================================================


@router.post("/recipe-wizard")
async def recipe_wizard(request: Request):
    started = time.perf_counter()
    trace_id = _new_trace_id()

    if not settings.openai_api_key:
        logger.error(f"OpenAI API key not configured [{trace_id}]")
        return JSONResponse(status_code=500, content={"error": "OpenAI API key not configured"})

    # Validate
    try:
        req = RecipeWizardRequest.model_validate(await request.json())
    except ValidationError as e:
        logger.warning(f"Invalid recipe-wizard request [{trace_id}]: {e.error_count()} error(s)")
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request data", "details": json.loads(e.json()), "traceId": trace_id},
        )
    except ValueError:
        return JSONResponse(
            status_code=400,
            content={"error": "Invalid request data", "details": "Malformed JSON body", "traceId": trace_id},
        )

    step_name = "potential-causes"
    try:
        # Prompt
        prompt, prompt_config = get_prompt_manager().get_processed_prompt(
            STEP_MAPPINGS[step_name].prompt_name, _template_variables(req)
        )
        model_config = prompt_config["config"]
        logger.info(
            f"Prompt '{step_name}' loaded [{trace_id}]: model={model_config['model']} "
            f"temperature={model_config['temperature']}"
        )

        # LLM
        ai_started = time.perf_counter()
        result = await asyncio.wait_for(
            call_llm(
                response_model=PotentialCausesOutput,
                system_prompt=prompt,
                user_prompt=_agent_input(req),
                prompt_name=step_name,
                trace_id=trace_id,
                model_config=model_config,
            ),
            timeout=settings.api_timeout_seconds,
        )
        ai_ms = _elapsed_ms(ai_started)

        causes = normalize_potential_causes(result.model_dump())

    except PromptManagerError as e:
        logger.error(f"Prompt configuration failed [{trace_id}]: {e.code} {e.message}")
        return JSONResponse(
            status_code=500,
            content={"error": "Failed to load AI configuration", "message": e.message, "traceId": trace_id},
        )
    except asyncio.TimeoutError:
        logger.error(f"Recipe wizard AI request timed out [{trace_id}]")
        return JSONResponse(
            status_code=408,
            content={
                "error": "Request timeout",
                "message": "AI analysis took too long. Please try again.",
                "traceId": trace_id,
                "duration_ms": _elapsed_ms(started),
            },
        )
    except Exception as e:
        logger.exception(f"Recipe wizard AI request failed [{trace_id}]")
        return JSONResponse(
            status_code=500,
            content={
                "error": "Recipe Wizard AI analysis failed",
                "message": str(e) or "Unknown error",
                "traceId": trace_id,
                "duration_ms": _elapsed_ms(started),
            },
        )

    total_ms = _elapsed_ms(started)
    logger.info(f"Recipe wizard returned {len(causes)} causes in {total_ms}ms [{trace_id}]")

    return {
        "success": True,
        "data": causes,
        "meta": {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "count": len(causes),
            "service": SERVICE_NAME,
            "traceId": trace_id,
            "performance": {
                "total_duration_ms": total_ms,
                "ai_execution_ms": ai_ms,
            },
        },
    }


@router.get("/recipe-wizard")
async def recipe_wizard_health():
    return {
        "status": "healthy",
        "service": "Recipe Wizard AI API",
        "version": "1.0.0",
        "configured": bool(settings.openai_api_key),
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
