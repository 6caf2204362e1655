"""API endpoints proxying the recipe wizard to the external recipe webhook."""

import logging
import time
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from aromachat.config import settings
from create_recipe.errors import ProxyError, RequestValidationError
from create_recipe.proxy import WebhookConfig, WebhookProxy
from create_recipe.webhook import RetryPolicy

logger = logging.getLogger(__name__)

router = APIRouter(tags=["create-recipe"])

_proxy: WebhookProxy | None = None


def get_webhook_proxy() -> WebhookProxy:
    """Shared proxy built from settings on first use."""
    global _proxy
    if _proxy is None:
        _proxy = WebhookProxy(
            WebhookConfig(
                api_key=settings.create_recipe_apikey,
                base_url=settings.create_recipe_base_url,
                timeout=settings.api_timeout_seconds,
                retry=RetryPolicy(
                    max_attempts=settings.api_max_attempts,
                    base_delay=settings.api_retry_delay_seconds,
                    multiplier=settings.api_backoff_multiplier,
                ),
            )
        )
    return _proxy


async def close_webhook_proxy() -> None:
    global _proxy
    if _proxy is not None:
        await _proxy.aclose()
        _proxy = None


def error_envelope(status: int, error: str, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status,
        content={
            "error": error,
            "message": message,
            "status": status,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        },
    )


async def proxy_error_handler(request: Request, exc: ProxyError) -> JSONResponse:
    """Render ProxyError subclasses as the error envelope."""
    logger.error(f"Recipe API request failed ({request.url.path}): {exc.detail}")
    return error_envelope(exc.status_code, exc.error, exc.message)


# =============================================================================
# Routes
# =============================================================================


@router.post("/create-recipe")
async def create_recipe(request: Request, proxy: WebhookProxy = Depends(get_webhook_proxy)):
    """Validate, forward to the webhook, and return its body unchanged."""
    started = time.perf_counter()

    try:
        body = await request.json()
    except ValueError as e:
        proxy.require_configured()
        raise RequestValidationError("Invalid request body: malformed JSON") from e

    try:
        payload = await proxy.handle(body)
    except ProxyError:
        raise
    except Exception as e:
        logger.exception("Unexpected error in create-recipe proxy")
        raise ProxyError(str(e)) from e

    duration_ms = int((time.perf_counter() - started) * 1000)
    logger.info(f"Recipe API request completed: step={body.get('step')} in {duration_ms}ms")

    return JSONResponse(
        content=payload,
        headers={
            "Cache-Control": "no-cache, no-store, must-revalidate",
            "X-Response-Time": f"{duration_ms}ms",
        },
    )


@router.get("/create-recipe")
async def create_recipe_health(proxy: WebhookProxy = Depends(get_webhook_proxy)):
    """Health and configuration report. The API key itself is never included."""
    return proxy.health_report()
