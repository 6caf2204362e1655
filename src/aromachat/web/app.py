"""
AromaChat API - FastAPI application.

Serves the recipe wizard's server side:
- /api/create-recipe   proxy to the external recipe webhook
- /api/recipe-wizard   LLM-backed potential causes analysis
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from aromachat import __version__
from aromachat.config import settings
from aromachat.llm.prompt_logger import get_logging_status
from aromachat.web.create_recipe_routes import (
    close_webhook_proxy,
    proxy_error_handler,
    router as create_recipe_router,
)
from aromachat.web.recipe_wizard_routes import router as recipe_wizard_router
from create_recipe.errors import ProxyError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    status = get_logging_status()
    logger.info(
        f"AromaChat API {__version__} starting: env={settings.aromachat_env} "
        f"prompt_logging={status['file_logging']} ({status['log_dir']})"
    )
    if not settings.create_recipe_apikey or not settings.create_recipe_base_url:
        logger.warning("Recipe webhook not configured, /api/create-recipe will return 503")
    yield
    await close_webhook_proxy()


app = FastAPI(title="AromaChat", version=__version__, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST"],
    allow_headers=["*"],
)

app.add_exception_handler(ProxyError, proxy_error_handler)

app.include_router(create_recipe_router, prefix="/api")
app.include_router(recipe_wizard_router, prefix="/api")


@app.get("/health")
async def health_check():
    """Liveness check."""
    return {"status": "healthy", "version": __version__, "service": "aromachat"}
