"""
Publisher Intake — inbound publisher email → structured offers.

App factory: logging, routers, and the shared httpx client's lifecycle.
Run with: uvicorn publisher_intake.main:app
"""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from loguru import logger

from . import __version__
from .config import settings
from .http_client import close_clients
from .logging_config import setup_logging
from .routers import review_queue, webhooks

setup_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(
        "Publisher intake {} starting (env={}, strategy={}, match_policy={})",
        __version__,
        settings.environment,
        settings.extraction_strategy,
        settings.publisher_match_policy,
    )
    if not settings.openai_api_key:
        logger.warning("OPENAI_API_KEY is not set — extraction will fail")
    yield
    await close_clients()
    logger.info("Publisher intake stopped")


app = FastAPI(title="Publisher Intake", version=__version__, lifespan=lifespan)
app.include_router(webhooks.router)
app.include_router(review_queue.router)


@app.get("/health")
async def health():
    return {"status": "ok", "version": __version__}
