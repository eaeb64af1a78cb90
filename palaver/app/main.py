"""
Palaver - conversational bot platform

FastAPI application entry point. Bots are installed on startup: register
bot providers on `get_bot_repository()` before the application starts.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from palaver import __version__
from palaver.admin.api import router as admin_router
from palaver.app.dependencies import get_settings, initialize_services, shutdown_services

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Installs the bots on startup, closes clients on shutdown.
    """
    logger.info("Starting Palaver services...")
    try:
        await initialize_services(app)
        logger.info("Palaver services initialized successfully")
    except Exception as e:
        logger.error(f"Failed to initialize services: {e}", exc_info=True)
        raise

    yield

    logger.info("Shutting down Palaver services...")
    try:
        await shutdown_services()
        logger.info("Palaver services shut down successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}", exc_info=True)


settings = get_settings()

app = FastAPI(
    title="Palaver",
    description="Conversational bot platform - connectors, stories and admin",
    version=__version__,
    lifespan=lifespan,
    debug=settings.debug,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(admin_router)


@app.get("/", tags=["root"])
async def root() -> dict[str, Any]:
    """Root endpoint with service info."""
    from palaver.app.dependencies import get_bot_repository

    repository = get_bot_repository()
    return {
        "service": settings.service_name,
        "version": __version__,
        "bots": [bot.bot_id for bot in repository.bots],
        "connectors": len(repository.router.controllers),
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "palaver.app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
