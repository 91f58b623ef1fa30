# main.py

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from config import Settings, load_config
from logging_config import setup_logging
from pipeline import DispatchPipeline

# Routers
from routers.health import router as health_router
from routers.status import router as status_router
from routers.sync import router as sync_router
from routers.webhook import create_router as create_webhook_router

logger = logging.getLogger(__name__)


def create_app(settings: Optional[Settings] = None, pipeline: Optional[DispatchPipeline] = None) -> FastAPI:
    """
    Build the application. With no arguments the configuration is read from CONFIG_PATH,
    so `uvicorn main:create_app --factory` works out of the box.
    """
    if settings is None:
        settings = load_config()
        setup_logging(settings.debug, settings.log_db_path)
    pipeline = pipeline or DispatchPipeline(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Starting the SyncHookX application...")
        await pipeline.start()
        try:
            yield
        finally:
            await pipeline.shutdown()

    app = FastAPI(
        title="SyncHookX",
        description="Git push webhook to ArgoCD sync trigger dispatcher",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.pipeline = pipeline

    app.include_router(health_router)
    app.include_router(status_router)
    app.include_router(sync_router)
    app.include_router(create_webhook_router(settings.webhook_path))
    return app
