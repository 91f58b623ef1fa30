# dependencies.py

import hmac
import logging

from fastapi import Depends, Header, HTTPException, Request, status

from config import Settings
from pipeline import DispatchPipeline

logger = logging.getLogger(__name__)


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_pipeline(request: Request) -> DispatchPipeline:
    return request.app.state.pipeline


def get_sync_api_key(
        api_key: str = Header(..., alias="X-API-Key"),
        settings: Settings = Depends(get_settings),
):
    if not settings.sync_api_key:
        logger.warning("API key endpoints called but sync_api_key is not configured.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API Key")
    if not hmac.compare_digest(api_key.encode(), settings.sync_api_key.encode()):
        logger.warning("Invalid API Key for manual sync or status.")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid API Key")
    return api_key
