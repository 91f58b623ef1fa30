# routers/health.py

from fastapi import APIRouter, Depends
import logging

from dependencies import get_pipeline
from pipeline import DispatchPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/health", summary="Health Check Endpoint")
def health_check(pipeline: DispatchPipeline = Depends(get_pipeline)):
    logger.debug("Health check endpoint was called.")
    return {"status": "OK", "tracked_applications": len(pipeline.settings.applications())}
