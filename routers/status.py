# routers/status.py

from fastapi import APIRouter, Depends, Query
import logging

from dependencies import get_pipeline, get_sync_api_key
from pipeline import DispatchPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/status", summary="Recent delivery outcomes and debounce state")
def dispatcher_status(
        limit: int = Query(50, ge=1, le=1000),
        api_key: str = Depends(get_sync_api_key),
        pipeline: DispatchPipeline = Depends(get_pipeline),
):
    """
    Returns outcome counters since startup, the most recent journey records (newest last)
    and the current debounce window, e.g.

    {
      "counts": {"succeeded": 3, "superseded": 1, ...},
      "recent": [{"delivery_id": "...", "outcome": "succeeded", "application": "web-prod", ...}],
      "window": {"web-prod": {"seconds_since_admit": 12.5, "pending_revision": null}}
    }
    """
    return {
        "counts": pipeline.event_log.counts(),
        "recent": [r.model_dump(mode="json") for r in pipeline.event_log.recent(limit)],
        "window": pipeline.window.snapshot(),
    }
