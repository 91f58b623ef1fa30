# sync.py is a FastAPI router that handles manual sync requests.

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status

from classifier import requests_for_branch
from config import Settings
from dependencies import get_pipeline, get_settings, get_sync_api_key
from models.sync_request import ManualSyncRequest, SyncRequest
from pipeline import DispatchPipeline

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post("/sync", summary="Manual Sync Endpoint", status_code=status.HTTP_202_ACCEPTED)
async def manual_sync(
        sync_request: ManualSyncRequest,
        api_key: str = Depends(get_sync_api_key),
        settings: Settings = Depends(get_settings),
        pipeline: DispatchPipeline = Depends(get_pipeline),
):
    delivery_id = f"manual-{uuid.uuid4()}"
    revision = sync_request.revision or ""

    if sync_request.application:
        if sync_request.application not in settings.applications():
            message = f"Application '{sync_request.application}' is not configured for sync."
            logger.warning(message)
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)
        requests = [SyncRequest(application=sync_request.application, revision=revision, delivery_id=delivery_id)]
    else:
        requests = requests_for_branch(
            sync_request.repository,
            sync_request.branch,
            settings.repo_sync_map,
            revision=revision,
            delivery_id=delivery_id,
        )
        if not requests:
            message = (
                f"No application is configured for repository '{sync_request.repository}' "
                f"on branch '{sync_request.branch}'."
            )
            logger.warning(message)
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=message)

    logger.info(f"Manual sync requested for {[r.application for r in requests]} (delivery {delivery_id}).")
    decisions = [pipeline.gate(r) for r in requests]
    return {
        "delivery_id": delivery_id,
        "results": [
            {"application": d.request.application, "decision": d.verdict.value}
            for d in decisions
        ],
    }
