# routers/webhook.py

import json
import logging
import uuid
from urllib.parse import parse_qs

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from dependencies import get_pipeline
from models.github_webhook import MalformedPayload, event_from_payload
from pipeline import DispatchPipeline

logger = logging.getLogger(__name__)


def decode_payload(body_bytes: bytes, content_type: str):
    """
    Decode a GitHub delivery body. JSON and form-encoded (`payload=<json>`) bodies are supported.

    Raises:
        MalformedPayload: if the body cannot be decoded.
    """
    try:
        text = body_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayload(f"Body is not UTF-8: {e}") from e

    if "application/x-www-form-urlencoded" in content_type:
        form_data = parse_qs(text)
        if "payload" not in form_data:
            raise MalformedPayload("No payload parameter in form data")
        text = form_data["payload"][0]

    try:
        return json.loads(text)
    except (ValueError, RecursionError) as e:
        raise MalformedPayload(f"Could not decode JSON payload: {e}") from e


def create_router(path: str = "/webhook") -> APIRouter:
    router = APIRouter()

    @router.post(path, summary="GitHub Webhook Endpoint")
    async def handle_webhook(
            request: Request,
            x_hub_signature_256: str = Header(None),
            x_hub_signature: str = Header(None),
            x_github_event: str = Header(None),
            x_github_delivery: str = Header(None),
            pipeline: DispatchPipeline = Depends(get_pipeline),
    ):
        body_bytes = await request.body()
        delivery_id = x_github_delivery or str(uuid.uuid4())
        logger.info(f"Webhook delivery {delivery_id} received ({len(body_bytes)} bytes).")

        # Only an unreadable body is reported back to the sender. Everything else is handled
        # after this response is prepared, so a bad signature looks the same as a skipped push.
        try:
            payload = decode_payload(body_bytes, request.headers.get("Content-Type", ""))
            event = event_from_payload(
                payload,
                body=body_bytes,
                event_type=x_github_event,
                delivery_id=delivery_id,
                signature=x_hub_signature_256 or x_hub_signature,
            )
        except MalformedPayload as e:
            logger.error(f"Malformed payload in delivery {delivery_id}: {e}")
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Invalid JSON payload"
            )

        pipeline.submit(event)
        return {"message": "Delivery received.", "delivery_id": delivery_id}

    return router
