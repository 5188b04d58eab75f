"""Inbound commerce event ingestion."""

import logging

from fastapi import APIRouter, Depends

from api.schemas.events import EventIngestRequest, IngestResponse
from app.dependencies import get_runtime
from app.runtime import AutomationRuntime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["events"])


@router.post("/events", response_model=IngestResponse)
async def ingest_event(
    body: EventIngestRequest,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> IngestResponse:
    """
    Ingest one upstream notification inline.

    Rejected events (unknown store, malformed payload) come back with
    ``success: false``; they are dropped, not retried.
    """
    result = await runtime.trigger_manager.ingest(
        body.topic,
        body.shop_domain,
        body.payload,
        event_key=body.event_id,
    )
    return IngestResponse(**result.to_dict())
