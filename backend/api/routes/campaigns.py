"""Batch campaign endpoints."""

from fastapi import APIRouter, Depends

from api.schemas.execution import CampaignSendResponse
from app.dependencies import get_runtime
from app.runtime import AutomationRuntime

router = APIRouter(tags=["campaigns"])


@router.post("/{campaign_id}/send", response_model=CampaignSendResponse)
async def send_campaign(
    campaign_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> CampaignSendResponse:
    """Send a draft campaign inline. Large audiences belong on the worker."""
    result = await runtime.campaigns.send_campaign(campaign_id)
    return CampaignSendResponse(**result.to_dict())
