"""Celery task for batch campaign sends.

Each campaign runs as its own task, so independent campaigns and
workflow executions proceed in parallel across workers.
"""

import logging

from worker.celery_app import celery_app
from worker.runtime import run_with_runtime

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.campaigns.send_campaign",
    acks_late=True,
    queue="campaigns",
    soft_time_limit=3600,
    time_limit=3900,
)
def send_campaign(campaign_id: str) -> dict:
    """Send one campaign in paced batches."""
    logger.info(f"Sending campaign {campaign_id}")

    async def _send(runtime):
        result = await runtime.campaigns.send_campaign(campaign_id)
        return result.to_dict()

    return run_with_runtime(_send)
