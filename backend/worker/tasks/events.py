"""Celery task for upstream event ingestion.

Same work as ``POST /api/v1/events``, off the request path. Rejected
events (unknown store, malformed payload) finish successfully with
``success: false``; only infrastructure failures are retried.
"""

import logging
from typing import Any, Optional

from sqlalchemy.exc import OperationalError

from worker.celery_app import celery_app
from worker.runtime import run_with_runtime

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.events.process_event",
    bind=True,
    max_retries=3,
    default_retry_delay=30,
    acks_late=True,
    queue="events",
)
def process_event(
    self,
    topic: str,
    shop_domain: str,
    payload: Any,
    event_id: Optional[str] = None,
) -> dict:
    """Normalize, match and start workflows for one notification."""

    async def _ingest(runtime):
        result = await runtime.trigger_manager.ingest(topic, shop_domain, payload, event_key=event_id)
        return result.to_dict()

    try:
        result = run_with_runtime(_ingest)
    except OperationalError as exc:
        logger.warning(f"Event {topic} for {shop_domain} hit a database error, retrying: {exc}")
        raise self.retry(exc=exc)

    logger.info(
        f"Event {topic} for {shop_domain}: processed={result['processed']} "
        f"duplicate={result['duplicate']} executions={len(result['execution_ids'])}"
    )
    return result
