"""Periodic scheduler tasks (driven by Celery beat).

- resume_due_executions: every RESUME_POLL_INTERVAL_SECONDS, resumes
  waiting executions whose resume time has passed
- recover_stale_executions: every 5 minutes, hands executions abandoned
  by a dead worker back to the resume sweep

Both are safe to run on several workers at once: executions are claimed
with compare-and-set updates.
"""

import logging

from worker.celery_app import celery_app
from worker.runtime import run_with_runtime

logger = logging.getLogger(__name__)


@celery_app.task(
    name="worker.tasks.scheduler.resume_due_executions",
    queue="scheduler",
)
def resume_due_executions() -> dict:
    """Resume every due waiting execution."""

    async def _resume(runtime):
        return await runtime.scheduler.resume_due()

    resumed = run_with_runtime(_resume)
    if resumed:
        logger.info(f"Resumed {len(resumed)} execution(s)")
    return {"resumed": len(resumed)}


@celery_app.task(
    name="worker.tasks.scheduler.recover_stale_executions",
    queue="scheduler",
)
def recover_stale_executions() -> dict:
    """Park stale pending/running executions for the next resume sweep."""

    async def _recover(runtime):
        return await runtime.recovery.recover_stale()

    recovered = run_with_runtime(_recover)
    return {"recovered": len(recovered)}
