"""Recovery of executions interrupted mid-step.

A worker that dies between claiming an execution and committing its step
leaves it ``pending`` or ``running`` with an old ``last_step_at``. The
recovery sweep parks such executions as ``waiting`` and due now, so the
regular resume sweep re-runs the interrupted step. Delivery is therefore
at-least-once for that one step.
"""

from datetime import timedelta
from typing import Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core.constants import ExecutionStatus
from core.utils import utc_now_naive
from services.execution_service import ExecutionService

logger = structlog.get_logger(__name__)


class RecoveryService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        stale_after_minutes: int = 10,
        clock: Callable = utc_now_naive,
    ):
        self._session_factory = session_factory
        self._stale_after = timedelta(minutes=stale_after_minutes)
        self._clock = clock

    async def recover_stale(self, older_than: Optional[timedelta] = None, limit: int = 500) -> list[str]:
        """Hand stale executions back to the resume sweep. Returns their ids."""
        now = self._clock()
        cutoff = now - (older_than if older_than is not None else self._stale_after)
        recovered = []
        async with self._session_factory() as session:
            executions = ExecutionService(session)
            for execution_id in await executions.stale(cutoff, limit):
                won = await executions.claim(
                    execution_id,
                    [ExecutionStatus.PENDING, ExecutionStatus.RUNNING],
                    ExecutionStatus.WAITING,
                    resume_at=now,
                    last_step_at=now,
                )
                if won:
                    recovered.append(execution_id)
            await session.commit()

        if recovered:
            logger.warning("Recovered stale executions", count=len(recovered), cutoff=cutoff.isoformat())
        return recovered
