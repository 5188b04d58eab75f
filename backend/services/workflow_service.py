"""Read access to workflow definitions plus run-statistics bookkeeping."""

from datetime import datetime
from typing import Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ExecutionStatus
from db.models.workflow import Workflow
from services.base import BaseService


class WorkflowService(BaseService[Workflow]):
    def __init__(self, db: AsyncSession):
        super().__init__(Workflow, db)

    async def list_active(self, store_id: str, trigger_type: str) -> Sequence[Workflow]:
        """Active definitions of a store listening for ``trigger_type``."""
        result = await self.db.execute(
            select(Workflow).where(
                Workflow.store_id == store_id,
                Workflow.trigger_type == trigger_type,
                Workflow.is_active.is_(True),
            )
        )
        return result.scalars().all()

    async def exists(self, workflow_id: str) -> bool:
        result = await self.db.execute(select(Workflow.id).where(Workflow.id == workflow_id))
        return result.scalar_one_or_none() is not None

    async def record_started(self, workflow_id: str, at: datetime) -> None:
        await self.db.execute(
            update(Workflow)
            .where(Workflow.id == workflow_id)
            .values(
                total_executions=Workflow.total_executions + 1,
                last_executed_at=at,
            )
        )

    async def record_finished(self, workflow_id: str, status: ExecutionStatus) -> None:
        """Bump the success or failure counter for a terminal execution."""
        if status == ExecutionStatus.COMPLETED:
            values = {"successful_executions": Workflow.successful_executions + 1}
        elif status == ExecutionStatus.FAILED:
            values = {"failed_executions": Workflow.failed_executions + 1}
        else:
            return
        await self.db.execute(update(Workflow).where(Workflow.id == workflow_id).values(**values))

    async def get_stats(self, workflow_id: str) -> Optional[dict]:
        workflow = await self.get_by_id(workflow_id)
        if workflow is None:
            return None
        finished = workflow.successful_executions + workflow.failed_executions
        return {
            "total_executions": workflow.total_executions,
            "successful_executions": workflow.successful_executions,
            "failed_executions": workflow.failed_executions,
            "success_rate": (workflow.successful_executions / finished) if finished else None,
            "last_executed_at": workflow.last_executed_at,
        }
