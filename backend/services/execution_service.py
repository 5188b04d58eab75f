"""Durable storage for workflow executions.

Status changes that hand an execution to a worker go through
compare-and-set updates (``claim``) so two processes polling the same
table can never both pick up one execution.
"""

from datetime import datetime
from typing import Any, Iterable, Optional, Sequence

from sqlalchemy import or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.constants import ExecutionStatus
from db.models.execution import WorkflowExecution
from services.base import BaseService


class ExecutionService(BaseService[WorkflowExecution]):
    def __init__(self, db: AsyncSession):
        super().__init__(WorkflowExecution, db)

    async def get_for_update(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Load an execution under a row lock (no-op on SQLite)."""
        result = await self.db.execute(
            select(WorkflowExecution)
            .where(WorkflowExecution.id == execution_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_by_idempotency_key(self, key: str) -> Optional[WorkflowExecution]:
        result = await self.db.execute(
            select(WorkflowExecution).where(WorkflowExecution.idempotency_key == key)
        )
        return result.scalar_one_or_none()

    async def create_if_absent(self, data: dict[str, Any]) -> Optional[WorkflowExecution]:
        """Insert a new execution unless its idempotency key is taken.

        Returns None for a duplicate.
        """
        if await self.get_by_idempotency_key(data["idempotency_key"]) is not None:
            return None
        try:
            async with self.db.begin_nested():
                execution = WorkflowExecution(**data)
                self.db.add(execution)
        except IntegrityError:
            return None
        return execution

    async def claim(
        self,
        execution_id: str,
        from_statuses: Iterable[ExecutionStatus],
        to_status: ExecutionStatus,
        **values,
    ) -> bool:
        """Atomically move an execution between statuses. True if this caller won."""
        result = await self.db.execute(
            update(WorkflowExecution)
            .where(
                WorkflowExecution.id == execution_id,
                WorkflowExecution.status.in_([s.value for s in from_statuses]),
            )
            .values(status=to_status.value, **values)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def due_for_resume(self, now: datetime, limit: int = 100) -> Sequence[str]:
        """Ids of waiting executions whose resume time has passed, oldest first."""
        result = await self.db.execute(
            select(WorkflowExecution.id)
            .where(
                WorkflowExecution.status == ExecutionStatus.WAITING.value,
                WorkflowExecution.resume_at <= now,
            )
            .order_by(WorkflowExecution.resume_at)
            .limit(limit)
        )
        return result.scalars().all()

    async def stale(self, older_than: datetime, limit: int = 100) -> Sequence[str]:
        """Pending/running executions with no step activity since ``older_than``."""
        result = await self.db.execute(
            select(WorkflowExecution.id)
            .where(
                WorkflowExecution.status.in_(
                    [ExecutionStatus.PENDING.value, ExecutionStatus.RUNNING.value]
                ),
                or_(
                    WorkflowExecution.last_step_at < older_than,
                    (WorkflowExecution.last_step_at.is_(None))
                    & (WorkflowExecution.created_at < older_than),
                ),
            )
            .limit(limit)
        )
        return result.scalars().all()

    async def list_for_workflow(
        self, workflow_id: str, limit: int = 50
    ) -> Sequence[WorkflowExecution]:
        result = await self.db.execute(
            select(WorkflowExecution)
            .where(WorkflowExecution.workflow_id == workflow_id)
            .order_by(WorkflowExecution.created_at.desc())
            .limit(limit)
        )
        return result.scalars().all()
