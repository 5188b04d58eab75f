"""Execution scheduler: durable, step-at-a-time workflow runner.

An execution walks its workflow's actions in order:

    pending -> running -> (waiting <-> running)* -> completed | failed | cancelled

Each step loads the execution, attempts at most one action and persists
the outcome before the next step starts, so a crash loses at most the
step in flight. Delays never sleep: the execution is parked as
``waiting`` with a ``resume_at`` and the periodic ``resume_due`` sweep
picks it up again.

A step runs under three guards held only for its duration:
- a keyed in-process asyncio lock on the execution id
- ``SELECT ... FOR UPDATE`` on the execution row
- compare-and-set status claims for pending->running and waiting->running,
  so two pollers never both resume one execution

Action failures are recorded and the run continues with the next action.
``failed`` is reserved for execution-level faults: the workflow row has
vanished, the snapshot cannot be parsed, or the step itself crashed.
"""

import asyncio
from datetime import timedelta
from typing import Callable, Iterable, Optional
from uuid import uuid4

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from core import metrics
from core.constants import ActionType, ExecutionStatus, StepOutcome
from core.exceptions import ExecutionNotFoundError, ValidationError, WorkflowNotFoundError
from core.logging_config import log_context
from core.utils import stable_hash, utc_now_naive
from db.models.contact import Contact
from db.models.execution import WorkflowExecution
from db.models.store import Store
from executors.base import STATUS_SUCCESS, ActionContext, ActionResult
from executors.registry import ActionExecutorRegistry
from services.execution_service import ExecutionService
from services.workflow_service import WorkflowService
from triggers.base import TriggerEvent
from workflow.actions import DelayAction, WorkflowDefinition
from workflow.exit_conditions import first_met
from workflow.locks import KeyedLock
from workflow.quiet_hours import QuietWindow

logger = structlog.get_logger(__name__)


def compute_idempotency_key(workflow_id: str, contact_id: Optional[str], event_id: str) -> str:
    """One execution per (workflow, contact, trigger event)."""
    return stable_hash(workflow_id, contact_id or "", event_id)


class ExecutionScheduler:
    """Creates, advances, suspends and resumes workflow executions."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        executors: ActionExecutorRegistry,
        settings: Optional[Settings] = None,
        clock: Callable = utc_now_naive,
        locks: Optional[KeyedLock] = None,
        concurrency: Optional[int] = None,
    ):
        self._session_factory = session_factory
        self._executors = executors
        self._settings = settings or get_settings()
        self._clock = clock
        self._locks = locks or KeyedLock()
        self._concurrency = concurrency or self._settings.EXECUTION_CONCURRENCY

    # ─── Creation ───────────────────────────────────────────────

    async def start(
        self,
        workflow: WorkflowDefinition,
        event: TriggerEvent,
        contact: Optional[Contact] = None,
    ) -> Optional[str]:
        """Create and claim an execution. Returns its id, or None for a duplicate."""
        contact_id = contact.id if contact is not None else None
        key = compute_idempotency_key(workflow.id, contact_id, event.id)
        now = self._clock()

        async with self._session_factory() as session:
            executions = ExecutionService(session)
            execution = await executions.create_if_absent(
                {
                    "store_id": workflow.store_id,
                    "workflow_id": workflow.id,
                    "contact_id": contact_id,
                    "idempotency_key": key,
                    "trigger_event": event.to_dict(),
                    "workflow_snapshot": workflow.to_dict(),
                    "status": ExecutionStatus.PENDING.value,
                    "current_action_index": 0,
                    "action_results": [],
                    "errors": [],
                }
            )
            if execution is None:
                logger.info(
                    "Execution already exists",
                    workflow_id=workflow.id,
                    contact_id=contact_id,
                    event_id=event.id,
                )
                return None

            claimed = await executions.claim(
                execution.id,
                [ExecutionStatus.PENDING],
                ExecutionStatus.RUNNING,
                started_at=now,
                last_step_at=now,
            )
            if claimed:
                await WorkflowService(session).record_started(workflow.id, now)
            await session.commit()

        metrics.inc(metrics.EXECUTIONS_STARTED, labels={"trigger_type": workflow.trigger_type.value})
        logger.info(
            "Execution started",
            execution_id=execution.id,
            workflow_id=workflow.id,
            contact_id=contact_id,
            event_id=event.id,
        )
        return execution.id

    async def start_many(
        self,
        workflows: Iterable[WorkflowDefinition],
        event: TriggerEvent,
        contact: Optional[Contact] = None,
    ) -> list[str]:
        """Start one execution per workflow concurrently; duplicates are dropped."""
        started = await asyncio.gather(*(self.start(w, event, contact) for w in workflows))
        return [execution_id for execution_id in started if execution_id]

    async def execute_workflow_by_id(
        self,
        workflow_id: str,
        event: Optional[TriggerEvent] = None,
        contact: Optional[Contact] = None,
        data: Optional[dict] = None,
    ) -> Optional[str]:
        """Manual start that bypasses matching, then runs until parked or done.

        Without an ``event`` a manual one is built from ``data`` with a fresh
        id, so every manual call starts a new execution.

        Raises:
            WorkflowNotFoundError: no such workflow.
        """
        async with self._session_factory() as session:
            row = await WorkflowService(session).get_by_id(workflow_id)
            if row is None:
                raise WorkflowNotFoundError(workflow_id)
            workflow = WorkflowDefinition.from_model(row)

        if event is None:
            event = TriggerEvent(
                id=str(uuid4()),
                type=workflow.trigger_type,
                store_id=workflow.store_id,
                data=data or {},
                timestamp=self._clock(),
                topic="manual",
            )
        execution_id = await self.start(workflow, event, contact)
        if execution_id:
            await self.run(execution_id)
        return execution_id

    # ─── Stepping ───────────────────────────────────────────────

    async def run(self, execution_id: str) -> StepOutcome:
        """Advance until the execution is waiting, terminal or not runnable."""
        while True:
            outcome = await self.advance(execution_id)
            if outcome != StepOutcome.CONTINUE:
                return outcome

    async def advance(self, execution_id: str) -> StepOutcome:
        """Run exactly one step of a running execution."""
        async with self._locks.hold(execution_id):
            with log_context(execution_id=execution_id):
                try:
                    return await self._step(execution_id)
                except ExecutionNotFoundError:
                    raise
                except Exception as e:
                    logger.exception("Execution step crashed", error=str(e))
                    await self._fail(execution_id, f"{type(e).__name__}: {e}")
                    return StepOutcome.FINISHED

    async def _step(self, execution_id: str) -> StepOutcome:
        async with self._session_factory() as session:
            execution = await ExecutionService(session).get_for_update(execution_id)
            if execution is None:
                raise ExecutionNotFoundError(execution_id)
            if execution.status != ExecutionStatus.RUNNING.value:
                return StepOutcome.IDLE

            now = self._clock()
            try:
                workflow = WorkflowDefinition.from_dict(execution.workflow_snapshot)
            except (ValidationError, KeyError, TypeError) as e:
                return await self._finish(
                    session, execution, ExecutionStatus.FAILED, now, error=f"Corrupt workflow snapshot: {e}"
                )
            if not await WorkflowService(session).exists(execution.workflow_id):
                return await self._finish(
                    session,
                    execution,
                    ExecutionStatus.FAILED,
                    now,
                    error=f"Workflow {execution.workflow_id} no longer exists",
                )

            index = execution.current_action_index
            if index >= len(workflow.actions):
                return await self._finish(session, execution, ExecutionStatus.COMPLETED, now)

            contact = None
            if execution.contact_id:
                contact = await session.get(Contact, execution.contact_id, populate_existing=True)

            reason = first_met(workflow.trigger_config.exit_conditions, contact, execution.started_at)
            if reason:
                return await self._finish(
                    session, execution, ExecutionStatus.CANCELLED, now, reason=f"exit_condition:{reason}"
                )

            action = workflow.actions[index]

            if isinstance(action, DelayAction):
                resume_at = now + timedelta(minutes=action.duration_minutes)
                result = ActionResult(
                    action_id=action.id,
                    action_type=ActionType.DELAY,
                    status=STATUS_SUCCESS,
                    executed_at=now,
                    output={
                        "duration_minutes": action.duration_minutes,
                        "resume_at": resume_at.isoformat(),
                    },
                )
                execution.action_results = [*execution.action_results, result.to_dict()]
                execution.current_action_index = index + 1
                if action.duration_minutes <= 0:
                    execution.last_step_at = now
                    await session.commit()
                    return StepOutcome.CONTINUE
                return await self._suspend(session, execution, resume_at, now, "delay")

            if action.delay > 0 and execution.delay_served_index != index:
                execution.delay_served_index = index
                return await self._suspend(
                    session, execution, now + timedelta(minutes=action.delay), now, "pre_delay"
                )

            if workflow.trigger_config.respect_quiet_hours:
                store = await session.get(Store, execution.store_id)
                window = QuietWindow.for_store(
                    store,
                    self._settings.DEFAULT_QUIET_HOURS_START,
                    self._settings.DEFAULT_QUIET_HOURS_END,
                )
                if window.contains(now):
                    return await self._suspend(session, execution, window.window_end(now), now, "quiet_hours")

            ctx = ActionContext(
                session=session,
                execution_id=execution.id,
                workflow_id=execution.workflow_id,
                store_id=execution.store_id,
                contact=contact,
                trigger_data=(execution.trigger_event or {}).get("data") or {},
                now=now,
            )
            result = await self._executors.execute(action, ctx)

            # JSON columns only persist on reassignment.
            execution.action_results = [*execution.action_results, result.to_dict()]
            if result.failed:
                execution.errors = [
                    *execution.errors,
                    {
                        "action_id": action.id,
                        "action_type": action.type.value,
                        "error": result.error,
                        "error_type": result.error_type,
                        "at": now.isoformat(),
                    },
                ]
            execution.current_action_index = index + 1
            execution.last_step_at = now
            await session.commit()
            return StepOutcome.CONTINUE

    async def _suspend(self, session, execution: WorkflowExecution, resume_at, now, reason: str) -> StepOutcome:
        execution.status = ExecutionStatus.WAITING.value
        execution.resume_at = resume_at
        execution.last_step_at = now
        await session.commit()
        logger.info(
            "Execution waiting",
            reason=reason,
            resume_at=resume_at.isoformat(),
            action_index=execution.current_action_index,
        )
        return StepOutcome.WAITING

    async def _finish(
        self,
        session,
        execution: WorkflowExecution,
        status: ExecutionStatus,
        now,
        error: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> StepOutcome:
        execution.status = status.value
        execution.completed_at = now
        execution.last_step_at = now
        execution.resume_at = None
        if reason:
            execution.cancel_reason = reason
        if error:
            execution.errors = [
                *(execution.errors or []),
                {"action_id": None, "error": error, "error_type": "ExecutionError", "at": now.isoformat()},
            ]
        await WorkflowService(session).record_finished(execution.workflow_id, status)
        await session.commit()

        metrics.inc(metrics.EXECUTIONS_FINISHED, labels={"status": status.value})
        if status == ExecutionStatus.FAILED:
            metrics.inc(metrics.EXECUTION_FAILURES)
            logger.error("Execution failed", workflow_id=execution.workflow_id, error=error)
        else:
            logger.info(
                "Execution finished",
                workflow_id=execution.workflow_id,
                status=status.value,
                reason=reason,
                errors=len(execution.errors or []),
            )
        return StepOutcome.FINISHED

    async def _fail(self, execution_id: str, error: str) -> None:
        """Mark an execution failed from a clean session after a crashed step."""
        async with self._session_factory() as session:
            execution = await ExecutionService(session).get_for_update(execution_id)
            if execution is None or ExecutionStatus(execution.status).is_terminal:
                return
            await self._finish(session, execution, ExecutionStatus.FAILED, self._clock(), error=error)

    # ─── Resumption & control ───────────────────────────────────

    async def resume_due(self, now=None, limit: Optional[int] = None) -> list[str]:
        """Claim every waiting execution whose resume time has passed and run it.

        Returns the ids this caller claimed.
        """
        now = now or self._clock()
        limit = limit or self._settings.RESUME_BATCH_LIMIT

        async with self._session_factory() as session:
            executions = ExecutionService(session)
            due = await executions.due_for_resume(now, limit)
            claimed = []
            for execution_id in due:
                won = await executions.claim(
                    execution_id,
                    [ExecutionStatus.WAITING],
                    ExecutionStatus.RUNNING,
                    resume_at=None,
                    last_step_at=now,
                )
                if won:
                    claimed.append(execution_id)
            await session.commit()

        if not claimed:
            return []
        logger.info("Resuming executions", count=len(claimed), due=len(due))

        semaphore = asyncio.Semaphore(self._concurrency)

        async def _resume(execution_id: str) -> None:
            async with semaphore:
                try:
                    await self.run(execution_id)
                except ExecutionNotFoundError:
                    logger.warning("Claimed execution vanished before resume", execution_id=execution_id)

        await asyncio.gather(*(_resume(execution_id) for execution_id in claimed))
        return claimed

    async def cancel(self, execution_id: str, reason: str = "cancelled") -> bool:
        """Cancel a non-terminal execution. False if it had already finished.

        Raises:
            ExecutionNotFoundError: no such execution.
        """
        async with self._locks.hold(execution_id):
            async with self._session_factory() as session:
                execution = await ExecutionService(session).get_for_update(execution_id)
                if execution is None:
                    raise ExecutionNotFoundError(execution_id)
                if ExecutionStatus(execution.status).is_terminal:
                    return False
                await self._finish(session, execution, ExecutionStatus.CANCELLED, self._clock(), reason=reason)
                return True

    async def get(self, execution_id: str) -> WorkflowExecution:
        async with self._session_factory() as session:
            execution = await ExecutionService(session).get_by_id(execution_id)
            if execution is None:
                raise ExecutionNotFoundError(execution_id)
            return execution
