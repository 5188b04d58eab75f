"""
Base interface for workflow action executors.

Every non-delay action type has one executor. The scheduler calls
``run()``, which wraps ``execute()`` with timing, logging, metrics and the
mapping of exceptions onto a recorded ActionResult.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

import structlog

from core import metrics
from core.constants import ActionType
from core.exceptions import ConsentRevokedError

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from db.models.contact import Contact
    from workflow.actions import Action

logger = structlog.get_logger(__name__)

STATUS_SUCCESS = "success"
STATUS_FAILED = "failed"
STATUS_SKIPPED = "skipped"


@dataclass
class ActionContext:
    """State an executor may read or mutate during one step."""

    session: "AsyncSession"
    execution_id: str
    workflow_id: str
    store_id: str
    contact: Optional["Contact"]
    trigger_data: Dict[str, Any]
    now: datetime


@dataclass
class ActionResult:
    """Standardized record of one attempted action."""

    action_id: str
    action_type: ActionType
    status: str
    executed_at: datetime
    output: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration_ms: float = 0

    @property
    def success(self) -> bool:
        return self.status == STATUS_SUCCESS

    @property
    def failed(self) -> bool:
        return self.status == STATUS_FAILED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "action_id": self.action_id,
            "action_type": self.action_type.value,
            "status": self.status,
            "success": self.success,
            "output": self.output,
            "error": self.error,
            "error_type": self.error_type,
            "executed_at": self.executed_at.isoformat(),
            "duration_ms": round(self.duration_ms, 2),
        }


class BaseActionExecutor(ABC):
    """
    Abstract base class for action executors.

    Subclasses implement ``execute()`` and return the output dict to record.
    Raising ConsentRevokedError records a skip; any other exception records
    a failure. Neither stops the execution.
    """

    action_type: ActionType

    @abstractmethod
    async def execute(self, action: "Action", ctx: ActionContext) -> Dict[str, Any]:
        """Perform the action and return its output."""
        ...

    async def run(self, action: "Action", ctx: ActionContext) -> ActionResult:
        start = time.monotonic()
        labels = {"action_type": self.action_type.value}
        try:
            output = await self.execute(action, ctx)
        except ConsentRevokedError as e:
            metrics.inc(metrics.ACTIONS_SKIPPED, labels={**labels, "reason": "consent"})
            logger.info(
                "Action skipped",
                action_id=action.id,
                action_type=self.action_type.value,
                reason=str(e),
            )
            return self._result(action, ctx, STATUS_SKIPPED, start, error=str(e), error_type=type(e).__name__)
        except Exception as e:
            metrics.inc(metrics.ACTION_FAILURES, labels={**labels, "error_type": type(e).__name__})
            logger.error(
                "Action failed",
                action_id=action.id,
                action_type=self.action_type.value,
                error=str(e),
                error_type=type(e).__name__,
            )
            return self._result(action, ctx, STATUS_FAILED, start, error=str(e), error_type=type(e).__name__)

        metrics.inc(metrics.ACTIONS_EXECUTED, labels=labels)
        result = self._result(action, ctx, STATUS_SUCCESS, start, output=output)
        metrics.observe(metrics.ACTION_DURATION, result.duration_ms / 1000, labels=labels)
        logger.info(
            "Action completed",
            action_id=action.id,
            action_type=self.action_type.value,
            duration_ms=round(result.duration_ms, 2),
        )
        return result

    def _result(self, action, ctx: ActionContext, status: str, start: float, **kwargs) -> ActionResult:
        return ActionResult(
            action_id=action.id,
            action_type=self.action_type,
            status=status,
            executed_at=ctx.now,
            duration_ms=(time.monotonic() - start) * 1000,
            **kwargs,
        )
