"""
Action executor registry.

Maps every action type to its executor. Construction fails if any
executable action type is left without one, so adding a new ActionType
without wiring an executor is caught at startup rather than mid-run.
Delay actions are handled by the scheduler itself.
"""

from typing import Dict, Iterable, Optional

from channels.guard import GuardedChannel
from core.constants import ActionType
from executors.base import ActionContext, ActionResult, BaseActionExecutor
from executors.contact_updates import AddTagExecutor, RemoveTagExecutor, UpdateContactExecutor
from executors.messaging import SendEmailExecutor, SendSmsExecutor
from workflow.actions import Action

SCHEDULER_HANDLED = frozenset({ActionType.DELAY})


class ActionExecutorRegistry:
    """Dispatches actions to their executors."""

    def __init__(self, executors: Iterable[BaseActionExecutor]):
        self._executors: Dict[ActionType, BaseActionExecutor] = {}
        for executor in executors:
            self.register(executor)
        missing = set(ActionType) - SCHEDULER_HANDLED - set(self._executors)
        if missing:
            raise ValueError(
                "No executor registered for: " + ", ".join(sorted(t.value for t in missing))
            )

    @classmethod
    def default(cls, email: GuardedChannel, sms: GuardedChannel) -> "ActionExecutorRegistry":
        return cls(
            [
                SendEmailExecutor(email),
                SendSmsExecutor(sms),
                AddTagExecutor(),
                RemoveTagExecutor(),
                UpdateContactExecutor(),
            ]
        )

    def register(self, executor: BaseActionExecutor) -> None:
        if executor.action_type in SCHEDULER_HANDLED:
            raise ValueError(f"{executor.action_type.value} is handled by the scheduler")
        self._executors[executor.action_type] = executor

    def get(self, action_type: ActionType) -> Optional[BaseActionExecutor]:
        return self._executors.get(action_type)

    async def execute(self, action: Action, ctx: ActionContext) -> ActionResult:
        executor = self._executors.get(action.type)
        if executor is None:
            raise ValueError(f"No executor for action type {action.type.value}")
        return await executor.run(action, ctx)

    @property
    def available_types(self) -> list:
        return [t.value for t in self._executors]
