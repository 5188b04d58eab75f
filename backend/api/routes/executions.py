"""Workflow execution inspection and control endpoints."""

import logging

from fastapi import APIRouter, Depends

from api.schemas.execution import CancelRequest, ExecutionResponse
from app.dependencies import get_runtime
from app.runtime import AutomationRuntime

logger = logging.getLogger(__name__)

router = APIRouter(tags=["executions"])


@router.get("/{execution_id}", response_model=ExecutionResponse)
async def get_execution(
    execution_id: str,
    runtime: AutomationRuntime = Depends(get_runtime),
) -> ExecutionResponse:
    execution = await runtime.scheduler.get(execution_id)
    return ExecutionResponse.model_validate(execution)


@router.post("/{execution_id}/cancel", response_model=ExecutionResponse)
async def cancel_execution(
    execution_id: str,
    body: CancelRequest = CancelRequest(),
    runtime: AutomationRuntime = Depends(get_runtime),
) -> ExecutionResponse:
    """
    Cancel a running or waiting execution. Finished executions are
    returned unchanged.
    """
    cancelled = await runtime.scheduler.cancel(execution_id, body.reason)
    if cancelled:
        logger.info(f"Execution {execution_id} cancelled: {body.reason}")
    return ExecutionResponse.model_validate(await runtime.scheduler.get(execution_id))
