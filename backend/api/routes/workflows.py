"""Workflow statistics and manual execution endpoints."""

import logging
from typing import List

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from api.schemas.execution import ExecutionResponse, ManualExecuteRequest, WorkflowStatsResponse
from app.dependencies import get_db, get_runtime
from app.runtime import AutomationRuntime
from core.exceptions import NotFoundError, WorkflowNotFoundError
from db.models.contact import Contact
from services.execution_service import ExecutionService
from services.workflow_service import WorkflowService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["workflows"])


@router.get("/{workflow_id}/stats", response_model=WorkflowStatsResponse)
async def get_workflow_stats(
    workflow_id: str,
    db: AsyncSession = Depends(get_db),
) -> WorkflowStatsResponse:
    stats = await WorkflowService(db).get_stats(workflow_id)
    if stats is None:
        raise WorkflowNotFoundError(workflow_id)
    return WorkflowStatsResponse(**stats)


@router.post("/{workflow_id}/execute", response_model=ExecutionResponse)
async def execute_workflow(
    workflow_id: str,
    body: ManualExecuteRequest,
    runtime: AutomationRuntime = Depends(get_runtime),
    db: AsyncSession = Depends(get_db),
) -> ExecutionResponse:
    """
    Start a workflow for one contact without waiting for a trigger.
    Runs until the execution finishes or parks on a delay.
    """
    contact = None
    if body.contact_id:
        contact = await db.get(Contact, body.contact_id)
        if contact is None:
            raise NotFoundError(f"Contact '{body.contact_id}' not found")

    execution_id = await runtime.scheduler.execute_workflow_by_id(
        workflow_id, contact=contact, data=body.data
    )
    logger.info(f"Manual execution {execution_id} of workflow {workflow_id}")
    return ExecutionResponse.model_validate(await runtime.scheduler.get(execution_id))


@router.get("/{workflow_id}/executions", response_model=List[ExecutionResponse])
async def list_workflow_executions(
    workflow_id: str,
    limit: int = Query(50, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
) -> List[ExecutionResponse]:
    """Most recent executions of a workflow, newest first."""
    if not await WorkflowService(db).exists(workflow_id):
        raise WorkflowNotFoundError(workflow_id)
    executions = await ExecutionService(db).list_for_workflow(workflow_id, limit=limit)
    return [ExecutionResponse.model_validate(e) for e in executions]
