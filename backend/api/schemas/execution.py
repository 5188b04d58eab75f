"""Execution and workflow run schemas."""

from pydantic import BaseModel, Field
from datetime import datetime
from typing import Any, List, Optional


class ExecutionResponse(BaseModel):
    """Execution state response."""

    id: str = Field(description="Execution ID")
    workflow_id: str = Field(description="Workflow ID")
    contact_id: Optional[str] = Field(default=None, description="Contact the run targets")
    status: str = Field(description="pending, running, waiting, completed, failed or cancelled")
    current_action_index: int = Field(description="Next action to attempt")
    action_results: List[dict[str, Any]] = Field(default_factory=list)
    errors: List[dict[str, Any]] = Field(default_factory=list)
    resume_at: Optional[datetime] = Field(default=None, description="When a waiting run becomes due")
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancel_reason: Optional[str] = None

    class Config:
        from_attributes = True


class CancelRequest(BaseModel):
    reason: str = Field(default="cancelled by operator", max_length=255)


class ManualExecuteRequest(BaseModel):
    """Start a workflow directly, bypassing trigger matching."""

    contact_id: Optional[str] = Field(default=None, description="Contact to run the workflow for")
    data: dict[str, Any] = Field(default_factory=dict, description="Trigger data made available to templates")


class WorkflowStatsResponse(BaseModel):
    total_executions: int
    successful_executions: int
    failed_executions: int
    success_rate: Optional[float] = None
    last_executed_at: Optional[datetime] = None


class CampaignSendResponse(BaseModel):
    campaign_id: str
    status: str
    recipients: int
    delivered: int
    failed: int
    skipped: int
    batches: int
