"""Workflow execution model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import ExecutionStatus
from db.base import BaseModel


class WorkflowExecution(BaseModel):
    """One run of a workflow for one contact and one trigger event.

    Attributes:
        workflow_id: Definition the run was created from. Not a foreign key,
            a vanished definition fails the run instead of deleting it.
        contact_id: Contact the run targets, if any
        idempotency_key: sha256(workflow_id + contact_id + event id), unique
        trigger_event: Snapshot of the TriggerEvent
        workflow_snapshot: Definition as it was when the run started
        current_action_index: Next action to attempt
        status: pending, running, waiting, completed, failed or cancelled
        action_results: One entry per attempted action
        errors: One entry per failed action or execution-level fault
        resume_at: When a waiting run becomes due (naive UTC)
        delay_served_index: Action whose pre-delay has already elapsed
        last_step_at: Heartbeat written after every step
    """

    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("ix_executions_status_resume_at", "status", "resume_at"),
    )

    store_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    workflow_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    contact_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("contacts.id", ondelete="SET NULL"), nullable=True, index=True
    )
    idempotency_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)

    trigger_event: Mapped[dict] = mapped_column(JSON, default=dict)
    workflow_snapshot: Mapped[dict] = mapped_column(JSON, default=dict)

    status: Mapped[str] = mapped_column(
        String(16), default=ExecutionStatus.PENDING.value, index=True
    )
    current_action_index: Mapped[int] = mapped_column(default=0)
    action_results: Mapped[list] = mapped_column(JSON, default=list)
    errors: Mapped[list] = mapped_column(JSON, default=list)

    resume_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    delay_served_index: Mapped[Optional[int]] = mapped_column(nullable=True)

    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_step_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    cancel_reason: Mapped[Optional[str]] = mapped_column(nullable=True)

    @property
    def status_enum(self) -> ExecutionStatus:
        return ExecutionStatus(self.status)

    def __repr__(self) -> str:
        return f"<WorkflowExecution(id={self.id}, workflow={self.workflow_id}, status={self.status})>"
