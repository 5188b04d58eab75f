"""Workflow definition model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Workflow(BaseModel):
    """Merchant-authored automation: trigger, filters and ordered actions.

    Attributes:
        store_id: Owning store
        name: Workflow name
        trigger_type: TriggerType value this workflow listens for
        trigger_config: filters, exit_condition, send_to_subscribed_only,
            respect_quiet_hours
        actions: Ordered list of action dicts ({id, type, config, delay})
        is_active: Inactive workflows are never matched
        total_executions / successful_executions / failed_executions:
            Run counters maintained by the scheduler
        last_executed_at: When the latest execution started
    """

    __tablename__ = "workflows"
    __table_args__ = (
        Index("ix_workflows_store_trigger_active", "store_id", "trigger_type", "is_active"),
    )

    store_id: Mapped[str] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    trigger_type: Mapped[str] = mapped_column(String(64), nullable=False)
    trigger_config: Mapped[dict] = mapped_column(JSON, default=dict)
    actions: Mapped[list] = mapped_column(JSON, default=list)
    is_active: Mapped[bool] = mapped_column(default=True)

    total_executions: Mapped[int] = mapped_column(default=0)
    successful_executions: Mapped[int] = mapped_column(default=0)
    failed_executions: Mapped[int] = mapped_column(default=0)
    last_executed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    def __repr__(self) -> str:
        return f"<Workflow(id={self.id}, name={self.name}, trigger={self.trigger_type})>"
