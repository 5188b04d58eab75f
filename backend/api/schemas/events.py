"""Inbound event schemas."""

from pydantic import BaseModel, Field
from typing import Any, List, Optional


class EventIngestRequest(BaseModel):
    """One upstream commerce notification."""

    topic: str = Field(description="Upstream topic, e.g. orders/create")
    shop_domain: str = Field(description="Domain of the store the event belongs to")
    payload: Any = Field(description="Raw upstream payload")
    headers: Optional[dict[str, str]] = Field(default=None, description="Upstream delivery headers")
    event_id: Optional[str] = Field(
        default=None, description="Upstream delivery id; derived from the payload when absent"
    )


class IngestResponse(BaseModel):
    """Outcome of ingesting one notification."""

    success: bool
    event_key: str
    processed: bool
    duplicate: bool
    trigger_type: Optional[str] = None
    execution_ids: List[str] = Field(default_factory=list)
    error: Optional[str] = None
