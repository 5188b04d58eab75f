"""Processing log of upstream events, used to drop redeliveries."""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class ProcessedEvent(BaseModel):
    __tablename__ = "processed_events"

    event_key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    store_id: Mapped[Optional[str]] = mapped_column(String(36), nullable=True, index=True)
    topic: Mapped[str] = mapped_column(String(64), nullable=False)
    trigger_type: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    executions_created: Mapped[int] = mapped_column(default=0)
