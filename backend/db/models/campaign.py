"""Batch campaign model."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from core.constants import CampaignStatus, Channel
from db.base import BaseModel


class Campaign(BaseModel):
    """One-off send to a filtered audience.

    Attributes:
        channel: email or sms
        audience: {segments, tags, min_total_spent, max_total_spent}
        recipient_count / delivered_count / failed_count / skipped_count:
            Filled in while the campaign sends
    """

    __tablename__ = "campaigns"

    store_id: Mapped[str] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    channel: Mapped[str] = mapped_column(String(16), default=Channel.EMAIL.value)
    subject: Mapped[Optional[str]] = mapped_column(String(998), nullable=True)
    body: Mapped[str] = mapped_column(Text, default="")
    text_body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    from_address: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    from_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    audience: Mapped[dict] = mapped_column(JSON, default=dict)

    status: Mapped[str] = mapped_column(String(16), default=CampaignStatus.DRAFT.value, index=True)
    recipient_count: Mapped[int] = mapped_column(default=0)
    delivered_count: Mapped[int] = mapped_column(default=0)
    failed_count: Mapped[int] = mapped_column(default=0)
    skipped_count: Mapped[int] = mapped_column(default=0)
    sent_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
