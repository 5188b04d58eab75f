"""Checkout model used for abandoned-cart detection."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Checkout(BaseModel):
    """An upstream checkout. ``abandoned`` is set once and never cleared by updates."""

    __tablename__ = "checkouts"
    __table_args__ = (
        UniqueConstraint("store_id", "token", name="uq_checkouts_store_token"),
    )

    store_id: Mapped[str] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    token: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[Optional[str]] = mapped_column(String(320), nullable=True)
    cart_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    total_price: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[Optional[str]] = mapped_column(String(8), nullable=True)
    line_items: Mapped[list] = mapped_column(JSON, default=list)
    abandoned_checkout_url: Mapped[Optional[str]] = mapped_column(nullable=True)

    upstream_created_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    abandoned: Mapped[bool] = mapped_column(default=False)
    abandoned_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
