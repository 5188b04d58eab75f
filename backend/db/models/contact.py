"""Contact model: one marketing contact per (store, email)."""

from datetime import datetime
from typing import Optional

from sqlalchemy import JSON, DateTime, Float, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Contact(BaseModel):
    """Marketing contact with consent flags and purchase aggregates.

    Attributes:
        store_id: Owning store
        email: Lower-cased email, unique per store
        external_customer_id: Customer id on the upstream platform
        email_consent / sms_consent: Independently revocable consent flags
        total_spent / order_count / last_order_at: Purchase aggregates
        tags / segments: JSON lists treated as sets
    """

    __tablename__ = "contacts"
    __table_args__ = (
        UniqueConstraint("store_id", "email", name="uq_contacts_store_email"),
    )

    store_id: Mapped[str] = mapped_column(
        ForeignKey("stores.id", ondelete="CASCADE"), nullable=False, index=True
    )
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    external_customer_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    first_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    last_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)

    email_consent: Mapped[bool] = mapped_column(default=False)
    sms_consent: Mapped[bool] = mapped_column(default=False)

    total_spent: Mapped[float] = mapped_column(Float, default=0.0)
    order_count: Mapped[int] = mapped_column(default=0)
    last_order_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)

    tags: Mapped[list] = mapped_column(JSON, default=list)
    segments: Mapped[list] = mapped_column(JSON, default=list)

    def has_consent(self, channel: str) -> bool:
        if channel == "email":
            return bool(self.email_consent)
        if channel == "sms":
            return bool(self.sms_consent)
        return False

    def __repr__(self) -> str:
        return f"<Contact(id={self.id}, email={self.email})>"
