"""Store model: a merchant shop connected to the upstream platform."""

from typing import Optional

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db.base import BaseModel


class Store(BaseModel):
    """A merchant store.

    Attributes:
        domain: Upstream shop domain used to route inbound events
        name: Display name
        timezone: IANA timezone used for quiet-hours evaluation
        quiet_hours_start: Store-local "HH:MM" start of the quiet window
        quiet_hours_end: Store-local "HH:MM" end of the quiet window
        is_active: Inactive stores still resolve but are ignored by campaigns
    """

    __tablename__ = "stores"

    domain: Mapped[str] = mapped_column(String(255), unique=True, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    timezone: Mapped[str] = mapped_column(String(64), default="UTC")
    quiet_hours_start: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    quiet_hours_end: Mapped[Optional[str]] = mapped_column(String(5), nullable=True)
    is_active: Mapped[bool] = mapped_column(default=True)

    def __repr__(self) -> str:
        return f"<Store(id={self.id}, domain={self.domain})>"
