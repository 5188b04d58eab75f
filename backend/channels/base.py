"""Outbound delivery channel interface.

A channel sends one message to one recipient and reports the outcome as
a DeliveryResult instead of raising, so provider quirks stay inside the
channel. GuardedChannel turns unsuccessful results into typed errors.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Optional

from core.constants import Channel


@dataclass
class OutboundMessage:
    """A rendered message ready for delivery."""
    recipient: str
    body: str
    subject: Optional[str] = None
    text_body: Optional[str] = None
    from_address: Optional[str] = None
    from_name: Optional[str] = None
    metadata: dict[str, Any] = field(default_factory=dict)


@dataclass
class DeliveryResult:
    """Result of a delivery attempt.

    ``transient`` marks network-level failures (no provider response).
    """
    success: bool
    channel: Channel
    recipient: str
    external_id: Optional[str] = None
    error: Optional[str] = None
    status_code: Optional[int] = None
    transient: bool = False
    delivered_at: Optional[str] = None

    @classmethod
    def delivered(cls, channel: Channel, recipient: str, external_id: Optional[str] = None):
        return cls(
            success=True,
            channel=channel,
            recipient=recipient,
            external_id=external_id,
            delivered_at=datetime.now(timezone.utc).isoformat(),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "channel": self.channel.value,
            "recipient": self.recipient,
            "external_id": self.external_id,
            "error": self.error,
            "status_code": self.status_code,
            "delivered_at": self.delivered_at,
        }


class BaseChannel(ABC):
    """Abstract base for delivery channels."""

    channel_type: Channel

    @abstractmethod
    async def send(self, message: OutboundMessage) -> DeliveryResult:
        """Deliver one message."""
        ...

    async def aclose(self) -> None:
        """Release pooled connections, if any."""
        return None
