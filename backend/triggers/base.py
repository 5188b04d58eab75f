"""Trigger event types and the base class for upstream topic handlers."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from core.constants import TriggerType
from core.utils import parse_timestamp, utc_now_naive

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from db.models.contact import Contact
    from db.models.store import Store


@dataclass
class TriggerEvent:
    """Canonical internal form of an upstream business event.

    This is the payload handed from ingestion to the matcher and
    snapshotted onto every execution it starts.
    """

    id: str
    type: TriggerType
    store_id: str
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=utc_now_naive)
    topic: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "store_id": self.store_id,
            "data": self.data,
            "timestamp": self.timestamp.isoformat(),
            "topic": self.topic,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TriggerEvent":
        return cls(
            id=data["id"],
            type=TriggerType(data["type"]),
            store_id=data["store_id"],
            data=data.get("data") or {},
            timestamp=parse_timestamp(data.get("timestamp")) or utc_now_naive(),
            topic=data.get("topic"),
        )


@dataclass
class NormalizationResult:
    """Outcome of normalizing one upstream notification.

    ``processed`` is False for topics nobody handles; that is still a
    success. A processed payload may legitimately produce no trigger event
    (e.g. a checkout update that is not yet abandoned).
    """

    success: bool
    processed: bool
    trigger_event: Optional[TriggerEvent] = None
    contact: Optional["Contact"] = None
    contact_created: bool = False
    store_id: Optional[str] = None
    error: Optional[str] = None


@dataclass
class TopicContext:
    """Everything a topic handler needs for one notification."""

    session: "AsyncSession"
    store: "Store"
    topic: str
    payload: dict[str, Any]
    event_id: str
    now: datetime


class BaseTopicHandler(ABC):
    """Abstract base for handlers of one family of upstream topics.

    The EventNormalizer routes each notification to the handler that
    declared its topic. Handlers upsert state (contacts, checkouts) in the
    context session; the normalizer commits it before returning.
    """

    topics: dict[str, TriggerType] = {}

    @abstractmethod
    async def handle(self, ctx: TopicContext) -> NormalizationResult:
        """Normalize one payload.

        Raises:
            ValidationError: the payload is malformed.
        """
        ...

    def build_event(self, ctx: TopicContext, data: dict[str, Any]) -> TriggerEvent:
        return TriggerEvent(
            id=ctx.event_id,
            type=self.topics[ctx.topic],
            store_id=ctx.store.id,
            data=data,
            timestamp=ctx.now,
            topic=ctx.topic,
        )
