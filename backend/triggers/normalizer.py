"""Event normalizer: upstream commerce notifications to TriggerEvents.

Routes each notification to the topic handler that declared it, resolves
the owning store and commits the contact/checkout upserts before the
trigger event is handed on, so condition evaluation downstream sees the
updated contact.
"""

from typing import Any, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import metrics
from core.exceptions import ValidationError
from core.utils import stable_hash, utc_now_naive
from services.store_service import StoreService
from triggers.abandoned_checkout import AbandonedCheckoutDetector
from triggers.base import BaseTopicHandler, NormalizationResult, TopicContext
from triggers.handlers.checkouts import CheckoutTopicHandler
from triggers.handlers.customers import CustomerTopicHandler
from triggers.handlers.orders import OrderTopicHandler

logger = structlog.get_logger(__name__)


def compute_event_key(shop_domain: str, topic: str, payload: Any) -> str:
    """Deterministic id for one upstream notification.

    Redelivery of the same topic and payload to the same shop yields the
    same key.
    """
    return stable_hash((shop_domain or "").strip().lower(), topic, payload)


class EventNormalizer:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        detector: Optional[AbandonedCheckoutDetector] = None,
        clock: Callable = utc_now_naive,
    ):
        self._session_factory = session_factory
        self._clock = clock
        self._handlers: dict[str, BaseTopicHandler] = {}
        self.register_handler(OrderTopicHandler())
        self.register_handler(CustomerTopicHandler())
        self.register_handler(CheckoutTopicHandler(detector or AbandonedCheckoutDetector()))

    def register_handler(self, handler: BaseTopicHandler) -> None:
        for topic in handler.topics:
            self._handlers[topic] = handler

    @property
    def supported_topics(self) -> list[str]:
        return sorted(self._handlers)

    def supports(self, topic: str) -> bool:
        return topic in self._handlers

    async def normalize(
        self,
        payload: Any,
        topic: str,
        shop_domain: str,
        event_key: Optional[str] = None,
    ) -> NormalizationResult:
        """Normalize one notification.

        Raises:
            StoreNotFoundError: no store owns ``shop_domain``.
            ValidationError: the payload is malformed.
        """
        handler = self._handlers.get(topic)
        if handler is None:
            logger.info("Unhandled topic", topic=topic, shop_domain=shop_domain)
            metrics.inc(metrics.EVENTS_UNHANDLED, labels={"topic": topic})
            return NormalizationResult(
                success=True, processed=False, error=f"Unhandled topic: {topic}"
            )
        if not isinstance(payload, dict):
            raise ValidationError(f"{topic} payload must be a JSON object")

        async with self._session_factory() as session:
            store = await StoreService(session).get_by_domain(shop_domain)
            ctx = TopicContext(
                session=session,
                store=store,
                topic=topic,
                payload=payload,
                event_id=event_key or compute_event_key(shop_domain, topic, payload),
                now=self._clock(),
            )
            result = await handler.handle(ctx)
            await session.commit()

        result.store_id = store.id
        logger.info(
            "Event normalized",
            topic=topic,
            store_id=store.id,
            trigger_type=result.trigger_event.type.value if result.trigger_event else None,
            contact_id=result.contact.id if result.contact else None,
            contact_created=result.contact_created,
        )
        return result
