"""Checkout topic handler: stores checkouts and fires cart_abandoned."""

from typing import Any

import structlog

from core.constants import TriggerType, UpstreamTopic
from core.exceptions import ValidationError
from core.utils import parse_timestamp, stable_hash, to_float
from services.checkout_service import CheckoutService
from services.contact_service import ContactService, normalize_email
from triggers.abandoned_checkout import AbandonedCheckoutDetector
from triggers.base import BaseTopicHandler, NormalizationResult, TopicContext, TriggerEvent

logger = structlog.get_logger(__name__)


def checkout_fields(payload: dict) -> dict[str, Any]:
    fields = {
        "email": normalize_email(payload.get("email")) or None,
        "cart_token": payload.get("cart_token"),
        "total_price": to_float(payload.get("total_price")),
        "currency": payload.get("currency"),
        "line_items": payload.get("line_items"),
        "abandoned_checkout_url": payload.get("abandoned_checkout_url"),
        "upstream_created_at": parse_timestamp(payload.get("created_at")),
        "completed_at": parse_timestamp(payload.get("completed_at")),
    }
    return {k: v for k, v in fields.items() if v is not None}


class CheckoutTopicHandler(BaseTopicHandler):
    """checkouts/create emits started_checkout; checkouts/update may emit cart_abandoned."""

    topics = {
        UpstreamTopic.CHECKOUTS_CREATE.value: TriggerType.STARTED_CHECKOUT,
        UpstreamTopic.CHECKOUTS_UPDATE.value: TriggerType.CART_ABANDONED,
    }

    def __init__(self, detector: AbandonedCheckoutDetector):
        self.detector = detector

    async def handle(self, ctx: TopicContext) -> NormalizationResult:
        payload = ctx.payload
        token = payload.get("token") or payload.get("id")
        if token is None:
            raise ValidationError(f"{ctx.topic} payload has no checkout token")

        contact = None
        created = False
        email = normalize_email(payload.get("email"))
        if email:
            upsert = await ContactService(ctx.session).upsert(ctx.store.id, email, {})
            contact, created = upsert.contact, upsert.created

        checkout = await CheckoutService(ctx.session).save(
            ctx.store.id, str(token), checkout_fields(payload)
        )
        if checkout.upstream_created_at is None:
            checkout.upstream_created_at = ctx.now

        data = {
            "checkout": payload,
            "email": checkout.email,
            "cart_token": checkout.cart_token,
            "total_price": checkout.total_price,
            "line_items": checkout.line_items or [],
            "abandoned_checkout_url": checkout.abandoned_checkout_url,
        }

        if ctx.topic == UpstreamTopic.CHECKOUTS_CREATE.value:
            event = self.build_event(ctx, data)
        elif self.detector.evaluate(checkout, ctx.now):
            logger.info("Checkout abandoned", store_id=ctx.store.id, token=checkout.token)
            event = TriggerEvent(
                id=stable_hash(ctx.store.id, TriggerType.CART_ABANDONED.value, checkout.token),
                type=TriggerType.CART_ABANDONED,
                store_id=ctx.store.id,
                data=data,
                timestamp=ctx.now,
                topic=ctx.topic,
            )
        else:
            event = None

        return NormalizationResult(
            success=True,
            processed=True,
            trigger_event=event,
            contact=contact,
            contact_created=created,
        )
