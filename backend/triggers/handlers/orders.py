"""Order topic handler."""

from core.constants import TriggerType, UpstreamTopic
from core.exceptions import ValidationError
from core.utils import parse_timestamp
from services.contact_service import ContactService, normalize_email
from triggers.base import BaseTopicHandler, NormalizationResult, TopicContext
from triggers.handlers.customers import contact_fields


class OrderTopicHandler(BaseTopicHandler):
    """Order lifecycle topics.

    The order's customer is upserted when an email can be found on the
    customer object or the order itself. orders/create also stamps
    ``last_order_at``, which the ``order_placed`` exit condition watches.
    orders/paid refreshes the spend aggregates carried on the customer.
    """

    topics = {
        UpstreamTopic.ORDERS_CREATE.value: TriggerType.ORDER_CREATED,
        UpstreamTopic.ORDERS_PAID.value: TriggerType.ORDER_PAID,
        UpstreamTopic.ORDERS_UPDATED.value: TriggerType.ORDER_UPDATED,
        UpstreamTopic.ORDERS_CANCELLED.value: TriggerType.ORDER_CANCELED,
        UpstreamTopic.ORDERS_FULFILLED.value: TriggerType.ORDER_FULFILLED,
    }

    async def handle(self, ctx: TopicContext) -> NormalizationResult:
        order = ctx.payload
        if order.get("id") is None:
            raise ValidationError(f"{ctx.topic} payload has no order id")
        customer = order.get("customer")
        if customer is not None and not isinstance(customer, dict):
            raise ValidationError(f"{ctx.topic} payload has a malformed customer")
        customer = customer or {}

        contact = None
        created = False
        email = normalize_email(customer.get("email") or order.get("email"))
        if email:
            fields = contact_fields(customer)
            if ctx.topic == UpstreamTopic.ORDERS_CREATE.value:
                fields["last_order_at"] = parse_timestamp(order.get("created_at")) or ctx.now
            upsert = await ContactService(ctx.session).upsert(ctx.store.id, email, fields)
            contact, created = upsert.contact, upsert.created

        event = self.build_event(ctx, {"order": order, "customer": customer})
        return NormalizationResult(
            success=True,
            processed=True,
            trigger_event=event,
            contact=contact,
            contact_created=created,
        )
