"""Customer topic handler and shared customer-to-contact field mapping."""

from typing import Any, Optional

from core.constants import TriggerType, UpstreamTopic
from core.exceptions import ValidationError
from core.utils import parse_timestamp, to_float
from services.contact_service import ContactService, normalize_email
from triggers.base import BaseTopicHandler, NormalizationResult, TopicContext

_SUBSCRIBED = {"subscribed"}
_NOT_SUBSCRIBED = {"not_subscribed", "unsubscribed", "redacted"}


def _consent_state(value: Any) -> Optional[bool]:
    if not isinstance(value, dict):
        return None
    state = str(value.get("state") or "").lower()
    if state in _SUBSCRIBED:
        return True
    if state in _NOT_SUBSCRIBED:
        return False
    return None


def email_consent(customer: dict) -> Optional[bool]:
    """Explicit email marketing indicator, or None when the payload carries none."""
    if isinstance(customer.get("accepts_marketing"), bool):
        return customer["accepts_marketing"]
    return _consent_state(customer.get("email_marketing_consent"))


def sms_consent(customer: dict) -> Optional[bool]:
    if isinstance(customer.get("accepts_sms_marketing"), bool):
        return customer["accepts_sms_marketing"]
    return _consent_state(customer.get("sms_marketing_consent"))


def parse_tags(value: Any) -> list[str]:
    """Upstream tags arrive as a comma separated string or a list."""
    if isinstance(value, str):
        return [t.strip() for t in value.split(",") if t.strip()]
    if isinstance(value, (list, tuple)):
        return [str(t).strip() for t in value if str(t).strip()]
    return []


def contact_fields(customer: dict) -> dict[str, Any]:
    """Map an upstream customer object onto contact fields.

    Keys the payload does not carry are omitted so the upsert leaves the
    stored values alone.
    """
    fields: dict[str, Any] = {
        "first_name": customer.get("first_name"),
        "last_name": customer.get("last_name"),
        "phone": customer.get("phone"),
        "email_consent": email_consent(customer),
        "sms_consent": sms_consent(customer),
        "tags": parse_tags(customer.get("tags")),
    }
    if customer.get("id") is not None:
        fields["external_customer_id"] = str(customer["id"])
    if "total_spent" in customer:
        fields["total_spent"] = to_float(customer.get("total_spent"))
    if "orders_count" in customer:
        count = to_float(customer.get("orders_count"))
        fields["order_count"] = int(count) if count is not None else None
    if customer.get("last_order_at"):
        fields["last_order_at"] = parse_timestamp(customer["last_order_at"])
    return {k: v for k, v in fields.items() if v is not None}


class CustomerTopicHandler(BaseTopicHandler):
    """customers/create and customers/update: upsert the contact."""

    topics = {
        UpstreamTopic.CUSTOMERS_CREATE.value: TriggerType.CUSTOMER_CREATED,
        UpstreamTopic.CUSTOMERS_UPDATE.value: TriggerType.CUSTOMER_UPDATED,
    }

    async def handle(self, ctx: TopicContext) -> NormalizationResult:
        customer = ctx.payload
        if customer.get("id") is None:
            raise ValidationError(f"{ctx.topic} payload has no customer id")
        email = normalize_email(customer.get("email"))
        if not email:
            raise ValidationError(f"{ctx.topic} payload has no email")

        upsert = await ContactService(ctx.session).upsert(
            ctx.store.id, email, contact_fields(customer)
        )
        event = self.build_event(ctx, {"customer": customer})
        return NormalizationResult(
            success=True,
            processed=True,
            trigger_event=event,
            contact=upsert.contact,
            contact_created=upsert.created,
        )
