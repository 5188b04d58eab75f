"""Exit conditions: reasons to cancel an execution before its next action.

Evaluated once per step against the live contact.

    {"type": "unsubscribed"}                    every consent flag is off
    {"type": "unsubscribed", "channel": "sms"}  that channel's consent is off
    {"type": "tag_added", "value": "vip"}       the contact carries the tag
    {"type": "order_placed"}                    an order arrived after the run started
"""

from datetime import datetime
from typing import Iterable, Optional

import structlog

from core.constants import Channel, ExitConditionType
from db.models.contact import Contact

logger = structlog.get_logger(__name__)


def _met(condition: dict, contact: Contact, started_at: Optional[datetime]) -> bool:
    try:
        kind = ExitConditionType(condition.get("type"))
    except ValueError:
        logger.warning("Unknown exit condition", condition=condition)
        return False

    if kind == ExitConditionType.UNSUBSCRIBED:
        channel = condition.get("channel")
        if channel:
            return not contact.has_consent(channel)
        return not any(contact.has_consent(c.value) for c in Channel)
    if kind == ExitConditionType.TAG_ADDED:
        tag = condition.get("value") or condition.get("tag")
        return bool(tag) and tag in (contact.tags or [])
    if kind == ExitConditionType.ORDER_PLACED:
        return (
            contact.last_order_at is not None
            and started_at is not None
            and contact.last_order_at > started_at
        )
    return False


def first_met(
    conditions: Iterable[dict],
    contact: Optional[Contact],
    started_at: Optional[datetime],
) -> Optional[str]:
    """Describe the first satisfied condition, or None."""
    if contact is None:
        return None
    for condition in conditions:
        if _met(condition, contact, started_at):
            detail = condition.get("channel") or condition.get("value") or condition.get("tag")
            return f"{condition['type']}:{detail}" if detail else str(condition["type"])
    return None
