"""Workflow matcher: which workflows does a trigger event start?

Pure selection over already-loaded definitions. A workflow matches when
it is active, listens for the event's trigger type, every filter
predicate holds, and (unless disabled) the contact has consented to every
channel the workflow sends on.
"""

from typing import Any, Iterable, Optional

import structlog

from core.constants import FilterOperator
from core.utils import is_missing, lookup_path, to_float
from db.models.contact import Contact
from triggers.base import TriggerEvent
from workflow.actions import FilterPredicate, WorkflowDefinition

logger = structlog.get_logger(__name__)

_CONTACT_FIELDS = {
    "email",
    "first_name",
    "last_name",
    "phone",
    "email_consent",
    "sms_consent",
    "total_spent",
    "order_count",
    "last_order_at",
    "tags",
    "segments",
    "external_customer_id",
}


def resolve_field(path: str, event: TriggerEvent, contact: Optional[Contact]) -> Any:
    """Look a filter field up in the event data or on the contact.

    ``contact.x`` reads the contact, ``trigger.x``/``data.x`` read event
    data, and a bare path tries event data first and then the contact
    attribute of the same name. Returns None when nothing resolves.
    """
    if path.startswith("contact."):
        attr = path[len("contact."):]
        if contact is None or attr not in _CONTACT_FIELDS:
            return None
        return getattr(contact, attr)

    for prefix in ("trigger.", "data."):
        if path.startswith(prefix):
            value = lookup_path(event.data, path[len(prefix):])
            return None if is_missing(value) else value

    value = lookup_path(event.data, path)
    if not is_missing(value):
        return value
    if contact is not None and path in _CONTACT_FIELDS:
        return getattr(contact, path)
    return None


def _equal(left: Any, right: Any) -> bool:
    if left == right:
        return True
    if isinstance(left, bool) or isinstance(right, bool):
        return False
    lf, rf = to_float(left), to_float(right)
    return lf is not None and rf is not None and lf == rf


def _contains(haystack: Any, needle: Any) -> bool:
    if isinstance(haystack, str):
        return str(needle).lower() in haystack.lower()
    if isinstance(haystack, (list, tuple, set)):
        return needle in haystack
    return False


def evaluate_predicate(predicate: FilterPredicate, actual: Any) -> bool:
    """Apply one operator. Unknown operators never match."""
    try:
        operator = FilterOperator(predicate.operator)
    except ValueError:
        logger.warning("Unknown filter operator", operator=predicate.operator)
        return False

    expected = predicate.value
    if operator == FilterOperator.EQUALS:
        return _equal(actual, expected)
    if operator == FilterOperator.NOT_EQUALS:
        return not _equal(actual, expected)
    if operator == FilterOperator.CONTAINS:
        return _contains(actual, expected)
    if operator in (FilterOperator.GREATER_THAN, FilterOperator.LESS_THAN):
        lf, rf = to_float(actual), to_float(expected)
        if lf is None or rf is None:
            return False
        return lf > rf if operator == FilterOperator.GREATER_THAN else lf < rf
    if operator == FilterOperator.IN:
        return isinstance(expected, (list, tuple)) and any(_equal(actual, v) for v in expected)
    if operator == FilterOperator.NOT_IN:
        if not isinstance(expected, (list, tuple)):
            return True
        return not any(_equal(actual, v) for v in expected)
    return False


class WorkflowMatcher:
    def filters_pass(
        self, workflow: WorkflowDefinition, event: TriggerEvent, contact: Optional[Contact]
    ) -> bool:
        return all(
            evaluate_predicate(p, resolve_field(p.field, event, contact))
            for p in workflow.trigger_config.filters
        )

    def consent_allows(self, workflow: WorkflowDefinition, contact: Optional[Contact]) -> bool:
        if not workflow.trigger_config.send_to_subscribed_only:
            return True
        channels = workflow.channels
        if not channels:
            return True
        if contact is None:
            return False
        return all(contact.has_consent(channel.value) for channel in channels)

    def match(
        self,
        event: TriggerEvent,
        workflows: Iterable[WorkflowDefinition],
        contact: Optional[Contact] = None,
    ) -> list[WorkflowDefinition]:
        matched = []
        for workflow in workflows:
            if not workflow.is_active or workflow.trigger_type != event.type:
                continue
            if not self.filters_pass(workflow, event, contact):
                continue
            if not self.consent_allows(workflow, contact):
                logger.info(
                    "Workflow skipped: contact not subscribed",
                    workflow_id=workflow.id,
                    contact_id=contact.id if contact else None,
                )
                continue
            matched.append(workflow)
        return matched
