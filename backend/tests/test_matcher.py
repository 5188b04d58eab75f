"""Tests for workflow matching: trigger type, filters and consent gate."""

import pytest

from core.constants import TriggerType
from db.models.contact import Contact
from triggers.base import TriggerEvent
from triggers.matcher import WorkflowMatcher, evaluate_predicate, resolve_field
from workflow.actions import FilterPredicate, WorkflowDefinition

EMAIL = {"type": "send_email", "config": {"subject": "Hi", "body": "Hello"}}
SMS = {"type": "send_sms", "config": {"message": "Hi"}}


def definition(actions=None, filters=None, trigger_type="customer_created", is_active=True, **config):
    trigger_config = dict(config)
    if filters is not None:
        trigger_config["filters"] = filters
    return WorkflowDefinition.from_dict({
        "id": "wf-1",
        "store_id": "store-1",
        "name": "Welcome",
        "trigger_type": trigger_type,
        "trigger_config": trigger_config,
        "actions": actions if actions is not None else [EMAIL],
        "is_active": is_active,
    })


def event(data=None, trigger_type=TriggerType.CUSTOMER_CREATED):
    return TriggerEvent(id="evt-1", type=trigger_type, store_id="store-1", data=data or {})


def contact(**fields):
    fields.setdefault("email", "jane@example.com")
    fields.setdefault("email_consent", True)
    fields.setdefault("sms_consent", False)
    fields.setdefault("tags", [])
    return Contact(store_id="store-1", **fields)


# ─── Predicates ───

@pytest.mark.unit
class TestEvaluatePredicate:
    @pytest.mark.parametrize("operator,expected,actual,result", [
        ("equals", "vip", "vip", True),
        ("equals", 100, "100.0", True),
        ("not_equals", "vip", "regular", True),
        ("contains", "SHOP", "demo-shop", True),
        ("contains", "vip", ["vip", "new"], True),
        ("contains", "vip", None, False),
        ("greater_than", 100, 150, True),
        ("greater_than", 100, 50, False),
        ("greater_than", 100, "n/a", False),
        ("less_than", "100", 99.5, True),
        ("in", ["US", "CA"], "CA", True),
        ("in", ["US", "CA"], "DE", False),
        ("in", "US", "US", False),
        ("not_in", ["US", "CA"], "DE", True),
        ("not_in", ["US", "CA"], "US", False),
    ])
    def test_operators(self, operator, expected, actual, result):
        predicate = FilterPredicate(field="x", operator=operator, value=expected)
        assert evaluate_predicate(predicate, actual) is result

    def test_unknown_operator_never_matches(self):
        assert evaluate_predicate(FilterPredicate("x", "matches_regex", ".*"), "abc") is False


@pytest.mark.unit
class TestResolveField:
    def test_event_data_first(self):
        evt = event({"total_spent": 10, "customer": {"country": "US"}})
        c = contact(total_spent=500.0)
        assert resolve_field("total_spent", evt, c) == 10
        assert resolve_field("customer.country", evt, c) == "US"
        assert resolve_field("trigger.customer.country", evt, c) == "US"

    def test_falls_back_to_contact(self):
        assert resolve_field("total_spent", event(), contact(total_spent=150.0)) == 150.0
        assert resolve_field("contact.email", event(), contact()) == "jane@example.com"

    def test_unknown_paths_resolve_to_none(self):
        assert resolve_field("contact.password", event(), contact()) is None
        assert resolve_field("nope", event(), None) is None


# ─── Matching ───

@pytest.mark.unit
class TestWorkflowMatcher:
    def setup_method(self):
        self.matcher = WorkflowMatcher()

    def test_filter_on_total_spent(self):
        wf = definition(filters=[{"field": "total_spent", "operator": "greater_than", "value": 100}])
        assert self.matcher.match(event({"total_spent": 150}), [wf], contact()) == [wf]
        assert self.matcher.match(event({"total_spent": 50}), [wf], contact()) == []

    def test_all_filters_must_hold(self):
        wf = definition(filters=[
            {"field": "total_spent", "operator": "greater_than", "value": 100},
            {"field": "contact.tags", "operator": "contains", "value": "vip"},
        ])
        assert self.matcher.match(event({"total_spent": 150}), [wf], contact(tags=["vip"])) == [wf]
        assert self.matcher.match(event({"total_spent": 150}), [wf], contact(tags=[])) == []

    def test_trigger_type_must_match(self):
        wf = definition(trigger_type="order_created")
        assert self.matcher.match(event(), [wf], contact()) == []

    def test_inactive_workflows_never_match(self):
        wf = definition(is_active=False)
        assert self.matcher.match(event(), [wf], contact()) == []

    def test_consent_gate_requires_every_channel(self):
        wf = definition(actions=[EMAIL, SMS])
        assert self.matcher.match(event(), [wf], contact(sms_consent=False)) == []
        assert self.matcher.match(event(), [wf], contact(sms_consent=True)) == [wf]

    def test_consent_gate_without_contact(self):
        assert self.matcher.match(event(), [definition()], None) == []

    def test_consent_gate_can_be_disabled(self):
        wf = definition(send_to_subscribed_only=False)
        assert self.matcher.match(event(), [wf], contact(email_consent=False)) == [wf]

    def test_workflow_without_messaging_ignores_consent(self):
        wf = definition(actions=[{"type": "add_tag", "config": {"tags": ["welcomed"]}}])
        assert self.matcher.match(event(), [wf], contact(email_consent=False)) == [wf]
