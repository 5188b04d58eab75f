"""Tests for workflow definition parsing, templating and exit conditions."""

from datetime import timedelta

import pytest

from core.constants import ActionType, Channel, TriggerType
from core.exceptions import ValidationError
from db.models.contact import Contact
from workflow.actions import (
    AddTagAction,
    DelayAction,
    SendEmailAction,
    WorkflowDefinition,
    parse_action,
)
from workflow.exit_conditions import first_met
from workflow.quiet_hours import QuietWindow, parse_clock
from workflow.templating import render_template
from conftest import START


def contact(**fields):
    fields.setdefault("email", "jane@example.com")
    fields.setdefault("email_consent", True)
    fields.setdefault("sms_consent", True)
    fields.setdefault("tags", [])
    return Contact(store_id="s", **fields)


# ─── Action parsing ───

@pytest.mark.unit
class TestParseAction:
    def test_send_email_accepts_camel_case_config(self):
        action = parse_action(
            {"id": "e1", "type": "send_email", "config": {"subject": "Hi", "htmlContent": "<p>x</p>", "fromName": "Shop"}}
        )
        assert isinstance(action, SendEmailAction)
        assert action.body == "<p>x</p>"
        assert action.from_name == "Shop"

    def test_missing_id_gets_positional_id(self):
        action = parse_action({"type": "add_tag", "config": {"tag": "vip"}}, index=3)
        assert isinstance(action, AddTagAction)
        assert action.id == "action_3"
        assert action.tags == ("vip",)

    def test_delay_duration_and_legacy_form(self):
        explicit = parse_action({"type": "delay", "config": {"duration_minutes": 45}})
        legacy = parse_action({"type": "delay", "delay": 20, "config": {}})
        assert isinstance(explicit, DelayAction)
        assert explicit.duration_minutes == 45
        assert legacy.duration_minutes == 20
        assert legacy.delay == 0

    @pytest.mark.parametrize("data", [
        {"type": "launch_rocket"},
        {"type": "send_email", "config": {"subject": "No body"}},
        {"type": "send_sms", "config": {}},
        {"type": "add_tag", "config": {"tags": []}},
        {"type": "update_contact", "config": {"updates": {}}},
        {"type": "delay", "config": {"duration_minutes": -5}},
        {"type": "send_sms", "delay": -1, "config": {"message": "x"}},
        "not-an-object",
    ])
    def test_invalid_actions_rejected(self, data):
        with pytest.raises(ValidationError):
            parse_action(data)


@pytest.mark.unit
class TestWorkflowDefinition:
    def test_round_trip_through_snapshot(self):
        definition = WorkflowDefinition.from_dict({
            "id": "wf",
            "store_id": "s",
            "name": "Welcome",
            "trigger_type": "customer_created",
            "trigger_config": {
                "conditions": [{"field": "total_spent", "operator": "greater_than", "value": 10}],
                "exit_condition": {"type": "order_placed"},
                "respect_quiet_hours": True,
            },
            "actions": [
                {"id": "a", "type": "send_email", "config": {"subject": "Hi", "body": "Yo"}},
                {"id": "b", "type": "send_sms", "config": {"message": "Yo"}},
            ],
        })
        assert definition.trigger_type == TriggerType.CUSTOMER_CREATED
        assert definition.channels == {Channel.EMAIL, Channel.SMS}
        assert definition.trigger_config.exit_conditions == ({"type": "order_placed"},)

        restored = WorkflowDefinition.from_dict(definition.to_dict())
        assert restored == definition

    def test_unknown_trigger_type(self):
        with pytest.raises(ValidationError):
            WorkflowDefinition.from_dict({"id": "wf", "store_id": "s", "trigger_type": "moon_landing"})

    def test_filter_without_value_rejected(self):
        with pytest.raises(ValidationError):
            WorkflowDefinition.from_dict({
                "id": "wf",
                "store_id": "s",
                "trigger_type": "order_paid",
                "trigger_config": {"filters": [{"field": "x", "operator": "equals"}]},
            })

    def test_action_types(self):
        definition = WorkflowDefinition.from_dict({
            "id": "wf",
            "store_id": "s",
            "trigger_type": "order_paid",
            "actions": [{"type": "update_contact", "config": {"updates": {"first_name": "J"}}}],
        })
        assert definition.actions[0].type == ActionType.UPDATE_CONTACT
        assert definition.channels == set()


# ─── Templating ───

@pytest.mark.unit
class TestRenderTemplate:
    def test_contact_and_trigger_placeholders(self):
        c = contact(first_name="Jane", total_spent=12.5)
        data = {"order": {"name": "#1001", "items": [{"title": "Mug"}]}}
        rendered = render_template(
            "Hi {{ contact.first_name }}, order {{trigger.order.name}} ({{trigger.order.items.0.title}}) "
            "total {{contact.totalSpent}}",
            c,
            data,
        )
        assert rendered == "Hi Jane, order #1001 (Mug) total 12.50"

    def test_unresolved_placeholders_render_empty(self):
        assert render_template("Hi {{contact.first_name}}{{trigger.nope}}{{other.x}}!", contact(), {}) == "Hi !"

    def test_empty_template(self):
        assert render_template(None) == ""
        assert render_template("") == ""


# ─── Exit conditions ───

@pytest.mark.unit
class TestExitConditions:
    def test_unsubscribed_any_and_per_channel(self):
        partly = contact(email_consent=False, sms_consent=True)
        assert first_met([{"type": "unsubscribed"}], partly, START) is None
        assert first_met([{"type": "unsubscribed", "channel": "email"}], partly, START) == "unsubscribed:email"
        gone = contact(email_consent=False, sms_consent=False)
        assert first_met([{"type": "unsubscribed"}], gone, START) == "unsubscribed"

    def test_order_placed_only_after_start(self):
        before = contact(last_order_at=START - timedelta(days=1))
        after = contact(last_order_at=START + timedelta(minutes=1))
        assert first_met([{"type": "order_placed"}], before, START) is None
        assert first_met([{"type": "order_placed"}], after, START) == "order_placed"

    def test_unknown_condition_ignored(self):
        assert first_met([{"type": "full_moon"}], contact(), START) is None

    def test_no_contact_never_exits(self):
        assert first_met([{"type": "unsubscribed"}], None, START) is None


# ─── Quiet hours ───

@pytest.mark.unit
class TestQuietWindow:
    class _Store:
        def __init__(self, tz="UTC", start=None, end=None):
            self.timezone = tz
            self.quiet_hours_start = start
            self.quiet_hours_end = end

    def test_window_is_half_open_and_wraps_midnight(self):
        window = QuietWindow.for_store(self._Store())
        day = START.replace(hour=0)
        assert window.contains(day.replace(hour=20, minute=59)) is False
        assert window.contains(day.replace(hour=21)) is True
        assert window.contains(day.replace(hour=3)) is True
        assert window.contains(day.replace(hour=8)) is False

    def test_window_end_before_and_after_midnight(self):
        window = QuietWindow.for_store(self._Store())
        assert window.window_end(START.replace(hour=23)) == START.replace(hour=8) + timedelta(days=1)
        assert window.window_end(START.replace(hour=2)) == START.replace(hour=8)

    def test_store_timezone(self):
        # 21:00-08:00 in New York is 02:00-13:00 UTC in March (EST, UTC-5).
        window = QuietWindow.for_store(self._Store("America/New_York", "21:00", "08:00"))
        assert window.contains(START.replace(hour=1)) is False
        assert window.contains(START.replace(hour=3)) is True
        assert window.window_end(START.replace(hour=3)) == START.replace(hour=13)

    def test_unknown_timezone_falls_back_to_utc(self):
        window = QuietWindow.for_store(self._Store("Mars/Olympus_Mons"))
        assert window.contains(START.replace(hour=22)) is True

    def test_equal_bounds_mean_no_window(self):
        window = QuietWindow(parse_clock("09:00"), parse_clock("09:00"), QuietWindow.for_store(None).tz)
        assert window.contains(START.replace(hour=9)) is False
