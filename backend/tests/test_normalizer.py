"""Tests for event normalization and abandoned-checkout detection."""

from datetime import timedelta

import pytest
from sqlalchemy import select

from core.constants import TriggerType
from core.exceptions import StoreNotFoundError, ValidationError
from db.models.checkout import Checkout
from db.models.contact import Contact
from triggers.abandoned_checkout import AbandonedCheckoutDetector
from triggers.normalizer import compute_event_key
from conftest import SHOP_DOMAIN, START


def customer_payload(**overrides):
    payload = {
        "id": 9001,
        "email": "Jane@Example.com",
        "first_name": "Jane",
        "last_name": "Doe",
        "accepts_marketing": True,
        "tags": "vip, newsletter",
        "total_spent": "150.00",
        "orders_count": 2,
    }
    payload.update(overrides)
    return payload


def checkout_payload(**overrides):
    payload = {
        "token": "chk-123",
        "email": "jane@example.com",
        "total_price": "89.90",
        "currency": "USD",
        "line_items": [{"title": "Mug", "quantity": 2}],
        "abandoned_checkout_url": "https://demo-shop.example/recover/chk-123",
    }
    payload.update(overrides)
    return payload


async def contacts(session_factory):
    async with session_factory() as session:
        return list((await session.execute(select(Contact))).scalars().all())


# ─── Event keys ───

class TestEventKey:
    def test_same_notification_same_key(self):
        a = compute_event_key("Demo-Shop.myshopify.com ", "customers/create", {"id": 1, "email": "a@b.c"})
        b = compute_event_key("demo-shop.myshopify.com", "customers/create", {"email": "a@b.c", "id": 1})
        assert a == b

    def test_topic_and_payload_change_key(self):
        base = compute_event_key(SHOP_DOMAIN, "customers/create", {"id": 1})
        assert base != compute_event_key(SHOP_DOMAIN, "customers/update", {"id": 1})
        assert base != compute_event_key(SHOP_DOMAIN, "customers/create", {"id": 2})


# ─── Customers ───

class TestCustomerTopics:
    async def test_customer_create_upserts_contact(self, runtime, store, session_factory):
        result = await runtime.normalizer.normalize(customer_payload(), "customers/create", SHOP_DOMAIN)

        assert result.success and result.processed
        assert result.contact_created is True
        assert result.store_id == store.id
        assert result.trigger_event.type == TriggerType.CUSTOMER_CREATED
        assert result.trigger_event.data["customer"]["id"] == 9001

        [contact] = await contacts(session_factory)
        assert contact.email == "jane@example.com"
        assert contact.email_consent is True
        assert contact.total_spent == 150.0
        assert contact.order_count == 2
        assert contact.tags == ["vip", "newsletter"]
        assert contact.external_customer_id == "9001"

    async def test_customer_update_merges_tags_and_keeps_fields(self, runtime, store, session_factory):
        await runtime.normalizer.normalize(customer_payload(), "customers/create", SHOP_DOMAIN)
        result = await runtime.normalizer.normalize(
            {"id": 9001, "email": "jane@example.com", "tags": "returning", "accepts_marketing": False},
            "customers/update",
            SHOP_DOMAIN,
        )

        assert result.contact_created is False
        assert result.trigger_event.type == TriggerType.CUSTOMER_UPDATED
        [contact] = await contacts(session_factory)
        assert contact.tags == ["vip", "newsletter", "returning"]
        assert contact.email_consent is False
        assert contact.first_name == "Jane"

    async def test_consent_from_marketing_consent_object(self, runtime, store, session_factory):
        payload = customer_payload(
            accepts_marketing=None,
            email_marketing_consent={"state": "subscribed"},
            sms_marketing_consent={"state": "not_subscribed"},
        )
        await runtime.normalizer.normalize(payload, "customers/create", SHOP_DOMAIN)
        [contact] = await contacts(session_factory)
        assert contact.email_consent is True
        assert contact.sms_consent is False

    async def test_customer_without_email_is_rejected(self, runtime, store):
        with pytest.raises(ValidationError):
            await runtime.normalizer.normalize({"id": 1}, "customers/create", SHOP_DOMAIN)


# ─── Orders ───

class TestOrderTopics:
    async def test_order_create_stamps_last_order(self, runtime, store, session_factory):
        order = {
            "id": 555,
            "email": "buyer@example.com",
            "created_at": "2026-03-02T11:30:00Z",
            "customer": {"id": 42, "email": "buyer@example.com", "first_name": "Bo"},
        }
        result = await runtime.normalizer.normalize(order, "orders/create", SHOP_DOMAIN)

        assert result.trigger_event.type == TriggerType.ORDER_CREATED
        [contact] = await contacts(session_factory)
        assert contact.last_order_at == START - timedelta(minutes=30)
        assert contact.first_name == "Bo"

    async def test_order_without_customer_email_still_emits(self, runtime, store):
        result = await runtime.normalizer.normalize({"id": 1}, "orders/paid", SHOP_DOMAIN)
        assert result.trigger_event.type == TriggerType.ORDER_PAID
        assert result.contact is None

    async def test_malformed_customer_rejected(self, runtime, store):
        with pytest.raises(ValidationError):
            await runtime.normalizer.normalize({"id": 1, "customer": "nope"}, "orders/create", SHOP_DOMAIN)


# ─── Routing ───

class TestRouting:
    async def test_unknown_topic_is_not_processed(self, runtime, store):
        result = await runtime.normalizer.normalize({"id": 1}, "products/create", SHOP_DOMAIN)
        assert result.success is True
        assert result.processed is False
        assert result.trigger_event is None

    async def test_unknown_store_raises(self, runtime, store):
        with pytest.raises(StoreNotFoundError):
            await runtime.normalizer.normalize(customer_payload(), "customers/create", "other.myshopify.com")

    async def test_non_object_payload_rejected(self, runtime, store):
        with pytest.raises(ValidationError):
            await runtime.normalizer.normalize(["not", "a", "dict"], "customers/create", SHOP_DOMAIN)

    def test_supported_topics(self, runtime):
        assert "checkouts/update" in runtime.normalizer.supported_topics
        assert runtime.normalizer.supports("orders/fulfilled")
        assert not runtime.normalizer.supports("products/create")


# ─── Checkouts ───

class TestAbandonedCheckout:
    async def test_checkout_create_emits_started_checkout(self, runtime, store, session_factory):
        result = await runtime.normalizer.normalize(checkout_payload(), "checkouts/create", SHOP_DOMAIN)
        assert result.trigger_event.type == TriggerType.STARTED_CHECKOUT
        assert result.trigger_event.data["total_price"] == 89.9

        async with session_factory() as session:
            checkout = (await session.execute(select(Checkout))).scalar_one()
        assert checkout.upstream_created_at == START
        assert checkout.abandoned is False

    async def test_abandoned_fires_once_after_threshold(self, runtime, store, clock, session_factory):
        await runtime.normalizer.normalize(checkout_payload(), "checkouts/create", SHOP_DOMAIN)

        clock.advance(minutes=30)
        early = await runtime.normalizer.normalize(checkout_payload(), "checkouts/update", SHOP_DOMAIN)
        assert early.processed is True
        assert early.trigger_event is None

        clock.advance(minutes=31)
        fired = await runtime.normalizer.normalize(checkout_payload(), "checkouts/update", SHOP_DOMAIN)
        assert fired.trigger_event.type == TriggerType.CART_ABANDONED
        assert fired.trigger_event.data["abandoned_checkout_url"].endswith("/chk-123")

        clock.advance(minutes=30)
        again = await runtime.normalizer.normalize(checkout_payload(), "checkouts/update", SHOP_DOMAIN)
        assert again.trigger_event is None

        async with session_factory() as session:
            checkout = (await session.execute(select(Checkout))).scalar_one()
        assert checkout.abandoned is True
        assert checkout.abandoned_at == START + timedelta(minutes=61)

    async def test_completed_checkout_never_abandoned(self, runtime, store, clock):
        await runtime.normalizer.normalize(checkout_payload(), "checkouts/create", SHOP_DOMAIN)
        clock.advance(hours=2)
        result = await runtime.normalizer.normalize(
            checkout_payload(completed_at="2026-03-02T12:20:00Z"), "checkouts/update", SHOP_DOMAIN
        )
        assert result.trigger_event is None

    async def test_checkout_without_token_rejected(self, runtime, store):
        with pytest.raises(ValidationError):
            await runtime.normalizer.normalize({"email": "x@y.z"}, "checkouts/update", SHOP_DOMAIN)


@pytest.mark.unit
class TestDetector:
    def test_threshold_boundary(self):
        detector = AbandonedCheckoutDetector(threshold_minutes=60)
        checkout = Checkout(store_id="s", token="t", upstream_created_at=START, abandoned=False)
        assert detector.is_abandoned(checkout, START + timedelta(minutes=59)) is False
        assert detector.is_abandoned(checkout, START + timedelta(minutes=60)) is True

    def test_evaluate_is_a_one_shot_transition(self):
        detector = AbandonedCheckoutDetector(threshold_minutes=60)
        checkout = Checkout(store_id="s", token="t", upstream_created_at=START, abandoned=False)
        later = START + timedelta(hours=2)
        assert detector.evaluate(checkout, later) is True
        assert detector.evaluate(checkout, later) is False
        assert checkout.abandoned_at == later
