"""Database seed script — creates a demo store with starter workflows.

Run: python -m scripts.seed
"""

import asyncio
import os

from sqlalchemy import select

from core.constants import TriggerType
from db.database import get_session_factory, init_db
from db.models.store import Store
from db.models.workflow import Workflow


STARTER_WORKFLOWS = [
    {
        "name": "Welcome series",
        "trigger_type": TriggerType.CUSTOMER_CREATED.value,
        "trigger_config": {"exit_condition": {"type": "unsubscribed"}},
        "actions": [
            {
                "id": "welcome_email",
                "type": "send_email",
                "config": {
                    "subject": "Welcome, {{contact.first_name}}!",
                    "body": "<p>Thanks for joining us.</p>",
                },
            },
            {"id": "wait_3d", "type": "delay", "config": {"duration_minutes": 3 * 24 * 60}},
            {
                "id": "followup_email",
                "type": "send_email",
                "config": {"subject": "Picked something out yet?", "body": "<p>Here are our best sellers.</p>"},
            },
        ],
    },
    {
        "name": "Abandoned cart reminder",
        "trigger_type": TriggerType.CART_ABANDONED.value,
        "trigger_config": {"exit_condition": {"type": "order_placed"}, "respect_quiet_hours": True},
        "actions": [
            {
                "id": "cart_email",
                "type": "send_email",
                "config": {
                    "subject": "You left something behind",
                    "body": "<p>Finish your order: {{trigger.abandoned_checkout_url}}</p>",
                },
            },
            {"id": "wait_1d", "type": "delay", "config": {"duration_minutes": 24 * 60}},
            {
                "id": "cart_sms",
                "type": "send_sms",
                "config": {"message": "Your cart is still waiting: {{trigger.abandoned_checkout_url}}"},
            },
        ],
    },
    {
        "name": "VIP tagging",
        "trigger_type": TriggerType.ORDER_PAID.value,
        "trigger_config": {
            "filters": [{"field": "total_spent", "operator": "greater_than", "value": 500}],
            "send_to_subscribed_only": False,
        },
        "actions": [{"id": "tag_vip", "type": "add_tag", "config": {"tags": ["vip"]}}],
    },
]


async def seed():
    """Seed the database with a demo store and its workflows."""
    await init_db()

    domain = os.environ.get("SEED_STORE_DOMAIN", "demo-shop.myshopify.com")
    session_factory = get_session_factory()

    async with session_factory() as db:
        # 1. Demo store
        result = await db.execute(select(Store).where(Store.domain == domain))
        store = result.scalar_one_or_none()

        if not store:
            store = Store(
                domain=domain,
                name="Demo Shop",
                timezone=os.environ.get("SEED_STORE_TIMEZONE", "UTC"),
                quiet_hours_start="21:00",
                quiet_hours_end="08:00",
            )
            db.add(store)
            await db.flush()
            print(f"[seed] Created store: {store.domain} ({store.id})")
        else:
            print(f"[seed] Store exists: {store.domain}")

        # 2. Starter workflows
        created = 0
        for definition in STARTER_WORKFLOWS:
            result = await db.execute(
                select(Workflow).where(
                    Workflow.store_id == store.id, Workflow.name == definition["name"]
                )
            )
            if result.scalar_one_or_none():
                continue
            db.add(Workflow(store_id=store.id, **definition))
            created += 1

        await db.commit()
        print(f"[seed] {created} workflows created, {len(STARTER_WORKFLOWS) - created} already present")


if __name__ == "__main__":
    asyncio.run(seed())
