"""Contact store: upsert by (store, email), point reads and tag mutations."""

from dataclasses import dataclass, field
from typing import Any, Iterable, Optional, Sequence

import structlog
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import ValidationError
from db.models.contact import Contact
from services.base import BaseService

logger = structlog.get_logger(__name__)

# Scalar fields an upsert or an update_contact action may overwrite.
UPDATABLE_FIELDS = (
    "first_name",
    "last_name",
    "phone",
    "external_customer_id",
    "email_consent",
    "sms_consent",
    "total_spent",
    "order_count",
    "last_order_at",
)
# Set-valued fields: incoming values are merged, never replace.
SET_FIELDS = ("tags", "segments")


@dataclass
class ContactUpsertResult:
    contact: Contact
    created: bool
    changed_fields: list[str] = field(default_factory=list)


def normalize_email(email: Optional[str]) -> str:
    return (email or "").strip().lower()


def _merge(existing: Optional[Iterable[str]], incoming: Iterable[str]) -> list[str]:
    merged = list(existing or [])
    for item in incoming:
        if item and item not in merged:
            merged.append(item)
    return merged


class ContactService(BaseService[Contact]):
    def __init__(self, db: AsyncSession):
        super().__init__(Contact, db)

    async def get_by_email(self, store_id: str, email: str) -> Optional[Contact]:
        result = await self.db.execute(
            select(Contact).where(
                Contact.store_id == store_id,
                Contact.email == normalize_email(email),
            )
        )
        return result.scalar_one_or_none()

    async def upsert(
        self, store_id: str, email: str, fields: dict[str, Any]
    ) -> ContactUpsertResult:
        """Insert or partially update the contact keyed by (store_id, email).

        Only keys present in ``fields`` with a non-None value are written;
        everything else on an existing contact is left untouched.
        """
        email = normalize_email(email)
        if not email:
            raise ValidationError("Contact upsert requires an email")

        contact = await self.get_by_email(store_id, email)
        if contact is None:
            try:
                async with self.db.begin_nested():
                    contact = Contact(
                        store_id=store_id,
                        email=email,
                        tags=[],
                        segments=[],
                    )
                    changed = self._apply(contact, fields)
                    self.db.add(contact)
                logger.info("Contact created", store_id=store_id, contact_id=contact.id)
                return ContactUpsertResult(contact=contact, created=True, changed_fields=changed)
            except IntegrityError:
                # A concurrent event created it first; fall through to update.
                contact = await self.get_by_email(store_id, email)
                if contact is None:
                    raise

        changed = self._apply(contact, fields)
        await self.db.flush()
        return ContactUpsertResult(contact=contact, created=False, changed_fields=changed)

    @staticmethod
    def _apply(contact: Contact, fields: dict[str, Any]) -> list[str]:
        changed: list[str] = []
        for key in UPDATABLE_FIELDS:
            value = fields.get(key)
            if value is not None and getattr(contact, key) != value:
                setattr(contact, key, value)
                changed.append(key)
        for key in SET_FIELDS:
            incoming = fields.get(key)
            if incoming:
                merged = _merge(getattr(contact, key), incoming)
                if merged != list(getattr(contact, key) or []):
                    setattr(contact, key, merged)
                    changed.append(key)
        return changed

    async def add_tags(self, contact: Contact, tags: Sequence[str]) -> list[str]:
        """Set-insert tags. Returns the ones that were not already present."""
        current = list(contact.tags or [])
        added = [t for t in dict.fromkeys(tags) if t and t not in current]
        if added:
            contact.tags = current + added
            await self.db.flush()
        return added

    async def remove_tags(self, contact: Contact, tags: Sequence[str]) -> list[str]:
        current = list(contact.tags or [])
        removed = [t for t in current if t in set(tags)]
        if removed:
            contact.tags = [t for t in current if t not in removed]
            await self.db.flush()
        return removed

    async def apply_updates(self, contact: Contact, updates: dict[str, Any]) -> list[str]:
        """Partial update from an automation action, restricted to known fields."""
        unknown = set(updates) - set(UPDATABLE_FIELDS) - set(SET_FIELDS)
        if unknown:
            raise ValidationError(f"Cannot update contact fields: {', '.join(sorted(unknown))}")
        changed = self._apply(contact, updates)
        if changed:
            await self.db.flush()
        return changed

    async def list_audience(
        self,
        store_id: str,
        channel: str,
        audience: Optional[dict[str, Any]] = None,
    ) -> list[Contact]:
        """Consented contacts for a campaign, narrowed by segments/tags/spend."""
        audience = audience or {}
        query = select(Contact).where(Contact.store_id == store_id)
        if channel == "sms":
            query = query.where(Contact.sms_consent.is_(True), Contact.phone.is_not(None))
        else:
            query = query.where(Contact.email_consent.is_(True))
        if audience.get("min_total_spent") is not None:
            query = query.where(Contact.total_spent >= float(audience["min_total_spent"]))
        if audience.get("max_total_spent") is not None:
            query = query.where(Contact.total_spent <= float(audience["max_total_spent"]))
        result = await self.db.execute(query.order_by(Contact.created_at, Contact.id))
        contacts = list(result.scalars().all())

        segments = set(audience.get("segments") or [])
        tags = set(audience.get("tags") or [])
        if segments:
            contacts = [c for c in contacts if segments & set(c.segments or [])]
        if tags:
            contacts = [c for c in contacts if tags & set(c.tags or [])]
        return contacts
