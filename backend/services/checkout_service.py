"""Checkout persistence for abandoned-cart detection."""

from typing import Any, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.checkout import Checkout
from services.base import BaseService


class CheckoutService(BaseService[Checkout]):
    def __init__(self, db: AsyncSession):
        super().__init__(Checkout, db)

    async def get_by_token(self, store_id: str, token: str) -> Optional[Checkout]:
        result = await self.db.execute(
            select(Checkout)
            .where(Checkout.store_id == store_id, Checkout.token == token)
            .with_for_update()
        )
        return result.scalar_one_or_none()

    async def save(self, store_id: str, token: str, fields: dict[str, Any]) -> Checkout:
        """Create the checkout or overwrite the fields present in ``fields``.

        Never touches ``abandoned``; only the detector sets it.
        """
        checkout = await self.get_by_token(store_id, token)
        if checkout is None:
            try:
                async with self.db.begin_nested():
                    checkout = Checkout(store_id=store_id, token=token, abandoned=False)
                    self._apply(checkout, fields)
                    self.db.add(checkout)
                return checkout
            except IntegrityError:
                checkout = await self.get_by_token(store_id, token)
                if checkout is None:
                    raise
        self._apply(checkout, fields)
        await self.db.flush()
        return checkout

    @staticmethod
    def _apply(checkout: Checkout, fields: dict[str, Any]) -> None:
        for key, value in fields.items():
            if value is not None and key not in ("abandoned", "abandoned_at"):
                setattr(checkout, key, value)
