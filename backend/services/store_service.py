"""Store lookups."""

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from core.exceptions import StoreNotFoundError
from db.models.store import Store
from services.base import BaseService


class StoreService(BaseService[Store]):
    def __init__(self, db: AsyncSession):
        super().__init__(Store, db)

    async def get_by_domain(self, domain: str) -> Store:
        """Resolve the store that owns ``domain``.

        Raises:
            StoreNotFoundError: no store is registered for the domain.
        """
        normalized = (domain or "").strip().lower()
        result = await self.db.execute(select(Store).where(Store.domain == normalized))
        store = result.scalar_one_or_none()
        if store is None:
            raise StoreNotFoundError(domain)
        return store
