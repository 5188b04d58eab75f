"""Processing log of upstream events."""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from db.models.processed_event import ProcessedEvent
from services.base import BaseService


class EventLogService(BaseService[ProcessedEvent]):
    def __init__(self, db: AsyncSession):
        super().__init__(ProcessedEvent, db)

    async def is_processed(self, event_key: str) -> bool:
        result = await self.db.execute(
            select(ProcessedEvent.id).where(ProcessedEvent.event_key == event_key)
        )
        return result.scalar_one_or_none() is not None

    async def mark_processed(
        self,
        event_key: str,
        topic: str,
        store_id: Optional[str] = None,
        trigger_type: Optional[str] = None,
        executions_created: int = 0,
    ) -> bool:
        """Record the event. False when another worker already recorded it."""
        try:
            async with self.db.begin_nested():
                self.db.add(
                    ProcessedEvent(
                        event_key=event_key,
                        topic=topic,
                        store_id=store_id,
                        trigger_type=trigger_type,
                        executions_created=executions_created,
                    )
                )
        except IntegrityError:
            return False
        return True
