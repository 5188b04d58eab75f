"""Trigger Manager: the ingestion pipeline.

For each upstream notification:
1. Drop it if its event key was already processed
2. Normalize it (contact/checkout upserts are committed here)
3. Load the store's active workflows for the trigger type and match them
4. Start one execution per matched workflow, concurrently
5. Run the new executions until each is waiting or finished
6. Record the event key

Redelivery between steps 4 and 6 is harmless: execution idempotency keys
stop a second run from being created.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from core import metrics
from core.exceptions import StoreNotFoundError, ValidationError
from core.logging_config import log_context
from services.event_log_service import EventLogService
from services.workflow_service import WorkflowService
from triggers.base import TriggerEvent
from triggers.matcher import WorkflowMatcher
from triggers.normalizer import EventNormalizer, compute_event_key
from workflow.actions import WorkflowDefinition
from workflow.engine import ExecutionScheduler

logger = structlog.get_logger(__name__)


@dataclass
class IngestResult:
    success: bool
    event_key: str
    processed: bool = False
    duplicate: bool = False
    trigger_event: Optional[TriggerEvent] = None
    execution_ids: list[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": self.success,
            "event_key": self.event_key,
            "processed": self.processed,
            "duplicate": self.duplicate,
            "trigger_type": self.trigger_event.type.value if self.trigger_event else None,
            "execution_ids": list(self.execution_ids),
            "error": self.error,
        }


class TriggerManager:
    """Routes normalized events to matching workflows."""

    def __init__(
        self,
        normalizer: EventNormalizer,
        matcher: WorkflowMatcher,
        scheduler: ExecutionScheduler,
        session_factory: async_sessionmaker[AsyncSession],
    ):
        self.normalizer = normalizer
        self.matcher = matcher
        self.scheduler = scheduler
        self._session_factory = session_factory

    async def ingest(
        self,
        topic: str,
        shop_domain: str,
        payload: Any,
        event_key: Optional[str] = None,
    ) -> IngestResult:
        key = event_key or compute_event_key(shop_domain, topic, payload)
        metrics.inc(metrics.EVENTS_RECEIVED, labels={"topic": topic})

        with log_context(event_key=key, topic=topic, shop_domain=shop_domain):
            async with self._session_factory() as session:
                if await EventLogService(session).is_processed(key):
                    metrics.inc(metrics.EVENTS_DUPLICATE, labels={"topic": topic})
                    logger.info("Duplicate event dropped")
                    return IngestResult(success=True, event_key=key, duplicate=True)

            try:
                normalized = await self.normalizer.normalize(payload, topic, shop_domain, event_key=key)
            except (StoreNotFoundError, ValidationError) as e:
                reason = "unknown_store" if isinstance(e, StoreNotFoundError) else "invalid_payload"
                metrics.inc(metrics.INGEST_FAILURES, labels={"topic": topic, "reason": reason})
                logger.warning("Event rejected", reason=reason, error=e.message)
                return IngestResult(success=False, event_key=key, error=e.message)

            if not normalized.processed:
                return IngestResult(success=True, event_key=key, error=normalized.error)

            event = normalized.trigger_event
            execution_ids: list[str] = []
            if event is not None:
                workflows = await self._load_workflows(event)
                matched = self.matcher.match(event, workflows, normalized.contact)
                if matched:
                    execution_ids = await self.scheduler.start_many(matched, event, normalized.contact)
                    await asyncio.gather(*(self.scheduler.run(e) for e in execution_ids))
                logger.info(
                    "Event dispatched",
                    trigger_type=event.type.value,
                    candidates=len(workflows),
                    matched=len(matched),
                    executions=len(execution_ids),
                )

            async with self._session_factory() as session:
                recorded = await EventLogService(session).mark_processed(
                    key,
                    topic,
                    store_id=normalized.store_id,
                    trigger_type=event.type.value if event else None,
                    executions_created=len(execution_ids),
                )
                await session.commit()
            if not recorded:
                metrics.inc(metrics.EVENTS_DUPLICATE, labels={"topic": topic})
                logger.info("Event recorded concurrently by another worker")

            return IngestResult(
                success=True,
                event_key=key,
                processed=True,
                duplicate=not recorded,
                trigger_event=event,
                execution_ids=execution_ids,
            )

    async def _load_workflows(self, event: TriggerEvent) -> list[WorkflowDefinition]:
        async with self._session_factory() as session:
            rows = await WorkflowService(session).list_active(event.store_id, event.type.value)

        definitions = []
        for row in rows:
            try:
                definitions.append(WorkflowDefinition.from_model(row))
            except ValidationError as e:
                logger.error("Skipping invalid workflow", workflow_id=row.id, error=e.message)
        return definitions
