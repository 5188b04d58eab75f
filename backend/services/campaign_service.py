"""Batch campaign sends.

Recipients are sent in fixed-size batches: sends inside one batch run
concurrently, batches run one after another with a pause in between so a
large audience never floods the provider.
"""

import asyncio
from collections import Counter
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Mapping

import structlog
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from channels.base import OutboundMessage
from channels.guard import GuardedChannel
from core import metrics
from core.constants import CampaignStatus, Channel
from core.exceptions import AutomationError, CampaignNotFoundError, ValidationError
from core.utils import chunked, utc_now_naive
from db.models.campaign import Campaign
from db.models.contact import Contact
from services.contact_service import ContactService
from workflow.templating import render_template

logger = structlog.get_logger(__name__)

DELIVERED = "delivered"
FAILED = "failed"
SKIPPED = "skipped"

SENDABLE_STATUSES = (CampaignStatus.DRAFT.value, CampaignStatus.SCHEDULED.value, CampaignStatus.FAILED.value)


@dataclass
class CampaignSendResult:
    campaign_id: str
    status: CampaignStatus
    recipients: int
    delivered: int
    failed: int
    skipped: int
    batches: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "campaign_id": self.campaign_id,
            "status": self.status.value,
            "recipients": self.recipients,
            "delivered": self.delivered,
            "failed": self.failed,
            "skipped": self.skipped,
            "batches": self.batches,
        }


class CampaignService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        channels: Mapping[Channel, GuardedChannel],
        batch_size: int = 100,
        batch_delay: float = 1.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable = utc_now_naive,
    ):
        self._session_factory = session_factory
        self._channels = dict(channels)
        self.batch_size = batch_size
        self.batch_delay = batch_delay
        self._sleep = sleep
        self._clock = clock

    async def send_campaign(self, campaign_id: str) -> CampaignSendResult:
        """Send a campaign to its audience.

        Raises:
            CampaignNotFoundError: no such campaign.
            ValidationError: the campaign is already sending or sent.
        """
        async with self._session_factory() as session:
            campaign = await session.get(Campaign, campaign_id)
            if campaign is None:
                raise CampaignNotFoundError(campaign_id)
            if campaign.status not in SENDABLE_STATUSES:
                raise ValidationError(f"Campaign {campaign_id} is {campaign.status}")
            channel = self._channel_for(campaign)
            if not await self._claim(session, campaign_id):
                await session.rollback()
                raise ValidationError(f"Campaign {campaign_id} is already being sent")
            recipients = await ContactService(session).list_audience(
                campaign.store_id, campaign.channel, campaign.audience
            )
            campaign.status = CampaignStatus.SENDING.value
            campaign.recipient_count = len(recipients)
            await session.commit()

        logger.info(
            "Campaign sending",
            campaign_id=campaign_id,
            channel=campaign.channel,
            recipients=len(recipients),
            batch_size=self.batch_size,
        )

        outcomes: Counter = Counter()
        batches = 0
        try:
            for batch in chunked(recipients, self.batch_size):
                if batches:
                    await self._sleep(self.batch_delay)
                results = await asyncio.gather(*(self._send_one(campaign, channel, c) for c in batch))
                outcomes.update(results)
                batches += 1
                logger.info("Campaign batch sent", campaign_id=campaign_id, batch=batches, size=len(batch))
        except Exception:
            await self._record(campaign_id, CampaignStatus.FAILED, outcomes)
            raise

        if recipients and not outcomes[DELIVERED]:
            status = CampaignStatus.FAILED
        else:
            status = CampaignStatus.SENT
        await self._record(campaign_id, status, outcomes)

        logger.info(
            "Campaign finished",
            campaign_id=campaign_id,
            status=status.value,
            delivered=outcomes[DELIVERED],
            failed=outcomes[FAILED],
            skipped=outcomes[SKIPPED],
        )
        return CampaignSendResult(
            campaign_id=campaign_id,
            status=status,
            recipients=len(recipients),
            delivered=outcomes[DELIVERED],
            failed=outcomes[FAILED],
            skipped=outcomes[SKIPPED],
            batches=batches,
        )

    async def _claim(self, session: AsyncSession, campaign_id: str) -> bool:
        """Move a sendable campaign to sending. False if another sender got there first."""
        result = await session.execute(
            update(Campaign)
            .where(Campaign.id == campaign_id, Campaign.status.in_(SENDABLE_STATUSES))
            .values(status=CampaignStatus.SENDING.value)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    def _channel_for(self, campaign: Campaign) -> GuardedChannel:
        try:
            return self._channels[Channel(campaign.channel)]
        except (KeyError, ValueError):
            raise ValidationError(f"Campaign channel {campaign.channel!r} is not available")

    async def _send_one(self, campaign: Campaign, channel: GuardedChannel, contact: Contact) -> str:
        recipient = contact.phone if channel.channel_type == Channel.SMS else contact.email
        if not recipient:
            return SKIPPED
        message = OutboundMessage(
            recipient=recipient,
            subject=render_template(campaign.subject, contact) or None,
            body=render_template(campaign.body, contact),
            text_body=render_template(campaign.text_body, contact) or None,
            from_address=campaign.from_address,
            from_name=campaign.from_name,
            metadata={"campaign_id": campaign.id, "contact_id": contact.id},
        )
        labels = {"channel": channel.channel_type.value}
        try:
            await channel.send(message)
        except AutomationError as e:
            metrics.inc(metrics.CAMPAIGN_FAILURES, labels={**labels, "error_type": type(e).__name__})
            logger.warning(
                "Campaign send failed",
                campaign_id=campaign.id,
                contact_id=contact.id,
                error=e.message,
            )
            return FAILED
        except Exception as e:
            metrics.inc(metrics.CAMPAIGN_FAILURES, labels={**labels, "error_type": type(e).__name__})
            logger.exception(
                "Campaign send crashed",
                campaign_id=campaign.id,
                contact_id=contact.id,
            )
            return FAILED
        metrics.inc(metrics.CAMPAIGN_SENDS, labels=labels)
        return DELIVERED

    async def _record(self, campaign_id: str, status: CampaignStatus, outcomes: Counter) -> None:
        async with self._session_factory() as session:
            campaign = await session.get(Campaign, campaign_id)
            campaign.status = status.value
            campaign.delivered_count = outcomes[DELIVERED]
            campaign.failed_count = outcomes[FAILED]
            campaign.skipped_count = outcomes[SKIPPED]
            if status == CampaignStatus.SENT:
                campaign.sent_at = self._clock()
            await session.commit()
