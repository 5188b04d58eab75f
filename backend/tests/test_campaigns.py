"""Tests for batch campaign sends."""

import asyncio

import pytest

from core import metrics
from core.constants import CampaignStatus, Channel
from core.exceptions import CampaignNotFoundError, ValidationError
from db.models.campaign import Campaign
from services.campaign_service import CampaignSendResult, CampaignService
from conftest import START


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.fixture
def make_campaign(session_factory, store):
    async def _make(**fields):
        fields.setdefault("name", "Spring sale")
        fields.setdefault("subject", "Hi {{contact.first_name}}")
        fields.setdefault("body", "<p>20% off this week</p>")
        async with session_factory() as session:
            campaign = Campaign(store_id=store.id, **fields)
            session.add(campaign)
            await session.commit()
        return campaign

    return _make


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def campaigns(session_factory, runtime, sleep, clock):
    return CampaignService(
        session_factory, runtime.channels, batch_size=2, batch_delay=1.5, sleep=sleep, clock=clock
    )


async def reload(session_factory, campaign_id):
    async with session_factory() as session:
        return await session.get(Campaign, campaign_id)


class TestBatching:
    async def test_batches_are_paced(self, campaigns, make_campaign, make_contact, sleep, email_channel, session_factory):
        for i in range(5):
            await make_contact(email=f"c{i}@example.com", first_name=f"C{i}")
        campaign = await make_campaign()

        result = await campaigns.send_campaign(campaign.id)

        assert result.status == CampaignStatus.SENT
        assert result.recipients == 5
        assert result.delivered == 5
        assert result.batches == 3
        assert sleep.delays == [1.5, 1.5]
        assert sorted(m.subject for m in email_channel.sent) == [f"Hi C{i}" for i in range(5)]

        stored = await reload(session_factory, campaign.id)
        assert stored.status == CampaignStatus.SENT.value
        assert stored.recipient_count == 5
        assert stored.delivered_count == 5
        assert stored.sent_at == START
        assert metrics.get_counter(metrics.CAMPAIGN_SENDS, {"channel": "email"}) == 5

    async def test_single_batch_never_sleeps(self, campaigns, make_campaign, make_contact, sleep):
        await make_contact()
        campaign = await make_campaign()
        result = await campaigns.send_campaign(campaign.id)
        assert result.batches == 1
        assert sleep.delays == []


class TestAudience:
    async def test_only_consented_contacts(self, campaigns, make_campaign, make_contact, email_channel):
        await make_contact(email="yes@example.com")
        await make_contact(email="no@example.com", email_consent=False)
        campaign = await make_campaign()

        result = await campaigns.send_campaign(campaign.id)
        assert result.recipients == 1
        assert [m.recipient for m in email_channel.sent] == ["yes@example.com"]

    async def test_tag_and_spend_filters(self, campaigns, make_campaign, make_contact, email_channel):
        await make_contact(email="vip@example.com", tags=["vip"], total_spent=500.0)
        await make_contact(email="cheap-vip@example.com", tags=["vip"], total_spent=5.0)
        await make_contact(email="rich@example.com", total_spent=900.0)
        campaign = await make_campaign(audience={"tags": ["vip"], "min_total_spent": 100})

        await campaigns.send_campaign(campaign.id)
        assert [m.recipient for m in email_channel.sent] == ["vip@example.com"]

    async def test_sms_campaign_needs_phone_and_sms_consent(self, campaigns, make_campaign, make_contact, sms_channel):
        await make_contact(email="a@example.com", sms_consent=True, phone="+15550101")
        await make_contact(email="b@example.com", sms_consent=True)
        await make_contact(email="c@example.com", sms_consent=False, phone="+15550103")
        campaign = await make_campaign(channel=Channel.SMS.value, subject=None, body="Flash sale!")

        result = await campaigns.send_campaign(campaign.id)
        assert result.delivered == 1
        assert [m.recipient for m in sms_channel.sent] == ["+15550101"]

    async def test_empty_audience_is_sent(self, campaigns, make_campaign):
        campaign = await make_campaign()
        result = await campaigns.send_campaign(campaign.id)
        assert result.status == CampaignStatus.SENT
        assert result.recipients == 0
        assert result.batches == 0


class TestFailures:
    async def test_partial_failure_still_sent(self, campaigns, make_campaign, make_contact, email_channel, session_factory):
        for i in range(3):
            await make_contact(email=f"c{i}@example.com")
        campaign = await make_campaign()
        email_channel.fail_next(1, status_code=422)

        result = await campaigns.send_campaign(campaign.id)

        assert result.status == CampaignStatus.SENT
        assert result.delivered == 2
        assert result.failed == 1
        stored = await reload(session_factory, campaign.id)
        assert stored.failed_count == 1
        assert metrics.get_counter(
            metrics.CAMPAIGN_FAILURES, {"channel": "email", "error_type": "ExternalChannelError"}
        ) == 1

    async def test_total_failure_marks_campaign_failed(self, campaigns, make_campaign, make_contact, email_channel, session_factory):
        await make_contact(email="a@example.com")
        await make_contact(email="b@example.com")
        campaign = await make_campaign()
        email_channel.fail_next(2, status_code=400)

        result = await campaigns.send_campaign(campaign.id)
        assert result.status == CampaignStatus.FAILED
        stored = await reload(session_factory, campaign.id)
        assert stored.status == CampaignStatus.FAILED.value
        assert stored.sent_at is None

    async def test_failed_campaign_can_be_resent(self, campaigns, make_campaign, make_contact, email_channel):
        await make_contact()
        campaign = await make_campaign(status=CampaignStatus.FAILED.value)
        result = await campaigns.send_campaign(campaign.id)
        assert result.status == CampaignStatus.SENT

    @pytest.mark.parametrize("status", [CampaignStatus.SENDING.value, CampaignStatus.SENT.value])
    async def test_in_flight_or_sent_campaign_rejected(self, campaigns, make_campaign, status):
        campaign = await make_campaign(status=status)
        with pytest.raises(ValidationError):
            await campaigns.send_campaign(campaign.id)

    async def test_unknown_campaign(self, campaigns, store):
        with pytest.raises(CampaignNotFoundError):
            await campaigns.send_campaign("missing")

    async def test_unavailable_channel(self, campaigns, make_campaign):
        campaign = await make_campaign(channel="whatsapp")
        with pytest.raises(ValidationError):
            await campaigns.send_campaign(campaign.id)


class TestConcurrency:
    async def test_concurrent_sends_deliver_once(self, campaigns, make_campaign, make_contact, email_channel, session_factory):
        for i in range(3):
            await make_contact(email=f"c{i}@example.com")
        campaign = await make_campaign()

        outcomes = await asyncio.gather(
            campaigns.send_campaign(campaign.id),
            campaigns.send_campaign(campaign.id),
            return_exceptions=True,
        )

        sent = [o for o in outcomes if isinstance(o, CampaignSendResult)]
        rejected = [o for o in outcomes if isinstance(o, ValidationError)]
        assert len(sent) == 1
        assert len(rejected) == 1
        assert len(email_channel.sent) == 3
        stored = await reload(session_factory, campaign.id)
        assert stored.status == CampaignStatus.SENT.value
        assert stored.delivered_count == 3

    async def test_unexpected_send_error_is_counted_as_failure(self, campaigns, make_campaign, make_contact, email_channel):
        for i in range(3):
            await make_contact(email=f"c{i}@example.com")
        campaign = await make_campaign()
        email_channel.raise_next(RuntimeError("template engine exploded"))

        result = await campaigns.send_campaign(campaign.id)

        assert result.status == CampaignStatus.SENT
        assert result.delivered == 2
        assert result.failed == 1
        assert metrics.get_counter(
            metrics.CAMPAIGN_FAILURES, {"channel": "email", "error_type": "RuntimeError"}
        ) == 1
