"""Composition root for the automation engine.

Builds every engine component once and wires them together explicitly.
Nothing in the engine reaches for a module-level singleton; the API
lifespan and each Celery task build their own runtime. Circuit breakers
are the exception: a Celery worker process shares one registry across
its tasks.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import Settings, get_settings
from channels.base import BaseChannel
from channels.guard import GuardedChannel
from channels.providers import LogOnlyChannel, ResendEmailChannel, TelnyxSmsChannel
from core.circuit_breaker import CircuitBreakerRegistry
from core.constants import Channel
from core.utils import utc_now_naive
from executors.registry import ActionExecutorRegistry
from services.campaign_service import CampaignService
from triggers.abandoned_checkout import AbandonedCheckoutDetector
from triggers.manager import TriggerManager
from triggers.matcher import WorkflowMatcher
from triggers.normalizer import EventNormalizer
from workflow.engine import ExecutionScheduler
from workflow.recovery import RecoveryService
from workflow.retry_strategies import RetryStrategy

logger = structlog.get_logger(__name__)


@dataclass
class AutomationRuntime:
    settings: Settings
    session_factory: async_sessionmaker[AsyncSession]
    breakers: CircuitBreakerRegistry
    channels: dict[Channel, GuardedChannel]
    executors: ActionExecutorRegistry
    scheduler: ExecutionScheduler
    matcher: WorkflowMatcher
    normalizer: EventNormalizer
    trigger_manager: TriggerManager
    recovery: RecoveryService
    campaigns: CampaignService

    async def aclose(self) -> None:
        for guarded in self.channels.values():
            await guarded.channel.aclose()


def _email_channel(settings: Settings) -> BaseChannel:
    if not settings.RESEND_API_KEY:
        logger.warning("RESEND_API_KEY not set, email is log-only")
        return LogOnlyChannel(Channel.EMAIL)
    return ResendEmailChannel(
        api_key=settings.RESEND_API_KEY,
        base_url=settings.RESEND_API_URL,
        default_from=settings.DEFAULT_FROM_EMAIL,
        default_from_name=settings.DEFAULT_FROM_NAME,
        timeout=settings.CHANNEL_TIMEOUT_SECONDS,
    )


def _sms_channel(settings: Settings) -> BaseChannel:
    if not settings.TELNYX_API_KEY:
        logger.warning("TELNYX_API_KEY not set, SMS is log-only")
        return LogOnlyChannel(Channel.SMS)
    return TelnyxSmsChannel(
        api_key=settings.TELNYX_API_KEY,
        base_url=settings.TELNYX_API_URL,
        default_from=settings.DEFAULT_SMS_FROM,
        timeout=settings.CHANNEL_TIMEOUT_SECONDS,
    )


def build_breakers(
    settings: Settings, clock: Optional[Callable[[], float]] = None
) -> CircuitBreakerRegistry:
    """One breaker registry configured from settings."""
    kwargs = {}
    if clock is not None:
        kwargs["clock"] = clock
    return CircuitBreakerRegistry(
        failure_threshold=settings.CIRCUIT_FAILURE_THRESHOLD,
        recovery_timeout=settings.CIRCUIT_RECOVERY_TIMEOUT,
        **kwargs,
    )


def build_runtime(
    session_factory: async_sessionmaker[AsyncSession],
    settings: Optional[Settings] = None,
    email_channel: Optional[BaseChannel] = None,
    sms_channel: Optional[BaseChannel] = None,
    clock: Callable = utc_now_naive,
    breaker_clock: Optional[Callable[[], float]] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    breakers: Optional[CircuitBreakerRegistry] = None,
) -> AutomationRuntime:
    """Wire the engine.

    ``clock`` drives the scheduler (naive UTC), ``breaker_clock`` the
    circuit breakers (monotonic seconds) and ``sleep`` the retry backoff
    and campaign pacing. Tests replace all three.

    ``breakers`` lets callers that build many runtimes in one process
    (Celery tasks) share breaker state; by default a fresh registry is made.
    """
    settings = settings or get_settings()

    if breakers is None:
        breakers = build_breakers(settings, clock=breaker_clock)
    strategy = RetryStrategy.from_settings(settings)

    channels = {}
    for channel in (email_channel or _email_channel(settings), sms_channel or _sms_channel(settings)):
        channels[channel.channel_type] = GuardedChannel(
            channel,
            breakers.get(channel.channel_type.value),
            strategy,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
            sleep=sleep,
        )

    executors = ActionExecutorRegistry.default(channels[Channel.EMAIL], channels[Channel.SMS])
    scheduler = ExecutionScheduler(session_factory, executors, settings=settings, clock=clock)
    matcher = WorkflowMatcher()
    normalizer = EventNormalizer(
        session_factory,
        detector=AbandonedCheckoutDetector(settings.ABANDONED_CHECKOUT_THRESHOLD_MINUTES),
        clock=clock,
    )

    return AutomationRuntime(
        settings=settings,
        session_factory=session_factory,
        breakers=breakers,
        channels=channels,
        executors=executors,
        scheduler=scheduler,
        matcher=matcher,
        normalizer=normalizer,
        trigger_manager=TriggerManager(normalizer, matcher, scheduler, session_factory),
        recovery=RecoveryService(session_factory, settings.STALE_EXECUTION_MINUTES, clock=clock),
        campaigns=CampaignService(
            session_factory,
            channels,
            batch_size=settings.CAMPAIGN_BATCH_SIZE,
            batch_delay=settings.CAMPAIGN_BATCH_DELAY_SECONDS,
            sleep=sleep,
            clock=clock,
        ),
    )
