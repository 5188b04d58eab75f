"""Reliability wrapper around a delivery channel.

Layering, outermost first:

    retry with backoff  ->  circuit breaker  ->  bounded timeout  ->  channel.send

A rejection by an open breaker is not retryable, so it surfaces at once
without spending the retry budget.
"""

import asyncio
from typing import Any, Awaitable, Callable

import structlog

from channels.base import BaseChannel, DeliveryResult, OutboundMessage
from core import metrics
from core.circuit_breaker import CircuitBreaker
from core.exceptions import ChannelConnectionError, ChannelTimeoutError, ExternalChannelError
from workflow.retry_strategies import RetryStrategy, execute_with_retry

logger = structlog.get_logger(__name__)


def error_for(result: DeliveryResult) -> ExternalChannelError:
    """Typed error for an unsuccessful delivery result."""
    channel = result.channel.value
    if result.transient:
        return ChannelConnectionError(result.error or "connection failed", channel=channel)
    return ExternalChannelError(
        result.error or "delivery failed", channel=channel, provider_status=result.status_code
    )


class GuardedChannel:
    def __init__(
        self,
        channel: BaseChannel,
        breaker: CircuitBreaker,
        strategy: RetryStrategy,
        timeout: float = 15.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.channel = channel
        self.breaker = breaker
        self.strategy = strategy
        self.timeout = timeout
        self._sleep = sleep

    @property
    def channel_type(self):
        return self.channel.channel_type

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        """Deliver or raise.

        Raises:
            CircuitOpenError: the channel's breaker is open.
            ExternalChannelError: the provider failed and retries are spent
                (or the failure was permanent).
        """
        return await execute_with_retry(
            self.breaker.call,
            self.strategy,
            self._send_once,
            message,
            on_retry=self._on_retry,
            sleep=self._sleep,
        )

    async def _send_once(self, message: OutboundMessage) -> DeliveryResult:
        labels = {"channel": self.channel_type.value}
        try:
            result = await asyncio.wait_for(self.channel.send(message), timeout=self.timeout)
        except asyncio.TimeoutError:
            metrics.inc(metrics.CHANNEL_FAILURES, labels={**labels, "reason": "timeout"})
            raise ChannelTimeoutError(
                f"{self.channel_type.value} send timed out after {self.timeout}s",
                channel=self.channel_type.value,
            )
        if not result.success:
            error = error_for(result)
            reason = "transient" if error.retryable else "rejected"
            metrics.inc(metrics.CHANNEL_FAILURES, labels={**labels, "reason": reason})
            raise error
        return result

    def _on_retry(self, attempt: int, error: BaseException, delay: float) -> None:
        metrics.inc(metrics.CHANNEL_RETRIES, labels={"channel": self.channel_type.value})
        logger.info(
            "Channel send retry scheduled",
            channel=self.channel_type.value,
            attempt=attempt,
            delay=delay,
            error=str(error),
        )
