"""Retry strategies for external channel calls.

Exponential backoff with additive jitter, gated by a retry condition:

    delay(attempt) = min(base_delay * backoff_multiplier ** (attempt - 1), max_delay)
                     + uniform(0, jitter_max)

Usage:
    strategy = RetryStrategy(max_retries=5, base_delay=2.0, max_delay=60.0)
    result = await execute_with_retry(send, strategy, message)
"""

import asyncio
import random
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Optional

import structlog

from core.exceptions import AutomationError, is_retryable

logger = structlog.get_logger(__name__)

RetryCondition = Callable[[BaseException], bool]


def typed_errors_only(error: BaseException) -> bool:
    """Retry only engine errors that are marked retryable."""
    return isinstance(error, AutomationError) and error.retryable


@dataclass
class RetryStrategy:
    """Backoff policy for one kind of fallible operation."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    backoff_multiplier: float = 2.0
    jitter_max: float = 1.0
    retry_condition: RetryCondition = field(default=is_retryable, repr=False)

    @classmethod
    def none(cls) -> "RetryStrategy":
        """No retries: fail on the first error."""
        return cls(max_retries=0, jitter_max=0.0)

    @classmethod
    def from_settings(cls, settings) -> "RetryStrategy":
        return cls(
            max_retries=settings.RETRY_MAX_RETRIES,
            base_delay=settings.RETRY_BASE_DELAY,
            max_delay=settings.RETRY_MAX_DELAY,
            backoff_multiplier=settings.RETRY_BACKOFF_MULTIPLIER,
            jitter_max=settings.RETRY_JITTER_MAX,
        )

    @classmethod
    def from_dict(cls, config: dict) -> "RetryStrategy":
        """Create a strategy from stored configuration."""
        return cls(
            max_retries=config.get("max_retries", 3),
            base_delay=config.get("base_delay", 1.0),
            max_delay=config.get("max_delay", 30.0),
            backoff_multiplier=config.get("backoff_multiplier", 2.0),
            jitter_max=config.get("jitter_max", 1.0),
        )

    def to_dict(self) -> dict:
        return {
            "max_retries": self.max_retries,
            "base_delay": self.base_delay,
            "max_delay": self.max_delay,
            "backoff_multiplier": self.backoff_multiplier,
            "jitter_max": self.jitter_max,
        }

    def with_condition(self, condition: RetryCondition) -> "RetryStrategy":
        return replace(self, retry_condition=condition)

    def compute_delay(self, attempt: int) -> float:
        """Delay in seconds before retry number ``attempt`` (1-based)."""
        delay = self.base_delay * (self.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.max_delay)
        if self.jitter_max > 0:
            delay += random.uniform(0, self.jitter_max)
        return round(delay, 3)

    def should_retry(self, attempt: int, error: Optional[BaseException] = None) -> bool:
        """Whether failure number ``attempt`` may be retried."""
        if attempt > self.max_retries:
            return False
        if error is None:
            return True
        return bool(self.retry_condition(error))


# ─── Preset strategies ───

RETRY_PRESETS: dict[str, RetryStrategy] = {
    "none": RetryStrategy.none(),
    "channel": RetryStrategy(),
    "api": RetryStrategy(max_retries=5, base_delay=2.0, max_delay=60.0),
    "database": RetryStrategy(max_retries=3, base_delay=0.5, max_delay=10.0),
    "webhook": RetryStrategy(
        max_retries=2, base_delay=1.0, max_delay=5.0, retry_condition=typed_errors_only
    ),
}


async def execute_with_retry(
    func: Callable[..., Awaitable[Any]],
    strategy: RetryStrategy,
    *args,
    on_retry: Optional[Callable] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **kwargs,
):
    """Execute an async callable under the given retry strategy.

    Args:
        func: Async callable to execute.
        strategy: RetryStrategy instance.
        on_retry: Optional callback(attempt, error, delay) called before each retry.
        sleep: Awaitable used to wait between attempts.

    Returns:
        The result of func(*args, **kwargs).

    Raises:
        The last exception once the condition rejects it or retries run out.
    """
    attempt = 0

    while True:
        try:
            return await func(*args, **kwargs)
        except Exception as e:
            attempt += 1

            if not strategy.should_retry(attempt, e):
                if attempt > 1:
                    logger.warning(
                        "Retries exhausted",
                        attempts=attempt,
                        error=str(e),
                        error_type=type(e).__name__,
                    )
                raise

            delay = strategy.compute_delay(attempt)
            logger.info(
                "Retrying after failure",
                attempt=attempt,
                max_retries=strategy.max_retries,
                delay=delay,
                error=str(e),
            )

            if on_retry:
                outcome = on_retry(attempt, e, delay)
                if asyncio.iscoroutine(outcome):
                    await outcome

            await sleep(delay)
