"""Run engine coroutines from synchronous Celery tasks.

Each task gets its own event loop, engine and runtime, so forked worker
processes never touch a loop they did not create. Circuit breakers are
the one piece of state shared across tasks: every worker process holds
a single registry so a failing provider trips its breaker no matter which
task saw the failures.
"""

import asyncio
import logging
import threading
from typing import Any, Awaitable, Callable, Optional, TypeVar

from celery.signals import worker_process_init

from app.config import get_settings
from app.runtime import AutomationRuntime, build_breakers, build_runtime
from core.circuit_breaker import CircuitBreakerRegistry
from db.worker_session import worker_session_factory

logger = logging.getLogger(__name__)

T = TypeVar("T")

_breakers: Optional[CircuitBreakerRegistry] = None
_breakers_guard = threading.Lock()


def process_breakers() -> CircuitBreakerRegistry:
    """The breaker registry shared by every task in this process."""
    global _breakers
    with _breakers_guard:
        if _breakers is None:
            _breakers = build_breakers(get_settings())
        return _breakers


def reset_process_breakers() -> None:
    global _breakers
    with _breakers_guard:
        _breakers = None


@worker_process_init.connect
def _on_worker_process_init(**kwargs) -> None:
    # A forked child must not inherit breaker state from the parent.
    reset_process_breakers()
    logger.info("Worker process initialised with fresh circuit breakers")


async def _with_runtime(fn: Callable[[AutomationRuntime], Awaitable[T]]) -> T:
    async with worker_session_factory() as session_factory:
        runtime = build_runtime(session_factory, breakers=process_breakers())
        try:
            return await fn(runtime)
        finally:
            await runtime.aclose()


def run_with_runtime(fn: Callable[[AutomationRuntime], Awaitable[Any]]) -> Any:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    try:
        return loop.run_until_complete(_with_runtime(fn))
    finally:
        loop.close()
        asyncio.set_event_loop(None)
