"""Shared pytest fixtures for the commerce automation test suite.

Provides:
- A file-backed async SQLite database per test (no PostgreSQL needed)
- Session factory and seeded store
- Controllable wall clock (scheduler) and monotonic clock (breakers)
- Recording fake email/SMS channels
- A fully wired AutomationRuntime and an HTTP client over it
"""

import os
from datetime import datetime, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Override settings BEFORE any app imports
os.environ.setdefault("ENVIRONMENT", "testing")
os.environ.setdefault("LOG_FORMAT", "text")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.config import Settings  # noqa: E402
from app.runtime import build_runtime  # noqa: E402
from channels.base import BaseChannel, DeliveryResult, OutboundMessage  # noqa: E402
from core import metrics  # noqa: E402
from core.constants import Channel  # noqa: E402
from db.base import Base  # noqa: E402
from db.database import create_db_engine, create_session_factory  # noqa: E402

START = datetime(2026, 3, 2, 12, 0, 0)
SHOP_DOMAIN = "demo-shop.myshopify.com"


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------

class FakeClock:
    """Naive-UTC wall clock that only moves when told to."""

    def __init__(self, start: datetime = START):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class FakeMonotonic:
    def __init__(self):
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingChannel(BaseChannel):
    """Delivers instantly and remembers every message.

    Queue failures with ``fail_next``; each queued entry is consumed by one
    send attempt before deliveries succeed again.
    """

    def __init__(self, channel_type: Channel):
        self.channel_type = channel_type
        self.sent: list[OutboundMessage] = []
        self.calls = 0
        self._queued: list = []

    def fail_next(self, times: int = 1, status_code: Optional[int] = 503, transient: bool = False):
        for _ in range(times):
            self._queued.append(
                DeliveryResult(
                    success=False,
                    channel=self.channel_type,
                    recipient="",
                    error=f"provider returned {status_code}",
                    status_code=status_code,
                    transient=transient,
                )
            )

    def raise_next(self, exc: BaseException, times: int = 1):
        self._queued.extend([exc] * times)

    async def send(self, message: OutboundMessage) -> DeliveryResult:
        self.calls += 1
        if self._queued:
            outcome = self._queued.pop(0)
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        self.sent.append(message)
        return DeliveryResult.delivered(
            self.channel_type, message.recipient, external_id=f"{self.channel_type.value}-{len(self.sent)}"
        )


async def no_sleep(_seconds: float) -> None:
    return None


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _reset_metrics():
    metrics.reset()
    yield


@pytest_asyncio.fixture
async def db_engine(tmp_path):
    """Fresh SQLite file per test; concurrent sessions queue on its lock."""
    engine = create_db_engine(f"sqlite+aiosqlite:///{tmp_path / 'automation.db'}")
    import db.models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return create_session_factory(db_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def store(session_factory):
    from db.models.store import Store

    async with session_factory() as session:
        store = Store(domain=SHOP_DOMAIN, name="Demo Shop", timezone="UTC")
        session.add(store)
        await session.commit()
    return store


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_workflow(session_factory, store):
    """Insert a workflow row; returns the committed model."""
    from db.models.workflow import Workflow

    async def _make(actions, trigger_type="customer_created", trigger_config=None, is_active=True, name="Test flow"):
        async with session_factory() as session:
            workflow = Workflow(
                store_id=store.id,
                name=name,
                trigger_type=trigger_type,
                trigger_config=trigger_config or {},
                actions=actions,
                is_active=is_active,
            )
            session.add(workflow)
            await session.commit()
        return workflow

    return _make


@pytest.fixture
def make_contact(session_factory, store):
    from db.models.contact import Contact

    async def _make(email="jane@example.com", **fields):
        fields.setdefault("email_consent", True)
        fields.setdefault("tags", [])
        fields.setdefault("segments", [])
        async with session_factory() as session:
            contact = Contact(store_id=store.id, email=email, **fields)
            session.add(contact)
            await session.commit()
        return contact

    return _make


# ---------------------------------------------------------------------------
# Runtime fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def monotonic():
    return FakeMonotonic()


@pytest.fixture
def email_channel():
    return RecordingChannel(Channel.EMAIL)


@pytest.fixture
def sms_channel():
    return RecordingChannel(Channel.SMS)


@pytest.fixture
def test_settings():
    return Settings(
        ENVIRONMENT="testing",
        RETRY_JITTER_MAX=0.0,
        CIRCUIT_FAILURE_THRESHOLD=5,
        CIRCUIT_RECOVERY_TIMEOUT=60.0,
        CAMPAIGN_BATCH_SIZE=100,
        CAMPAIGN_BATCH_DELAY_SECONDS=1.0,
    )


@pytest.fixture
def runtime(session_factory, test_settings, email_channel, sms_channel, clock, monotonic):
    return build_runtime(
        session_factory,
        settings=test_settings,
        email_channel=email_channel,
        sms_channel=sms_channel,
        clock=clock,
        breaker_clock=monotonic,
        sleep=no_sleep,
    )


@pytest_asyncio.fixture
async def client(runtime) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client over an app serving the test runtime."""
    from app.main import create_app

    app = create_app(runtime)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test", follow_redirects=True) as ac:
        yield ac


@pytest.fixture
def load_execution(session_factory):
    from db.models.execution import WorkflowExecution

    async def _load(execution_id: str) -> WorkflowExecution:
        async with session_factory() as session:
            return await session.get(WorkflowExecution, execution_id)

    return _load
