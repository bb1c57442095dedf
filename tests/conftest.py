"""
Shared test fixtures.

Uses an in-memory SQLite database (via aiosqlite) built from the
production models, so tests run without Docker / PostgreSQL / Redis.
Redis-backed collaborators are replaced by recording fakes.
"""

from __future__ import annotations

from datetime import datetime, timezone
from types import SimpleNamespace
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from autoconcierge.domain.entities import PriceMatrixEntry
from autoconcierge.domain.enums import ActorRole
from autoconcierge.domain.pricing import PricingEngine
from autoconcierge.infrastructure.database import Base
from autoconcierge.infrastructure.repositories import (
    PriceMatrixRepository,
    UserRepository,
)
from autoconcierge.services.orchestrator import BookingOrchestrator
from seed import PRICE_MATRIX

TEST_DB_URL = "sqlite+aiosqlite:///:memory:"

# Wall clock the orchestrator sees in unit tests
NOW = datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc)
CURRENT_YEAR = NOW.year


# ── Fakes ─────────────────────────────────────────────────────────────


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[Optional[int], str, dict]] = []

    async def notify(self, user_id, kind, context) -> None:
        self.sent.append((user_id, kind.value, context))

    @property
    def kinds(self) -> list[str]:
        return [kind for _, kind, _ in self.sent]


class FailingNotifier:
    def __init__(self):
        self.calls = 0

    async def notify(self, user_id, kind, context) -> None:
        self.calls += 1
        raise ConnectionError("notification service unreachable")


class RecordingPayments:
    def __init__(self):
        self.requests: list[dict] = []

    async def request_extension_payment(self, booking_id, extension_id, amount, currency) -> None:
        self.requests.append(
            {
                "booking_id": booking_id,
                "extension_id": extension_id,
                "amount": amount,
                "currency": currency,
            }
        )


class InMemoryPriceMatrix:
    """``PriceMatrixSource`` over a list, for engine tests without a DB."""

    def __init__(self, entries: list[PriceMatrixEntry]):
        self.entries = entries

    async def find_exact(self, brand, model, year):
        for entry in self.entries:
            if entry.brand == brand and entry.model == model and entry.covers(year):
                return entry
        return None

    async def find_by_brand(self, brand):
        return [e for e in self.entries if e.brand == brand]


# ── Fixtures ──────────────────────────────────────────────────────────


@pytest.fixture
def price_matrix() -> list[PriceMatrixEntry]:
    return [PriceMatrixEntry(**row) for row in PRICE_MATRIX]


@pytest.fixture
def pricing(price_matrix) -> PricingEngine:
    return PricingEngine(InMemoryPriceMatrix(price_matrix), current_year=CURRENT_YEAR)


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """Fresh in-memory database per test; one shared connection."""
    eng = create_async_engine(TEST_DB_URL, echo=False, poolclass=StaticPool)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await eng.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def seed_database(session: AsyncSession) -> SimpleNamespace:
    """Insert one user per role plus the reference price matrix."""
    users = UserRepository(session)
    people = SimpleNamespace(
        customer=await users.create(name="Lena Fischer", email="lena@example.com"),
        jockey=await users.create(
            name="Paul Becker", email="paul@example.com", role=ActorRole.JOCKEY
        ),
        other_jockey=await users.create(
            name="Emma Wagner", email="emma@example.com", role=ActorRole.JOCKEY
        ),
        workshop=await users.create(
            name="Werkstatt Witten", email="werkstatt@example.com", role=ActorRole.WORKSHOP
        ),
        admin=await users.create(
            name="Ops Admin", email="admin@example.com", role=ActorRole.ADMIN
        ),
    )
    matrix = PriceMatrixRepository(session)
    for row in PRICE_MATRIX:
        await matrix.add_entry(PriceMatrixEntry(**row))
    await session.flush()
    return people


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def users(db_session) -> SimpleNamespace:
    return await seed_database(db_session)


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()


@pytest.fixture
def payments() -> RecordingPayments:
    return RecordingPayments()


@pytest.fixture
def make_orchestrator(db_session, users, notifier, payments):
    def factory(**overrides) -> BookingOrchestrator:
        options = dict(
            pricing=PricingEngine(
                PriceMatrixRepository(db_session), current_year=CURRENT_YEAR
            ),
            notifier=notifier,
            payments=payments,
            clock=lambda: NOW,
        )
        options.update(overrides)
        return BookingOrchestrator(db_session, **options)

    return factory


@pytest.fixture
def orchestrator(make_orchestrator) -> BookingOrchestrator:
    return make_orchestrator()
