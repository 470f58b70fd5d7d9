"""
Shared fixtures for skiadmin-core tests.
"""

import asyncio
from datetime import datetime, timedelta, timezone

import pytest

SECRET = "test-secret-key-that-is-long-enough-for-hs256"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


async def fake_hash(password: str) -> str:
    await asyncio.sleep(0)
    return f"hashed:{password}"


@pytest.fixture
def clock():
    return FakeClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def codec(clock):
    from skiadmin_core.tokens import SetupTokenCodec

    return SetupTokenCodec(SECRET, clock=clock)


@pytest.fixture
def guard(clock):
    from skiadmin_core.replay import InMemoryConsumptionStore, ReplayGuard

    return ReplayGuard(InMemoryConsumptionStore(), clock=clock)


@pytest.fixture
def profiles():
    from skiadmin_core.bootstrap import InMemoryProfileStore, Profile

    store = InMemoryProfileStore()
    store.add(Profile(id="user-1", email="admin@club.test", role="admin", club_id="club-1"))
    return store


@pytest.fixture
def flow(codec, guard, profiles, clock):
    from skiadmin_core.bootstrap import SetupFlow

    return SetupFlow(codec, guard, profiles, clock=clock, hasher=fake_hash)


@pytest.fixture
def otp_service(clock):
    from skiadmin_core.otp import InMemoryOTPStore, OTPService

    return OTPService(InMemoryOTPStore(), clock=clock)


@pytest.fixture
async def sql_engine(tmp_path):
    from skiadmin_core.database import create_async_engine, init_models

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def sql_sessions(sql_engine):
    from skiadmin_core.database import session_factory_for

    return session_factory_for(sql_engine)
