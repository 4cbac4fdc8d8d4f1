"""Shared fixtures: a controllable clock, settings and stores."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import models  # noqa: F401  registers the auction_state table
from database import Base, Settings
from core.persistence import InMemoryStateRepository, SqlStateRepository
from core.store import AuctionStateStore


class FakeClock:
    """Monotonic + wall clock that only moves when a test says so."""

    def __init__(self, start: float = 1000.0):
        self.start = start
        self.t = start
        self.epoch = datetime(2025, 9, 1, 20, 0, tzinfo=timezone.utc)

    def now(self) -> float:
        return self.t

    def wall_now(self) -> datetime:
        return self.epoch + timedelta(seconds=self.t - self.start)

    def advance(self, seconds: float) -> None:
        self.t += seconds


class FlakyRepository(InMemoryStateRepository):
    """In-memory repository that counts saves and can be told to fail."""

    def __init__(self):
        super().__init__()
        self.saves = 0
        self.fail = False

    def save(self, state):
        if self.fail:
            raise OSError("disk full")
        self.saves += 1
        super().save(state)


@pytest.fixture
def settings():
    return Settings(
        idle_timeout_seconds=5.0,
        allowed_increments=[1, 5, 10],
        presence_expiry_seconds=5.0,
        presence_refresh_seconds=2.0,
        check_interval_seconds=1.0,
        timezone="UTC",
    )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def repository():
    return FlakyRepository()


@pytest.fixture
def store(repository, settings, clock):
    return AuctionStateStore(repository, settings, clock=clock)


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


@pytest.fixture
def sql_repository(session_factory):
    return SqlStateRepository(session_factory)
