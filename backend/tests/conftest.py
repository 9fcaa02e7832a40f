"""Pytest configuration and fixtures."""

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from api.dependencies import get_valuation_engine
from cache.memory_cache import MemoryCache
from config import Settings
from database import Base
from integrations.market_data_protocol import InstrumentKind
from main import app
from services.valuation_engine import create_valuation_engine
from tests.fixtures.mocks import FixedClock, MockHoldingsProvider, MockPriceProvider


@pytest.fixture(name="db_session_factory")
def db_session_factory_fixture():
    """Create an in-memory SQLite database and return a sessionmaker for it."""
    engine = create_engine(
        "sqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def clock():
    return FixedClock()


@pytest.fixture
def cache():
    return MemoryCache()


@pytest.fixture
def equity_provider():
    return MockPriceProvider(
        kind=InstrumentKind.EQUITY,
        current={"AAPL": Decimal("180"), "MSFT": Decimal("400")},
    )


@pytest.fixture
def crypto_provider():
    return MockPriceProvider(
        kind=InstrumentKind.CRYPTO,
        current={"BTC": Decimal("60000"), "ETH": Decimal("3000")},
        max_batch_size=100,
    )


@pytest.fixture
def holdings_provider():
    return MockHoldingsProvider()


@pytest.fixture
def test_settings():
    return Settings(
        CACHE_BACKEND="memory",
        UPSTREAM_CONCURRENCY=4,
        UPSTREAM_TIMEOUT_SECONDS=5.0,
        UNUSABLE_EQUITY_SYMBOLS=["TEM"],
        UNUSABLE_CRYPTO_SYMBOLS=[],
    )


@pytest.fixture
def engine(test_settings, holdings_provider, cache, equity_provider, crypto_provider, clock):
    """A fully wired valuation engine backed by in-memory fakes."""
    valuation_engine = create_valuation_engine(
        test_settings,
        holdings_provider,
        cache=cache,
        equity_provider=equity_provider,
        crypto_provider=crypto_provider,
        today=clock,
    )
    yield valuation_engine
    valuation_engine.close()


@pytest.fixture(name="client")
def client_fixture(engine):
    """Create a test client wired to the in-memory engine."""
    app.dependency_overrides[get_valuation_engine] = lambda: engine
    client = TestClient(app)
    yield client
    app.dependency_overrides.clear()
