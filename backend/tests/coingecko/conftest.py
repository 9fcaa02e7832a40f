"""CoinGecko integration test fixtures."""

import os

import pytest

from integrations.coingecko_client import CoinGeckoClient


@pytest.fixture
def coingecko_client():
    """Create a real CoinGeckoClient; uses COINGECKO_API_KEY when set."""
    client = CoinGeckoClient(api_key=os.environ.get("COINGECKO_API_KEY") or None)
    yield client
    client.close()
