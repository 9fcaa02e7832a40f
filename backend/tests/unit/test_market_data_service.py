"""Unit tests for MarketDataService."""

from decimal import Decimal

from integrations.market_data_protocol import InstrumentKind, PriceSource


class TestRouting:
    def test_classify(self, engine):
        assert engine.market_data.classify("@BTC") is InstrumentKind.CRYPTO
        assert engine.market_data.classify("AAPL") is InstrumentKind.EQUITY

    def test_provider_for(self, engine, equity_provider, crypto_provider):
        assert engine.market_data.provider_for("@eth") is crypto_provider
        assert engine.market_data.provider_for("msft") is equity_provider

    def test_crypto_never_reaches_equity_provider(self, engine, equity_provider, crypto_provider):
        engine.market_data.resolve_current_many(["@BTC", "@ETH"])
        assert equity_provider.call_count == 0
        assert crypto_provider.call_count == 1


class TestResolveCurrent:
    def test_single_symbol(self, engine):
        point = engine.market_data.resolve_current("aapl")
        assert point.symbol == "AAPL"
        assert point.price == Decimal("180")

    def test_unknown_symbol_is_none(self, engine):
        assert engine.market_data.resolve_current("NOPE") is None

    def test_many_normalizes_and_orders(self, engine):
        result = engine.market_data.resolve_current_many(["msft", "@btc", "AAPL", "NOPE"])
        assert list(result) == ["MSFT", "@BTC", "AAPL"]

    def test_empty_request(self, engine, equity_provider):
        assert engine.market_data.resolve_current_many([]) == {}
        assert equity_provider.call_count == 0

    def test_second_read_served_from_cache(self, engine, equity_provider):
        engine.market_data.resolve_current("AAPL")
        point = engine.market_data.resolve_current("AAPL")
        assert point.source is PriceSource.CACHE
        assert equity_provider.call_count == 1


class TestLastKnownPrice:
    def test_none_before_any_fetch(self, engine, equity_provider):
        assert engine.market_data.last_known_price("AAPL") is None
        assert equity_provider.call_count == 0

    def test_returns_cached_quote(self, engine):
        engine.market_data.resolve_current("AAPL")
        assert engine.market_data.last_known_price("aapl").price == Decimal("180")
