"""Tests for PortfolioValuationService gain metrics."""

from datetime import date
from decimal import Decimal

import pytest

from services.holdings_service import Holding, HoldingsUnavailableError
from services.portfolio_valuation_service import GainWindow, percentage
from tests.fixtures.mocks import make_holding

YESTERDAY = date(2024, 5, 14)
WEEK_AGO = date(2024, 5, 8)


class TestPercentage:
    def test_rounds_half_up_to_cents(self):
        assert percentage(Decimal("1"), Decimal("8")) == Decimal("12.50")
        assert percentage(Decimal("20"), Decimal("1780")) == Decimal("1.12")
        assert percentage(Decimal("1"), Decimal("800")) == Decimal("0.13")

    def test_zero_base_is_zero(self):
        assert percentage(Decimal("100"), Decimal("0")) == Decimal("0")

    def test_negative(self):
        assert percentage(Decimal("-50"), Decimal("200")) == Decimal("-25.00")


class TestSingleHolding:
    def test_total_gain(self, engine):
        holdings = [make_holding(1, "AAPL", "10", "150")]

        valuation = engine.valuation.value_holdings(1, holdings)

        hv = valuation.holdings[0]
        assert hv.current_value == Decimal("1800")
        assert hv.purchase_value == Decimal("1500")
        assert hv.gain == Decimal("300")
        assert hv.gain_percentage == Decimal("20.00")
        assert hv.price_resolved
        assert valuation.summary.total_gain_percentage == Decimal("20.00")
        assert valuation.as_of == date(2024, 5, 15)

    def test_unnormalized_symbols_are_priced(self, engine):
        holdings = [
            Holding(1, " aapl ", Decimal("10"), Decimal("150"), date(2024, 1, 2)),
            Holding(1, "@btc", Decimal("1"), Decimal("50000"), date(2024, 1, 2)),
        ]

        valuation = engine.valuation.value_holdings(1, holdings)

        assert [hv.symbol for hv in valuation.holdings] == ["AAPL", "@BTC"]
        assert all(hv.price_resolved for hv in valuation.holdings)
        assert valuation.summary.total_current_value == Decimal("61800")

    def test_daily_and_weekly_gains(self, engine, equity_provider):
        equity_provider.history["AAPL"] = {YESTERDAY: Decimal("178"), WEEK_AGO: Decimal("170")}

        summary = engine.valuation.value_holdings(1, [make_holding(1, "AAPL", "10", "150")]).summary

        assert summary.daily_baseline_value == Decimal("1780")
        assert summary.daily_gain == Decimal("20")
        assert summary.daily_gain_percentage == Decimal("1.12")
        assert summary.weekly_baseline_value == Decimal("1700")
        assert summary.weekly_gain == Decimal("100")
        assert summary.weekly_gain_percentage == Decimal("5.88")

    def test_metric_by_window(self, engine, equity_provider):
        equity_provider.history["AAPL"] = {YESTERDAY: Decimal("178"), WEEK_AGO: Decimal("170")}
        summary = engine.valuation.value_holdings(1, [make_holding(1, "AAPL", "10", "150")]).summary

        assert summary.metric(GainWindow.DAILY).percentage == Decimal("1.12")
        assert summary.metric(GainWindow.WEEKLY).absolute == Decimal("100")
        assert summary.metric(GainWindow.TOTAL).percentage == Decimal("20.00")

    def test_no_history_means_no_horizon_change(self, engine):
        summary = engine.valuation.value_holdings(1, [make_holding(1, "AAPL", "10", "150")]).summary
        assert summary.daily_gain == Decimal("0")
        assert summary.weekly_gain_percentage == Decimal("0")

    def test_bought_today_uses_purchase_value_as_baseline(self, engine, equity_provider):
        holdings = [make_holding(1, "AAPL", "10", "170", purchase_date=date(2024, 5, 15))]

        summary = engine.valuation.value_holdings(1, holdings).summary

        assert summary.daily_baseline_value == Decimal("1700")
        assert summary.weekly_baseline_value == Decimal("1700")
        assert summary.daily_gain_percentage == Decimal("5.88")
        assert equity_provider.calls_for("get_price_history") == []

    def test_bought_within_week_uses_purchase_value_for_weekly(self, engine, equity_provider):
        equity_provider.history["AAPL"] = {YESTERDAY: Decimal("178")}
        holdings = [make_holding(1, "AAPL", "10", "160", purchase_date=date(2024, 5, 12))]

        summary = engine.valuation.value_holdings(1, holdings).summary

        assert summary.daily_baseline_value == Decimal("1780")
        assert summary.weekly_baseline_value == Decimal("1600")


class TestUnresolvedPrices:
    def test_zero_purchase_value_holding(self, engine):
        holdings = [
            make_holding(1, "AAPL", "10", "100"),
            make_holding(1, "FREE", "5", "0"),
        ]

        valuation = engine.valuation.value_holdings(1, holdings)

        free = valuation.holdings[1]
        assert free.gain_percentage == Decimal("0")
        assert free.current_value == Decimal("0")
        assert valuation.summary.total_purchase_value == Decimal("1000")
        assert valuation.summary.total_gain_percentage == Decimal("80.00")

    def test_missing_price_uses_purchase_price_and_is_excluded_from_top_gainer(self, engine):
        holdings = [
            make_holding(1, "AAPL", "1", "170"),
            make_holding(1, "NOPE", "2", "10"),
        ]

        valuation = engine.valuation.value_holdings(1, holdings)

        nope = valuation.holdings[1]
        assert not nope.price_resolved
        assert nope.current_value == Decimal("20")
        assert valuation.summary.total_current_value == Decimal("200")
        assert valuation.summary.top_gainer == "AAPL"

    def test_missing_price_prefers_last_daily_quote(self, engine, equity_provider):
        equity_provider.history["NOPE"] = {YESTERDAY: Decimal("12")}

        valuation = engine.valuation.value_holdings(1, [make_holding(1, "NOPE", "2", "10")])

        assert valuation.holdings[0].current_price == Decimal("12")
        assert not valuation.holdings[0].price_resolved
        assert valuation.summary.top_gainer is None

    def test_provider_outage_does_not_fail_valuation(self, engine, equity_provider):
        from integrations.exceptions import RateLimitedError

        equity_provider.error = RateLimitedError("slow down", "mock")

        valuation = engine.valuation.value_holdings(1, [make_holding(1, "AAPL", "10", "150")])

        assert valuation.summary.total_current_value == Decimal("1500")
        assert valuation.summary.total_gain == Decimal("0")


class TestRanking:
    def test_top_gainer_ties_go_to_first_holding(self, engine):
        holdings = [
            make_holding(1, "MSFT", "1", "200"),
            make_holding(1, "AAPL", "1", "90"),
        ]
        summary = engine.valuation.value_holdings(1, holdings).summary
        assert summary.top_gainer == "MSFT"
        assert summary.top_gainer_percentage == Decimal("100.00")

    def test_top_gainer_mixes_crypto_and_equity(self, engine):
        holdings = [
            make_holding(1, "AAPL", "1", "170"),
            make_holding(1, "@BTC", "0.1", "30000"),
        ]
        summary = engine.valuation.value_holdings(1, holdings).summary
        assert summary.top_gainer == "@BTC"
        assert summary.top_gainer_percentage == Decimal("100.00")

    def test_latest_purchase(self, engine):
        holdings = [
            make_holding(1, "AAPL", "1", "170", purchase_date=date(2024, 3, 1)),
            make_holding(1, "MSFT", "1", "390", purchase_date=date(2024, 4, 1)),
            make_holding(1, "@BTC", "1", "50000", purchase_date=date(2024, 2, 1)),
        ]
        latest = engine.valuation.value_holdings(1, holdings).latest_purchase
        assert latest.symbol == "MSFT"
        assert latest.purchase_price == Decimal("390")

    def test_distribution_combines_lots_and_keeps_top_five(self, engine, equity_provider):
        for symbol, price in {"A": "10", "B": "20", "C": "30", "D": "40", "E": "50", "F": "60"}.items():
            equity_provider.current[symbol] = Decimal(price)
        holdings = [make_holding(1, s, "1", "1") for s in "ABCDEF"]
        holdings.append(make_holding(1, "A", "10", "1"))

        distribution = engine.valuation.value_holdings(1, holdings).distribution

        assert [(s.symbol, s.value) for s in distribution] == [
            ("A", Decimal("110")),
            ("F", Decimal("60")),
            ("E", Decimal("50")),
            ("D", Decimal("40")),
            ("C", Decimal("30")),
        ]


class TestEmptyAndUserLookups:
    def test_empty_portfolio(self, engine):
        valuation = engine.valuation.value_holdings(7, [])
        assert valuation.holdings == []
        assert valuation.summary.total_current_value == Decimal("0")
        assert valuation.summary.total_gain_percentage == Decimal("0")
        assert valuation.summary.top_gainer is None
        assert valuation.latest_purchase is None

    def test_value_user_reads_holdings(self, engine, holdings_provider):
        holdings_provider.holdings[3] = [make_holding(3, "AAPL", "10", "150")]
        valuation = engine.valuation.value_user(3)
        assert valuation.user_id == 3
        assert valuation.summary.total_current_value == Decimal("1800")

    def test_holdings_failure_propagates(self, engine, holdings_provider):
        holdings_provider.fail = True
        with pytest.raises(HoldingsUnavailableError):
            engine.valuation.value_user(3)
