"""Tests for scripts/refresh_leaderboard.py."""

import sys
from datetime import date
from unittest.mock import patch

import pytest

from cache.keys import leaderboard_key
from scripts import refresh_leaderboard
from tests.fixtures.mocks import make_holding


@pytest.fixture
def run_script(engine, monkeypatch):
    def run(*args):
        monkeypatch.setattr(sys, "argv", ["refresh_leaderboard", *args])
        with patch.object(refresh_leaderboard, "create_valuation_engine", return_value=engine), \
             patch.object(refresh_leaderboard, "get_session_local"), \
             patch.object(refresh_leaderboard, "setup_logging"):
            refresh_leaderboard.main()

    return run


@pytest.fixture
def seeded(holdings_provider):
    holdings_provider.holdings = {
        1: [make_holding(1, "AAPL", "10", "150")],
        2: [make_holding(2, "MSFT", "1", "500")],
    }
    return holdings_provider


def test_refreshes_every_window(run_script, seeded, engine, capsys):
    run_script()

    out = capsys.readouterr().out
    assert "daily: 2 users" in out
    assert "weekly: 2 users" in out
    assert "total: 2 users" in out
    assert engine.cache.exists(leaderboard_key("total"))
    assert engine.snapshots.get(1, date(2024, 5, 15)) is not None


def test_single_window(run_script, seeded, engine, capsys):
    run_script("--window", "total")

    out = capsys.readouterr().out
    assert out.startswith("total: 2 users")
    assert "user 1" in out.splitlines()[1]
    assert not engine.cache.exists(leaderboard_key("daily"))


def test_no_snapshots(run_script, seeded, engine):
    run_script("--no-snapshots")
    assert engine.snapshots.get(1, date(2024, 5, 15)) is None


def test_single_window_no_snapshots(run_script, seeded, engine):
    run_script("--window", "daily", "--no-snapshots")

    assert engine.cache.exists(leaderboard_key("daily"))
    assert engine.snapshots.get(1, date(2024, 5, 15)) is None


def test_holdings_unavailable_exits_nonzero(run_script, holdings_provider, capsys):
    holdings_provider.fail = True

    with pytest.raises(SystemExit) as exc_info:
        run_script()

    assert exc_info.value.code == 1
    assert "holdings store is down" in capsys.readouterr().err
