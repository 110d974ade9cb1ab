"""Shared pytest fixtures."""

from datetime import UTC, datetime, timedelta

import pytest

from dcaflow.backtester.data import PriceBar
from dcaflow.strategies.dca import StrategyRules


@pytest.fixture(autouse=True)
def reset_globals(monkeypatch):
    """Reset global instances before each test."""
    import dcaflow.config as config_module
    import dcaflow.core.events as events_module
    import dcaflow.exchange.demo as demo_module

    # Keep a developer's .env out of the tests
    monkeypatch.delenv("DCAFLOW_MODE", raising=False)
    monkeypatch.delenv("DCAFLOW_SYMBOL", raising=False)

    config_module._settings = None
    events_module._event_bus = None
    demo_module._demo_client = None

    yield

    config_module._settings = None
    events_module._event_bus = None
    demo_module._demo_client = None


@pytest.fixture
def rules():
    """Ladder used across the engine and backtest tests."""
    return StrategyRules(
        max_steps=3,
        buy_interval_pct=5.0,
        target_profit_pct=5.0,
        stop_loss_pct=10.0,
        initial_amount=10000.0,
        premium_rate_pct=0.0,
    )


@pytest.fixture
def make_bars():
    """Build daily bars from closes, or (close, high, low) tuples."""

    def _make(points, start=datetime(2024, 1, 1, tzinfo=UTC)):
        bars = []
        for i, point in enumerate(points):
            if isinstance(point, tuple):
                close, high, low = point
            else:
                close, high, low = point, None, None
            bars.append(
                PriceBar(timestamp=start + timedelta(days=i), close=close, high=high, low=low)
            )
        return bars

    return _make


@pytest.fixture
def sample_ohlcv_data():
    """Sample OHLCV data for testing."""
    return [
        [1704067200000, 42000.0, 42500.0, 41800.0, 42200.0, 1000.0],
        [1704153600000, 42200.0, 42800.0, 42100.0, 42600.0, 1200.0],
        [1704240000000, 42600.0, 43000.0, 42400.0, 42900.0, 1500.0],
        [1704326400000, 42900.0, 43200.0, 42700.0, 43100.0, 1100.0],
        [1704412800000, 43100.0, 43500.0, 42900.0, 43300.0, 1300.0],
    ]
