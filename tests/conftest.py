"""
Shared pytest fixtures for the signal engine test suite.

Provides synthetic candle series and raw broker payloads that mirror real
market data shapes so every test module can exercise indicators, scoring,
chain normalization and the full pipeline without hitting the network.
"""

from datetime import datetime

import numpy as np
import pytest

from src.signals_lib.core.models import Candle, LiveQuote, SignalInputs
from src.signals_lib.options.chain import IST

# Fixed clock for every test that needs "now"
FIXED_NOW = datetime(2026, 3, 10, 10, 30, tzinfo=IST)

# 2026-03-02 00:00 UTC
_START_TS = 1772409600


# ---------------------------------------------------------------------------
# Synthetic candle generators
# ---------------------------------------------------------------------------


def _make_times(n: int, step_seconds: int = 3600, start: int = _START_TS) -> list[int]:
    return [start + i * step_seconds for i in range(n)]


def _from_close(
    close: np.ndarray,
    rng: np.random.Generator,
    spread_range: tuple[float, float],
    volume_mean: int,
    step_seconds: int,
) -> list[Candle]:
    n = len(close)
    spread = close * rng.uniform(spread_range[0], spread_range[1], n)
    high = close + rng.uniform(0, 1, n) * spread
    low = close - rng.uniform(0, 1, n) * spread
    opn = close + rng.uniform(-0.5, 0.5, n) * spread

    # Ensure H >= max(O, C) and L <= min(O, C)
    high = np.maximum(high, np.maximum(opn, close))
    low = np.minimum(low, np.minimum(opn, close))

    volume = np.maximum(rng.poisson(volume_mean, n).astype(float), 1)
    times = _make_times(n, step_seconds)
    return [
        Candle(
            time=times[i],
            open=float(opn[i]),
            high=float(high[i]),
            low=float(low[i]),
            close=float(close[i]),
            volume=float(volume[i]),
        )
        for i in range(n)
    ]


def _random_walk_candles(
    n: int = 200,
    start_price: float = 250.0,
    volatility: float = 0.008,
    seed: int = 42,
    volume_mean: int = 1000,
    step_seconds: int = 3600,
) -> list[Candle]:
    """Geometric random walk, one candle per ``step_seconds``."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(0, volatility, n)
    close = start_price * np.exp(np.cumsum(returns))
    return _from_close(close, rng, (0.001, 0.004), volume_mean, step_seconds)


def _trending_candles(
    n: int = 200,
    start_price: float = 250.0,
    trend: float = 0.004,
    volatility: float = 0.002,
    seed: int = 123,
    step_seconds: int = 3600,
) -> list[Candle]:
    """Clearly trending series (``trend`` > 0 up, < 0 down)."""
    rng = np.random.default_rng(seed)
    returns = rng.normal(trend, volatility, n)
    close = start_price * np.exp(np.cumsum(returns))
    return _from_close(close, rng, (0.001, 0.003), 800, step_seconds)


def _linear_candles(
    n: int = 30,
    start: float = 100.0,
    step: float = 1.0,
    volume: float = 100.0,
    step_seconds: int = 86400,
) -> list[Candle]:
    """Strictly monotone closes with a fixed 0.5 wick on each side."""
    times = _make_times(n, step_seconds)
    out = []
    for i in range(n):
        close = start + i * step
        out.append(
            Candle(
                time=times[i],
                open=close - step / 2,
                high=close + 0.5,
                low=close - 0.5,
                close=close,
                volume=volume,
            )
        )
    return out


def _flat_candles(n: int = 30, price: float = 100.0, step_seconds: int = 86400) -> list[Candle]:
    times = _make_times(n, step_seconds)
    return [Candle(times[i], price, price, price, price, 0.0) for i in range(n)]


# ---------------------------------------------------------------------------
# Raw broker payload builders
# ---------------------------------------------------------------------------


def _dhan_payload(
    strikes: list[float] | None = None,
    spot: float = 250.0,
    explst: list[int] | None = None,
) -> dict:
    """Dhan ScanX-shaped payload; OI peaks at the strike nearest ``spot``."""
    if strikes is None:
        strikes = [float(k) for k in range(200, 305, 5)]
    # 2026-03-26 and 2026-04-27, seconds since 1980-01-01 IST
    if explst is None:
        explst = [1458950400, 1461715200]
    oc = {}
    for k in strikes:
        weight = max(1.0, 5000.0 - abs(k - spot) * 80)
        oc[f"{k:.6f}"] = {
            "ce": {
                "sid": int(k * 10 + 1),
                "disp_sym": f"NATURALGAS {k:g} CALL",
                "ltp": round(max(1.0, spot - k) + 5, 2),
                "OI": round(weight),
                "vol": round(weight / 2),
                "iv": 44.0,
                "bp": 0,
                "ap": 0,
                "optgeeks": {"delta": 0.5, "theta": -0.4},
            },
            "pe": {
                "sid": int(k * 10 + 2),
                "disp_sym": f"NATURALGAS {k:g} PUT",
                "ltp": round(max(1.0, k - spot) + 5, 2),
                "OI": round(weight * 1.2),
                "vol": round(weight / 3),
                "iv": 46.0,
                "bp": 4.9,
                "ap": 5.1,
                "optgeeks": {"delta": -0.5, "theta": -0.4},
            },
        }
    return {
        "data": {
            "explst": explst,
            "olot": 1250,
            "sltp": spot,
            "otick": 0.05,
            "oc": oc,
            "fl": {
                "1": {"disp_sym": "NATURALGAS APR FUT", "ltp": spot + 2, "daystoexp": 48},
                "2": {"disp_sym": "NATURALGAS MAR FUT", "ltp": spot, "daystoexp": 16},
            },
        }
    }


# ---------------------------------------------------------------------------
# Pytest fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def hourly_candles() -> list[Candle]:
    """300 hourly random-walk candles."""
    return _random_walk_candles(n=300, seed=42)


@pytest.fixture()
def daily_candles() -> list[Candle]:
    """120 daily trending candles."""
    return _trending_candles(n=120, seed=7, step_seconds=86400)


@pytest.fixture()
def dhan_payload() -> dict:
    return _dhan_payload()


@pytest.fixture()
def signal_inputs(hourly_candles, daily_candles) -> SignalInputs:
    weekly = _trending_candles(n=60, seed=11, step_seconds=7 * 86400)
    monthly = _trending_candles(n=24, seed=13, step_seconds=30 * 86400)
    last = daily_candles[-1].close
    return SignalInputs(
        candles={"1H": hourly_candles, "1D": daily_candles, "1W": weekly, "1M": monthly},
        live_quote=LiveQuote(price=last, previous_close=last * 0.99, change_percent=1.0),
    )
