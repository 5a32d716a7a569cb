"""
Tests for ATR-sized futures setups.

Covers:
  - BUY / SELL level arithmetic and risk/reward
  - HOLD setups carry no actionable levels
  - DegenerateRisk on missing / zero ATR and the advisory fallback
  - Rationale built from agreeing votes and pivot context
"""

import pytest

from src.signals_lib.analysis.setups import (
    build_futures_setup,
    generate_futures_setup,
    generate_futures_setups,
)
from src.signals_lib.core.config import SetupConfig
from src.signals_lib.core.errors import DegenerateRisk
from src.signals_lib.core.models import (
    Direction,
    IndicatorSet,
    IndicatorVote,
    TimeframeSignal,
)


def _signal(
    timeframe: str = "1D",
    price: float = 100.0,
    atr: float | None = 2.0,
    votes: tuple = (),
    **indicators,
) -> TimeframeSignal:
    return TimeframeSignal(
        timeframe=timeframe,
        bias=Direction.BUY,
        bias_score=40,
        indicators=IndicatorSet(atr=atr, **indicators),
        votes=votes,
        last_price=price,
        reference_close=price - 1,
        price_change=1.0,
        price_change_percent=1.0,
        candle_count=60,
    )


# ===========================================================================
# Test: levels
# ===========================================================================


class TestLevels:
    def test_buy(self):
        setup = build_futures_setup(_signal(), Direction.BUY)
        assert setup.direction is Direction.BUY
        assert setup.entry == 100.0
        assert setup.stop_loss == pytest.approx(97.0)
        assert setup.target1 == pytest.approx(103.0)
        assert setup.target2 == pytest.approx(105.0)
        assert setup.risk_reward_ratio == pytest.approx(1.0)
        assert setup.atr_value == 2.0
        assert setup.advisory is False

    def test_sell_is_mirror(self):
        setup = build_futures_setup(_signal(), Direction.SELL)
        assert setup.stop_loss == pytest.approx(103.0)
        assert setup.target1 == pytest.approx(97.0)
        assert setup.target2 == pytest.approx(95.0)
        assert setup.stop_loss > setup.entry > setup.target1 > setup.target2

    def test_custom_multiplier(self):
        cfg = SetupConfig(atr_risk_multiplier=2.0)
        setup = build_futures_setup(_signal(), Direction.BUY, cfg)
        assert setup.stop_loss == pytest.approx(96.0)
        assert setup.risk_reward_ratio == pytest.approx(0.75)

    def test_rounding(self):
        setup = build_futures_setup(_signal(price=251.123456, atr=1.333333), Direction.BUY)
        assert setup.entry == 251.1235
        assert setup.atr_value == 1.3333

    def test_hold_has_no_levels(self):
        setup = build_futures_setup(_signal(), Direction.HOLD)
        assert setup.direction is Direction.HOLD
        assert setup.stop_loss == setup.entry == setup.target1 == setup.target2
        assert setup.risk_reward_ratio == 0.0

    def test_hold_without_atr_is_fine(self):
        setup = build_futures_setup(_signal(atr=None), Direction.HOLD)
        assert setup.atr_value == 0.0
        assert setup.advisory is False


# ===========================================================================
# Test: degenerate risk
# ===========================================================================


class TestDegenerateRisk:
    @pytest.mark.parametrize("atr", [None, 0.0])
    def test_build_raises(self, atr):
        with pytest.raises(DegenerateRisk) as exc_info:
            build_futures_setup(_signal(atr=atr), Direction.BUY)
        assert exc_info.value.timeframe == "1D"

    def test_generate_returns_advisory_hold(self):
        setup = generate_futures_setup(_signal(atr=None), Direction.SELL)
        assert setup.direction is Direction.HOLD
        assert setup.advisory is True
        assert setup.atr_value == 0.0
        assert setup.risk_reward_ratio == 0.0
        assert setup.stop_loss == setup.entry
        assert setup.rationale.startswith("Advisory only: SELL")


# ===========================================================================
# Test: rationale
# ===========================================================================


class TestRationale:
    def test_agreeing_votes_capped(self):
        votes = (
            IndicatorVote("RSI", 40.0, Direction.BUY, "RSI at 40.0 - recovering"),
            IndicatorVote("MACD", 0.1, Direction.SELL, "MACD bearish"),
            IndicatorVote("EMA", 101.0, Direction.BUY, "golden cross"),
            IndicatorVote("VWAP", 99.0, Direction.BUY, "above VWAP"),
            IndicatorVote("Pivot", 99.5, Direction.BUY, "above pivot"),
        )
        setup = build_futures_setup(_signal(votes=votes), Direction.BUY)
        parts = setup.rationale.split(" | ")
        assert parts == [
            "RSI: RSI at 40.0 - recovering",
            "EMA: golden cross",
            "VWAP: above VWAP",
        ]

    def test_pivot_context(self):
        setup = build_futures_setup(
            _signal(pivot_r1=102.0, pivot_r2=104.5, pivot_s1=98.0), Direction.BUY
        )
        assert setup.rationale == (
            "BUY signal from multi-indicator confluence | pivots R1 102.00, R2 104.50"
        )

    def test_pivots_on_wrong_side_omitted(self):
        setup = build_futures_setup(_signal(pivot_s1=101.0, pivot_s2=103.0), Direction.SELL)
        assert "pivots" not in setup.rationale


class TestGenerateFuturesSetups:
    def test_keyed_by_timeframe(self):
        signals = [_signal("1H", atr=0.5), _signal("1D"), _signal("1M", atr=None)]
        setups = generate_futures_setups(signals, Direction.BUY)
        assert list(setups) == ["1H", "1D", "1M"]
        assert setups["1H"].stop_loss == pytest.approx(99.25)
        assert setups["1M"].advisory is True
