"""
Tests for the multi-timeframe scorer.

Covers:
  - Individual indicator votes and the ADX trend gate
  - Weighted bias score and the ±25 HOLD boundary
  - Overall verdict: timeframe weights, confidence tiers, majority rule
  - Live intraday nudge and its cap
  - Market condition and the summary sentence
  - score_timeframe() on generated series
"""

import pytest
from conftest import _linear_candles, _random_walk_candles, _trending_candles

from src.signals_lib.analysis.scorer import (
    compute_bias_score,
    compute_overall_signal,
    determine_market_condition,
    generate_summary,
    generate_votes,
    score_timeframe,
    score_to_bias,
)
from src.signals_lib.core.config import ScoringConfig
from src.signals_lib.core.errors import InsufficientData
from src.signals_lib.core.models import (
    Confidence,
    Direction,
    IndicatorSet,
    IndicatorVote,
    MarketCondition,
    OverallSignal,
    TimeframeSignal,
)

VOTE_NAMES = {"RSI", "MACD", "EMA", "Stochastic", "Bollinger", "VWAP", "Pivot"}


def _signal(timeframe: str, score: int, indicators: IndicatorSet | None = None) -> TimeframeSignal:
    return TimeframeSignal(
        timeframe=timeframe,
        bias=score_to_bias(score),
        bias_score=score,
        indicators=indicators or IndicatorSet(),
        votes=(),
        last_price=100.0,
        reference_close=99.0,
        price_change=1.0,
        price_change_percent=1.0101,
        candle_count=50,
    )


def _votes_by_name(indicators: IndicatorSet, price: float) -> dict[str, IndicatorVote]:
    return {v.name: v for v in generate_votes(indicators, price)}


# ===========================================================================
# Test: individual votes
# ===========================================================================


class TestIndicatorVotes:
    @pytest.mark.parametrize(
        "value,expected",
        [
            (25.0, Direction.BUY),
            (40.0, Direction.BUY),
            (50.0, Direction.HOLD),
            (60.0, Direction.SELL),
            (75.0, Direction.SELL),
        ],
    )
    def test_rsi_zones(self, value, expected):
        votes = _votes_by_name(IndicatorSet(rsi=value), 100.0)
        assert votes["RSI"].vote is expected

    def test_missing_indicators_do_not_vote(self):
        assert generate_votes(IndicatorSet(), 100.0) == []
        votes = _votes_by_name(IndicatorSet(rsi=50.0, vwap=100.0), 100.0)
        assert set(votes) == {"RSI", "VWAP"}

    def test_ema_cross(self):
        up = _votes_by_name(IndicatorSet(ema20=110.0, ema50=100.0, adx=30.0), 100.0)
        down = _votes_by_name(IndicatorSet(ema20=90.0, ema50=100.0, adx=30.0), 100.0)
        assert up["EMA"].vote is Direction.BUY
        assert down["EMA"].vote is Direction.SELL

    def test_macd_crossover(self):
        ind = IndicatorSet(macd_line=1.2, macd_signal=0.8, macd_histogram=0.4)
        assert _votes_by_name(ind, 100.0)["MACD"].vote is Direction.BUY
        ind = IndicatorSet(macd_line=0.5, macd_signal=0.8, macd_histogram=-0.3)
        assert _votes_by_name(ind, 100.0)["MACD"].vote is Direction.SELL

    def test_stochastic_crossovers(self):
        up = _votes_by_name(IndicatorSet(stoch_k=15.0, stoch_d=10.0), 100.0)
        down = _votes_by_name(IndicatorSet(stoch_k=85.0, stoch_d=90.0), 100.0)
        mid = _votes_by_name(IndicatorSet(stoch_k=50.0, stoch_d=50.0), 100.0)
        assert up["Stochastic"].vote is Direction.BUY
        assert down["Stochastic"].vote is Direction.SELL
        assert mid["Stochastic"].vote is Direction.HOLD

    def test_bollinger_position(self):
        ind = IndicatorSet(bollinger_upper=110.0, bollinger_middle=100.0, bollinger_lower=90.0)
        assert _votes_by_name(ind, 91.0)["Bollinger"].vote is Direction.BUY
        assert _votes_by_name(ind, 109.0)["Bollinger"].vote is Direction.SELL
        assert _votes_by_name(ind, 100.0)["Bollinger"].vote is Direction.HOLD

    def test_bollinger_zero_width_is_centre(self):
        ind = IndicatorSet(bollinger_upper=100.0, bollinger_lower=100.0)
        vote = _votes_by_name(ind, 120.0)["Bollinger"]
        assert vote.vote is Direction.HOLD
        assert vote.value == pytest.approx(50.0)

    def test_vwap_band(self):
        ind = IndicatorSet(vwap=100.0)
        assert _votes_by_name(ind, 100.1)["VWAP"].vote is Direction.HOLD
        assert _votes_by_name(ind, 101.0)["VWAP"].vote is Direction.BUY
        assert _votes_by_name(ind, 99.0)["VWAP"].vote is Direction.SELL

    def test_pivot_levels(self):
        ind = IndicatorSet(pivot_point=100.0, pivot_r1=105.0, pivot_s1=95.0)
        assert _votes_by_name(ind, 106.0)["Pivot"].vote is Direction.BUY
        assert _votes_by_name(ind, 102.0)["Pivot"].vote is Direction.BUY
        assert _votes_by_name(ind, 98.0)["Pivot"].vote is Direction.SELL
        assert _votes_by_name(ind, 94.0)["Pivot"].vote is Direction.SELL


class TestADXGate:
    def test_weak_trend_silences_trend_votes(self):
        ind = IndicatorSet(
            ema20=110.0, ema50=100.0,
            macd_line=1.2, macd_signal=0.8, macd_histogram=0.4,
            adx=15.0,
        )
        votes = _votes_by_name(ind, 100.0)
        assert votes["EMA"].vote is Direction.HOLD
        assert votes["MACD"].vote is Direction.HOLD
        assert "no trend" in votes["EMA"].description

    def test_strong_trend_keeps_votes(self):
        ind = IndicatorSet(ema20=110.0, ema50=100.0, adx=20.0)
        assert _votes_by_name(ind, 100.0)["EMA"].vote is Direction.BUY

    def test_unknown_adx_keeps_votes(self):
        ind = IndicatorSet(ema20=110.0, ema50=100.0)
        assert _votes_by_name(ind, 100.0)["EMA"].vote is Direction.BUY

    def test_gate_leaves_momentum_votes_alone(self):
        ind = IndicatorSet(rsi=25.0, adx=5.0)
        assert _votes_by_name(ind, 100.0)["RSI"].vote is Direction.BUY


# ===========================================================================
# Test: bias score
# ===========================================================================


class TestBiasScore:
    def test_weighted_average_of_voters_only(self):
        votes = [
            IndicatorVote("RSI", 25.0, Direction.BUY, ""),
            IndicatorVote("MACD", -0.1, Direction.SELL, ""),
        ]
        # (15 - 20) / 35 × 100 = -14.29
        assert compute_bias_score(votes) == -14

    def test_unanimous(self):
        votes = [IndicatorVote(n, None, Direction.BUY, "") for n in VOTE_NAMES]
        assert compute_bias_score(votes) == 100

    def test_no_votes_is_zero(self):
        assert compute_bias_score([]) == 0

    @pytest.mark.parametrize(
        "score,expected",
        [
            (25, Direction.HOLD),
            (-25, Direction.HOLD),
            (26, Direction.BUY),
            (-26, Direction.SELL),
            (0, Direction.HOLD),
            (25.01, Direction.BUY),
        ],
    )
    def test_threshold_is_strict(self, score, expected):
        assert score_to_bias(score) is expected


# ===========================================================================
# Test: overall verdict
# ===========================================================================


class TestOverallSignal:
    WEIGHTS = ScoringConfig(timeframe_weights={"A": 0.5, "B": 0.3, "C": 0.2})

    def _three(self):
        return [_signal("A", 80), _signal("B", 60), _signal("C", -10)]

    def test_weighted_score(self):
        overall = compute_overall_signal(self._three(), self.WEIGHTS)
        assert overall.score == pytest.approx(56.0)
        assert overall.direction is Direction.BUY
        assert overall.confidence is Confidence.MEDIUM
        assert overall.agreement == pytest.approx(0.6667)

    def test_lower_high_threshold(self):
        cfg = ScoringConfig(
            timeframe_weights={"A": 0.5, "B": 0.3, "C": 0.2}, confidence_high=50.0
        )
        assert compute_overall_signal(self._three(), cfg).confidence is Confidence.HIGH

    def test_high_needs_strict_majority(self):
        cfg = ScoringConfig(timeframe_weights={"A": 0.8, "B": 0.1, "C": 0.1})
        signals = [_signal("A", 100), _signal("B", -30), _signal("C", -30)]
        overall = compute_overall_signal(signals, cfg)
        assert overall.score == pytest.approx(74.0)
        assert overall.direction is Direction.BUY
        assert overall.confidence is Confidence.MEDIUM

    def test_reproducible(self):
        a = compute_overall_signal(self._three(), self.WEIGHTS, 0.7)
        b = compute_overall_signal(self._three(), self.WEIGHTS, 0.7)
        assert a == b

    def test_unknown_timeframe_weight(self):
        signals = [_signal("X", 50), _signal("1D", 0)]
        # (50 × 0.10 + 0 × 0.20) / 0.30
        assert compute_overall_signal(signals).score == pytest.approx(16.67)

    def test_empty(self):
        overall = compute_overall_signal([])
        assert overall == OverallSignal(Direction.HOLD, Confidence.LOW, 0.0, 0.0)

    def test_low_confidence_band(self):
        overall = compute_overall_signal([_signal("1D", 20)])
        assert overall.direction is Direction.HOLD
        assert overall.confidence is Confidence.LOW


class TestLiveNudge:
    def test_nudge_lands_exactly_on_threshold(self):
        # 20 + 1.0 × 5 = 25 → HOLD
        overall = compute_overall_signal([_signal("1D", 20)], live_change_percent=1.0)
        assert overall.score == pytest.approx(25.0)
        assert overall.direction is Direction.HOLD

    def test_nudge_is_capped(self):
        overall = compute_overall_signal([_signal("1D", 20)], live_change_percent=3.0)
        assert overall.score == pytest.approx(30.0)
        assert overall.direction is Direction.BUY

    def test_negative_nudge(self):
        overall = compute_overall_signal([_signal("1D", 0)], live_change_percent=-9.0)
        assert overall.score == pytest.approx(-10.0)

    def test_score_clamped_to_range(self):
        overall = compute_overall_signal([_signal("1D", 100)], live_change_percent=5.0)
        assert overall.score == 100.0

    def test_non_finite_ignored(self):
        overall = compute_overall_signal([_signal("1D", 20)], live_change_percent=float("nan"))
        assert overall.score == pytest.approx(20.0)


# ===========================================================================
# Test: market condition & summary
# ===========================================================================


class TestMarketCondition:
    def test_trending(self):
        signal = _signal("1D", 0, IndicatorSet(adx=30.0))
        assert determine_market_condition(signal) is MarketCondition.TRENDING

    def test_volatile_from_atr(self):
        ind = IndicatorSet(adx=10.0, atr=5.0, bollinger_upper=105.0, bollinger_lower=95.0)
        assert determine_market_condition(_signal("1D", 0, ind)) is MarketCondition.VOLATILE

    def test_ranging(self):
        ind = IndicatorSet(adx=10.0, atr=1.0, bollinger_upper=105.0, bollinger_lower=95.0)
        assert determine_market_condition(_signal("1D", 0, ind)) is MarketCondition.RANGING

    def test_volatile_from_live_move(self):
        ind = IndicatorSet(adx=10.0, atr=1.0, bollinger_upper=105.0, bollinger_lower=95.0)
        condition = determine_market_condition(_signal("1D", 0, ind), live_change_percent=-3.5)
        assert condition is MarketCondition.VOLATILE

    def test_no_signal(self):
        assert determine_market_condition(None) is MarketCondition.RANGING


class TestSummary:
    def test_format(self):
        signals = [_signal("A", 80), _signal("B", 60), _signal("C", -30)]
        overall = OverallSignal(Direction.BUY, Confidence.MEDIUM, 56.0, 0.6667)
        text = generate_summary(overall, MarketCondition.TRENDING, signals)
        assert text == (
            "Overall BULLISH bias (score: 56) with MEDIUM confidence. "
            "Market is trending. Bullish on: A, B. Bearish on: C."
        )

    def test_neutral_without_lists(self):
        overall = OverallSignal(Direction.HOLD, Confidence.LOW, 3.5, 1.0)
        text = generate_summary(overall, MarketCondition.RANGING, [_signal("1D", 3)])
        assert text == "Overall NEUTRAL bias (score: 3.5) with LOW confidence. Market is ranging."


# ===========================================================================
# Test: score_timeframe
# ===========================================================================


class TestScoreTimeframe:
    def test_structure(self, hourly_candles):
        signal = score_timeframe("1H", hourly_candles)
        assert signal.timeframe == "1H"
        assert signal.candle_count == len(hourly_candles)
        assert signal.last_price == hourly_candles[-1].close
        assert signal.reference_close == hourly_candles[-2].close
        assert -100 <= signal.bias_score <= 100
        assert signal.bias is score_to_bias(signal.bias_score)
        assert {v.name for v in signal.votes} == VOTE_NAMES

    def test_price_change(self):
        signal = score_timeframe("1D", _linear_candles(n=10))
        assert signal.price_change == pytest.approx(1.0)
        assert signal.price_change_percent == pytest.approx(1.0 / 108.0 * 100)

    def test_single_candle(self):
        signal = score_timeframe("1M", _linear_candles(n=1))
        assert signal.reference_close == signal.last_price
        assert signal.price_change == 0.0
        assert signal.bias_score == compute_bias_score(signal.votes)

    def test_short_series_votes_subset(self):
        signal = score_timeframe("1M", _linear_candles(n=20))
        names = {v.name for v in signal.votes}
        assert "EMA" not in names
        assert "RSI" in names

    def test_empty_raises(self):
        with pytest.raises(InsufficientData):
            score_timeframe("1H", [])

    def test_deterministic(self):
        candles = _random_walk_candles(n=120, seed=3)
        assert score_timeframe("1H", candles) == score_timeframe("1H", candles)

    def test_downtrend_not_bullish(self):
        candles = _trending_candles(n=150, trend=-0.006, seed=21, step_seconds=86400)
        signal = score_timeframe("1D", candles)
        assert signal.indicators.ema20 < signal.indicators.ema50
        ema_vote = next(v for v in signal.votes if v.name == "EMA")
        assert ema_vote.vote is not Direction.BUY
