"""
Multi-timeframe signal scorer.

Each indicator in a timeframe's ``IndicatorSet`` casts one BUY / SELL / HOLD
vote.  The votes are folded into a bias score in [-100, 100] with a fixed
weight table, and the per-timeframe scores are folded again into the
overall verdict with per-timeframe weights (longer timeframes = less noise =
more weight).

Score Formula (per timeframe):
    bias_score = round( Σ vote_i × w_i / Σ w_i × 100 )      vote ∈ {+1, 0, -1}

    Only indicators that actually voted (had enough history) contribute to
    the denominator, so a 20-bar monthly series is not diluted by the
    missing EMA50.

Overall:
    score = Σ bias_score_tf × W_tf / Σ W_tf  (+ live nudge, clamped ±100)

Thresholds (see ``ScoringConfig``):
    bias:        > +25 BUY, < -25 SELL, otherwise HOLD (±25 exactly → HOLD)
    confidence:  |score| ≥ 60 HIGH, ≥ 30 MEDIUM, else LOW; HIGH additionally
                 needs a strict majority of timeframes agreeing with the
                 overall direction.

Usage:
    from src.signals_lib.analysis.scorer import score_timeframe, compute_overall_signal

    signals = [score_timeframe(tf, candles[tf]) for tf in ("1H", "1D", "1W")]
    overall = compute_overall_signal(signals, live_change_percent=1.2)
"""

import logging
import math
from typing import Optional, Sequence

from src.signals_lib.analysis.indicators import compute_indicators
from src.signals_lib.core.config import IndicatorConfig, ScoringConfig
from src.signals_lib.core.errors import InsufficientData
from src.signals_lib.core.models import (
    Candle,
    Confidence,
    Direction,
    IndicatorSet,
    IndicatorVote,
    MarketCondition,
    OverallSignal,
    TimeframeSignal,
)

logger = logging.getLogger("scorer")

_VOTE_VALUE = {Direction.BUY: 1, Direction.SELL: -1, Direction.HOLD: 0}


# ---------------------------------------------------------------------------
# Per-indicator votes
# ---------------------------------------------------------------------------


def _vote_rsi(ind: IndicatorSet, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.rsi is None:
        return None
    rsi = ind.rsi
    desc = f"RSI at {rsi:.1f}"
    if rsi < cfg.rsi_oversold:
        vote, desc = Direction.BUY, desc + " - oversold, potential reversal up"
    elif rsi > cfg.rsi_overbought:
        vote, desc = Direction.SELL, desc + " - overbought, potential reversal down"
    elif rsi < cfg.rsi_soft_buy:
        vote, desc = Direction.BUY, desc + " - recovering from oversold zone"
    elif rsi > cfg.rsi_soft_sell:
        vote, desc = Direction.SELL, desc + " - approaching overbought zone"
    else:
        vote, desc = Direction.HOLD, desc + " - neutral zone"
    return IndicatorVote("RSI", rsi, vote, desc)


def _vote_macd(ind: IndicatorSet, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.macd_line is None or ind.macd_signal is None:
        return None
    diff = ind.macd_line - ind.macd_signal
    hist = ind.macd_histogram
    desc = f"MACD {ind.macd_line:.4f}"
    if diff > 0 and hist is not None and hist > 0:
        vote, desc = Direction.BUY, desc + " - bullish crossover, histogram rising"
    elif diff < 0 and hist is not None and hist < 0:
        vote, desc = Direction.SELL, desc + " - bearish crossover, histogram falling"
    else:
        vote, desc = Direction.HOLD, desc + " - near signal line, indecisive"
    return IndicatorVote("MACD", ind.macd_line, vote, desc)


def _vote_ema(ind: IndicatorSet, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.ema20 is None or ind.ema50 is None:
        return None
    desc = f"EMA20 {ind.ema20:.3f}, EMA50 {ind.ema50:.3f}"
    if ind.ema20 > ind.ema50:
        vote, desc = Direction.BUY, desc + " - golden cross (bullish)"
    elif ind.ema20 < ind.ema50:
        vote, desc = Direction.SELL, desc + " - death cross (bearish)"
    else:
        vote = Direction.HOLD
    return IndicatorVote("EMA", ind.ema20, vote, desc)


def _vote_stochastic(ind: IndicatorSet, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.stoch_k is None or ind.stoch_d is None:
        return None
    k, d = ind.stoch_k, ind.stoch_d
    desc = f"%K {k:.1f}, %D {d:.1f}"
    if k < cfg.stoch_oversold and k > d:
        vote, desc = Direction.BUY, desc + " - oversold crossover up"
    elif k > cfg.stoch_overbought and k < d:
        vote, desc = Direction.SELL, desc + " - overbought crossover down"
    elif k < cfg.stoch_soft_buy:
        vote, desc = Direction.BUY, desc + " - near oversold"
    elif k > cfg.stoch_soft_sell:
        vote, desc = Direction.SELL, desc + " - near overbought"
    else:
        vote = Direction.HOLD
    return IndicatorVote("Stochastic", k, vote, desc)


def _vote_bollinger(
    ind: IndicatorSet, price: float, cfg: ScoringConfig
) -> Optional[IndicatorVote]:
    if ind.bollinger_upper is None or ind.bollinger_lower is None:
        return None
    width = ind.bollinger_upper - ind.bollinger_lower
    pos = (price - ind.bollinger_lower) / width if width > 0 else 0.5
    desc = f"Price at {pos * 100:.0f}% of band"
    if pos < cfg.bb_touch_low:
        vote, desc = Direction.BUY, desc + " - near lower band, oversold"
    elif pos > cfg.bb_touch_high:
        vote, desc = Direction.SELL, desc + " - near upper band, overbought"
    elif pos < cfg.bb_soft_low:
        vote, desc = Direction.BUY, desc + " - lower half, potential bounce"
    elif pos > cfg.bb_soft_high:
        vote, desc = Direction.SELL, desc + " - upper half, potential pullback"
    else:
        vote = Direction.HOLD
    return IndicatorVote("Bollinger", pos * 100, vote, desc)


def _vote_vwap(ind: IndicatorSet, price: float, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.vwap is None:
        return None
    desc = f"VWAP {ind.vwap:.3f}"
    if price > ind.vwap * (1 + cfg.vwap_band):
        vote, desc = Direction.BUY, desc + " - price above VWAP (bullish)"
    elif price < ind.vwap * (1 - cfg.vwap_band):
        vote, desc = Direction.SELL, desc + " - price below VWAP (bearish)"
    else:
        vote, desc = Direction.HOLD, desc + " - price at VWAP"
    return IndicatorVote("VWAP", ind.vwap, vote, desc)


def _vote_pivot(ind: IndicatorSet, price: float, cfg: ScoringConfig) -> Optional[IndicatorVote]:
    if ind.pivot_point is None or ind.pivot_r1 is None or ind.pivot_s1 is None:
        return None
    desc = f"Pivot {ind.pivot_point:.3f}"
    if price > ind.pivot_r1:
        vote, desc = Direction.BUY, desc + f" - above R1 ({ind.pivot_r1:.3f}), strong bullish"
    elif price < ind.pivot_s1:
        vote, desc = Direction.SELL, desc + f" - below S1 ({ind.pivot_s1:.3f}), strong bearish"
    elif price > ind.pivot_point:
        vote, desc = Direction.BUY, desc + " - above pivot, mild bullish"
    else:
        vote, desc = Direction.SELL, desc + " - below pivot, mild bearish"
    return IndicatorVote("Pivot", ind.pivot_point, vote, desc)


def _gate_trend_vote(
    vote: Optional[IndicatorVote], adx: Optional[float], cfg: ScoringConfig
) -> Optional[IndicatorVote]:
    """Silence a trend-following vote when ADX says there is no trend."""
    if vote is None or adx is None or adx >= cfg.adx_trend_gate:
        return vote
    if vote.vote is Direction.HOLD:
        return vote
    return IndicatorVote(
        vote.name,
        vote.value,
        Direction.HOLD,
        f"{vote.description} (ADX {adx:.1f} < {cfg.adx_trend_gate:.0f}, no trend)",
    )


def generate_votes(
    indicators: IndicatorSet,
    last_price: float,
    config: Optional[ScoringConfig] = None,
) -> list[IndicatorVote]:
    """One vote per indicator that had enough history to be computed."""
    cfg = config or ScoringConfig()
    votes = [
        _vote_rsi(indicators, cfg),
        _gate_trend_vote(_vote_macd(indicators, cfg), indicators.adx, cfg),
        _gate_trend_vote(_vote_ema(indicators, cfg), indicators.adx, cfg),
        _vote_stochastic(indicators, cfg),
        _vote_bollinger(indicators, last_price, cfg),
        _vote_vwap(indicators, last_price, cfg),
        _vote_pivot(indicators, last_price, cfg),
    ]
    return [v for v in votes if v is not None]


# ---------------------------------------------------------------------------
# Scores
# ---------------------------------------------------------------------------


def compute_bias_score(
    votes: Sequence[IndicatorVote], config: Optional[ScoringConfig] = None
) -> int:
    """Weighted vote average scaled to [-100, 100]; 0 when nothing voted."""
    cfg = config or ScoringConfig()
    weighted = 0.0
    total = 0.0
    for v in votes:
        w = cfg.indicator_weights.get(v.name, 0)
        weighted += _VOTE_VALUE[v.vote] * w
        total += w
    if total == 0:
        return 0
    return int(round(weighted / total * 100))


def score_to_bias(score: float, config: Optional[ScoringConfig] = None) -> Direction:
    """Strictly beyond ±threshold → BUY / SELL; at or inside it → HOLD."""
    threshold = (config or ScoringConfig()).bias_threshold
    if score > threshold:
        return Direction.BUY
    if score < -threshold:
        return Direction.SELL
    return Direction.HOLD


def score_timeframe(
    timeframe: str,
    candles: Sequence[Candle],
    config: Optional[ScoringConfig] = None,
    indicator_config: Optional[IndicatorConfig] = None,
) -> TimeframeSignal:
    """Compute indicators, votes and bias for one timeframe.

    Raises:
        InsufficientData: ``candles`` is empty.
    """
    if not candles:
        raise InsufficientData(f"no candles for timeframe {timeframe}")
    cfg = config or ScoringConfig()

    last = candles[-1]
    prev = candles[-2] if len(candles) > 1 else last
    last_price = float(last.close)
    reference = float(prev.close)
    change = last_price - reference
    change_pct = change / reference * 100 if reference else 0.0

    indicators = compute_indicators(candles, indicator_config)
    votes = generate_votes(indicators, last_price, cfg)
    bias_score = compute_bias_score(votes, cfg)

    return TimeframeSignal(
        timeframe=timeframe,
        bias=score_to_bias(bias_score, cfg),
        bias_score=bias_score,
        indicators=indicators,
        votes=tuple(votes),
        last_price=last_price,
        reference_close=reference,
        price_change=change,
        price_change_percent=change_pct,
        candle_count=len(candles),
    )


def _live_nudge(live_change_percent: Optional[float], cfg: ScoringConfig) -> float:
    if live_change_percent is None or not math.isfinite(live_change_percent):
        return 0.0
    nudge = live_change_percent * cfg.live_nudge_factor
    return max(-cfg.live_nudge_cap, min(cfg.live_nudge_cap, nudge))


def compute_overall_signal(
    signals: Sequence[TimeframeSignal],
    config: Optional[ScoringConfig] = None,
    live_change_percent: Optional[float] = None,
) -> OverallSignal:
    """Fold per-timeframe bias scores into the overall verdict."""
    cfg = config or ScoringConfig()
    if not signals:
        return OverallSignal(Direction.HOLD, Confidence.LOW, 0.0, 0.0)

    weighted = 0.0
    total = 0.0
    for s in signals:
        w = cfg.timeframe_weights.get(s.timeframe, cfg.unknown_timeframe_weight)
        weighted += s.bias_score * w
        total += w
    raw = weighted / total if total > 0 else 0.0

    score = raw + _live_nudge(live_change_percent, cfg)
    score = round(max(-100.0, min(100.0, score)), 2)
    direction = score_to_bias(score, cfg)

    agreeing = sum(1 for s in signals if s.bias == direction)
    agreement = agreeing / len(signals)

    magnitude = abs(score)
    if magnitude >= cfg.confidence_high:
        confidence = Confidence.HIGH
    elif magnitude >= cfg.confidence_medium:
        confidence = Confidence.MEDIUM
    else:
        confidence = Confidence.LOW

    # HIGH needs a strict majority of timeframes pointing the same way
    if confidence is Confidence.HIGH and agreeing * 2 <= len(signals):
        confidence = Confidence.MEDIUM

    return OverallSignal(
        direction=direction,
        confidence=confidence,
        score=score,
        agreement=round(agreement, 4),
    )


# ---------------------------------------------------------------------------
# Market condition & summary
# ---------------------------------------------------------------------------


def determine_market_condition(
    signal: Optional[TimeframeSignal],
    config: Optional[ScoringConfig] = None,
    live_change_percent: Optional[float] = None,
) -> MarketCondition:
    """Classify the market from the primary timeframe's ADX, ATR and bands."""
    cfg = config or ScoringConfig()
    if signal is not None:
        ind = signal.indicators
        if ind.adx is not None and ind.adx > cfg.adx_trending:
            return MarketCondition.TRENDING
        if (
            ind.atr is not None
            and ind.bollinger_upper is not None
            and ind.bollinger_lower is not None
            and ind.atr > (ind.bollinger_upper - ind.bollinger_lower) * cfg.atr_volatile_ratio
        ):
            return MarketCondition.VOLATILE
    if (
        live_change_percent is not None
        and math.isfinite(live_change_percent)
        and abs(live_change_percent) >= cfg.live_volatile_pct
    ):
        return MarketCondition.VOLATILE
    return MarketCondition.RANGING


_DIRECTION_WORD = {
    Direction.BUY: "BULLISH",
    Direction.SELL: "BEARISH",
    Direction.HOLD: "NEUTRAL",
}


def generate_summary(
    overall: OverallSignal,
    condition: MarketCondition,
    timeframes: Sequence[TimeframeSignal],
) -> str:
    bullish = ", ".join(t.timeframe for t in timeframes if t.bias is Direction.BUY)
    bearish = ", ".join(t.timeframe for t in timeframes if t.bias is Direction.SELL)

    text = (
        f"Overall {_DIRECTION_WORD[overall.direction]} bias (score: {overall.score:g}) "
        f"with {overall.confidence.value} confidence. "
        f"Market is {condition.value.lower()}."
    )
    if bullish:
        text += f" Bullish on: {bullish}."
    if bearish:
        text += f" Bearish on: {bearish}."
    return text
