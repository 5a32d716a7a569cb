"""
Futures trade setups (entry / stop / targets) sized by ATR.

    BUY:   stop = entry - ATR × risk_mult     target1 = entry + ATR × 1.5
                                              target2 = entry + ATR × 2.5
    SELL:  mirror image
    HOLD:  stop = target1 = target2 = entry, R:R = 0

Callers must check ``direction`` before acting on a setup: a HOLD setup
carries no actionable levels, and an ``advisory`` setup is one where the
direction was BUY / SELL but ATR was unavailable.

Usage:
    from src.signals_lib.analysis.setups import generate_futures_setups

    setups = generate_futures_setups(timeframe_signals, overall.direction)
    primary = setups.get("1D")
"""

import logging
from typing import Optional, Sequence

from src.signals_lib.core.config import SetupConfig
from src.signals_lib.core.errors import DegenerateRisk
from src.signals_lib.core.models import Direction, FuturesSetup, TimeframeSignal

logger = logging.getLogger("setups")


def _round4(x: float) -> float:
    return round(x, 4)


def _pivot_context(signal: TimeframeSignal, direction: Direction) -> str:
    """Nearest pivot levels on the favourable side of price."""
    ind = signal.indicators
    price = signal.last_price
    if direction is Direction.BUY:
        levels = [("R1", ind.pivot_r1), ("R2", ind.pivot_r2)]
        near = [(n, v) for n, v in levels if v is not None and v > price]
    else:
        levels = [("S1", ind.pivot_s1), ("S2", ind.pivot_s2)]
        near = [(n, v) for n, v in levels if v is not None and v < price]
    if not near:
        return ""
    return "pivots " + ", ".join(f"{n} {v:.2f}" for n, v in near)


def _rationale(signal: TimeframeSignal, direction: Direction, config: SetupConfig) -> str:
    parts = [
        f"{v.name}: {v.description}" for v in signal.votes if v.vote is direction
    ][: config.max_rationale_votes]
    if not parts:
        parts = [f"{direction.value} signal from multi-indicator confluence"]
    pivots = _pivot_context(signal, direction)
    if pivots:
        parts.append(pivots)
    return " | ".join(parts)


def _hold_setup(signal: TimeframeSignal, rationale: str, advisory: bool = False) -> FuturesSetup:
    entry = _round4(signal.last_price)
    return FuturesSetup(
        timeframe=signal.timeframe,
        direction=Direction.HOLD,
        entry=entry,
        stop_loss=entry,
        target1=entry,
        target2=entry,
        risk_reward_ratio=0.0,
        atr_value=0.0 if advisory else _round4(signal.indicators.atr or 0.0),
        rationale=rationale,
        advisory=advisory,
    )


def build_futures_setup(
    signal: TimeframeSignal,
    direction: Direction,
    config: Optional[SetupConfig] = None,
) -> FuturesSetup:
    """Build the setup for ``direction`` on one timeframe.

    Raises:
        DegenerateRisk: direction is BUY / SELL and ATR is missing or zero.
    """
    cfg = config or SetupConfig()
    if direction is Direction.HOLD:
        return _hold_setup(signal, "No directional edge; stand aside")

    atr = signal.indicators.atr
    if atr is None or atr <= 0:
        raise DegenerateRisk(signal.timeframe, atr)

    side = 1 if direction is Direction.BUY else -1
    entry = signal.last_price
    stop = entry - side * atr * cfg.atr_risk_multiplier
    target1 = entry + side * atr * cfg.target1_multiplier
    target2 = entry + side * atr * cfg.target2_multiplier
    risk = abs(entry - stop)
    rr = abs(target1 - entry) / risk if risk > 0 else 0.0

    return FuturesSetup(
        timeframe=signal.timeframe,
        direction=direction,
        entry=_round4(entry),
        stop_loss=_round4(stop),
        target1=_round4(target1),
        target2=_round4(target2),
        risk_reward_ratio=round(rr, 2),
        atr_value=_round4(atr),
        rationale=_rationale(signal, direction, cfg),
    )


def generate_futures_setup(
    signal: TimeframeSignal,
    direction: Direction,
    config: Optional[SetupConfig] = None,
) -> FuturesSetup:
    """Like ``build_futures_setup`` but degrades to an advisory HOLD setup."""
    try:
        return build_futures_setup(signal, direction, config)
    except DegenerateRisk as exc:
        logger.warning("Advisory setup for %s: %s", signal.timeframe, exc)
        return _hold_setup(
            signal,
            f"Advisory only: {direction.value} bias but ATR unavailable on "
            f"{signal.timeframe} ({signal.candle_count} candles)",
            advisory=True,
        )


def generate_futures_setups(
    signals: Sequence[TimeframeSignal],
    direction: Direction,
    config: Optional[SetupConfig] = None,
) -> dict[str, FuturesSetup]:
    """One setup per timeframe, keyed by timeframe id, in input order."""
    return {s.timeframe: generate_futures_setup(s, direction, config) for s in signals}
