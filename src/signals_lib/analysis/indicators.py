"""
Indicator engine — the fixed indicator set computed for every timeframe.

Indicators and their lookbacks (see ``IndicatorConfig``):

  Momentum    RSI(14) Wilder, Stochastic %K(14) / %D(3)
  Trend       EMA(20), EMA(50), MACD(12, 26, 9), ADX(14) with +DI / -DI
  Volatility  ATR(14) Wilder, Bollinger(20, 2σ)
  Volume      VWAP (cumulative over the supplied series)
  Levels      Classic floor pivots from the last completed period

Design decisions:
  - EMAs are seeded with the SMA of the first ``period`` values, so an
    EMA is undefined until ``period`` bars exist (no warm-up guessing).
  - RSI, ATR and ADX use Wilder's smoothing (alpha = 1 / period) seeded
    with a simple average, matching the usual charting packages.
  - A value that cannot be computed (too few bars, or a zero denominator
    with no sensible limit) is None in the ``IndicatorSet``, never NaN,
    inf or a zero placeholder.
  - VWAP is cumulative over the series it is given and restarts whenever a
    new series is supplied.  Bars reporting zero volume carry unit weight
    so volume-less feeds (some monthly series) still yield a typical-price
    average.

Usage:
    from src.signals_lib.analysis.indicators import compute_indicators

    ind = compute_indicators(candles)
    if ind.rsi is not None and ind.rsi < 30:
        ...
"""

import logging
import math
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from src.signals_lib.core.config import IndicatorConfig
from src.signals_lib.core.models import Candle, IndicatorSet, candles_to_frame

logger = logging.getLogger("indicators")


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _last(values: np.ndarray) -> Optional[float]:
    """Final element as a plain float, or None if missing / non-finite."""
    if len(values) == 0:
        return None
    val = float(values[-1])
    return val if math.isfinite(val) else None


def _finite_or_none(value: Optional[float]) -> Optional[float]:
    if value is None:
        return None
    return value if math.isfinite(value) else None


def _true_range(high: np.ndarray, low: np.ndarray, close: np.ndarray) -> np.ndarray:
    """True Range; the first bar has no previous close so it uses high - low."""
    n = len(high)
    tr = np.empty(n)
    if n == 0:
        return tr
    tr[0] = high[0] - low[0]
    for i in range(1, n):
        tr[i] = max(
            high[i] - low[i],
            abs(high[i] - close[i - 1]),
            abs(low[i] - close[i - 1]),
        )
    return tr


# ---------------------------------------------------------------------------
# Trend
# ---------------------------------------------------------------------------


def ema(values: np.ndarray, period: int) -> np.ndarray:
    """SMA-seeded Exponential Moving Average (NaN until ``period`` values exist)."""
    n = len(values)
    out = np.full(n, np.nan)
    if period < 1 or n < period:
        return out
    k = 2.0 / (period + 1)
    out[period - 1] = float(np.mean(values[:period]))
    for i in range(period, n):
        out[i] = (values[i] - out[i - 1]) * k + out[i - 1]
    return out


def macd(
    close: np.ndarray,
    fast: int = 12,
    slow: int = 26,
    signal: int = 9,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """MACD line, signal line and histogram, aligned with ``close``.

    The signal line is an EMA of the *defined* part of the MACD line, so it
    needs ``slow + signal - 1`` bars.
    """
    n = len(close)
    line = ema(close, fast) - ema(close, slow)
    sig = np.full(n, np.nan)

    valid = np.where(~np.isnan(line))[0]
    if len(valid) > 0:
        start = int(valid[0])
        sig[start:] = ema(line[start:], signal)

    hist = line - sig
    return line, sig, hist


def adx(
    high: np.ndarray,
    low: np.ndarray,
    close: np.ndarray,
    period: int = 14,
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Average Directional Index with +DI and -DI (Wilder).

    +DI / -DI are defined from bar ``period`` (needs ``period + 1`` bars);
    ADX is the Wilder average of DX and is defined from bar
    ``2 * period - 1``.
    """
    n = len(close)
    adx_out = np.full(n, np.nan)
    plus_di = np.full(n, np.nan)
    minus_di = np.full(n, np.nan)
    if n < period + 1:
        return adx_out, plus_di, minus_di

    tr = _true_range(high, low, close)
    tr[0] = 0.0
    plus_dm = np.zeros(n)
    minus_dm = np.zeros(n)
    for i in range(1, n):
        up = high[i] - high[i - 1]
        down = low[i - 1] - low[i]
        plus_dm[i] = up if (up > down and up > 0) else 0.0
        minus_dm[i] = down if (down > up and down > 0) else 0.0

    def _di(dm: float, tr_sum: float) -> float:
        return 0.0 if tr_sum == 0 else dm / tr_sum * 100.0

    def _dx(p: float, m: float) -> float:
        total = p + m
        return 0.0 if total == 0 else abs(p - m) / total * 100.0

    s_tr = float(np.sum(tr[1 : period + 1]))
    s_plus = float(np.sum(plus_dm[1 : period + 1]))
    s_minus = float(np.sum(minus_dm[1 : period + 1]))

    plus_di[period] = _di(s_plus, s_tr)
    minus_di[period] = _di(s_minus, s_tr)
    dx_values = [_dx(plus_di[period], minus_di[period])]

    for i in range(period + 1, n):
        s_tr = s_tr - s_tr / period + tr[i]
        s_plus = s_plus - s_plus / period + plus_dm[i]
        s_minus = s_minus - s_minus / period + minus_dm[i]
        plus_di[i] = _di(s_plus, s_tr)
        minus_di[i] = _di(s_minus, s_tr)
        dx_values.append(_dx(plus_di[i], minus_di[i]))

    # First ADX = mean of the first `period` DX values
    if len(dx_values) >= period:
        first = 2 * period - 1
        adx_out[first] = float(np.mean(dx_values[:period]))
        for i in range(first + 1, n):
            adx_out[i] = (adx_out[i - 1] * (period - 1) + dx_values[i - period]) / period

    return adx_out, plus_di, minus_di


# ---------------------------------------------------------------------------
# Momentum
# ---------------------------------------------------------------------------


def rsi(close: np.ndarray, period: int = 14) -> np.ndarray:
    """Wilder RSI.  Defined from bar ``period`` (needs ``period + 1`` closes).

    A window with no losses is 100; a window with no movement at all is 50.
    """
    n = len(close)
    out = np.full(n, np.nan)
    if n < period + 1:
        return out

    diff = np.diff(close)
    gains = np.where(diff > 0, diff, 0.0)
    losses = np.where(diff < 0, -diff, 0.0)

    avg_gain = float(np.mean(gains[:period]))
    avg_loss = float(np.mean(losses[:period]))

    def _value(g: float, l: float) -> float:
        if l == 0:
            return 50.0 if g == 0 else 100.0
        return 100.0 - 100.0 / (1.0 + g / l)

    out[period] = _value(avg_gain, avg_loss)
    for i in range(period + 1, n):
        avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
        avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        out[i] = _value(avg_gain, avg_loss)
    return out


def stochastic(
    high: np.ndarray,
    low: np.ndarray,
    close: np.ndarray,
    k_period: int = 14,
    d_period: int = 3,
) -> tuple[np.ndarray, np.ndarray]:
    """Stochastic %K and %D (SMA of %K).  A flat window gives %K = 50."""
    n = len(close)
    k = np.full(n, np.nan)
    for i in range(k_period - 1, n):
        hh = float(np.max(high[i - k_period + 1 : i + 1]))
        ll = float(np.min(low[i - k_period + 1 : i + 1]))
        rng = hh - ll
        k[i] = 50.0 if rng == 0 else (close[i] - ll) / rng * 100.0

    d = pd.Series(k).rolling(d_period, min_periods=d_period).mean().to_numpy()
    return k, d


# ---------------------------------------------------------------------------
# Volatility
# ---------------------------------------------------------------------------


def atr(
    high: np.ndarray,
    low: np.ndarray,
    close: np.ndarray,
    period: int = 14,
) -> np.ndarray:
    """Wilder ATR seeded with the SMA of the first ``period`` true ranges."""
    n = len(close)
    out = np.full(n, np.nan)
    if n < period or period < 1:
        return out
    tr = _true_range(high, low, close)
    out[period - 1] = float(np.mean(tr[:period]))
    for i in range(period, n):
        out[i] = (out[i - 1] * (period - 1) + tr[i]) / period
    return out


def bollinger(
    close: np.ndarray, period: int = 20, num_std: float = 2.0
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Bollinger upper / middle / lower using the population standard deviation."""
    s = pd.Series(close, dtype=float)
    mid = s.rolling(period, min_periods=period).mean()
    std = s.rolling(period, min_periods=period).std(ddof=0)
    upper = mid + num_std * std
    lower = mid - num_std * std
    return upper.to_numpy(), mid.to_numpy(), lower.to_numpy()


# ---------------------------------------------------------------------------
# Volume & levels
# ---------------------------------------------------------------------------


def vwap(
    high: np.ndarray, low: np.ndarray, close: np.ndarray, volume: np.ndarray
) -> np.ndarray:
    """Cumulative VWAP of the typical price over the whole series."""
    typical = (high + low + close) / 3.0
    weights = np.where(volume > 0, volume, 1.0)
    cum_pv = np.cumsum(typical * weights)
    cum_v = np.cumsum(weights)
    return cum_pv / cum_v


def pivot_levels(high: float, low: float, close: float) -> dict[str, float]:
    """Classic floor-trader pivots from one completed period."""
    pp = (high + low + close) / 3.0
    rng = high - low
    return {
        "pivot": pp,
        "r1": 2 * pp - low,
        "r2": pp + rng,
        "r3": high + 2 * (pp - low),
        "s1": 2 * pp - high,
        "s2": pp - rng,
        "s3": low - 2 * (high - pp),
    }


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def compute_indicators(
    candles: Sequence[Candle], config: Optional[IndicatorConfig] = None
) -> IndicatorSet:
    """Compute the full indicator set for one ascending candle series."""
    cfg = config or IndicatorConfig()
    if not candles:
        return IndicatorSet()

    df = candles_to_frame(candles)
    return compute_indicators_df(df, cfg)


def compute_indicators_df(
    df: pd.DataFrame, config: Optional[IndicatorConfig] = None
) -> IndicatorSet:
    """Same as ``compute_indicators`` for an OHLCV DataFrame."""
    cfg = config or IndicatorConfig()
    if df.empty:
        return IndicatorSet()

    high = df["High"].astype(float).to_numpy()
    low = df["Low"].astype(float).to_numpy()
    close = df["Close"].astype(float).to_numpy()
    volume = df["Volume"].astype(float).fillna(0.0).to_numpy()

    macd_line, macd_sig, macd_hist = macd(
        close, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal
    )
    adx_arr, plus_arr, minus_arr = adx(high, low, close, cfg.adx_period)
    stoch_k, stoch_d = stochastic(high, low, close, cfg.stoch_k, cfg.stoch_d)
    bb_upper, bb_mid, bb_lower = bollinger(close, cfg.bb_period, cfg.bb_std)

    # Pivots come from the last *completed* period, i.e. the bar before the
    # one still forming.
    pivots: dict[str, Optional[float]] = dict.fromkeys(
        ("pivot", "r1", "r2", "r3", "s1", "s2", "s3")
    )
    if len(close) >= 2:
        pivots.update(pivot_levels(high[-2], low[-2], close[-2]))

    return IndicatorSet(
        rsi=_last(rsi(close, cfg.rsi_period)),
        stoch_k=_last(stoch_k),
        stoch_d=_last(stoch_d),
        ema20=_last(ema(close, cfg.ema_fast)),
        ema50=_last(ema(close, cfg.ema_slow)),
        macd_line=_last(macd_line),
        macd_signal=_last(macd_sig),
        macd_histogram=_last(macd_hist),
        adx=_last(adx_arr),
        plus_di=_last(plus_arr),
        minus_di=_last(minus_arr),
        atr=_last(atr(high, low, close, cfg.atr_period)),
        bollinger_upper=_last(bb_upper),
        bollinger_middle=_last(bb_mid),
        bollinger_lower=_last(bb_lower),
        vwap=_last(vwap(high, low, close, volume)),
        pivot_point=_finite_or_none(pivots["pivot"]),
        pivot_r1=_finite_or_none(pivots["r1"]),
        pivot_r2=_finite_or_none(pivots["r2"]),
        pivot_r3=_finite_or_none(pivots["r3"]),
        pivot_s1=_finite_or_none(pivots["s1"]),
        pivot_s2=_finite_or_none(pivots["s2"]),
        pivot_s3=_finite_or_none(pivots["s3"]),
    )
