"""
Option-chain analytics: PCR, OI walls, max pain, ATM IV and IV regime.

Source selection:
    The first usable ``NormalizedChain`` (sources are tried in the order the
    caller supplies them) is analysed and tagged ``Provenance.LIVE``.  When
    no source produced a usable chain a deterministic synthetic ladder is
    generated instead and tagged ``Provenance.SYNTHETIC``; it is never
    presented as live data.

Metrics:
    PCR             Σ put OI / Σ call OI, 2 dp (0 when call OI is 0)
    Call resistance strike with the largest call OI
    Put support     strike with the largest put OI
    Max pain        argmin_K Σ_S max(0, K-S)·callOI(S) + max(0, S-K)·putOI(S)
    ATM IV          mean IV of the legs at the strike nearest spot
    IV rank         (iv - min) / (max - min) × 100 over the supplied history
    IV percentile   % of history observations below the current IV

Usage:
    from src.signals_lib.options.analytics import analyze_option_chain

    analysis = analyze_option_chain(chains, spot=245.3, iv_history=[38.0, 41.5, 52.0])
    analysis.provenance   # Provenance.LIVE / Provenance.SYNTHETIC
"""

import logging
import math
from datetime import date
from typing import Optional, Sequence

import numpy as np

from src.signals_lib.core.config import AnalyticsConfig, ChainConfig
from src.signals_lib.core.errors import MalformedLeg
from src.signals_lib.core.models import (
    IVRegime,
    NormalizedChain,
    OptionChainAnalysis,
    OptionChainRow,
    OptionType,
    Provenance,
)
from src.signals_lib.options.chain import make_leg, nearest_index, to_number
from src.signals_lib.options.greeks import with_model_greeks

logger = logging.getLogger("options_analytics")

SYNTHETIC_SOURCE = "SYNTHETIC"

# Days to expiry assumed for model greeks when the chain has no usable expiry
DEFAULT_GREEKS_DTE = 15


# ---------------------------------------------------------------------------
# Synthetic ladder
# ---------------------------------------------------------------------------


def generate_synthetic_chain(
    spot: float,
    config: Optional[AnalyticsConfig] = None,
    chain_config: Optional[ChainConfig] = None,
) -> NormalizedChain:
    """Deterministic ladder around ``spot`` (no randomness, no clock)."""
    cfg = config or AnalyticsConfig()
    ccfg = chain_config or ChainConfig()
    if not math.isfinite(spot) or spot <= 0:
        return NormalizedChain(SYNTHETIC_SOURCE, None, (), None, None, ())
    step = cfg.strike_step
    atm = round(spot / step) * step
    n = cfg.synthetic_strikes_each_side

    strikes = atm + np.arange(-n, n + 1) * step
    dist = np.abs(strikes - spot)
    time_value = spot * cfg.synthetic_time_value_pct * np.exp(-dist / (spot * cfg.synthetic_decay_pct))
    sigma = spot * cfg.synthetic_oi_sigma_pct
    oi = np.round(cfg.synthetic_base_oi * np.exp(-((strikes - spot) ** 2) / (2 * sigma**2)))
    volume = np.round(oi * cfg.synthetic_volume_ratio)

    rows = []
    for strike, tv, leg_oi, leg_vol in zip(strikes, time_value, oi, volume):
        strike = float(strike)
        if strike <= 0:
            continue
        legs = {}
        for option_type in (OptionType.CE, OptionType.PE):
            intrinsic = max(0.0, spot - strike) if option_type is OptionType.CE else max(0.0, strike - spot)
            legs[option_type] = make_leg(
                trading_symbol=f"SYN{strike:g}{option_type.value}",
                instrument_id=0,
                option_type=option_type,
                strike=strike,
                expiry="",
                lot_size=ccfg.default_lot_size,
                last_price=round(intrinsic + float(tv), 2),
                open_interest=float(leg_oi),
                volume=float(leg_vol),
                iv=cfg.atm_iv_placeholder,
                config=ccfg,
            )
        rows.append(OptionChainRow(strike=strike, ce=legs[OptionType.CE], pe=legs[OptionType.PE]))

    return NormalizedChain(
        source=SYNTHETIC_SOURCE,
        selected_expiry=None,
        available_expiries=(),
        underlying_price=spot,
        future_symbol=None,
        rows=tuple(rows),
    )


# ---------------------------------------------------------------------------
# Metrics
# ---------------------------------------------------------------------------


def put_call_ratio(rows: Sequence[OptionChainRow]) -> float:
    call_oi = sum(r.call_oi for r in rows)
    put_oi = sum(r.put_oi for r in rows)
    if call_oi <= 0:
        return 0.0
    return round(put_oi / call_oi, 2)


def oi_walls(rows: Sequence[OptionChainRow]) -> tuple[float, float]:
    """``(call_resistance, put_support)``; the lowest strike wins a tie."""
    if not rows:
        return 0.0, 0.0
    call_row = max(rows, key=lambda r: r.call_oi)
    put_row = max(rows, key=lambda r: r.put_oi)
    return call_row.strike, put_row.strike


def max_pain(rows: Sequence[OptionChainRow]) -> float:
    """Strike minimising total writer payout (first minimum wins)."""
    best_strike = 0.0
    best_pain = math.inf
    for candidate in rows:
        k = candidate.strike
        pain = 0.0
        for r in rows:
            pain += max(0.0, k - r.strike) * r.call_oi + max(0.0, r.strike - k) * r.put_oi
        if pain < best_pain:
            best_strike, best_pain = k, pain
    return best_strike


def atm_iv(rows: Sequence[OptionChainRow], spot: float, placeholder: float) -> tuple[float, bool]:
    """``(iv, from_source)`` at the strike nearest ``spot``."""
    if not rows:
        return placeholder, False
    row = rows[nearest_index([r.strike for r in rows], spot)]
    ivs = [leg.iv for leg in (row.ce, row.pe) if leg is not None and leg.iv and leg.iv > 0]
    if not ivs:
        return placeholder, False
    return round(sum(ivs) / len(ivs), 2), True


def iv_rank_percentile(
    iv: float, history: Optional[Sequence[float]]
) -> tuple[Optional[float], Optional[float]]:
    """IV rank and percentile against ``history`` (None without ≥ 2 points)."""
    if not history:
        return None, None
    clean: list[float] = []
    for h in history:
        try:
            clean.append(to_number(h, "iv_history"))
        except MalformedLeg:
            logger.debug("Dropping non-numeric IV history entry %r", h)
    values = np.asarray(clean, dtype=float)
    if len(values) < 2:
        return None, None
    lo, hi = float(values.min()), float(values.max())
    rank = 50.0 if hi == lo else (iv - lo) / (hi - lo) * 100.0
    rank = max(0.0, min(100.0, rank))
    percentile = float(np.mean(values < iv) * 100.0)
    return round(rank, 2), round(percentile, 2)


def classify_iv(
    iv: float, iv_rank: Optional[float], config: Optional[AnalyticsConfig] = None
) -> IVRegime:
    cfg = config or AnalyticsConfig()
    if iv_rank is not None:
        if iv_rank >= cfg.iv_rank_high:
            return IVRegime.HIGH
        if iv_rank <= cfg.iv_rank_low:
            return IVRegime.LOW
        return IVRegime.NORMAL
    ratio = iv / cfg.iv_baseline if cfg.iv_baseline > 0 else 1.0
    if ratio >= cfg.iv_high_ratio:
        return IVRegime.HIGH
    if ratio <= cfg.iv_low_ratio:
        return IVRegime.LOW
    return IVRegime.NORMAL


def days_to_expiry(expiry: Optional[str], today: Optional[date]) -> Optional[int]:
    """Calendar days from ``today`` to an ISO ``expiry`` (never negative)."""
    if not expiry or today is None:
        return None
    try:
        return max(0, (date.fromisoformat(expiry[:10]) - today).days)
    except ValueError:
        return None


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def analyze_chain(
    chain: NormalizedChain,
    spot: float,
    provenance: Provenance,
    config: Optional[AnalyticsConfig] = None,
    iv_history: Optional[Sequence[float]] = None,
    today: Optional[date] = None,
) -> OptionChainAnalysis:
    """Compute every metric for one normalized chain."""
    cfg = config or AnalyticsConfig()
    rows = chain.rows
    iv, from_source = atm_iv(rows, spot, cfg.atm_iv_placeholder)
    placeholder = not from_source or provenance is Provenance.SYNTHETIC
    if placeholder:
        # no rank against history for a placeholder IV
        rank, percentile = None, None
        if not from_source:
            logger.info("%s chain has no ATM IV; using placeholder %.1f", chain.source, iv)
    else:
        rank, percentile = iv_rank_percentile(iv, iv_history)
    call_res, put_sup = oi_walls(rows)

    dte = days_to_expiry(chain.selected_expiry, today)
    dte = DEFAULT_GREEKS_DTE if dte is None else dte
    rows = tuple(
        OptionChainRow(
            strike=r.strike,
            ce=with_model_greeks(r.ce, spot, dte, iv) if r.ce else None,
            pe=with_model_greeks(r.pe, spot, dte, iv) if r.pe else None,
        )
        for r in rows
    )

    return OptionChainAnalysis(
        pcr=put_call_ratio(rows),
        max_pain=max_pain(rows),
        call_resistance=call_res,
        put_support=put_sup,
        atm_iv=iv,
        iv_regime=classify_iv(iv, rank, cfg),
        provenance=provenance,
        source=chain.source,
        chain=rows,
        iv_rank=rank,
        iv_percentile=percentile,
        selected_expiry=chain.selected_expiry,
        atm_iv_placeholder=placeholder,
    )


def analyze_option_chain(
    chains: Sequence[Optional[NormalizedChain]],
    spot: float,
    config: Optional[AnalyticsConfig] = None,
    iv_history: Optional[Sequence[float]] = None,
    chain_config: Optional[ChainConfig] = None,
    today: Optional[date] = None,
) -> OptionChainAnalysis:
    """Analyse the first usable chain, or a synthetic ladder when none is usable."""
    cfg = config or AnalyticsConfig()
    for chain in chains:
        if chain is not None and chain.is_usable:
            ref = spot if spot > 0 else (chain.underlying_price or 0.0)
            return analyze_chain(chain, ref, Provenance.LIVE, cfg, iv_history, today)
        if chain is not None:
            logger.info("Skipping %s chain: no usable rows", chain.source)

    logger.warning("No usable option chain; using synthetic ladder around %.2f", spot)
    synthetic = generate_synthetic_chain(spot, cfg, chain_config)
    return analyze_chain(synthetic, spot, Provenance.SYNTHETIC, cfg, iv_history, today)
