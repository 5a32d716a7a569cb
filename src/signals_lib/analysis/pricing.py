"""
Price anchoring for the local (MCX) contract.

Two situations are handled before any indicator runs:

  1. **Native candles** — the feed already quotes the local contract.  A
     live quote, when present, simply overrides the latest close.
  2. **USD candles** — the feed quotes the NYMEX benchmark.  Every OHLC
     value is converted with ``price * fx_rate + premium``.  The premium
     (basis between MCX and NYMEX x FX) is implied from the live quote when
     one is available and falls inside the accepted band; otherwise the
     default premium is used and the series is labelled DERIVED.

The premium band and the default premium are empirical tuning values, not
derived quantities.  See ``PricingConfig``.

The live-anchor override is the single intentional non-determinism point
of a run: the same candles with a different live quote give a different
report.
"""

import logging
import math
from dataclasses import replace
from typing import Optional, Sequence

from src.signals_lib.core.config import PricingConfig
from src.signals_lib.core.models import Candle, LiveQuote, PriceSource

logger = logging.getLogger("pricing")


def _is_positive(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value) and value > 0


def implied_premium(
    anchor_price: Optional[float],
    usd_close: Optional[float],
    fx_rate: float,
    config: PricingConfig,
) -> tuple[float, bool]:
    """Return ``(premium, accepted)`` for a local anchor vs a USD close.

    ``accepted`` is False when the anchor or USD close is missing or the
    implied premium falls outside ``(premium_min, premium_max)``; the
    default premium is returned in that case.
    """
    if not _is_positive(anchor_price) or not _is_positive(usd_close):
        return config.default_premium, False

    premium = float(anchor_price) - float(usd_close) * fx_rate
    if math.isfinite(premium) and config.premium_min < premium < config.premium_max:
        return premium, True

    logger.info(
        "Implied premium %.2f outside (%.0f, %.0f), using default %.2f",
        premium,
        config.premium_min,
        config.premium_max,
        config.default_premium,
    )
    return config.default_premium, False


def convert_to_local(
    candles: Sequence[Candle], fx_rate: float, premium: float
) -> list[Candle]:
    """Convert USD candles to local currency (volume and time unchanged)."""
    return [
        replace(
            c,
            open=c.open * fx_rate + premium,
            high=c.high * fx_rate + premium,
            low=c.low * fx_rate + premium,
            close=c.close * fx_rate + premium,
        )
        for c in candles
    ]


def inject_live_price(
    candles: Sequence[Candle], live_price: Optional[float]
) -> list[Candle]:
    """Return a copy whose last close is ``live_price`` (high / low widened to fit)."""
    result = list(candles)
    if not result or not _is_positive(live_price):
        return result

    last = result[-1]
    price = float(live_price)
    result[-1] = replace(
        last,
        close=price,
        high=max(last.high, price),
        low=min(last.low, price),
    )
    return result


def anchor_series(
    candles: dict[str, Sequence[Candle]],
    live_quote: Optional[LiveQuote],
    fx_rate: Optional[float],
    config: PricingConfig,
    reference_timeframe: Optional[str] = None,
) -> tuple[dict[str, list[Candle]], PriceSource]:
    """Convert (when USD-quoted) and live-anchor every timeframe's candles.

    ``reference_timeframe`` selects the series whose last close is compared
    with the live quote to imply the premium; it defaults to the first
    non-empty series.
    """
    anchor = live_quote.price if live_quote is not None else None
    non_empty = {tf: list(series) for tf, series in candles.items() if series}

    if fx_rate is None:
        source = PriceSource.ANCHORED if _is_positive(anchor) else PriceSource.NATIVE
        local = non_empty
    else:
        rate = fx_rate if _is_positive(fx_rate) else config.default_fx_rate
        ref_tf = reference_timeframe if reference_timeframe in non_empty else None
        if ref_tf is None and non_empty:
            ref_tf = next(iter(non_empty))
        usd_close = non_empty[ref_tf][-1].close if ref_tf else None
        premium, accepted = implied_premium(anchor, usd_close, rate, config)
        source = PriceSource.ANCHORED if accepted else PriceSource.DERIVED
        local = {
            tf: convert_to_local(series, rate, premium) for tf, series in non_empty.items()
        }

    anchored = {tf: inject_live_price(series, anchor) for tf, series in local.items()}
    result = {tf: anchored.get(tf, []) for tf in candles}
    return result, source
