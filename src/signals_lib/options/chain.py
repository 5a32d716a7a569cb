"""
Option-chain normalization: the steps every broker adapter shares.

Each source adapter (see ``sources.py``) only knows its own payload shape.
It turns raw strike / leg records into ``OptionLeg`` objects with the
helpers below and hands the rows to ``assemble_chain``, which applies the
uniform pipeline:

  (a) defensive numeric parsing   — ``LegParser`` turns bad fields into 0
                                    and records a ``ParseIssue`` per field
  (b) expiry selection            — nearest expiry on/after today, else the
                                    earliest one listed
  (c) sort by strike ascending    — rows with strike <= 0 are dropped
  (d) window trim                 — at most ``ChainConfig.window()`` rows,
                                    centred on the strike nearest the
                                    underlying price
  (e) bid/ask synthesis           — when the source has no depth, a
                                    tick-aware spread model fills bid/ask

Synthetic spread model:

    tick   = 0.1 (ltp >= 100) | 0.05 (ltp >= 10) | 0.01
    factor = 0.3%  if volume >= 1000 and OI >= 3000
             0.6%  if volume >= 200  and OI >= 1000
             1.2%  otherwise
    spread = max(2 × tick, ltp × factor)
    bid    = round_tick(ltp - spread / 2)
    ask    = round_tick(max(bid + tick, ltp + spread / 2))

Nothing here reads a clock: ``today`` is passed in so normalizing the same
payload twice gives identical output.
"""

import abc
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Iterable, Optional, Sequence
from zoneinfo import ZoneInfo

from src.signals_lib.core.config import ChainConfig
from src.signals_lib.core.errors import MalformedLeg
from src.signals_lib.core.models import (
    NormalizedChain,
    OptionChainRow,
    OptionLeg,
    OptionType,
    ParseIssue,
)

logger = logging.getLogger("option_chain")

# MCX trades on Indian Standard Time
IST = ZoneInfo("Asia/Kolkata")


# ---------------------------------------------------------------------------
# (a) Defensive parsing
# ---------------------------------------------------------------------------


def to_number(raw: Any, field_name: str) -> float:
    """Parse ``raw`` into a finite float.

    Raises:
        MalformedLeg: ``raw`` is missing, not numeric, or not finite.
    """
    if raw is None or isinstance(raw, bool):
        raise MalformedLeg(field_name, raw)
    if isinstance(raw, str):
        raw = raw.strip().replace(",", "")
        if not raw:
            raise MalformedLeg(field_name, raw)
    try:
        value = float(raw)
    except (TypeError, ValueError):
        raise MalformedLeg(field_name, raw) from None
    if not math.isfinite(value):
        raise MalformedLeg(field_name, raw)
    return value


@dataclass
class LegParser:
    """Collects ``ParseIssue`` records while parsing one source payload."""

    source: str
    issues: list[ParseIssue] = field(default_factory=list)

    def number(
        self,
        raw: Any,
        field_name: str,
        strike: Optional[float] = None,
        option_type: Optional[str] = None,
    ) -> float:
        """Required field: unparseable or missing → 0.0 and an issue."""
        try:
            return to_number(raw, field_name)
        except MalformedLeg as exc:
            self._record(exc, strike, option_type)
            return 0.0

    def optional(
        self,
        raw: Any,
        field_name: str,
        strike: Optional[float] = None,
        option_type: Optional[str] = None,
    ) -> Optional[float]:
        """Optional field: missing → None; present but unparseable → None and an issue."""
        if raw is None:
            return None
        try:
            return to_number(raw, field_name)
        except MalformedLeg as exc:
            self._record(exc, strike, option_type)
            return None

    def first(self, field_name: str, *candidates: Any, **where: Any) -> float:
        """First candidate that parses cleanly; otherwise 0.0 and an issue."""
        for raw in candidates:
            try:
                return to_number(raw, field_name)
            except MalformedLeg:
                continue
        return self.number(None, field_name, **where)

    def _record(
        self, exc: MalformedLeg, strike: Optional[float], option_type: Optional[str]
    ) -> None:
        self.issues.append(
            ParseIssue(
                source=self.source,
                strike=strike,
                option_type=option_type,
                field=exc.field,
                raw=repr(exc.raw),
            )
        )


# ---------------------------------------------------------------------------
# (b) Expiry selection
# ---------------------------------------------------------------------------


def today_for(now: Optional[datetime]) -> date:
    """Trading date for ``now`` (IST for aware datetimes)."""
    if now is None:
        now = datetime.now(IST)
    if now.tzinfo is not None:
        return now.astimezone(IST).date()
    return now.date()


def select_expiry(expiries: Iterable[str], today: date) -> Optional[str]:
    """Nearest ISO expiry on or after ``today``; the earliest one if all are past."""
    ordered = sorted(set(e for e in expiries if e))
    if not ordered:
        return None
    today_iso = today.isoformat()
    for exp in ordered:
        if exp >= today_iso:
            return exp
    return ordered[0]


# ---------------------------------------------------------------------------
# (d) Window trim
# ---------------------------------------------------------------------------


def nearest_index(strikes: Sequence[float], target: float) -> int:
    """Index of the strike closest to ``target`` (first one wins a tie)."""
    best = 0
    best_dist = math.inf
    for i, strike in enumerate(strikes):
        dist = abs(strike - target)
        if dist < best_dist:
            best, best_dist = i, dist
    return best


def trim_to_window(
    rows: Sequence[OptionChainRow],
    underlying_price: Optional[float],
    window: int,
) -> list[OptionChainRow]:
    """Keep at most ``window`` rows centred on the strike nearest the underlying."""
    rows = list(rows)
    if len(rows) <= window:
        return rows
    if underlying_price is not None and underlying_price > 0:
        target = underlying_price
    else:
        target = rows[len(rows) // 2].strike
    idx = nearest_index([r.strike for r in rows], target)
    start = max(0, idx - window // 2)
    end = min(len(rows), start + window)
    return rows[start:end]


# ---------------------------------------------------------------------------
# (e) Bid / ask synthesis
# ---------------------------------------------------------------------------


def tick_size_for(price: float) -> float:
    if price >= 100:
        return 0.1
    if price >= 10:
        return 0.05
    return 0.01


def round_to_tick(price: float, tick: float) -> float:
    if tick <= 0:
        return price
    return round(round(price / tick) * tick, 6)


def spread_factor(volume: float, open_interest: float, config: ChainConfig) -> float:
    for min_volume, min_oi, factor in config.spread_tiers:
        if volume >= min_volume and open_interest >= min_oi:
            return factor
    return config.spread_fallback


def synthesize_quote(
    last_price: float,
    open_interest: float,
    volume: float,
    config: Optional[ChainConfig] = None,
    tick: Optional[float] = None,
) -> tuple[float, float]:
    """Model ``(bid, ask)`` around ``last_price``; (0, 0) when there is no price."""
    cfg = config or ChainConfig()
    if last_price <= 0:
        return 0.0, 0.0
    tick = tick if tick and tick > 0 else tick_size_for(last_price)
    raw_spread = max(2 * tick, last_price * spread_factor(volume, open_interest, cfg))
    half = raw_spread / 2
    bid = round_to_tick(max(0.0, last_price - half), tick)
    ask = round_to_tick(max(bid + tick, last_price + half), tick)
    return bid, ask


def spread_stats(bid: float, ask: float) -> tuple[float, float]:
    """``(spread, spread % of mid)``; zeros when either side is missing."""
    if bid <= 0 or ask <= 0:
        return 0.0, 0.0
    spread = round(ask - bid, 6)
    mid = (ask + bid) / 2
    return spread, round(spread / mid * 100, 4) if mid > 0 else 0.0


def make_leg(
    *,
    trading_symbol: str,
    instrument_id: int,
    option_type: OptionType,
    strike: float,
    expiry: str,
    lot_size: int,
    last_price: float,
    open_interest: float,
    volume: float,
    bid: Optional[float] = None,
    ask: Optional[float] = None,
    delta: Optional[float] = None,
    theta: Optional[float] = None,
    iv: Optional[float] = None,
    tick: Optional[float] = None,
    config: Optional[ChainConfig] = None,
) -> OptionLeg:
    """Build an ``OptionLeg``, synthesizing bid / ask when depth is missing."""
    synthesized = False
    if not bid or not ask or bid <= 0 or ask <= 0:
        bid, ask = synthesize_quote(last_price, open_interest, volume, config, tick)
        synthesized = last_price > 0
    spread, spread_pct = spread_stats(bid, ask)
    return OptionLeg(
        trading_symbol=trading_symbol,
        instrument_id=int(instrument_id),
        option_type=option_type,
        strike=strike,
        expiry=expiry,
        lot_size=int(lot_size),
        last_price=last_price,
        open_interest=open_interest,
        volume=volume,
        bid=bid,
        ask=ask,
        spread=spread,
        spread_percent=spread_pct,
        delta=delta,
        theta=theta,
        iv=iv if iv is not None and iv > 0 else None,
        quote_synthesized=synthesized,
    )


# ---------------------------------------------------------------------------
# (c) + (d) Assembly
# ---------------------------------------------------------------------------


def assemble_chain(
    source: str,
    rows: Iterable[OptionChainRow],
    *,
    available_expiries: Sequence[str],
    selected_expiry: Optional[str],
    underlying_price: Optional[float],
    future_symbol: Optional[str],
    issues: Sequence[ParseIssue],
    config: ChainConfig,
) -> NormalizedChain:
    """Drop empty / non-positive strikes, sort, trim and freeze the chain."""
    kept = sorted(
        (r for r in rows if r.strike > 0 and (r.ce is not None or r.pe is not None)),
        key=lambda r: r.strike,
    )
    trimmed = trim_to_window(kept, underlying_price, config.window())
    if len(trimmed) < len(kept):
        logger.debug(
            "%s chain trimmed %d -> %d strikes around %s",
            source,
            len(kept),
            len(trimmed),
            underlying_price,
        )
    return NormalizedChain(
        source=source,
        selected_expiry=selected_expiry,
        available_expiries=tuple(sorted(set(available_expiries))),
        underlying_price=underlying_price if underlying_price and underlying_price > 0 else None,
        future_symbol=future_symbol,
        rows=tuple(trimmed),
        issues=tuple(issues),
    )


# ---------------------------------------------------------------------------
# Adapter interface
# ---------------------------------------------------------------------------


class OptionChainSource(abc.ABC):
    """One broker / data-vendor payload shape → ``NormalizedChain``.

    Subclasses set ``tag`` and implement ``normalize``.  They raise
    ``SourceUnavailable`` for payloads they cannot use at all; individual bad
    fields never raise out of ``normalize``.
    """

    tag: str = ""

    def __init__(self, config: Optional[ChainConfig] = None):
        self.config = config or ChainConfig()

    @abc.abstractmethod
    def normalize(self, raw: dict[str, Any], now: datetime) -> NormalizedChain:
        """Normalize one raw payload as of ``now``."""
