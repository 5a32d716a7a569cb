"""
Data model for the signal engine.

Every record produced by the engine is a frozen dataclass: once a
TimeframeSignal or OptionChainAnalysis exists it is never mutated, and
derived series (aggregated candles, anchored candles) are always new
objects.  Sequences are stored as tuples for the same reason.

The one boundary artifact handed to the presentation layer is
``SignalReport`` — a pydantic model so it can be validated and dumped to
JSON in one call (``report.model_dump(mode="json")``).
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Sequence

import pandas as pd
from pydantic import BaseModel, ConfigDict

# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class Direction(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


class Confidence(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


class OptionType(str, Enum):
    CE = "CE"
    PE = "PE"


class Provenance(str, Enum):
    """Whether option analytics came from a live source or the synthetic ladder."""

    LIVE = "LIVE"
    SYNTHETIC = "SYNTHETIC"


class MarketCondition(str, Enum):
    TRENDING = "TRENDING"
    RANGING = "RANGING"
    VOLATILE = "VOLATILE"


class IVRegime(str, Enum):
    HIGH = "HIGH"
    NORMAL = "NORMAL"
    LOW = "LOW"


class PriceSource(str, Enum):
    """Where the price series in a report came from."""

    NATIVE = "Native local-currency candles"
    ANCHORED = "Anchored to live quote"
    DERIVED = "Derived (USD x FX + premium)"


def _plain(value: Any) -> Any:
    """Recursively convert dataclasses / enums / tuples into JSON-friendly values."""
    if isinstance(value, Enum):
        return value.value
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, dict):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# ---------------------------------------------------------------------------
# Candles
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Candle:
    """One OHLCV bar.  ``time`` is the bar's open time in epoch seconds."""

    time: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


def candles_to_frame(candles: Sequence[Candle]) -> pd.DataFrame:
    """Convert a candle series to the OHLCV DataFrame shape used by the indicators.

    Columns are ``Open, High, Low, Close, Volume`` with a UTC DatetimeIndex.
    """
    columns = pd.Index(["Open", "High", "Low", "Close", "Volume"])
    if not candles:
        return pd.DataFrame(columns=columns, dtype=float)
    idx = pd.to_datetime([c.time for c in candles], unit="s", utc=True)
    return pd.DataFrame(
        {
            "Open": [float(c.open) for c in candles],
            "High": [float(c.high) for c in candles],
            "Low": [float(c.low) for c in candles],
            "Close": [float(c.close) for c in candles],
            "Volume": [float(c.volume or 0.0) for c in candles],
        },
        index=idx,
        columns=columns,
    )


# ---------------------------------------------------------------------------
# Indicators & signals
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IndicatorSet:
    """Latest value of every indicator for one timeframe (None = not enough bars)."""

    rsi: Optional[float] = None
    stoch_k: Optional[float] = None
    stoch_d: Optional[float] = None
    ema20: Optional[float] = None
    ema50: Optional[float] = None
    macd_line: Optional[float] = None
    macd_signal: Optional[float] = None
    macd_histogram: Optional[float] = None
    adx: Optional[float] = None
    plus_di: Optional[float] = None
    minus_di: Optional[float] = None
    atr: Optional[float] = None
    bollinger_upper: Optional[float] = None
    bollinger_middle: Optional[float] = None
    bollinger_lower: Optional[float] = None
    vwap: Optional[float] = None
    pivot_point: Optional[float] = None
    pivot_r1: Optional[float] = None
    pivot_r2: Optional[float] = None
    pivot_r3: Optional[float] = None
    pivot_s1: Optional[float] = None
    pivot_s2: Optional[float] = None
    pivot_s3: Optional[float] = None

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class IndicatorVote:
    name: str
    value: Optional[float]
    vote: Direction
    description: str


@dataclass(frozen=True)
class TimeframeSignal:
    timeframe: str
    bias: Direction
    bias_score: int
    indicators: IndicatorSet
    votes: tuple[IndicatorVote, ...]
    last_price: float
    reference_close: float
    price_change: float
    price_change_percent: float
    candle_count: int

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class OverallSignal:
    direction: Direction
    confidence: Confidence
    score: float
    agreement: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class FuturesSetup:
    timeframe: str
    direction: Direction
    entry: float
    stop_loss: float
    target1: float
    target2: float
    risk_reward_ratio: float
    atr_value: float
    rationale: str
    # True when ATR was unavailable and the setup carries no actionable levels
    advisory: bool = False

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class LiveQuote:
    """Most recent traded price of the active contract (the live anchor)."""

    price: float
    previous_close: Optional[float] = None
    change: Optional[float] = None
    change_percent: Optional[float] = None
    symbol: Optional[str] = None


# ---------------------------------------------------------------------------
# Option chain
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OptionLeg:
    trading_symbol: str
    instrument_id: int
    option_type: OptionType
    strike: float
    expiry: str
    lot_size: int
    last_price: float
    open_interest: float
    volume: float
    bid: float
    ask: float
    spread: float
    spread_percent: float
    delta: Optional[float] = None
    theta: Optional[float] = None
    iv: Optional[float] = None
    # True when bid/ask were modelled from last price rather than market depth
    quote_synthesized: bool = False


@dataclass(frozen=True)
class OptionChainRow:
    strike: float
    ce: Optional[OptionLeg] = None
    pe: Optional[OptionLeg] = None

    @property
    def call_oi(self) -> float:
        return self.ce.open_interest if self.ce else 0.0

    @property
    def put_oi(self) -> float:
        return self.pe.open_interest if self.pe else 0.0


@dataclass(frozen=True)
class ParseIssue:
    """A raw field that could not be parsed and was defaulted to 0."""

    source: str
    strike: Optional[float]
    option_type: Optional[str]
    field: str
    raw: str


@dataclass(frozen=True)
class NormalizedChain:
    """Canonical, source-independent option chain produced by an adapter."""

    source: str
    selected_expiry: Optional[str]
    available_expiries: tuple[str, ...]
    underlying_price: Optional[float]
    future_symbol: Optional[str]
    rows: tuple[OptionChainRow, ...]
    issues: tuple[ParseIssue, ...] = ()

    @property
    def is_usable(self) -> bool:
        return any(r.ce is not None or r.pe is not None for r in self.rows)

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class RawChainPayload:
    """A source-tagged raw payload as fetched by the surrounding system.

    ``data`` is None when the upstream fetch failed ("no data").
    """

    source: str
    data: Optional[dict[str, Any]] = None


@dataclass(frozen=True)
class OptionChainAnalysis:
    pcr: float
    max_pain: float
    call_resistance: float
    put_support: float
    atm_iv: float
    iv_regime: IVRegime
    provenance: Provenance
    source: str
    chain: tuple[OptionChainRow, ...]
    iv_rank: Optional[float] = None
    iv_percentile: Optional[float] = None
    selected_expiry: Optional[str] = None
    atm_iv_placeholder: bool = False

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


@dataclass(frozen=True)
class OptionsRecommendation:
    action: Direction
    option_type: OptionType
    strike: float
    expected_move: float
    rationale: str
    risk: Confidence
    strategy: str = ""
    strikes: str = ""
    max_profit: str = ""
    max_loss: str = ""
    breakevens: str = ""
    iv_context: str = ""
    dte: Optional[int] = None
    confidence: Confidence = Confidence.MEDIUM
    rank: int = 0

    def to_dict(self) -> dict[str, Any]:
        return _plain(self)


# ---------------------------------------------------------------------------
# Pipeline input / output
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignalInputs:
    """Everything the surrounding system fetched for one invocation.

    candles:
        Timeframe id → ascending candle series (may be empty).
    live_quote:
        Optional live anchor overriding the most recent close.
    fx_rate:
        When set, candles are USD-quoted and converted to local currency.
    option_chains:
        Source payloads in priority order; ``RawChainPayload.data=None`` or a
        bare None means that source is unavailable.
    iv_history:
        Optional trailing ATM IV observations for IV rank / percentile.
    """

    candles: dict[str, Sequence[Candle]]
    live_quote: Optional[LiveQuote] = None
    fx_rate: Optional[float] = None
    option_chains: Sequence[Optional[RawChainPayload]] = field(default_factory=tuple)
    iv_history: Optional[Sequence[float]] = None


class SignalReport(BaseModel):
    """The response record handed to the presentation / API layer."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    underlying: str
    current_price: float
    active_contract: Optional[str] = None
    previous_close: Optional[float] = None
    live_change: Optional[float] = None
    live_change_percent: Optional[float] = None
    overall: OverallSignal
    timeframes: list[TimeframeSignal]
    futures_setup: Optional[FuturesSetup] = None
    futures_setups: dict[str, FuturesSetup]
    options_recommendations: list[OptionsRecommendation]
    market_condition: MarketCondition
    option_chain: OptionChainAnalysis
    data_source: PriceSource
    summary: str
