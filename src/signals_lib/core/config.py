"""
Engine configuration — every threshold, weight and window in one place.

Each component receives the slice of ``SignalConfig`` it needs, so unit
tests can move a single boundary (e.g. the RSI oversold level) without
touching module code.  Defaults are plain module-level constants, and a
handful of operational knobs can be overridden from the environment via
``SignalConfig.from_env()``.

Usage:
    from src.signals_lib.core.config import SignalConfig

    config = SignalConfig()                       # documented defaults
    config = SignalConfig.from_env()              # SIGNALS_* env overrides
    config.scoring.confidence_high                # 60.0
"""

import logging
import os
from dataclasses import dataclass, field, replace

logger = logging.getLogger("config")

# ---------------------------------------------------------------------------
# Timeframes
# ---------------------------------------------------------------------------

# Longer timeframes carry more weight.  Must sum to 1.0.
DEFAULT_TIMEFRAME_WEIGHTS: dict[str, float] = {
    "1H": 0.10,
    "3H": 0.15,
    "1D": 0.20,
    "1W": 0.25,
    "1M": 0.30,
}
DEFAULT_UNKNOWN_TIMEFRAME_WEIGHT = 0.10
DEFAULT_PRIMARY_TIMEFRAME = "1D"

# Derived timeframe → (base timeframe, fold factor)
DEFAULT_DERIVED_TIMEFRAMES: dict[str, tuple[str, int]] = {"3H": ("1H", 3)}

# ---------------------------------------------------------------------------
# Indicator lookbacks
# ---------------------------------------------------------------------------

DEFAULT_RSI_PERIOD = 14
DEFAULT_EMA_FAST = 20
DEFAULT_EMA_SLOW = 50
DEFAULT_MACD_FAST = 12
DEFAULT_MACD_SLOW = 26
DEFAULT_MACD_SIGNAL = 9
DEFAULT_BB_PERIOD = 20
DEFAULT_BB_STD = 2.0
DEFAULT_ADX_PERIOD = 14
DEFAULT_ATR_PERIOD = 14
DEFAULT_STOCH_K = 14
DEFAULT_STOCH_D = 3

# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------

# Per-indicator vote weights (must sum to 100)
DEFAULT_INDICATOR_WEIGHTS: dict[str, int] = {
    "RSI": 15,
    "MACD": 20,
    "EMA": 20,
    "Stochastic": 10,
    "Bollinger": 10,
    "VWAP": 10,
    "Pivot": 15,
}

DEFAULT_BIAS_THRESHOLD = 25.0
DEFAULT_CONFIDENCE_HIGH = 60.0
DEFAULT_CONFIDENCE_MEDIUM = 30.0

# ---------------------------------------------------------------------------
# Futures setup
# ---------------------------------------------------------------------------

DEFAULT_ATR_RISK_MULTIPLIER = 1.5
DEFAULT_TARGET1_MULTIPLIER = 1.5
DEFAULT_TARGET2_MULTIPLIER = 2.5

# ---------------------------------------------------------------------------
# Option chain
# ---------------------------------------------------------------------------

DEFAULT_MAX_STRIKES = 30
MIN_MAX_STRIKES = 5
MAX_MAX_STRIKES = 200
DEFAULT_LOT_SIZE = 1250
DEFAULT_STRIKE_STEP = 5.0
DEFAULT_ATM_IV_PLACEHOLDER = 45.0
DEFAULT_IV_BASELINE = 42.0

# ---------------------------------------------------------------------------
# Pricing heuristics (non-normative, tuned empirically upstream)
# ---------------------------------------------------------------------------

DEFAULT_FX_RATE = 84.5
DEFAULT_PREMIUM = 24.0
DEFAULT_PREMIUM_MIN = -200.0
DEFAULT_PREMIUM_MAX = 300.0


@dataclass(frozen=True)
class IndicatorConfig:
    rsi_period: int = DEFAULT_RSI_PERIOD
    ema_fast: int = DEFAULT_EMA_FAST
    ema_slow: int = DEFAULT_EMA_SLOW
    macd_fast: int = DEFAULT_MACD_FAST
    macd_slow: int = DEFAULT_MACD_SLOW
    macd_signal: int = DEFAULT_MACD_SIGNAL
    bb_period: int = DEFAULT_BB_PERIOD
    bb_std: float = DEFAULT_BB_STD
    adx_period: int = DEFAULT_ADX_PERIOD
    atr_period: int = DEFAULT_ATR_PERIOD
    stoch_k: int = DEFAULT_STOCH_K
    stoch_d: int = DEFAULT_STOCH_D


@dataclass(frozen=True)
class ScoringConfig:
    """Vote thresholds, weight tables and confidence tiers."""

    indicator_weights: dict[str, int] = field(
        default_factory=lambda: dict(DEFAULT_INDICATOR_WEIGHTS)
    )
    timeframe_weights: dict[str, float] = field(
        default_factory=lambda: dict(DEFAULT_TIMEFRAME_WEIGHTS)
    )
    unknown_timeframe_weight: float = DEFAULT_UNKNOWN_TIMEFRAME_WEIGHT

    # Score → bias.  Exactly at the threshold resolves to HOLD.
    bias_threshold: float = DEFAULT_BIAS_THRESHOLD
    confidence_high: float = DEFAULT_CONFIDENCE_HIGH
    confidence_medium: float = DEFAULT_CONFIDENCE_MEDIUM

    # RSI
    rsi_oversold: float = 30.0
    rsi_overbought: float = 70.0
    rsi_soft_buy: float = 45.0
    rsi_soft_sell: float = 55.0

    # Stochastic
    stoch_oversold: float = 20.0
    stoch_overbought: float = 80.0
    stoch_soft_buy: float = 30.0
    stoch_soft_sell: float = 70.0

    # Bollinger position (0 = lower band, 1 = upper band)
    bb_touch_low: float = 0.15
    bb_touch_high: float = 0.85
    bb_soft_low: float = 0.35
    bb_soft_high: float = 0.65

    # VWAP band
    vwap_band: float = 0.002

    # ADX below this silences the trend-following votes (MACD, EMA)
    adx_trend_gate: float = 20.0

    # Live intraday % change nudge on the overall score
    live_nudge_factor: float = 5.0
    live_nudge_cap: float = 10.0

    # Market condition
    adx_trending: float = 25.0
    atr_volatile_ratio: float = 0.3
    live_volatile_pct: float = 3.0


@dataclass(frozen=True)
class SetupConfig:
    atr_risk_multiplier: float = DEFAULT_ATR_RISK_MULTIPLIER
    target1_multiplier: float = DEFAULT_TARGET1_MULTIPLIER
    target2_multiplier: float = DEFAULT_TARGET2_MULTIPLIER
    max_rationale_votes: int = 3


@dataclass(frozen=True)
class ChainConfig:
    """Normalizer window and quote-synthesis model."""

    max_strikes: int = DEFAULT_MAX_STRIKES
    default_lot_size: int = DEFAULT_LOT_SIZE
    # Rupeezy reports MCX strike/spot in paise above this level
    paise_scale_threshold: float = 5000.0

    # Synthetic spread tiers: (min volume, min OI, spread factor)
    spread_tiers: tuple[tuple[float, float, float], ...] = (
        (1000.0, 3000.0, 0.003),
        (200.0, 1000.0, 0.006),
    )
    spread_fallback: float = 0.012

    def window(self) -> int:
        """``max_strikes`` clamped to the supported range."""
        if not self.max_strikes or self.max_strikes <= 0:
            return DEFAULT_MAX_STRIKES
        return max(MIN_MAX_STRIKES, min(int(self.max_strikes), MAX_MAX_STRIKES))


@dataclass(frozen=True)
class AnalyticsConfig:
    strike_step: float = DEFAULT_STRIKE_STEP
    synthetic_strikes_each_side: int = 10
    synthetic_base_oi: float = 1000.0
    synthetic_time_value_pct: float = 0.05
    synthetic_decay_pct: float = 0.20
    synthetic_oi_sigma_pct: float = 0.10
    synthetic_volume_ratio: float = 0.10
    atm_iv_placeholder: float = DEFAULT_ATM_IV_PLACEHOLDER

    # IV regime from rank (with history) or from ratio to baseline (without)
    iv_baseline: float = DEFAULT_IV_BASELINE
    iv_high_ratio: float = 1.2
    iv_low_ratio: float = 0.8
    iv_rank_high: float = 70.0
    iv_rank_low: float = 30.0


@dataclass(frozen=True)
class AdvisorConfig:
    strike_step: float = DEFAULT_STRIKE_STEP
    lot_size: int = DEFAULT_LOT_SIZE
    near_expiry_days: int = 7
    default_dte: int = 15
    pcr_bullish: float = 1.2
    pcr_bearish: float = 0.8
    fallback_atr_pct: float = 0.025
    spread_width_steps: int = 3


@dataclass(frozen=True)
class PricingConfig:
    """USD → local conversion and live-anchor premium bounds."""

    default_fx_rate: float = DEFAULT_FX_RATE
    default_premium: float = DEFAULT_PREMIUM
    premium_min: float = DEFAULT_PREMIUM_MIN
    premium_max: float = DEFAULT_PREMIUM_MAX


@dataclass(frozen=True)
class SignalConfig:
    """Top-level configuration handed to ``build_signal_report``."""

    underlying: str = "NATURALGAS"
    primary_timeframe: str = DEFAULT_PRIMARY_TIMEFRAME
    derived_timeframes: dict[str, tuple[str, int]] = field(
        default_factory=lambda: dict(DEFAULT_DERIVED_TIMEFRAMES)
    )
    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    setup: SetupConfig = field(default_factory=SetupConfig)
    chain: ChainConfig = field(default_factory=ChainConfig)
    analytics: AnalyticsConfig = field(default_factory=AnalyticsConfig)
    advisor: AdvisorConfig = field(default_factory=AdvisorConfig)
    pricing: PricingConfig = field(default_factory=PricingConfig)

    @property
    def timeframes(self) -> list[str]:
        """Timeframe ids in report order (shortest first)."""
        return list(self.scoring.timeframe_weights)

    @classmethod
    def from_env(cls) -> "SignalConfig":
        """Build a config from defaults plus ``SIGNALS_*`` environment overrides.

        Recognised variables:
          - SIGNALS_UNDERLYING        (str)
          - SIGNALS_MAX_STRIKES       (int)
          - SIGNALS_ATR_MULTIPLIER    (float)
          - SIGNALS_CONFIDENCE_HIGH   (float)
          - SIGNALS_LOT_SIZE          (int)
        """
        base = cls()
        underlying = os.getenv("SIGNALS_UNDERLYING", base.underlying).upper()

        chain = base.chain
        max_strikes = _env_number("SIGNALS_MAX_STRIKES", int)
        if max_strikes is not None:
            chain = replace(chain, max_strikes=max_strikes)

        setup = base.setup
        multiplier = _env_number("SIGNALS_ATR_MULTIPLIER", float)
        if multiplier is not None:
            setup = replace(setup, atr_risk_multiplier=multiplier)

        scoring = base.scoring
        high = _env_number("SIGNALS_CONFIDENCE_HIGH", float)
        if high is not None:
            scoring = replace(scoring, confidence_high=high)

        advisor = base.advisor
        lot_size = _env_number("SIGNALS_LOT_SIZE", int)
        if lot_size is not None:
            advisor = replace(advisor, lot_size=lot_size)
            chain = replace(chain, default_lot_size=lot_size)

        return replace(
            base,
            underlying=underlying,
            chain=chain,
            setup=setup,
            scoring=scoring,
            advisor=advisor,
        )


def _env_number(name: str, cast):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return None
    try:
        return cast(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r (not a valid %s)", name, raw, cast.__name__)
        return None


assert sum(DEFAULT_INDICATOR_WEIGHTS.values()) == 100, "Indicator weights must sum to 100"
assert abs(sum(DEFAULT_TIMEFRAME_WEIGHTS.values()) - 1.0) < 1e-9, (
    "Timeframe weights must sum to 1.0"
)
