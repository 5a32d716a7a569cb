"""
signals_lib.core — Core infrastructure modules.

Re-exports the public API from each sub-module so callers can do:

    from src.signals_lib.core import SignalConfig, Candle, setup_logging
"""

from src.signals_lib.core.cache import TTL_INSTRUMENTS, CacheEntry, TTLCache
from src.signals_lib.core.config import (
    AdvisorConfig,
    AnalyticsConfig,
    ChainConfig,
    IndicatorConfig,
    PricingConfig,
    ScoringConfig,
    SetupConfig,
    SignalConfig,
)
from src.signals_lib.core.errors import (
    DegenerateRisk,
    InsufficientData,
    MalformedLeg,
    SignalEngineError,
    SourceUnavailable,
)
from src.signals_lib.core.logging_config import get_logger, setup_logging
from src.signals_lib.core.models import (
    Candle,
    Confidence,
    Direction,
    FuturesSetup,
    IndicatorSet,
    IndicatorVote,
    IVRegime,
    LiveQuote,
    MarketCondition,
    NormalizedChain,
    OptionChainAnalysis,
    OptionChainRow,
    OptionLeg,
    OptionsRecommendation,
    OptionType,
    OverallSignal,
    ParseIssue,
    PriceSource,
    Provenance,
    RawChainPayload,
    SignalInputs,
    SignalReport,
    TimeframeSignal,
    candles_to_frame,
)

__all__ = [
    # cache
    "TTL_INSTRUMENTS",
    "CacheEntry",
    "TTLCache",
    # config
    "AdvisorConfig",
    "AnalyticsConfig",
    "ChainConfig",
    "IndicatorConfig",
    "PricingConfig",
    "ScoringConfig",
    "SetupConfig",
    "SignalConfig",
    # errors
    "DegenerateRisk",
    "InsufficientData",
    "MalformedLeg",
    "SignalEngineError",
    "SourceUnavailable",
    # logging
    "get_logger",
    "setup_logging",
    # models
    "Candle",
    "Confidence",
    "Direction",
    "FuturesSetup",
    "IndicatorSet",
    "IndicatorVote",
    "IVRegime",
    "LiveQuote",
    "MarketCondition",
    "NormalizedChain",
    "OptionChainAnalysis",
    "OptionChainRow",
    "OptionLeg",
    "OptionsRecommendation",
    "OptionType",
    "OverallSignal",
    "ParseIssue",
    "PriceSource",
    "Provenance",
    "RawChainPayload",
    "SignalInputs",
    "SignalReport",
    "TimeframeSignal",
    "candles_to_frame",
]
