"""
signals_lib.analysis — candle folding, pricing, indicators, scoring and setups.
"""

from src.signals_lib.analysis.candles import aggregate_candles
from src.signals_lib.analysis.indicators import compute_indicators
from src.signals_lib.analysis.pricing import anchor_series, implied_premium
from src.signals_lib.analysis.scorer import (
    compute_overall_signal,
    determine_market_condition,
    generate_summary,
    score_timeframe,
)
from src.signals_lib.analysis.setups import (
    build_futures_setup,
    generate_futures_setup,
    generate_futures_setups,
)

__all__ = [
    "aggregate_candles",
    "anchor_series",
    "build_futures_setup",
    "compute_indicators",
    "compute_overall_signal",
    "determine_market_condition",
    "generate_futures_setup",
    "generate_futures_setups",
    "generate_summary",
    "implied_premium",
    "score_timeframe",
]
