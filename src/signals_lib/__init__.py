"""
signals_lib — multi-timeframe technical signals and option-chain analytics
for a single commodity underlying.

Subpackages:
    core      — config, models, errors, logging, cache
    analysis  — candles, pricing, indicators, scoring, futures setups
    options   — chain normalization, analytics, greeks, advisor

    from src.signals_lib.engine import build_signal_report
"""
