"""
signals_lib.options — option-chain normalization, analytics and strategy advice.
"""

from src.signals_lib.options.advisor import generate_options_recommendations
from src.signals_lib.options.analytics import (
    analyze_chain,
    analyze_option_chain,
    generate_synthetic_chain,
)
from src.signals_lib.options.chain import OptionChainSource, synthesize_quote
from src.signals_lib.options.greeks import black_scholes_greeks
from src.signals_lib.options.sources import (
    SOURCE_ADAPTERS,
    DhanSource,
    RupeezySource,
    ZerodhaSource,
    normalize_chain,
)

__all__ = [
    "SOURCE_ADAPTERS",
    "DhanSource",
    "OptionChainSource",
    "RupeezySource",
    "ZerodhaSource",
    "analyze_chain",
    "analyze_option_chain",
    "black_scholes_greeks",
    "generate_options_recommendations",
    "generate_synthetic_chain",
    "normalize_chain",
    "synthesize_quote",
]
