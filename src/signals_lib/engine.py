"""
Signal pipeline — one pure batch invocation from fetched inputs to report.

    candles ──► anchor / convert ──► derive 3H from 1H ──► score each timeframe
                                                          │
                                  overall verdict ◄───────┤
                                  market condition ◄──────┤
                                  futures setups ◄────────┘
    chain payloads ──► normalize (per source) ──► analytics (or synthetic)
                                                          │
                         options advisor ◄────────────────┘
                                   │
                                   ▼
                             SignalReport

The pipeline performs no network I/O; the surrounding system fetches the
candles, live quote, FX rate and option-chain payloads (concurrently, with
per-source failures passed in as ``None``) and hands them over as
``SignalInputs``.  Only a total absence of candles is fatal.

Usage:
    from src.signals_lib.engine import build_signal_report

    report = build_signal_report(inputs)
    payload = report.model_dump(mode="json")
"""

import math
from datetime import datetime
from typing import Callable, Mapping, Optional

from src.signals_lib.analysis.candles import aggregate_candles
from src.signals_lib.analysis.pricing import anchor_series
from src.signals_lib.analysis.scorer import (
    compute_overall_signal,
    determine_market_condition,
    generate_summary,
    score_timeframe,
)
from src.signals_lib.analysis.setups import generate_futures_setups
from src.signals_lib.core.config import SignalConfig
from src.signals_lib.core.errors import InsufficientData
from src.signals_lib.core.logging_config import get_logger, report_context
from src.signals_lib.core.models import Candle, LiveQuote, SignalInputs, SignalReport
from src.signals_lib.options.advisor import generate_options_recommendations
from src.signals_lib.options.analytics import analyze_option_chain
from src.signals_lib.options.chain import IST, OptionChainSource, today_for
from src.signals_lib.options.sources import default_sources, normalize_chain

logger = get_logger("signal_engine")


def _live_change_percent(quote: Optional[LiveQuote]) -> Optional[float]:
    if quote is None:
        return None
    if quote.change_percent is not None and math.isfinite(quote.change_percent):
        return quote.change_percent
    if quote.previous_close and quote.previous_close > 0 and quote.price > 0:
        return (quote.price - quote.previous_close) / quote.previous_close * 100
    return None


def _ordered_timeframes(
    candles: Mapping[str, list[Candle]], config: SignalConfig
) -> list[str]:
    """Configured timeframes first (shortest → longest), then any extras."""
    known = [tf for tf in config.timeframes if candles.get(tf)]
    extras = [tf for tf in candles if tf not in config.timeframes and candles[tf]]
    return known + extras


def prepare_candles(inputs: SignalInputs, config: SignalConfig):
    """Anchor every series and build derived timeframes.

    Returns ``(candles_by_timeframe, price_source)``; empty series are kept
    as empty lists.
    """
    candles, source = anchor_series(
        inputs.candles,
        inputs.live_quote,
        inputs.fx_rate,
        config.pricing,
        reference_timeframe=config.primary_timeframe,
    )
    for tf, (base, factor) in config.derived_timeframes.items():
        if candles.get(tf) or not candles.get(base):
            continue
        candles[tf] = aggregate_candles(candles[base], factor)
    return candles, source


def build_signal_report(
    inputs: SignalInputs,
    config: Optional[SignalConfig] = None,
    now_fn: Optional[Callable[[], datetime]] = None,
    sources: Optional[Mapping[str, OptionChainSource]] = None,
) -> SignalReport:
    """Run the full pipeline.

    Raises:
        InsufficientData: every timeframe's candle series is empty.
    """
    cfg = config or SignalConfig()
    now = (now_fn or (lambda: datetime.now(tz=IST)))()
    with report_context(underlying=cfg.underlying, as_of=now.isoformat()):
        return _run_pipeline(inputs, cfg, now, sources)


def _run_pipeline(
    inputs: SignalInputs,
    cfg: SignalConfig,
    now: datetime,
    sources: Optional[Mapping[str, OptionChainSource]],
) -> SignalReport:
    candles, price_source = prepare_candles(inputs, cfg)
    timeframes = _ordered_timeframes(candles, cfg)
    if not timeframes:
        logger.error("no_candles", supplied=sorted(inputs.candles))
        raise InsufficientData("no candle data for any timeframe")

    dropped = sorted(tf for tf in inputs.candles if tf not in timeframes)
    if dropped:
        logger.info("timeframes_dropped", timeframes=dropped)

    signals = []
    for tf in timeframes:
        signal = score_timeframe(tf, candles[tf], cfg.scoring, cfg.indicators)
        logger.debug("timeframe_scored", timeframe=tf, bias=signal.bias.value, score=signal.bias_score)
        signals.append(signal)

    primary = next((s for s in signals if s.timeframe == cfg.primary_timeframe), signals[0])
    quote = inputs.live_quote
    current_price = quote.price if quote is not None and quote.price > 0 else primary.last_price
    live_pct = _live_change_percent(quote)

    overall = compute_overall_signal(signals, cfg.scoring, live_pct)
    condition = determine_market_condition(primary, cfg.scoring, live_pct)
    setups = generate_futures_setups(signals, overall.direction, cfg.setup)

    adapters = sources if sources is not None else default_sources(cfg.chain)
    chains = [normalize_chain(p, cfg.chain, now, adapters) for p in inputs.option_chains]
    today = today_for(now)
    analysis = analyze_option_chain(
        chains,
        current_price,
        cfg.analytics,
        inputs.iv_history,
        cfg.chain,
        today,
    )
    recommendations = generate_options_recommendations(
        current_price,
        primary.indicators,
        overall,
        condition,
        analysis,
        setups.get(primary.timeframe),
        cfg.advisor,
        today,
    )

    active_contract = quote.symbol if quote is not None and quote.symbol else None
    if active_contract is None:
        active_contract = next((c.future_symbol for c in chains if c and c.future_symbol), None)

    report = SignalReport(
        timestamp=now,
        underlying=cfg.underlying,
        current_price=current_price,
        active_contract=active_contract,
        previous_close=quote.previous_close if quote is not None else None,
        live_change=quote.change if quote is not None else None,
        live_change_percent=live_pct,
        overall=overall,
        timeframes=signals,
        futures_setup=setups.get(primary.timeframe),
        futures_setups=setups,
        options_recommendations=recommendations,
        market_condition=condition,
        option_chain=analysis,
        data_source=price_source,
        summary=generate_summary(overall, condition, signals),
    )

    logger.info(
        "report_built",
        timeframes=len(signals),
        direction=overall.direction.value,
        confidence=overall.confidence.value,
        score=overall.score,
        provenance=analysis.provenance.value,
        chain_source=analysis.source,
        data_source=price_source.name,
    )
    return report
