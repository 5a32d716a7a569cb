"""
Options advisor — turns the futures verdict and chain analytics into ranked
option strategies.

Strategy selection:
  - IV regime (HIGH / NORMAL / LOW, from IV rank or ratio to baseline)
  - Directional bias from the overall signal; a HOLD verdict may be tilted
    by a contrarian PCR (put-heavy ≥ 1.2 → bullish, call-heavy ≤ 0.8 → bearish)
  - DTE: under ``near_expiry_days`` only defined-risk premium selling
  - Market condition: RANGING favours range strategies (Iron Condor)

Matrix:
    IV HIGH    RANGING / HOLD  → Iron Condor (Short Strangle near expiry)
               bullish         → Bull Put Spread
               bearish         → Bear Call Spread
    IV LOW     bullish         → Bull Call Spread  (Bull Put Spread near expiry)
               bearish         → Bear Put Spread   (Bear Call Spread near expiry)
               neutral         → Long Straddle     (nothing near expiry)
               HIGH confidence → + Long Call / Long Put (not near expiry)
    IV NORMAL  bullish         → Bull Call Spread (not near expiry) + Bull Put Spread
               bearish         → Bear Put Spread (not near expiry) + Bear Call Spread
               RANGING         → Iron Condor (not near expiry)

When the matrix yields nothing a fallback is always emitted (Bull Call
Spread / Bear Put Spread / Iron Condor on ATR-based levels).  Every
recommendation's rationale quotes the numbers that justified it.

Output is ranked by confidence (HIGH first), then risk (LOW first).
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from typing import Optional

from src.signals_lib.core.config import DEFAULT_IV_BASELINE, AdvisorConfig
from src.signals_lib.core.models import (
    Confidence,
    Direction,
    FuturesSetup,
    IndicatorSet,
    IVRegime,
    MarketCondition,
    OptionChainAnalysis,
    OptionsRecommendation,
    OptionType,
    OverallSignal,
    Provenance,
)
from src.signals_lib.options.analytics import days_to_expiry

logger = logging.getLogger("options_advisor")

_CONFIDENCE_ORDER = {Confidence.HIGH: 0, Confidence.MEDIUM: 1, Confidence.LOW: 2}
_RISK_ORDER = {Confidence.LOW: 0, Confidence.MEDIUM: 1, Confidence.HIGH: 2}


def _rs(value: float) -> str:
    return f"₹{round(value):,}"


def _k(strike: float) -> str:
    return f"{strike:g}"


@dataclass(frozen=True)
class _Context:
    """Everything a strategy builder needs, resolved once."""

    price: float
    atr: float
    call_resistance: float
    put_support: float
    max_pain: float
    pcr: float
    iv_label: str
    pcr_label: str
    dte: int
    config: AdvisorConfig
    provenance: Provenance
    call_level: float = 0.0
    put_level: float = 0.0
    ranging: bool = False
    fallback: bool = False

    def round_strike(self, price: float) -> float:
        step = self.config.strike_step
        return round(price / step) * step

    @property
    def width(self) -> float:
        return self.config.strike_step * self.config.spread_width_steps

    @property
    def lot(self) -> int:
        return self.config.lot_size

    def evidence(self) -> str:
        """Common tail citing the chain values used."""
        text = (
            f"{self.pcr_label}. OI walls: resistance {_k(self.call_resistance)}, "
            f"support {_k(self.put_support)}. Max pain {_k(self.max_pain)}. DTE {self.dte}d."
        )
        if self.fallback:
            text += (
                f" ATR fallback: strikes placed at price +/- 2 ATR "
                f"({_k(self.put_level)} / {_k(self.call_level)}), not at OI walls."
            )
        if self.provenance is Provenance.SYNTHETIC:
            text += " Chain is SYNTHETIC (no live source); levels are indicative only."
        return text


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------


def iv_context_label(analysis: OptionChainAnalysis, baseline: float = DEFAULT_IV_BASELINE) -> str:
    ratio = analysis.atm_iv / baseline if baseline > 0 else 1.0
    notes = f", IV rank {analysis.iv_rank:.0f}" if analysis.iv_rank is not None else ""
    if analysis.atm_iv_placeholder:
        notes += ", placeholder - no source IV"
    if analysis.iv_regime is IVRegime.HIGH:
        return f"High IV {analysis.atm_iv:.1f}% ({ratio:.1f}x avg{notes}) - favor selling"
    if analysis.iv_regime is IVRegime.LOW:
        return f"Low IV {analysis.atm_iv:.1f}% ({ratio:.1f}x avg{notes}) - favor buying"
    return f"Normal IV {analysis.atm_iv:.1f}% ({ratio:.1f}x avg{notes})"


def pcr_tilt(pcr: float, config: AdvisorConfig) -> tuple[str, Direction]:
    """Contrarian reading of the put-call ratio."""
    if pcr >= config.pcr_bullish:
        return f"PCR {pcr:.2f} - contrarian bullish (put-heavy)", Direction.BUY
    if pcr <= config.pcr_bearish:
        return f"PCR {pcr:.2f} - contrarian bearish (call-heavy)", Direction.SELL
    return f"PCR {pcr:.2f} - neutral", Direction.HOLD


def estimate_dte(
    analysis: OptionChainAnalysis, config: AdvisorConfig, today: Optional[date] = None
) -> int:
    """Days to the chain's selected expiry, else an IV-based guess."""
    dte = days_to_expiry(analysis.selected_expiry, today)
    if dte is not None:
        return dte
    if analysis.atm_iv > 60:
        return 5
    if analysis.atm_iv > 40:
        return 10
    if analysis.atm_iv > 0:
        return 20
    return config.default_dte


# ---------------------------------------------------------------------------
# Strategy builders
# ---------------------------------------------------------------------------


def _iron_condor(c: _Context) -> OptionsRecommendation:
    if c.fallback:
        thesis = "Neutral ATR-based fallback"
    elif c.ranging:
        thesis = "Range-bound"
    else:
        thesis = "Neutral verdict"
    call_sell = c.round_strike(c.call_level if c.call_level > c.price else c.price + 1.5 * c.atr)
    call_buy = c.round_strike(call_sell + c.width)
    put_sell = c.round_strike(c.put_level if 0 < c.put_level < c.price else c.price - 1.5 * c.atr)
    put_buy = c.round_strike(put_sell - c.width)
    credit = c.atr * 0.4
    return OptionsRecommendation(
        action=Direction.SELL,
        option_type=OptionType.CE,
        strike=call_sell,
        expected_move=round(c.atr * 1.5, 2),
        rationale=(
            f"Iron Condor: Sell {_k(call_sell)}CE / Buy {_k(call_buy)}CE + "
            f"Sell {_k(put_sell)}PE / Buy {_k(put_buy)}PE. "
            f"{thesis} with {c.iv_label}. "
            + c.evidence()
        ),
        risk=Confidence.MEDIUM,
        strategy="Iron Condor",
        strikes=f"{_k(put_buy)}PE / {_k(put_sell)}PE / {_k(call_sell)}CE / {_k(call_buy)}CE",
        max_profit=f"{_rs(credit * c.lot)} / lot",
        max_loss=f"{_rs((c.width - credit) * c.lot)} / lot",
        breakevens=f"{_rs(put_sell - credit)} / {_rs(call_sell + credit)}",
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.MEDIUM,
    )


def _short_strangle(c: _Context) -> OptionsRecommendation:
    call = c.round_strike(c.call_level if c.call_level > c.price else c.price + 1.8 * c.atr)
    put = c.round_strike(c.put_level if 0 < c.put_level < c.price else c.price - 1.8 * c.atr)
    credit = c.atr * 0.55
    return OptionsRecommendation(
        action=Direction.SELL,
        option_type=OptionType.CE,
        strike=call,
        expected_move=round(c.atr * 1.8, 2),
        rationale=(
            f"Short Strangle: Sell {_k(call)}CE + Sell {_k(put)}PE. {c.iv_label}. "
            "Undefined risk, stop at 2x credit. " + c.evidence()
        ),
        risk=Confidence.HIGH,
        strategy="Short Strangle",
        strikes=f"{_k(put)}PE / {_k(call)}CE",
        max_profit=f"{_rs(credit * c.lot)} / lot (net credit)",
        max_loss="Unlimited - use stop at 2x credit",
        breakevens=f"{_rs(put - credit)} / {_rs(call + credit)}",
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.MEDIUM,
    )


def _bull_call_spread(c: _Context) -> OptionsRecommendation:
    buy = c.round_strike(c.price)
    sell = c.round_strike(c.call_level if c.call_level > c.price else c.price + 1.5 * c.atr)
    if sell <= buy:
        sell = buy + c.config.strike_step
    debit = c.atr * 0.35
    return OptionsRecommendation(
        action=Direction.BUY,
        option_type=OptionType.CE,
        strike=buy,
        expected_move=round(c.atr * 1.5, 2),
        rationale=(
            f"Bull Call Spread: Buy {_k(buy)}CE / Sell {_k(sell)}CE. "
            f"Bullish bias with defined risk. {c.iv_label}. " + c.evidence()
        ),
        risk=Confidence.MEDIUM,
        strategy="Bull Call Spread",
        strikes=f"Buy {_k(buy)}CE / Sell {_k(sell)}CE",
        max_profit=f"{_rs((sell - buy - debit) * c.lot)} / lot",
        max_loss=f"{_rs(debit * c.lot)} / lot",
        breakevens=_rs(buy + debit),
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.HIGH,
    )


def _bear_put_spread(c: _Context) -> OptionsRecommendation:
    buy = c.round_strike(c.price)
    sell = c.round_strike(c.put_level if 0 < c.put_level < c.price else c.price - 1.5 * c.atr)
    if sell >= buy:
        sell = buy - c.config.strike_step
    debit = c.atr * 0.35
    return OptionsRecommendation(
        action=Direction.BUY,
        option_type=OptionType.PE,
        strike=buy,
        expected_move=round(c.atr * 1.5, 2),
        rationale=(
            f"Bear Put Spread: Buy {_k(buy)}PE / Sell {_k(sell)}PE. "
            f"Bearish bias with defined risk. {c.iv_label}. " + c.evidence()
        ),
        risk=Confidence.MEDIUM,
        strategy="Bear Put Spread",
        strikes=f"Buy {_k(buy)}PE / Sell {_k(sell)}PE",
        max_profit=f"{_rs((buy - sell - debit) * c.lot)} / lot",
        max_loss=f"{_rs(debit * c.lot)} / lot",
        breakevens=_rs(buy - debit),
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.HIGH,
    )


def _long_straddle(c: _Context) -> OptionsRecommendation:
    strike = c.round_strike(c.price)
    debit = c.atr * 0.7
    return OptionsRecommendation(
        action=Direction.BUY,
        option_type=OptionType.CE,
        strike=strike,
        expected_move=round(c.atr, 2),
        rationale=(
            f"Long Straddle: Buy {_k(strike)}CE + Buy {_k(strike)}PE. "
            f"Cheap premium before an expected move. {c.iv_label}. " + c.evidence()
        ),
        risk=Confidence.MEDIUM,
        strategy="Long Straddle",
        strikes=f"{_k(strike)}CE + {_k(strike)}PE (ATM)",
        max_profit="Unlimited (both sides)",
        max_loss=f"{_rs(debit * c.lot)} / lot (total debit)",
        breakevens=f"{_rs(strike - debit)} / {_rs(strike + debit)}",
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.MEDIUM,
    )


def _bull_put_spread(c: _Context) -> OptionsRecommendation:
    sell = c.round_strike(c.put_level if 0 < c.put_level < c.price else c.price - c.atr)
    buy = c.round_strike(sell - c.width)
    credit = c.atr * 0.25
    return OptionsRecommendation(
        action=Direction.SELL,
        option_type=OptionType.PE,
        strike=sell,
        expected_move=round(c.atr, 2),
        rationale=(
            f"Bull Put Spread: Sell {_k(sell)}PE / Buy {_k(buy)}PE. "
            f"Bullish premium collection at OI support. {c.iv_label}. " + c.evidence()
        ),
        risk=Confidence.LOW,
        strategy="Bull Put Spread",
        strikes=f"Sell {_k(sell)}PE / Buy {_k(buy)}PE",
        max_profit=f"{_rs(credit * c.lot)} / lot",
        max_loss=f"{_rs((c.width - credit) * c.lot)} / lot",
        breakevens=_rs(sell - credit),
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.MEDIUM,
    )


def _bear_call_spread(c: _Context) -> OptionsRecommendation:
    sell = c.round_strike(c.call_level if c.call_level > c.price else c.price + c.atr)
    buy = c.round_strike(sell + c.width)
    credit = c.atr * 0.25
    return OptionsRecommendation(
        action=Direction.SELL,
        option_type=OptionType.CE,
        strike=sell,
        expected_move=round(c.atr, 2),
        rationale=(
            f"Bear Call Spread: Sell {_k(sell)}CE / Buy {_k(buy)}CE. "
            f"Bearish premium collection at OI resistance. {c.iv_label}. " + c.evidence()
        ),
        risk=Confidence.LOW,
        strategy="Bear Call Spread",
        strikes=f"Sell {_k(sell)}CE / Buy {_k(buy)}CE",
        max_profit=f"{_rs(credit * c.lot)} / lot",
        max_loss=f"{_rs((c.width - credit) * c.lot)} / lot",
        breakevens=_rs(sell + credit),
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.MEDIUM,
    )


def _long_option(c: _Context, direction: Direction, overall: OverallSignal) -> OptionsRecommendation:
    is_call = direction is Direction.BUY
    option_type = OptionType.CE if is_call else OptionType.PE
    strike = c.round_strike(c.price)
    debit = c.atr * 0.5
    target = c.price + c.atr * 1.5 if is_call else c.price - c.atr * 1.5
    name = "Long Call" if is_call else "Long Put"
    return OptionsRecommendation(
        action=Direction.BUY,
        option_type=option_type,
        strike=strike,
        expected_move=round(c.atr * 1.5, 2),
        rationale=(
            f"{name}: Buy {_k(strike)}{option_type.value}. Overall score {overall.score:g} "
            f"with HIGH confidence and cheap premium. {c.iv_label}. Target {target:.2f}. "
            + c.evidence()
        ),
        risk=Confidence.HIGH,
        strategy=name,
        strikes=f"Buy {_k(strike)}{option_type.value} (ATM)",
        max_profit="Unlimited" if is_call else f"{_rs((strike - debit) * c.lot)} / lot",
        max_loss=f"{_rs(debit * c.lot)} / lot (debit)",
        breakevens=_rs(strike + debit if is_call else strike - debit),
        iv_context=c.iv_label,
        dte=c.dte,
        confidence=Confidence.HIGH,
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def rank_recommendations(recs: list[OptionsRecommendation]) -> list[OptionsRecommendation]:
    """Sort by confidence (HIGH first) then risk (LOW first) and number them."""
    ordered = sorted(
        recs, key=lambda r: (_CONFIDENCE_ORDER[r.confidence], _RISK_ORDER[r.risk])
    )
    return [replace(r, rank=i) for i, r in enumerate(ordered, start=1)]


def generate_options_recommendations(
    current_price: float,
    indicators: IndicatorSet,
    overall: OverallSignal,
    market_condition: MarketCondition,
    analysis: OptionChainAnalysis,
    setup: Optional[FuturesSetup] = None,
    config: Optional[AdvisorConfig] = None,
    today: Optional[date] = None,
) -> list[OptionsRecommendation]:
    """Ranked strategy list for the current verdict and chain; never empty."""
    cfg = config or AdvisorConfig()

    atr = indicators.atr
    if not atr and setup is not None and setup.atr_value > 0:
        atr = setup.atr_value
    if not atr:
        atr = current_price * cfg.fallback_atr_pct

    dte = estimate_dte(analysis, cfg, today)
    pcr_label, pcr_direction = pcr_tilt(analysis.pcr, cfg)

    bias = overall.direction
    if bias is Direction.HOLD and pcr_direction is not Direction.HOLD:
        bias = pcr_direction
        logger.debug("HOLD verdict tilted to %s by PCR %.2f", bias.value, analysis.pcr)

    ctx = _Context(
        price=current_price,
        atr=atr,
        call_resistance=analysis.call_resistance,
        put_support=analysis.put_support,
        max_pain=analysis.max_pain,
        pcr=analysis.pcr,
        iv_label=iv_context_label(analysis),
        pcr_label=pcr_label,
        dte=dte,
        config=cfg,
        provenance=analysis.provenance,
        call_level=analysis.call_resistance,
        put_level=analysis.put_support,
        ranging=market_condition is MarketCondition.RANGING,
    )
    near_expiry = dte < cfg.near_expiry_days
    ranging = ctx.ranging
    regime = analysis.iv_regime
    recs: list[OptionsRecommendation] = []

    if regime is IVRegime.HIGH:
        if ranging or overall.direction is Direction.HOLD:
            recs.append(_short_strangle(ctx) if near_expiry else _iron_condor(ctx))
        if bias is Direction.BUY:
            recs.append(_bull_put_spread(ctx))
        elif bias is Direction.SELL:
            recs.append(_bear_call_spread(ctx))
    elif regime is IVRegime.LOW:
        if near_expiry:
            if bias is Direction.BUY:
                recs.append(_bull_put_spread(ctx))
            elif bias is Direction.SELL:
                recs.append(_bear_call_spread(ctx))
        else:
            if bias is Direction.BUY:
                recs.append(_bull_call_spread(ctx))
            elif bias is Direction.SELL:
                recs.append(_bear_put_spread(ctx))
            else:
                recs.append(_long_straddle(ctx))
            if overall.confidence is Confidence.HIGH and overall.direction is not Direction.HOLD:
                recs.append(_long_option(ctx, overall.direction, overall))
    else:
        if bias is Direction.BUY:
            if not near_expiry:
                recs.append(_bull_call_spread(ctx))
            recs.append(_bull_put_spread(ctx))
        elif bias is Direction.SELL:
            if not near_expiry:
                recs.append(_bear_put_spread(ctx))
            recs.append(_bear_call_spread(ctx))
        elif ranging and not near_expiry:
            recs.append(_iron_condor(ctx))

    if not recs:
        fallback = replace(
            ctx,
            call_level=ctx.round_strike(current_price + 2 * atr),
            put_level=ctx.round_strike(current_price - 2 * atr),
            fallback=True,
        )
        if bias is Direction.BUY:
            recs.append(_bull_call_spread(fallback))
        elif bias is Direction.SELL:
            recs.append(_bear_put_spread(fallback))
        else:
            recs.append(_iron_condor(fallback))
        logger.info("Strategy matrix empty; emitted fallback %s", recs[0].strategy)

    return rank_recommendations(recs)
