"""
Black-Scholes greeks for European options on the futures underlying.

Used to fill delta / theta on legs whose source does not publish greeks
(Zerodha quotes, the synthetic ladder).

Conventions:
  - ``years``  time to expiry in years (calendar days / 365)
  - ``sigma``  annualised volatility as a decimal (0.45 = 45%)
  - ``theta``  per calendar day
  - ``vega``   per 1 vol point
"""

import math
from dataclasses import dataclass, replace
from typing import Optional

from src.signals_lib.core.models import OptionLeg, OptionType

DEFAULT_RISK_FREE_RATE = 0.07
DEFAULT_SIGMA = 0.60


@dataclass(frozen=True)
class Greeks:
    delta: float
    gamma: float
    theta: float
    vega: float
    rho: float


def _norm_cdf(x: float) -> float:
    return 0.5 * (1.0 + math.erf(x / math.sqrt(2.0)))


def _norm_pdf(x: float) -> float:
    return math.exp(-x * x / 2.0) / math.sqrt(2.0 * math.pi)


def black_scholes_greeks(
    option_type: OptionType,
    spot: float,
    strike: float,
    years: float,
    rate: float = DEFAULT_RISK_FREE_RATE,
    sigma: float = DEFAULT_SIGMA,
) -> Greeks:
    """Greeks for one option.  At or past expiry only delta survives (ITM = ±1)."""
    is_call = option_type is OptionType.CE
    if years <= 0 or sigma <= 0 or spot <= 0 or strike <= 0:
        itm = spot > strike if is_call else spot < strike
        delta = (1.0 if is_call else -1.0) if itm else 0.0
        return Greeks(delta=delta, gamma=0.0, theta=0.0, vega=0.0, rho=0.0)

    sqrt_t = math.sqrt(years)
    d1 = (math.log(spot / strike) + (rate + sigma * sigma / 2) * years) / (sigma * sqrt_t)
    d2 = d1 - sigma * sqrt_t
    pdf_d1 = _norm_pdf(d1)
    discount = math.exp(-rate * years)

    decay = -(spot * pdf_d1 * sigma) / (2 * sqrt_t)
    if is_call:
        delta = _norm_cdf(d1)
        theta_year = decay - rate * strike * discount * _norm_cdf(d2)
        rho = strike * years * discount * _norm_cdf(d2)
    else:
        delta = _norm_cdf(d1) - 1.0
        theta_year = decay + rate * strike * discount * _norm_cdf(-d2)
        rho = -strike * years * discount * _norm_cdf(-d2)

    return Greeks(
        delta=delta,
        gamma=pdf_d1 / (spot * sigma * sqrt_t),
        theta=theta_year / 365.0,
        vega=spot * sqrt_t * pdf_d1 / 100.0,
        rho=rho,
    )


def with_model_greeks(
    leg: OptionLeg,
    spot: float,
    days_to_expiry: float,
    fallback_iv: Optional[float] = None,
    rate: float = DEFAULT_RISK_FREE_RATE,
) -> OptionLeg:
    """Return ``leg`` with delta / theta filled from Black-Scholes where missing.

    The leg's own IV (percent) is used, else ``fallback_iv``; legs that
    already carry both greeks are returned unchanged.
    """
    if leg.delta is not None and leg.theta is not None:
        return leg
    iv_pct = leg.iv if leg.iv else fallback_iv
    sigma = iv_pct / 100.0 if iv_pct else DEFAULT_SIGMA
    g = black_scholes_greeks(
        leg.option_type, spot, leg.strike, max(days_to_expiry, 0.0) / 365.0, rate, sigma
    )
    return replace(
        leg,
        delta=leg.delta if leg.delta is not None else round(g.delta, 4),
        theta=leg.theta if leg.theta is not None else round(g.theta, 4),
    )
