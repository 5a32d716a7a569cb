"""
Candle series helpers: fold a base interval into a coarser timeframe.

The price feed only serves hourly bars, so the 3-hour timeframe is built by
folding every three consecutive 1H candles into one.  Grouping starts at the
first candle; a trailing group with fewer than N candles is still emitted so
the latest (still forming) period is always represented.

Usage:
    from src.signals_lib.analysis.candles import aggregate_candles

    candles_3h = aggregate_candles(candles_1h, 3)
"""

import logging
from typing import Sequence

import numpy as np
import pandas as pd

from src.signals_lib.core.errors import InsufficientData
from src.signals_lib.core.models import Candle

logger = logging.getLogger("candles")


def aggregate_candles(candles: Sequence[Candle], factor: int) -> list[Candle]:
    """Fold every ``factor`` consecutive candles into one.

    open = first open, close = last close, high / low = group extremes,
    volume = group sum, time = first candle's time.

    Raises:
        InsufficientData: the input series is empty.
        ValueError: ``factor`` is smaller than 1.
    """
    if factor < 1:
        raise ValueError(f"fold factor must be >= 1, got {factor}")
    if not candles:
        raise InsufficientData("cannot aggregate an empty candle series")

    if factor == 1:
        return list(candles)

    df = pd.DataFrame(
        {
            "time": [int(c.time) for c in candles],
            "Open": [float(c.open) for c in candles],
            "High": [float(c.high) for c in candles],
            "Low": [float(c.low) for c in candles],
            "Close": [float(c.close) for c in candles],
            "Volume": [float(c.volume or 0.0) for c in candles],
        }
    )
    groups = np.arange(len(df)) // factor
    folded = df.groupby(groups, sort=True).agg(
        {
            "time": "first",
            "Open": "first",
            "High": "max",
            "Low": "min",
            "Close": "last",
            "Volume": "sum",
        }
    )

    result = [
        Candle(
            time=int(row.time),
            open=float(row.Open),
            high=float(row.High),
            low=float(row.Low),
            close=float(row.Close),
            volume=float(row.Volume),
        )
        for row in folded.itertuples(index=False)
    ]
    if len(candles) % factor:
        logger.debug(
            "Partial trailing group: %d of %d candles", len(candles) % factor, factor
        )
    return result
