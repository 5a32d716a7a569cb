"""
Error taxonomy for the signal engine.

Only ``InsufficientData`` ever escapes a full pipeline run.  The others are
raised close to where the problem is detected and absorbed one level up:

  - ``DegenerateRisk``    → the setup generator returns an advisory HOLD setup
  - ``SourceUnavailable`` → the chain normalizer returns None, analytics falls
                            back to another source or the synthetic ladder
  - ``MalformedLeg``      → the offending field defaults to 0 and a
                            ``ParseIssue`` is recorded on the chain
"""


class SignalEngineError(Exception):
    """Base class for every error raised by the signal engine."""


class InsufficientData(SignalEngineError):
    """No usable candles were supplied (for one series, or for every timeframe)."""


class DegenerateRisk(SignalEngineError):
    """ATR is missing or zero, so stop distance and risk/reward are undefined."""

    def __init__(self, timeframe: str, atr: float | None):
        self.timeframe = timeframe
        self.atr = atr
        super().__init__(f"ATR unavailable for {timeframe} setup (atr={atr!r})")


class SourceUnavailable(SignalEngineError):
    """An option-chain or price source returned no data or could not be parsed."""

    def __init__(self, source: str, reason: str):
        self.source = source
        self.reason = reason
        super().__init__(f"{source}: {reason}")


class MalformedLeg(SignalEngineError):
    """A single option-leg field could not be parsed into a finite number."""

    def __init__(self, field: str, raw: object):
        self.field = field
        self.raw = raw
        super().__init__(f"unparseable {field}: {raw!r}")
