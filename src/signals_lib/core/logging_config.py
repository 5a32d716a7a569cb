"""
Structured logging for the signal engine.

Library modules log through plain ``logging.getLogger("<area>")``; the
pipeline uses ``get_logger("signal_engine")`` for key-value events.  After
``setup_logging()`` both end up on one stderr handler rendered by
structlog, so a chain-source warning and a ``report_built`` event carry the
same timestamp, level and bound context.

Logger names are grouped by area (``LOGGER_AREAS``) so a noisy part of the
pipeline can be turned down on its own, e.g. ``LOG_LEVEL_OPTIONS=WARNING``
silences per-leg parse chatter while the engine stays at INFO.

Usage::

    setup_logging(service="signal-engine", area_levels={"analysis": "WARNING"})
    with report_context(underlying="NATURALGAS", as_of="2026-03-10T10:30"):
        report = build_signal_report(inputs)
"""

from __future__ import annotations

import logging
import os
import sys
from contextlib import contextmanager
from typing import Any, Iterator, Mapping

import structlog

# Area -> stdlib logger names used inside that area
LOGGER_AREAS: dict[str, tuple[str, ...]] = {
    "core": ("config", "cache"),
    "analysis": ("candles", "pricing", "indicators", "scorer", "setups"),
    "options": ("option_chain", "option_sources", "options_analytics", "options_advisor"),
    "engine": ("signal_engine",),
}

_SHARED_PROCESSORS: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_logger_name,
    structlog.stdlib.add_log_level,
    structlog.stdlib.ExtraAdder(),
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.UnicodeDecoder(),
]


def _level(name: str | None, default: int = logging.INFO) -> int:
    if not name:
        return default
    value = logging.getLevelName(name.strip().upper())
    return value if isinstance(value, int) else default


def _renderer(log_format: str) -> structlog.types.Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty(), pad_event_to=30)


def set_area_level(area: str, level: str | int) -> None:
    """Set the level of every logger in ``area`` (see ``LOGGER_AREAS``).

    Raises:
        KeyError: unknown area.
    """
    numeric = level if isinstance(level, int) else _level(level)
    for name in LOGGER_AREAS[area]:
        logging.getLogger(name).setLevel(numeric)


def area_levels_from_env() -> dict[str, str]:
    """``LOG_LEVEL_<AREA>`` overrides present in the environment."""
    levels = {}
    for area in LOGGER_AREAS:
        value = os.getenv(f"LOG_LEVEL_{area.upper()}", "").strip()
        if value:
            levels[area] = value
    return levels


def setup_logging(
    *,
    service: str = "signal-engine",
    level: str | None = None,
    log_format: str | None = None,
    area_levels: Mapping[str, str] | None = None,
) -> None:
    """Route structlog and stdlib logging through one stderr handler.

    Parameters
    ----------
    service:
        Bound to every event as ``service``.
    level:
        Root level; falls back to ``LOG_LEVEL``, then ``"INFO"``.
    log_format:
        ``"console"`` (default) or ``"json"``; falls back to ``LOG_FORMAT``.
    area_levels:
        Per-area levels, e.g. ``{"options": "WARNING"}``.  Entries from
        ``LOG_LEVEL_<AREA>`` env vars apply first and are overridden here.
        Unknown areas are logged and skipped.
    """
    root_level = _level(level or os.getenv("LOG_LEVEL"))
    fmt = (log_format or os.getenv("LOG_FORMAT", "console")).lower()

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(fmt),
            ],
            foreign_pre_chain=_SHARED_PROCESSORS,
        )
    )
    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(root_level)

    structlog.configure(
        processors=[
            *_SHARED_PROCESSORS,
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    overrides = {**area_levels_from_env(), **(area_levels or {})}
    for area, area_level in overrides.items():
        if area not in LOGGER_AREAS:
            logging.getLogger("config").warning("Unknown logging area %r ignored", area)
            continue
        set_area_level(area, area_level)

    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(service=service)


@contextmanager
def report_context(**binds: Any) -> Iterator[None]:
    """Bind ``binds`` to every event logged inside the block, stdlib included."""
    with structlog.contextvars.bound_contextvars(**binds):
        yield


def get_logger(name: str | None = None, **initial_binds: Any) -> structlog.stdlib.BoundLogger:
    """Structured logger, optionally bound with extra context.

    >>> log = get_logger("signal_engine", underlying="NATURALGAS")
    >>> log.info("timeframe_scored", timeframe="1D", bias="BUY")
    """
    log = structlog.get_logger(name)
    if initial_binds:
        log = log.bind(**initial_binds)
    return log
