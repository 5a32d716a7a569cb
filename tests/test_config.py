"""
Tests for engine configuration defaults, env overrides and logging setup.
"""

import logging

import pytest
import structlog

from src.signals_lib.core.config import (
    DEFAULT_INDICATOR_WEIGHTS,
    DEFAULT_TIMEFRAME_WEIGHTS,
    ChainConfig,
    SignalConfig,
)
from src.signals_lib.core.logging_config import (
    LOGGER_AREAS,
    get_logger,
    report_context,
    set_area_level,
    setup_logging,
)

_ENV_VARS = (
    "SIGNALS_UNDERLYING",
    "SIGNALS_MAX_STRIKES",
    "SIGNALS_ATR_MULTIPLIER",
    "SIGNALS_CONFIDENCE_HIGH",
    "SIGNALS_LOT_SIZE",
)


@pytest.fixture()
def clean_env(monkeypatch):
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    def test_weight_tables(self):
        assert sum(DEFAULT_INDICATOR_WEIGHTS.values()) == 100
        assert sum(DEFAULT_TIMEFRAME_WEIGHTS.values()) == pytest.approx(1.0)

    def test_longer_timeframes_weigh_more(self):
        weights = list(DEFAULT_TIMEFRAME_WEIGHTS.values())
        assert weights == sorted(weights)

    def test_timeframe_order(self):
        assert SignalConfig().timeframes == ["1H", "3H", "1D", "1W", "1M"]

    def test_thresholds(self):
        cfg = SignalConfig()
        assert cfg.scoring.bias_threshold == 25.0
        assert cfg.scoring.confidence_high == 60.0
        assert cfg.scoring.confidence_medium == 30.0
        assert cfg.setup.atr_risk_multiplier == 1.5
        assert cfg.derived_timeframes == {"3H": ("1H", 3)}

    def test_instances_do_not_share_tables(self):
        a, b = SignalConfig(), SignalConfig()
        assert a.scoring.timeframe_weights is not b.scoring.timeframe_weights


class TestChainWindow:
    @pytest.mark.parametrize(
        "max_strikes,expected",
        [(30, 30), (2, 5), (1000, 200), (0, 30), (-4, 30), (75, 75)],
    )
    def test_clamped(self, max_strikes, expected):
        assert ChainConfig(max_strikes=max_strikes).window() == expected


class TestFromEnv:
    def test_defaults_without_env(self, clean_env):
        assert SignalConfig.from_env() == SignalConfig()

    def test_overrides(self, clean_env):
        clean_env.setenv("SIGNALS_UNDERLYING", "crudeoil")
        clean_env.setenv("SIGNALS_MAX_STRIKES", "50")
        clean_env.setenv("SIGNALS_ATR_MULTIPLIER", "2.0")
        clean_env.setenv("SIGNALS_CONFIDENCE_HIGH", "70")
        clean_env.setenv("SIGNALS_LOT_SIZE", "100")
        cfg = SignalConfig.from_env()
        assert cfg.underlying == "CRUDEOIL"
        assert cfg.chain.max_strikes == 50
        assert cfg.setup.atr_risk_multiplier == 2.0
        assert cfg.scoring.confidence_high == 70.0
        assert cfg.advisor.lot_size == 100
        assert cfg.chain.default_lot_size == 100

    def test_invalid_value_ignored(self, clean_env, caplog):
        clean_env.setenv("SIGNALS_MAX_STRIKES", "lots")
        with caplog.at_level(logging.WARNING, logger="config"):
            cfg = SignalConfig.from_env()
        assert cfg.chain.max_strikes == 30
        assert "SIGNALS_MAX_STRIKES" in caplog.text

    def test_blank_value_ignored(self, clean_env):
        clean_env.setenv("SIGNALS_LOT_SIZE", "  ")
        assert SignalConfig.from_env().advisor.lot_size == 1250


@pytest.fixture()
def restore_logging(monkeypatch):
    monkeypatch.delenv("LOG_LEVEL", raising=False)
    monkeypatch.delenv("LOG_FORMAT", raising=False)
    for area in LOGGER_AREAS:
        monkeypatch.delenv(f"LOG_LEVEL_{area.upper()}", raising=False)
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    names = [n for group in LOGGER_AREAS.values() for n in group]
    levels = {n: logging.getLogger(n).level for n in names}
    yield
    root.handlers[:] = handlers
    root.setLevel(level)
    for name, lvl in levels.items():
        logging.getLogger(name).setLevel(lvl)
    structlog.contextvars.clear_contextvars()
    structlog.reset_defaults()


class TestLogging:
    def test_setup_json(self, restore_logging):
        setup_logging(service="test", level="DEBUG", log_format="json")
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, structlog.stdlib.ProcessorFormatter)

    def test_get_logger_binds_context(self):
        log = get_logger("signal_engine", underlying="NATURALGAS")
        assert log is not None
        log.info("config_test_event", step=1)

    def test_area_levels_argument(self, restore_logging):
        setup_logging(level="INFO", area_levels={"options": "WARNING"})
        for name in LOGGER_AREAS["options"]:
            assert logging.getLogger(name).level == logging.WARNING
        assert logging.getLogger("scorer").level == logging.NOTSET

    def test_area_levels_from_env(self, restore_logging, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL_ANALYSIS", "error")
        monkeypatch.setenv("LOG_LEVEL_OPTIONS", "ERROR")
        setup_logging(area_levels={"options": "DEBUG"})
        assert logging.getLogger("indicators").level == logging.ERROR
        assert logging.getLogger("option_sources").level == logging.DEBUG

    def test_unknown_area_skipped(self, restore_logging):
        setup_logging(area_levels={"network": "DEBUG"})
        assert logging.getLogger().level == logging.INFO

    def test_set_area_level_unknown(self):
        with pytest.raises(KeyError):
            set_area_level("network", "DEBUG")

    def test_bad_level_name_defaults_to_info(self, restore_logging):
        setup_logging(level="LOUD")
        assert logging.getLogger().level == logging.INFO

    def test_report_context_binds_and_unbinds(self, restore_logging):
        setup_logging(service="test")
        with report_context(underlying="NATURALGAS", as_of="2026-03-10T10:30:00+05:30"):
            bound = structlog.contextvars.get_contextvars()
            assert bound["underlying"] == "NATURALGAS"
            assert bound["service"] == "test"
        assert "underlying" not in structlog.contextvars.get_contextvars()
