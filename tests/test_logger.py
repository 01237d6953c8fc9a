import logging
import sys
import threading

import pytest

from moisture_manager.utils import logger as logger_module
from moisture_manager.utils.logger import ComponentFilter, setup_logging


@pytest.fixture
def captured_config(monkeypatch):
    configs = []
    monkeypatch.setattr(logger_module.logging.config, "dictConfig", configs.append)
    monkeypatch.setattr(sys, "excepthook", sys.excepthook)
    monkeypatch.setattr(threading, "excepthook", threading.excepthook)
    return configs


def _record(thread_name: str) -> logging.LogRecord:
    record = logging.LogRecord("x", logging.INFO, __file__, 1, "msg", None, None)
    record.threadName = thread_name
    return record


@pytest.mark.parametrize("thread_name, component", [
    ("telemetry-gateway", "gateway"),
    ("provision_0", "flash"),
    ("MainThread", "main"),
    ("AnyIO worker thread", "other"),
])
def test_component_filter(thread_name, component):
    record = _record(thread_name)
    assert ComponentFilter().filter(record)
    assert record.component == component


def test_invalid_level_rejected():
    with pytest.raises(ValueError):
        setup_logging("LOUD")


def test_packet_debug_is_held_at_info(captured_config, tmp_path):
    setup_logging("debug", str(tmp_path / "app.log"), force=True)

    config = captured_config[0]
    assert config["root"]["level"] == logging.DEBUG
    assert config["root"]["handlers"] == ["console", "file"]
    assert config["loggers"]["moisture_manager.core.gateway"]["level"] == logging.INFO
    assert config["handlers"]["file"]["filename"] == str(tmp_path / "app.log")
    assert sys.excepthook is not sys.__excepthook__


def test_packet_debug_enabled(captured_config):
    setup_logging("DEBUG", packet_debug=True, force=True)

    config = captured_config[0]
    assert config["loggers"]["moisture_manager.core.gateway"]["level"] == logging.DEBUG
    assert "file" not in config["handlers"]


def test_quiet_level_is_not_lowered(captured_config):
    setup_logging("WARNING", force=True)
    assert captured_config[0]["loggers"]["moisture_manager.core.gateway"]["level"] == logging.WARNING


def test_configured_root_is_left_alone(captured_config):
    logging.getLogger().addHandler(logging.NullHandler())
    try:
        setup_logging("INFO")
    finally:
        logging.getLogger().handlers.pop()
    assert captured_config == []
