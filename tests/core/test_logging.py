"""
Tests for the logging setup.
"""

import io
import logging

import pytest
from rich.console import Console
from rich.logging import RichHandler

from dprsim.core.logging import ROOT_LOGGER_NAME, get_logger, setup_logging


@pytest.fixture
def buffer():
    stream = io.StringIO()
    yield stream
    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
    package_logger.setLevel(logging.NOTSET)
    package_logger.propagate = True


def test_setup_logging_writes_to_console(buffer):
    """Test that package loggers write through the rich handler."""
    setup_logging(logging.DEBUG, Console(file=buffer, width=120))
    get_logger("combat.monte_carlo").debug("Simulation progress")
    assert "Simulation progress" in buffer.getvalue()
    assert "dprsim.combat.monte_carlo" in buffer.getvalue()


def test_setup_logging_respects_level(buffer):
    """Test that records below the configured level are dropped."""
    setup_logging("warning", Console(file=buffer, width=120))
    get_logger("analysis").info("hidden")
    get_logger("analysis").warning("shown")
    assert "hidden" not in buffer.getvalue()
    assert "shown" in buffer.getvalue()


def test_setup_logging_replaces_previous_handler(buffer):
    """Test that repeated setup keeps a single rich handler."""
    console = Console(file=buffer, width=120)
    setup_logging(logging.INFO, console)
    package_logger = setup_logging(logging.DEBUG, console)
    handlers = [h for h in package_logger.handlers if isinstance(h, RichHandler)]
    assert len(handlers) == 1
    assert package_logger.level == logging.DEBUG


def test_get_logger_names():
    """Test that loggers live below the package logger."""
    assert get_logger("core").name == "dprsim.core"
    assert get_logger("dprsim.core").name == "dprsim.core"
    assert get_logger(ROOT_LOGGER_NAME).name == "dprsim"
