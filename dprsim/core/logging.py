"""
Logging configuration module for the simulator.

Provides logging setup for the `dprsim` logger hierarchy with colored
output using rich. Applications embedding the engine call `setup_logging`
once; the library itself never configures handlers on import.
"""

import logging
from typing import Optional, Union

from rich.console import Console
from rich.logging import RichHandler

ROOT_LOGGER_NAME = "dprsim"


def setup_logging(
    level: Union[int, str] = logging.INFO, console: Optional[Console] = None
) -> logging.Logger:
    """
    Sets up the `dprsim` logger with rich colored output.

    Calling it again replaces the handler installed by the previous call,
    so the level can be changed between simulations.

    Args:
        level (Union[int, str]): The logging level, e.g. logging.DEBUG or "DEBUG".
        console (Optional[Console]): Console to write to, a terminal console
            when omitted.

    Returns:
        logging.Logger: The configured package logger.

    """
    if console is None:
        console = Console(width=120, force_terminal=True, force_jupyter=False)

    rich_handler = RichHandler(
        console=console,
        show_time=True,
        show_level=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    rich_handler.setFormatter(logging.Formatter("%(name)s - %(message)s", datefmt="[%X]"))

    package_logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(package_logger.handlers):
        if isinstance(handler, RichHandler):
            package_logger.removeHandler(handler)
    package_logger.addHandler(rich_handler)
    package_logger.setLevel(level.upper() if isinstance(level, str) else level)
    package_logger.propagate = False
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Gets a logger below the `dprsim` hierarchy.

    Args:
        name (str): The logger name, e.g. "combat.monte_carlo".

    Returns:
        logging.Logger: The logger instance.

    """
    if name == ROOT_LOGGER_NAME or name.startswith(ROOT_LOGGER_NAME + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


logger = get_logger(ROOT_LOGGER_NAME)
