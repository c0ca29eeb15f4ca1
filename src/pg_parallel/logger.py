"""Logging setup: stdlib logging rendered by rich on stderr."""

import logging

from rich.console import Console
from rich.logging import RichHandler

# Diagnostics go to stderr; stdout stays free for command output
err_console = Console(stderr=True)


def configure_logging(verbose: bool = False) -> None:
    """Route the ``pg_parallel`` loggers through a RichHandler.

    Args:
        verbose: Enable DEBUG output (tool command lines, script paths).
    """
    handler = RichHandler(console=err_console, show_path=False, log_time_format="%H:%M:%S")
    handler.setFormatter(logging.Formatter("%(message)s"))

    logger = logging.getLogger("pg_parallel")
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False
