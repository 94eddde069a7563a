"""Logging setup for taskgate.

Modules log through ``logging.getLogger(__name__)``; the CLI installs a
single rich handler on the package logger so diagnostics go to stderr and
never mix with report output on stdout.
"""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOGGER_NAME = "taskgate"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Install a RichHandler on the taskgate logger (idempotent)."""
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)

    for handler in list(logger.handlers):
        if getattr(handler, "_taskgate_handler", False):
            logger.removeHandler(handler)

    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))
    handler._taskgate_handler = True  # type: ignore[attr-defined]
    logger.addHandler(handler)
    logger.propagate = False
    return logger
