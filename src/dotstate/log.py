"""Logging setup for the dotstate command line.

Library modules only create loggers with ``logging.getLogger(__name__)``; the
CLI calls ``setup_logging`` once so records reach stderr through rich.
"""

from __future__ import annotations

import logging
import os

from rich.console import Console
from rich.logging import RichHandler

LOG_LEVEL_ENV = "DOTSTATE_LOG_LEVEL"


def setup_logging(verbose: bool = False, console: Console | None = None) -> None:
    """Configure the ``dotstate`` logger.

    Level is DEBUG with ``verbose``, otherwise ``$DOTSTATE_LOG_LEVEL`` or WARNING.
    """

    if verbose:
        level = logging.DEBUG
    else:
        level = getattr(logging, os.getenv(LOG_LEVEL_ENV, "WARNING").upper(), logging.WARNING)

    handler = RichHandler(
        console=console or Console(stderr=True),
        show_path=verbose,
        rich_tracebacks=verbose,
        markup=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s", datefmt="[%X]"))

    logger = logging.getLogger("dotstate")
    for existing in list(logger.handlers):
        logger.removeHandler(existing)
    logger.addHandler(handler)
    logger.setLevel(level)
