"""Logging setup for the command-line entrypoint."""

from __future__ import annotations

import logging

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(name)s: %(message)s"

# Chatty transport loggers stay at WARNING unless --verbose is given twice
_NOISY_LOGGERS = ("web3", "urllib3", "asyncio")


def configure_logging(verbose: int = 0) -> logging.Logger:
    """
    Install a single RichHandler on the root logger.

    verbose=0 logs INFO from this package, 1 adds DEBUG, 2 also lets the
    transport libraries through at DEBUG.
    """
    level = logging.DEBUG if verbose else logging.INFO
    handler = RichHandler(
        console=Console(stderr=True),
        show_path=False,
        rich_tracebacks=verbose > 0,
        markup=False,
    )
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        if isinstance(existing, RichHandler):
            root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.WARNING)

    package = logging.getLogger("private_treasury")
    package.setLevel(level)
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose > 1 else logging.WARNING)
    return package
