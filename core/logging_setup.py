"""Logging configuration for the command-line and desktop entry points."""

import logging
import sys

LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"
HANDLER_NAME = "drdetect"


def configure_logging(verbose: bool = False) -> logging.Logger:
    """Install a single stderr handler on the root logger.

    Safe to call more than once; the handler is only added the first time.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    if not any(h.get_name() == HANDLER_NAME for h in root.handlers):
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.set_name(HANDLER_NAME)
        root.addHandler(handler)

    return root
