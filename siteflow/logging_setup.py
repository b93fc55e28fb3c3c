"""Logging configuration for the siteflow CLI."""

from __future__ import annotations

import logging
import sys

_NOISY_LOGGERS = ("websockets", "watchdog", "PIL", "asyncio")


class _ConsoleFilter(logging.Filter):
    """Keep siteflow logs; let third-party loggers through only at WARNING+."""

    def filter(self, record: logging.LogRecord) -> bool:
        if record.name == "siteflow" or record.name.startswith("siteflow."):
            return True
        return record.levelno >= logging.WARNING


def setup_logging(verbose: bool = False) -> None:
    """Configure a single stderr handler on the root logger.

    Call this once, before the first task runs. Calling it again replaces
    the previous handlers instead of duplicating output.
    """
    root = logging.getLogger()
    root.setLevel(logging.DEBUG if verbose else logging.INFO)

    for h in list(root.handlers):
        root.removeHandler(h)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    handler.addFilter(_ConsoleFilter())
    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
    logging.captureWarnings(True)
