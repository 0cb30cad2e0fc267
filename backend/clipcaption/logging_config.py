"""Logging setup shared by the worker and local scripts."""

import logging

from clipcaption.config import get_settings

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | None = None) -> None:
    """Configure the root logger once.

    Subsequent calls only adjust the level, so importing modules that call
    this does not stack duplicate handlers.
    """
    settings = get_settings()
    root = logging.getLogger()
    root.setLevel((level or settings.log_level).upper())

    if any(getattr(h, "_clipcaption", False) for h in root.handlers):
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt=DATE_FORMAT))
    handler._clipcaption = True  # type: ignore[attr-defined]
    root.addHandler(handler)
