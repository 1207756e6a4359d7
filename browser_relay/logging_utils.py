"""Logging setup for the relay process."""

import logging
import sys

LOG_FORMAT = "%(asctime)s.%(msecs)03d [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%H:%M:%S"

# Chatty third-party loggers kept at WARNING unless the relay itself runs at DEBUG.
QUIET_LOGGERS = ["aiohttp.access", "aiohttp.server", "aiohttp.web", "mcp.server.lowlevel.server"]


def configure_logging(level: str = "INFO"):
    """
    Send log records to stderr with timestamps.

    stdout stays free for anything a launcher may want to pipe.
    """
    numeric = getattr(logging, level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))

    root = logging.getLogger()
    for existing in list(root.handlers):
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(numeric)

    quiet_level = logging.DEBUG if numeric <= logging.DEBUG else logging.WARNING
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet_level)
