import logging
import sys

from recordset.core.config import LOG_LEVEL


def setup_logging(level=None):
    """Configure root logger with a simple, readable format."""
    if level is None:
        level = logging.getLevelName(LOG_LEVEL.upper())
        if not isinstance(level, int):
            level = logging.INFO
    fmt = "%(asctime)s %(levelname)s [%(name)s] %(message)s"
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(logging.Formatter(fmt))

    root = logging.getLogger()
    root.setLevel(level)

    # Avoid adding duplicate handlers during reloads
    if not any(isinstance(h, logging.StreamHandler) for h in root.handlers):
        root.addHandler(handler)


def get_logger(name: str = None):
    return logging.getLogger(name or "recordset")
