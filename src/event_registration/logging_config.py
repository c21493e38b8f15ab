"""Logging setup for the event registration service"""

import logging
import sys
from typing import Optional

from event_registration.config import config

# SDKs that log every outbound request at INFO
NOISY_LOGGERS = ("stripe", "httpx", "httpcore", "urllib3")


class BelowWarningFilter(logging.Filter):
    """Let DEBUG and INFO records through, nothing at WARNING or above"""

    def filter(self, record):
        return record.levelno < logging.WARNING


def _formatter() -> logging.Formatter:
    # The hosting platform stamps production log lines itself
    if config.get("environment") == "production":
        return logging.Formatter("%(levelname)s:%(name)s:%(message)s")
    return logging.Formatter("%(asctime)s %(levelname)s:%(name)s:%(message)s")


def setup_logging(level: Optional[str] = None) -> None:
    """
    Route DEBUG/INFO records to stdout and WARNING and above to stderr.

    Args:
        level: Root level name; defaults to the configured ``log_level``
    """
    level_name = (level or config.get("log_level") or "INFO").upper()
    formatter = _formatter()

    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(logging.DEBUG)
    stdout_handler.addFilter(BelowWarningFilter())
    stdout_handler.setFormatter(formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level_name, logging.INFO))
    root_logger.handlers.clear()
    root_logger.addHandler(stdout_handler)
    root_logger.addHandler(stderr_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
