import logging
import sys
from typing import Optional

from sortify.config import get_settings

# Chatty per-request loggers kept at WARNING unless the app runs at DEBUG.
_QUIET_LOGGERS = ("httpx", "httpcore", "aiosqlite")


def configure_logging(level: Optional[str] = None) -> None:
    """
    Configure root logging for the application.

    - Level comes from ``settings.log_level`` unless *level* is given
    - Logs go to stdout, with time, level, and logger name
    - HTTP client and sqlite driver noise is held back
    """
    resolved = (level or get_settings().log_level).upper()
    root = logging.getLogger()

    # Avoid adding handlers multiple times
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s - %(message)s",
                datefmt="%H:%M:%S",
            )
        )
        root.addHandler(handler)
    root.setLevel(resolved)

    quiet = logging.DEBUG if resolved == "DEBUG" else logging.WARNING
    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(quiet)
