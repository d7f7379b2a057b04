"""Activity logging for the mode hooks.

Standard output belongs to the hook protocol, so log records go to
`<CLAUDE_HOME>/debug/omc-modes.log`. Modules log through
`logging.getLogger(__name__)`; only the CLI calls configure_logging().
"""

import logging
from pathlib import Path
from typing import Optional

from omc_modes.compat import get_claude_home

LOGGER_NAME = "omc_modes"
LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s] %(message)s"

_configured = False


def log_file_path() -> Path:
    return get_claude_home() / "debug" / "omc-modes.log"


def configure_logging(level: str = "INFO", log_file: Optional[Path] = None) -> logging.Logger:
    """Attach a file handler to the package logger once per process.

    A log file that cannot be opened leaves the logger without handlers
    rather than failing the hook.
    """
    global _configured
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    if _configured:
        return logger

    target = log_file or log_file_path()
    try:
        target.parent.mkdir(parents=True, exist_ok=True)
        handler: logging.Handler = logging.FileHandler(target, encoding="utf-8")
    except OSError:
        handler = logging.NullHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    logger.addHandler(handler)
    # Never let records reach a root handler that writes to stdout
    logger.propagate = False
    _configured = True
    return logger
