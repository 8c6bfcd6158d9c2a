"""
Logging setup for the Hostname Naming Service.

All modules log through children of the ``hns`` logger; this module attaches
handlers to it exactly once.
"""
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logging(level: str = "info", log_file: Optional[str] = None) -> logging.Logger:
    """Configure the ``hns`` logger with a stdout handler and an optional rotating file.

    Args:
        level: Level name (debug, info, warning, error)
        log_file: Optional path of a rotating log file

    Returns:
        The configured ``hns`` logger
    """
    logger = logging.getLogger("hns")
    if logger.handlers:
        return logger
    logger.setLevel(getattr(logging, (level or "info").upper(), logging.INFO))

    sh = logging.StreamHandler(sys.stdout)
    sh.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%H:%M:%S"))
    logger.addHandler(sh)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handler = RotatingFileHandler(log_file, maxBytes=5 * 1024 * 1024, backupCount=3)
        handler.setFormatter(logging.Formatter(fmt=LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
        logger.addHandler(handler)
    return logger
