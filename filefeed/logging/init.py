from __future__ import annotations

import logging
import sys

"""Logging initialization with labeled prefixes.

Every message is printed as "<LABEL> <message>" where LABEL is one of
INFO|WARN|ERROR|SUMMARY (plus DEBUG/CRITICAL). Modules log through
logging.getLogger(__name__); since they all live under the "filefeed"
package their records reach the handler configured here.
"""

__all__ = [
    "setup_logging",
    "get_logger",
    "log_summary",
    "reset_logging",
    "LOGGER_NAME",
    "SUMMARY_LEVEL",
]

LOGGER_NAME = "filefeed"

# Custom SUMMARY level (between INFO=20 and WARNING=30)
SUMMARY_LEVEL = 25

# Global logger instance
_logger: logging.Logger | None = None


class LabeledFormatter(logging.Formatter):
    """Formatter that prefixes each message with its level label."""

    LEVEL_LABELS = {
        logging.DEBUG: "DEBUG",
        logging.INFO: "INFO",
        logging.WARNING: "WARN",
        logging.ERROR: "ERROR",
        logging.CRITICAL: "CRITICAL",
        SUMMARY_LEVEL: "SUMMARY",
    }

    def format(self, record: logging.LogRecord) -> str:
        level_label = self.LEVEL_LABELS.get(record.levelno, record.levelname)
        return f"{level_label} {record.getMessage()}"


def _apply_level(logger: logging.Logger, level: int) -> None:
    logger.setLevel(level)
    for handler in logger.handlers:
        handler.setLevel(level)


def setup_logging(level: int | None = None) -> logging.Logger:
    """Configure the "filefeed" logger.

    The first call installs a single stdout handler (INFO unless ``level`` is
    given). Later calls keep that handler and only apply ``level`` when one
    is passed, so the CLI can switch to DEBUG after parsing its arguments.

    Returns:
        Configured logger instance for the application
    """
    global _logger

    if _logger is not None:
        if level is not None:
            _apply_level(_logger, level)
        return _logger

    logging.addLevelName(SUMMARY_LEVEL, "SUMMARY")
    logger = logging.getLogger(LOGGER_NAME)

    # 再設定時にハンドラが重複しないよう入れ替える
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(LabeledFormatter())
    logger.addHandler(handler)
    logger.propagate = False

    _apply_level(logger, logging.INFO if level is None else level)
    _logger = logger
    return logger


def get_logger() -> logging.Logger:
    """Get the configured application logger, configuring it on first use."""
    if _logger is None:
        return setup_logging()
    return _logger


def log_summary(message: str) -> None:
    """Log a message at SUMMARY level."""
    logger = get_logger()
    logger.log(SUMMARY_LEVEL, message)


def reset_logging() -> None:
    """Reset the global logger state. Mainly for testing purposes."""
    global _logger
    _logger = None
