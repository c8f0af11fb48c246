"""
Logging configuration for netfetch.

Provides a centralized logger instance with configurable log levels.
Structured fields passed through ``extra=`` are appended to each line.
"""

import logging
import os
import sys

# Attributes every LogRecord carries; anything else came in through ``extra``
_RESERVED_ATTRS = frozenset(
    vars(logging.LogRecord("", logging.INFO, "", 0, "", (), None)).keys()
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formatter that renders ``extra`` fields as ``key=value`` pairs."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {
            key: value
            for key, value in vars(record).items()
            if key not in _RESERVED_ATTRS and not key.startswith("_")
        }
        if fields:
            rendered = " ".join(f"{key}={value!r}" for key, value in sorted(fields.items()))
            line = f"{line} [{rendered}]"
        return line


def setup_logger(name: str = "netfetch") -> logging.Logger:
    """
    Set up and configure a logger instance.

    Args:
        name: The name of the logger (default: "netfetch")

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Only configure if not already configured
    if not logger.handlers:
        log_level = os.getenv("LOG_LEVEL", "INFO").upper()

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if log_level not in valid_levels:
            log_level = "INFO"

        logger.setLevel(getattr(logging, log_level))

        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setLevel(logging.DEBUG)

        formatter = StructuredFormatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S"
        )
        console_handler.setFormatter(formatter)

        logger.addHandler(console_handler)

    return logger


# Create and export the default logger instance
logger = setup_logger()
