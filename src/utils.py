"""
Utility functions for the Atlantis drift detector.
"""

import logging
import re
from datetime import timedelta
from typing import Dict, List

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS: Dict[str, float] = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def setup_logging(log_level: str = "INFO") -> logging.Logger:
    """
    Sets up logging configuration for the drift detector.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger("drifter")
    logger.setLevel(getattr(logging, log_level.upper()))

    # Prevent duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler()
        formatter = logging.Formatter(
            "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def parse_duration(value: str) -> timedelta:
    """
    Parses a Go-style duration string such as "24h", "90m" or "1h30m".

    A bare number is read as seconds.

    Args:
        value: Duration text

    Returns:
        Parsed duration

    Raises:
        ValueError: If the text is not a valid, non-negative duration
    """
    text = value.strip()
    if not text:
        raise ValueError("Empty duration")

    try:
        seconds = float(text)
    except ValueError:
        seconds = None
    if seconds is not None:
        if seconds < 0:
            raise ValueError(f"Negative duration: {value}")
        return timedelta(seconds=seconds)

    position = 0
    total = 0.0
    for match in _DURATION_PART.finditer(text):
        if match.start() != position:
            raise ValueError(f"Invalid duration: {value}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        position = match.end()
    if position != len(text):
        raise ValueError(f"Invalid duration: {value}")
    return timedelta(seconds=total)


def parse_bool(value: str) -> bool:
    """Parses a boolean environment value ("true"/"false", "1"/"0", "yes"/"no")."""
    lowered = value.strip().lower()
    if lowered in ("1", "true", "yes", "on"):
        return True
    if lowered in ("0", "false", "no", "off", ""):
        return False
    raise ValueError(f"Invalid boolean: {value}")


def split_list(value: str) -> List[str]:
    """Splits a comma separated value, dropping blank entries."""
    return [item.strip() for item in value.split(",") if item.strip()]
