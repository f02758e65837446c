"""Logging and utility helpers for lattice-onboard."""

import logging
import os
import sys
from typing import Dict, Iterable, List


LOGGER_NAME = "lattice-onboard"


def setup_logging(debug: bool = False) -> logging.Logger:
    """Configure logging for the onboarding tool.

    Args:
        debug: Enable debug-level logging

    Returns:
        Configured logger instance
    """
    level = logging.DEBUG if debug else logging.INFO

    formatter = logging.Formatter(
        fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    # Calling twice (e.g. from tests) must not duplicate output
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(formatter)
        logger.addHandler(handler)

    return logger


def is_root() -> bool:
    """True when running with an effective UID of 0 (always False on Windows)."""
    geteuid = getattr(os, "geteuid", None)
    return geteuid is not None and geteuid() == 0


def parse_env_lines(lines: Iterable[str]) -> Dict[str, str]:
    """Parse KEY=VALUE lines.

    Blank lines and lines starting with '#' are skipped. The value is
    everything after the first '=' and is kept verbatim.
    """
    values: Dict[str, str] = {}
    for raw in lines:
        line = raw.rstrip("\r\n")
        if not line.strip() or line.lstrip().startswith("#"):
            continue
        if "=" not in line:
            continue
        key, value = line.split("=", 1)
        values[key.strip()] = value
    return values


def format_env_lines(values: Dict[str, str]) -> str:
    """Render a mapping as newline-terminated KEY=VALUE lines (insertion order)."""
    return "".join(f"{key}={value}\n" for key, value in values.items())


def format_bool(value: bool) -> str:
    """Render a bool the way the agent reads it back ("true"/"false")."""
    return "true" if value else "false"


def parse_bool(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes")


def format_memory_gi(bytes_val: int) -> str:
    """Format bytes as a Gi string.

    Args:
        bytes_val: Memory in bytes

    Returns:
        Memory string like "16Gi"
    """
    gi = bytes_val / (1024 * 1024 * 1024)
    return f"{gi:.0f}Gi"


def split_ids(values: Iterable[str]) -> List[str]:
    """Flatten comma separated identifiers ("0,1", "2") into ["0", "1", "2"]."""
    ids: List[str] = []
    for value in values:
        for part in value.split(","):
            part = part.strip()
            if part and part not in ids:
                ids.append(part)
    return ids
