"""Logging utilities for labsim.

Provides color-coded console output so network traffic, AI calls and
swallowed failures are easy to tell apart while a session runs.
"""

import os
from enum import Enum


class Color(Enum):
    """ANSI color codes for terminal output."""

    BLUE = "\033[94m"      # Remote Simulation Service calls
    YELLOW = "\033[93m"    # AI content calls
    RED = "\033[91m"       # Errors (including swallowed ones)
    GREEN = "\033[92m"     # Confirmed transitions and saves
    CYAN = "\033[96m"      # Info/metadata

    # Formatting
    BOLD = "\033[1m"
    RESET = "\033[0m"


# Markers for operation types (color-blind accessible)
LOG_TAG_NETWORK = "[net]"
LOG_TAG_AI = "[AI]"
LOG_TAG_ERROR = "[!]"
LOG_TAG_SUCCESS = "[ok]"
LOG_TAG_INFO = "[i]"


def colored(text: str, color: Color, bold: bool = False) -> str:
    """Wrap text in ANSI color codes if colors are enabled.

    Args:
        text: Text to colorize
        color: Color to apply
        bold: Whether to make text bold

    Returns:
        Colorized text if LABSIM_NO_COLOR is not set, otherwise plain text
    """
    if os.getenv("LABSIM_NO_COLOR"):
        return text

    prefix = color.value
    if bold:
        prefix = Color.BOLD.value + prefix

    return f"{prefix}{text}{Color.RESET.value}"


def log_network(message: str) -> None:
    """Log a Remote Simulation Service call (blue)."""
    print(colored(f"{LOG_TAG_NETWORK} {message}", Color.BLUE))


def log_ai(message: str) -> None:
    """Log an AI content operation (yellow)."""
    print(colored(f"{LOG_TAG_AI} {message}", Color.YELLOW))


def log_error(message: str) -> None:
    """Log an error (red)."""
    print(colored(f"{LOG_TAG_ERROR} {message}", Color.RED))


def log_success(message: str) -> None:
    """Log a success (green)."""
    print(colored(f"{LOG_TAG_SUCCESS} {message}", Color.GREEN))


def log_info(message: str) -> None:
    """Log metadata/info (cyan)."""
    print(colored(f"{LOG_TAG_INFO} {message}", Color.CYAN))
