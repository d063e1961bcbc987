"""
Utility Functions for Finance Assist

Helpers shared by the API layer: header-safe error text, log-safe question
previews and human-readable timings.
"""

import re
from typing import Optional

MAX_HEADER_LENGTH = 1024


def sanitize_header_value(message: Optional[str], max_length: int = MAX_HEADER_LENGTH) -> str:
    """
    Make an error message safe to send as an HTTP header value.

    Collapses whitespace (including newlines) to single spaces, replaces
    characters outside latin-1 and truncates.

    Args:
        message: Raw error message
        max_length: Maximum length of the returned value

    Returns:
        Single-line header value
    """
    if not message:
        return ""

    value = re.sub(r"\s+", " ", str(message)).strip()
    value = value.encode("latin-1", errors="replace").decode("latin-1")
    if len(value) > max_length:
        value = value[:max_length - 3] + "..."
    return value


def preview_text(text: Optional[str], max_length: int = 100) -> str:
    """Shorten text for log output."""
    if not text:
        return ""
    return text[:max_length] + "..." if len(text) > max_length else text


def format_processing_time(seconds: float) -> str:
    """
    Format processing time for human-readable display.

    Args:
        seconds: Processing time in seconds

    Returns:
        Formatted time string
    """
    if seconds < 0.001:
        return "< 1ms"
    elif seconds < 1:
        return f"{int(seconds * 1000)}ms"
    else:
        return f"{seconds:.2f}s"
