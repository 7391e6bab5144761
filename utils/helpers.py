"""
============================================================================
MODEL VITALS - HELPERS UTILITY
============================================================================
Small helpers shared by the probes, the runner and the exporter client.

Author: Professional Development Team
Version: 1.0.0
License: MIT
============================================================================
"""

import os
import time
import socket
import secrets
from datetime import datetime, timezone
from typing import Optional


# ============================================================================
# IDENTIFIERS
# ============================================================================

def new_series_id(now: Optional[float] = None) -> str:
    """
    Generate a series identifier for one probe execution.

    Format is ``{unix_seconds}-{pid}-{8 hex chars}``. The random suffix keeps
    identifiers distinct when several probes start within the same second.

    Args:
        now: Override for the unix timestamp (tests)

    Returns:
        Series identifier string
    """
    timestamp = int(now if now is not None else time.time())
    return f"{timestamp}-{os.getpid()}-{secrets.token_hex(4)}"


def get_host_identifier(override: Optional[str] = None) -> str:
    """
    Identify the originating host.

    Falls back to ``HOSTNAME`` (set in containers), then the socket hostname.
    """
    if override:
        return override
    return os.environ.get("HOSTNAME") or socket.gethostname() or "unknown"


# ============================================================================
# TIME UTILITIES
# ============================================================================

def utc_now() -> datetime:
    """Get current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def seconds_to_human_readable(seconds: float) -> str:
    """
    Convert seconds to human-readable format.

    Args:
        seconds: Number of seconds

    Returns:
        Human-readable string (e.g., "2h 30m 15s")
    """
    seconds = int(seconds)
    if seconds < 0:
        return "0s"

    days, remainder = divmod(seconds, 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, secs = divmod(remainder, 60)

    parts = []
    if days > 0:
        parts.append(f"{days}d")
    if hours > 0:
        parts.append(f"{hours}h")
    if minutes > 0:
        parts.append(f"{minutes}m")
    if secs > 0 or not parts:
        parts.append(f"{secs}s")

    return " ".join(parts)


# ============================================================================
# STRING UTILITIES
# ============================================================================

def truncate(text: str, max_length: int = 100, suffix: str = "...") -> str:
    """
    Truncate text to maximum length.

    Args:
        text: Text to truncate
        max_length: Maximum length including the suffix
        suffix: Suffix to add when truncated

    Returns:
        Truncated text
    """
    if len(text) <= max_length:
        return text
    return text[:max(max_length - len(suffix), 0)] + suffix


def single_line(text: str) -> str:
    """Collapse whitespace so the text fits on one log or message line."""
    return " ".join(text.split())
