"""
TIME INFORMATION UTILITY
========================

Returns a short, readable string for how long ago something happened. Used by
the session store to describe the last activity in logs and in the session
context ("12s ago", "3m ago").
"""

from typing import Optional


def format_elapsed(seconds: Optional[float]) -> Optional[str]:
    """Return '<n>s ago' under a minute, '<n>m ago' otherwise; None if seconds is None."""
    if seconds is None:
        return None
    whole_seconds = max(int(seconds), 0)
    if whole_seconds < 60:
        return f"{whole_seconds}s ago"
    return f"{whole_seconds // 60}m ago"
