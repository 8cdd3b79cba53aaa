"""
Utility functions for WatchMe.
"""

from typing import Optional


def minutes_to_human(minutes: Optional[int]) -> str:
    """
    Format a runtime for display.

    >>> minutes_to_human(148)
    '2 h 28 min'
    >>> minutes_to_human(120)
    '2 h'
    >>> minutes_to_human(45)
    '45 min'
    """
    if not minutes or minutes < 0:
        return ""
    hours, mins = divmod(int(minutes), 60)
    if hours and mins:
        return f"{hours} h {mins} min"
    if hours:
        return f"{hours} h"
    return f"{mins} min"
