"""
Utility functions shared across the placement test backend.
"""

import datetime
from typing import Union


def utcnow() -> datetime.datetime:
    """Current UTC time as a naive datetime, matching the stored timestamps."""
    return datetime.datetime.now(datetime.timezone.utc).replace(tzinfo=None)


def safe_divide(numerator: Union[int, float], denominator: Union[int, float], default: Union[int, float] = 0) -> float:
    """
    Safely divide two numbers, returning a default value if denominator is zero.
    
    Args:
        numerator: The numerator
        denominator: The denominator
        default: Value to return if denominator is zero
        
    Returns:
        Result of division or default value
    """
    if denominator == 0:
        return default
    return numerator / denominator


def format_duration(minutes: int) -> str:
    """
    Format a duration in minutes the way the level cards display it.
    
    Args:
        minutes: Duration in minutes
        
    Returns:
        Human-readable duration, e.g. "5 min" or "1 hr"
    """
    if minutes < 60:
        return f"{minutes} min"
    hours, remainder = divmod(minutes, 60)
    if remainder == 0:
        return f"{hours} hr"
    return f"{hours} hr {remainder} min"
