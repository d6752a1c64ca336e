"""
Common utility functions for the assessment engine.

This module provides utility functions used across different parts of the engine,
particularly for score arithmetic, data serialization and formatting.
"""

import datetime
import math
from fractions import Fraction
from typing import Any, Union

Number = Union[int, float, Fraction]


def _as_fraction(value: Number) -> Fraction:
    if isinstance(value, float):
        return Fraction(repr(value))
    return Fraction(value)


def serialize_datetime(obj: Any) -> str:
    """
    Serialize datetime objects to ISO format strings.

    This function is used as the default serializer for json.dumps() when
    dealing with datetime objects.

    Args:
        obj: Object to serialize

    Returns:
        ISO format string if obj is a datetime, otherwise raises TypeError
    """
    if isinstance(obj, (datetime.datetime, datetime.date)):
        return obj.isoformat()
    raise TypeError(f"Type {type(obj)} not serializable")


def round_half_up(value: Number) -> int:
    """
    Round to the nearest integer, with halves going up.

    Floats are converted through their shortest repr so that values such as
    ``14.5`` are not pulled down by binary representation error.

    Args:
        value: Number to round

    Returns:
        Rounded integer
    """
    return math.floor(_as_fraction(value) + Fraction(1, 2))


def percentage_of(part: Number, whole: Number) -> int:
    """
    Whole-number percentage of ``part`` in ``whole``.

    Returns 0 when ``whole`` is 0 rather than failing.
    """
    if whole == 0:
        return 0
    return round_half_up(_as_fraction(part) * 100 / _as_fraction(whole))


def scaled_points(points: int, numerator: Number, denominator: Number) -> int:
    """
    Scale ``points`` by ``numerator / denominator`` and round half up.

    Args:
        points: Points available
        numerator: Share earned
        denominator: Share available

    Returns:
        Rounded points, 0 when the denominator is 0
    """
    if denominator == 0:
        return 0
    return round_half_up(points * _as_fraction(numerator) / _as_fraction(denominator))


def format_duration(seconds: float) -> str:
    """
    Format a duration in seconds to a human-readable string.

    Args:
        seconds: Duration in seconds

    Returns:
        Formatted duration string (e.g., "2h 30m", "45s")
    """
    if seconds < 60:
        return f"{int(seconds)}s"
    elif seconds < 3600:
        minutes = int(seconds / 60)
        seconds = int(seconds % 60)
        return f"{minutes}m {seconds}s"
    else:
        hours = int(seconds / 3600)
        minutes = int((seconds % 3600) / 60)
        return f"{hours}h {minutes}m"
