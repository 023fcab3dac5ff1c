"""
Utility functions for the relay API.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Union

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 200


def normalize_timestamp(value: str) -> str:
    """
    Normalize an ISO-8601 timestamp to UTC with microsecond precision.

    Stored timestamps all share the ``YYYY-MM-DDTHH:MM:SS.ffffffZ`` shape, so
    comparing them as strings orders them chronologically.

    Args:
        value: ISO-8601 timestamp, with ``Z`` or an explicit offset.
            Naive values are taken as UTC.

    Returns:
        Normalized timestamp string

    Raises:
        ValueError: if the value is not a valid ISO-8601 timestamp
    """
    if not isinstance(value, str) or not value.strip():
        raise ValueError("timestamp must be a non-empty string")
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        raise ValueError(f"invalid ISO-8601 timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    parsed = parsed.astimezone(timezone.utc)

    return parsed.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def clamp_limit(raw: Optional[Union[str, int, float]]) -> int:
    """
    Turn a raw ``limit`` query value into a page size.

    Numeric values are floored and clamped to [1, 200]; missing or
    non-numeric values fall back to 50.
    """
    if raw is None:
        return DEFAULT_LIMIT
    try:
        value = float(raw)
    except (TypeError, ValueError):
        logger.debug(f"Non-numeric limit {raw!r}, using default {DEFAULT_LIMIT}")
        return DEFAULT_LIMIT
    if not math.isfinite(value):
        return DEFAULT_LIMIT
    return min(max(math.floor(value), MIN_LIMIT), MAX_LIMIT)
