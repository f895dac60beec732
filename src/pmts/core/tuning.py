"""
Partition width tuning math.

ideal_partition_size() turns an observed average partition byte size into the width
(in whole days) that would produce partitions of roughly the desired byte size.

Notes:
    - Zero-IO; stdlib only.
    - Frequent tuning biases the estimate: the observed average reflects partitions
      created under older widths. Callers should tune seldom.
"""

from __future__ import annotations

import math

from .constants import DAY_SECONDS, DEFAULT_MAX_DAYS, DEFAULT_MIN_DAYS
from .errors import InvalidConfig

__all__ = [
    "check_day_bounds",
    "ideal_partition_size",
]


def check_day_bounds(min_days: int, max_days: int) -> None:
    """
    Validate tuning clamp bounds.

    Raises:
        InvalidConfig: If min_days < 1 or min_days > max_days.
    """
    if min_days < 1:
        raise InvalidConfig(f"min_days must be >= 1, got {min_days}")
    if min_days > max_days:
        raise InvalidConfig(f"min_days ({min_days}) must not exceed max_days ({max_days})")


def ideal_partition_size(
    desired_byte_size: int,
    current_byte_size: int,
    current_partition_size: int,
    min_days: int = DEFAULT_MIN_DAYS,
    max_days: int = DEFAULT_MAX_DAYS,
) -> int | None:
    """
    Compute the partition width that best approaches a desired partition byte size.

    Args:
        desired_byte_size (int): Target bytes per partition (> 0).
        current_byte_size (int): Observed average bytes per partition.
        current_partition_size (int): Width (seconds) the observation was made under.
        min_days (int): Lower clamp, in days.
        max_days (int): Upper clamp, in days.

    Returns:
        int | None: New width in seconds, always within
        [min_days * 86400, max_days * 86400]; None when current_byte_size is 0
        (insufficient signal).

    Notes:
        Days per partition and bytes per day use exact division, not truncating integer
        division; only the final day count is rounded (half up).

    Raises:
        InvalidConfig: On non-positive desired size/width or inconsistent bounds.

    Examples:
        >>> ideal_partition_size(70_000, 10_000, 86_400)
        604800
        >>> ideal_partition_size(1_000_000, 0, 86_400) is None
        True
    """
    check_day_bounds(min_days, max_days)
    if desired_byte_size <= 0:
        raise InvalidConfig(f"desired_byte_size must be > 0, got {desired_byte_size}")
    if current_partition_size <= 0:
        raise InvalidConfig(f"current_partition_size must be > 0, got {current_partition_size}")
    if current_byte_size <= 0:
        return None

    day_byte_size = current_byte_size / (current_partition_size / DAY_SECONDS)
    # round half up; desired and day sizes are both positive
    desired_days = math.floor(desired_byte_size / day_byte_size + 0.5)
    desired_days = max(min(desired_days, max_days), min_days)
    return int(desired_days) * DAY_SECONDS
