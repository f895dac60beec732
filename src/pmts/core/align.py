"""
Time alignment and window planning.

Overview
- align(): maps a timestamp to the start of its containing window (floor semantics).
- to_epoch_seconds(): normalizes ints, floats and datetimes to integer epoch seconds.
- plan_window(): the aligned window for a timestamp, clipped so it never overlaps the
  neighbouring partitions of the same table.
- partition_id_for(): deterministic partition identifier from (table, width, stamp_min).

Notes
- Zero-IO; stdlib only.
- Windows are half-open: [stamp_min, stamp_max).
- Floor division keeps align() total for negative timestamps (pre-1970 data).
"""

from __future__ import annotations

import math
from datetime import UTC, datetime

from .errors import InvalidConfig
from .typing import EpochSeconds, PartitionId, Timestamp

__all__ = [
    "align",
    "to_epoch_seconds",
    "plan_window",
    "partition_id_for",
    "check_width",
]


def check_width(width: int) -> int:
    """
    Validate a window width.

    Args:
        width (int): Candidate width in seconds.

    Returns:
        int: The same width.

    Raises:
        InvalidConfig: If width is not a positive integer.
    """
    if isinstance(width, bool) or not isinstance(width, int) or width <= 0:
        raise InvalidConfig(f"window width must be a positive integer, got {width!r}")
    return width


def to_epoch_seconds(value: Timestamp) -> EpochSeconds:
    """
    Normalize a timestamp to integer seconds since the Unix epoch.

    Args:
        value (int | float | datetime): Epoch seconds or a datetime. Naive datetimes
            are interpreted as UTC; floats are floored.

    Returns:
        EpochSeconds: Integer epoch seconds.

    Raises:
        TypeError: If value is of an unsupported type.
    """
    if isinstance(value, bool):
        raise TypeError("bool is not a valid timestamp")
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return EpochSeconds(math.floor(value.timestamp()))
    if isinstance(value, int):
        return EpochSeconds(value)
    if isinstance(value, float):
        if not math.isfinite(value):
            raise TypeError(f"timestamp must be finite, got {value!r}")
        return EpochSeconds(math.floor(value))
    raise TypeError(f"unsupported timestamp type: {type(value).__name__}")


def align(timestamp: Timestamp, width: int) -> EpochSeconds:
    """
    Return the largest multiple of width that is <= timestamp.

    Args:
        timestamp (int | float | datetime): Point in time.
        width (int): Window width in seconds (> 0).

    Returns:
        EpochSeconds: Start of the window containing timestamp, so that
        ``align(t, w) <= t < align(t, w) + w``.

    Raises:
        InvalidConfig: If width is not a positive integer.

    Examples:
        >>> align(86_399, 86_400)
        0
        >>> align(86_400, 86_400)
        86400
        >>> align(-1, 86_400)
        -86400
    """
    check_width(width)
    t = to_epoch_seconds(timestamp)
    return EpochSeconds((t // width) * width)


def plan_window(
    timestamp: Timestamp,
    width: int,
    prev_max: int | None = None,
    next_min: int | None = None,
) -> tuple[EpochSeconds, EpochSeconds]:
    """
    Compute the window a new partition for timestamp should cover.

    Args:
        timestamp (int | float | datetime): Timestamp that must fall inside the window.
        width (int): Current partition width in seconds.
        prev_max (int | None): stamp_max of the closest partition ending at or before
            timestamp, if any.
        next_min (int | None): stamp_min of the closest partition starting after
            timestamp, if any.

    Returns:
        tuple[EpochSeconds, EpochSeconds]: (stamp_min, stamp_max), half-open.

    Raises:
        ValueError: If timestamp is not inside the gap (prev_max, next_min).

    Notes:
        Partitions created with an older width may straddle the aligned window of the
        current width; clipping keeps windows disjoint instead of overlapping them.
    """
    t = to_epoch_seconds(timestamp)
    if prev_max is not None and t < prev_max:
        raise ValueError(f"timestamp {t} precedes the end of the previous window {prev_max}")
    if next_min is not None and t >= next_min:
        raise ValueError(f"timestamp {t} is not before the next window start {next_min}")
    start = align(t, width)
    end = start + width
    if prev_max is not None and prev_max > start:
        start = EpochSeconds(prev_max)
    if next_min is not None and next_min < end:
        end = next_min
    return EpochSeconds(start), EpochSeconds(end)


def partition_id_for(table_name: str, width: int, stamp_min: int) -> PartitionId:
    """
    Derive the partition identifier for a window.

    Args:
        table_name (str): Owning table.
        width (int): Partition width configured when the partition is created.
        stamp_min (int): Window start.

    Returns:
        PartitionId: ``"{table}_p_{width}_{stamp_min // width}"``; a clipped window whose
        start is not a multiple of width gets an extra ``"_{stamp_min % width}"`` suffix.

    Examples:
        >>> partition_id_for("events", 86_400, 172_800)
        'events_p_86400_2'
        >>> partition_id_for("events", 86_400, 180_000)
        'events_p_86400_2_7200'
    """
    check_width(width)
    ref, offset = divmod(int(stamp_min), width)
    if offset:
        return PartitionId(f"{table_name}_p_{width}_{ref}_{offset}")
    return PartitionId(f"{table_name}_p_{width}_{ref}")
