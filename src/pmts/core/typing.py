"""
Lightweight typing aliases used across pmts.

Provides minimal NewTypes and aliases to improve readability and static checks.
This module contains no runtime logic and is zero-IO.

Examples:
    >>> from pmts.core.typing import EpochSeconds, PartitionId
    >>> def next_day(t: EpochSeconds) -> EpochSeconds:
    ...     return EpochSeconds(int(t) + 86_400)
    >>> next_day(EpochSeconds(0))
    86400
"""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime
from typing import NewType

__all__ = [
    "EpochSeconds",
    "PartitionId",
    "Timestamp",
    "Clock",
]

EpochSeconds = NewType("EpochSeconds", int)
PartitionId = NewType("PartitionId", str)

# Anything pmts.core.align.to_epoch_seconds accepts.
Timestamp = int | float | datetime

# Returns the current time as epoch seconds (time.time or a test double).
Clock = Callable[[], float]

