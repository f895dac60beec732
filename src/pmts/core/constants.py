"""
PMTS core defaults.

Defines partition sizing, retention, look-ahead and tuning defaults consumed by the
catalog, the lifecycle components and the IO layer. This module is zero-IO and uses
only the Python standard library.

Notes:
    - All durations are integer seconds; timestamps are seconds since the Unix epoch.
    - Windows are computed as ``align(stamp, partition_size)`` (see pmts.core.align).
    - pmts.io.config.PmtsSettings consumes these values as its defaults.
"""

from __future__ import annotations

__all__ = [
    "DAY_SECONDS",
    "DEFAULT_PARTITION_SIZE",
    "DEFAULT_RETENTION_PERIOD",
    "DEFAULT_LOOKAHEAD_SECONDS",
    "DEFAULT_MIN_DAYS",
    "DEFAULT_MAX_DAYS",
    "DEFAULT_BACKEND_TIMEOUT",
    "DEFAULT_MAX_CLOCK_SKEW",
    "STAMP_COLUMN",
    "CATALOG_VERSION",
    "ROW_GROUP_SIZE",
    "COMPRESSION",
]

DAY_SECONDS: int = 86_400

# Width of a newly registered table's partitions (one day).
DEFAULT_PARTITION_SIZE: int = DAY_SECONDS

# History retained for a newly registered table (one year).
DEFAULT_RETENTION_PERIOD: int = 365 * DAY_SECONDS

# How far ahead of "now" the creation scheduler materializes partitions.
DEFAULT_LOOKAHEAD_SECONDS: int = 3 * DAY_SECONDS

# Clamp bounds (in days) applied by the size tuner.
DEFAULT_MIN_DAYS: int = 7
DEFAULT_MAX_DAYS: int = 56

# Upper bound (seconds) for a single storage backend call.
DEFAULT_BACKEND_TIMEOUT: float = 30.0

# Maximum tolerated clock skew between writers and the reaper.
DEFAULT_MAX_CLOCK_SKEW: int = 300

# Name of the timestamp column carried by every record.
STAMP_COLUMN: str = "stamp"

# Version of the persisted catalog document.
CATALOG_VERSION: int = 1

# Parquet writer defaults for segment parts.
ROW_GROUP_SIZE: int = 128 * 1024
COMPRESSION: str = "zstd"
