"""
Core package aggregator for pmts contracts (alignment, records, tuning math, errors).

## Contracts (single source of truth)
- Alignment — align(), window planning and partition identifiers.
- Schema — TableConfig / Partition / TableStats records.
- Tuning — ideal_partition_size() used by the size tuner.
- Errors/Constants — exception taxonomy and defaults.

## Notes
- Zero-IO policy: stdlib + pydantic only; no file/network IO.
- Durations are integer seconds; timestamps are integer epoch seconds.

## Downstream usage
- pmts.io — persists records in the catalog and materializes segments.
- pmts.lifecycle — router, scheduler, reaper and tuner built on these contracts.
"""

from __future__ import annotations

from .align import align, partition_id_for, plan_window, to_epoch_seconds
from .errors import (
    CatalogError,
    DuplicateTable,
    DuplicateWindow,
    InvalidConfig,
    PmtsError,
    UnknownTable,
)
from .schema import Partition, TableConfig, TableStats
from .tuning import ideal_partition_size

__all__ = [
    "align",
    "partition_id_for",
    "plan_window",
    "to_epoch_seconds",
    "PmtsError",
    "CatalogError",
    "DuplicateTable",
    "UnknownTable",
    "DuplicateWindow",
    "InvalidConfig",
    "Partition",
    "TableConfig",
    "TableStats",
    "ideal_partition_size",
]
