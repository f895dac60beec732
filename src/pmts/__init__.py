"""
pmts — partition lifecycle management for time-windowed, append-only datasets.

## Layers
- pmts.core — zero-IO contracts: alignment, records, tuning math, errors.
- pmts.io — settings, the durable partition catalog and storage backends.
- pmts.lifecycle — router, creation scheduler, retention reaper, size tuner.
- pmts.manager — PartitionManager facade (management API).

## Logging
Modules log through logging.getLogger(__name__); the package only installs a
NullHandler. Configure handlers in the embedding application.
"""

from __future__ import annotations

import logging

from pmts.core.errors import (
    DuplicateTable,
    DuplicateWindow,
    InvalidConfig,
    PmtsError,
    UnknownTable,
)
from pmts.core.schema import Partition, TableConfig, TableStats
from pmts.io.config import PmtsSettings
from pmts.io.errors import BackendError, BackendTimeout, BackendUnavailable, CatalogIoError
from pmts.manager import PartitionManager

__version__ = "0.3.0"

logging.getLogger(__name__).addHandler(logging.NullHandler())

__all__ = [
    "__version__",
    "PartitionManager",
    "PmtsSettings",
    "TableConfig",
    "Partition",
    "TableStats",
    "PmtsError",
    "DuplicateTable",
    "UnknownTable",
    "DuplicateWindow",
    "InvalidConfig",
    "BackendError",
    "BackendUnavailable",
    "BackendTimeout",
    "CatalogIoError",
]
