"""
pmts.io — Persistence layer: settings, the partition catalog and storage backends.

## Responsibilities
- Persist table configurations and partition windows durably (PartitionCatalog).
- Materialize and destroy partition segments behind the StorageBackend protocol.
- Bound every backend call with a timeout and normalize its failures (GuardedBackend).

## Public API
- PmtsSettings — runtime configuration (defaults sourced from pmts.core.constants).
- PartitionCatalog — durable catalog with indexed window lookups.
- StorageBackend / ParquetBackend / GuardedBackend — segment storage.

## Import DAG discipline
- Depends only on stdlib, polars/pyarrow/pydantic and pmts.core.*.
- MUST NOT import pmts.lifecycle or pmts.manager.

## Notes
- Write path: tmp file → fsync → os.replace(tmp, final) on the same filesystem.
- Layout: <root>/catalog.json and <root>/segments/<partition_id>/.
"""

from __future__ import annotations

from .backend import GuardedBackend, ParquetBackend, StorageBackend
from .catalog import PartitionCatalog
from .config import PmtsSettings
from .errors import BackendError, BackendTimeout, BackendUnavailable, CatalogIoError, SegmentWriteError

__all__ = [
    "PmtsSettings",
    "PartitionCatalog",
    "StorageBackend",
    "ParquetBackend",
    "GuardedBackend",
    "BackendError",
    "BackendUnavailable",
    "BackendTimeout",
    "SegmentWriteError",
    "CatalogIoError",
]
