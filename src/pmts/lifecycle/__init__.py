"""
pmts.lifecycle — partition lifecycle components.

## Components
- PartitionMaterializer — idempotent "create if absent" shared by routing and scheduling.
- InsertRouter — timestamp → partition id, creating windows lazily.
- CreationScheduler — ahead-of-time creation and backfill.
- RetentionReaper — destroys partitions older than the retention period.
- SizeTuner — adjusts partition widths from observed partition sizes.

## Import DAG discipline
- Depends on pmts.core and pmts.io only; pmts.manager wires the components together.
"""

from __future__ import annotations

from .materialize import PartitionMaterializer
from .reaper import RetentionReaper
from .router import InsertRouter
from .scheduler import CreationScheduler
from .tuner import SizeTuner

__all__ = [
    "PartitionMaterializer",
    "InsertRouter",
    "CreationScheduler",
    "RetentionReaper",
    "SizeTuner",
]
