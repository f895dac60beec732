"""
Retention enforcement.

A partition is expired when its whole window is older than the retention threshold
(stamp_max < now - retention_period). Partitions straddling the threshold are kept.
The segment is destroyed first and the catalog row removed only once the drop is
confirmed, so a failure never leaves a row pointing at nothing.
"""

from __future__ import annotations

import logging

from pmts.core.errors import PmtsError
from pmts.core.typing import Clock
from pmts.io.backend import StorageBackend
from pmts.io.catalog import PartitionCatalog

logger = logging.getLogger(__name__)


class RetentionReaper:
    """Destroys partitions that fell out of their table's retention period."""

    def __init__(
        self,
        catalog: PartitionCatalog,
        backend: StorageBackend,
        clock: Clock,
    ) -> None:
        self.catalog = catalog
        self.backend = backend
        self.clock = clock

    def reap(self) -> int:
        """
        Destroy every expired partition of every active, bounded-retention table.

        Returns:
            int: Number of partitions removed. Partitions whose removal failed are
            logged and left for the next run.
        """
        now = int(self.clock())
        removed = 0
        for cfg in self.catalog.list_tables():
            if cfg.retention_period is None:
                continue
            threshold = now - cfg.retention_period
            # Windows are disjoint and sorted, so stamp_max ascends too.
            for partition in self.catalog.list_partitions(cfg.name):
                if partition.stamp_max >= threshold:
                    break
                try:
                    result = self.backend.drop_segment(partition.partition_id)
                    self.catalog.remove_partition(partition.partition_id)
                except PmtsError as exc:
                    logger.warning("could not reap partition %s: %s", partition.partition_id, exc)
                    continue
                if result == "not_found":
                    logger.debug("segment %s was already gone", partition.partition_id)
                removed += 1
        if removed:
            logger.info("reaped %d expired partition(s)", removed)
        return removed
