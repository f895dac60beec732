"""
Partition width tuning.

Re-derives each table's partition_size from its observed average partition byte size
(see pmts.core.tuning.ideal_partition_size). Only partitions created afterwards use the
new width; existing partitions are never resized.
"""

from __future__ import annotations

import logging

from pmts.core.constants import DEFAULT_MAX_DAYS, DEFAULT_MIN_DAYS
from pmts.core.errors import InvalidConfig, UnknownTable
from pmts.core.tuning import check_day_bounds, ideal_partition_size
from pmts.io.backend import StorageBackend
from pmts.io.catalog import PartitionCatalog
from pmts.io.errors import CatalogIoError

logger = logging.getLogger(__name__)


class SizeTuner:
    """
    Re-sizes partition widths from observed partition byte sizes.

    Attributes:
        catalog (PartitionCatalog): Partition catalog.
        backend (StorageBackend): Source of per-segment byte sizes.
    """

    def __init__(self, catalog: PartitionCatalog, backend: StorageBackend) -> None:
        self.catalog = catalog
        self.backend = backend

    def tune(
        self,
        desired_byte_size: int,
        min_days: int = DEFAULT_MIN_DAYS,
        max_days: int = DEFAULT_MAX_DAYS,
    ) -> dict[str, int]:
        """
        Adjust every active table's partition width toward desired_byte_size.

        Tables with no partitions or no data are left untouched.

        Returns:
            dict[str, int]: New partition_size per table whose width changed.

        Raises:
            InvalidConfig: If desired_byte_size <= 0 or the day bounds are inconsistent.
        """
        check_day_bounds(min_days, max_days)
        if desired_byte_size <= 0:
            raise InvalidConfig(f"desired_byte_size must be > 0, got {desired_byte_size}")

        changed: dict[str, int] = {}
        for stats in self.catalog.stats_by_table(self.backend.segment_byte_size):
            if stats.partition_count == 0 or stats.avg_size == 0:
                continue
            new_size = ideal_partition_size(
                desired_byte_size, stats.avg_size, stats.partition_size, min_days, max_days
            )
            if new_size is None or new_size == stats.partition_size:
                continue
            try:
                self.catalog.update_table(stats.table_name, partition_size=new_size)
            except UnknownTable:
                continue
            except CatalogIoError as exc:
                logger.warning("could not retune table %s: %s", stats.table_name, exc)
                continue
            logger.info(
                "retuned table %s: partition_size %d -> %d (avg partition %d bytes)",
                stats.table_name,
                stats.partition_size,
                new_size,
                stats.avg_size,
            )
            changed[stats.table_name] = new_size
        return changed
