"""
Ahead-of-time partition creation.

create_due() keeps every active table covered from the current window up to
now + lookahead; backfill() fills every missing window across a table's retention
horizon. Both skip existing partitions, so re-running them is harmless.
"""

from __future__ import annotations

import logging

from pmts.core.align import align
from pmts.core.errors import InvalidConfig, PmtsError
from pmts.core.schema import TableConfig
from pmts.core.typing import Clock
from pmts.io.catalog import PartitionCatalog

from .materialize import PartitionMaterializer

logger = logging.getLogger(__name__)


class CreationScheduler:
    """
    Materializes partitions before writers need them.

    Attributes:
        catalog (PartitionCatalog): Partition catalog.
        materializer (PartitionMaterializer): Shared "create if absent" logic.
        clock (Clock): Current time in epoch seconds.
        lookahead_seconds (int): How far past now windows are created.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        materializer: PartitionMaterializer,
        clock: Clock,
        lookahead_seconds: int,
    ) -> None:
        self.catalog = catalog
        self.materializer = materializer
        self.clock = clock
        self.lookahead_seconds = lookahead_seconds

    def create_due(self) -> int:
        """
        Create the windows every active table needs up to now + lookahead.

        Returns:
            int: Number of partitions created across all tables. A table whose creation
            failed is logged and retried on the next run.
        """
        now = int(self.clock())
        horizon = now + self.lookahead_seconds
        created = 0
        for cfg in self.catalog.list_tables():
            try:
                created += self._create_for(cfg, now, horizon)
            except PmtsError as exc:
                logger.warning("partition creation for table %s failed: %s", cfg.name, exc)
        if created:
            logger.info("created %d partition(s) ahead of time", created)
        return created

    def _create_for(self, cfg: TableConfig, now: int, horizon: int) -> int:
        start = align(now, cfg.partition_size)
        latest = self.catalog.latest_partition(cfg.name)
        if latest is not None:
            start = max(start, latest.stamp_max)
        return self.materializer.cover(cfg, start, horizon)

    def backfill(self, table_name: str) -> int:
        """
        Create every missing window from the retention horizon through the current window.

        Returns:
            int: Number of partitions created.

        Raises:
            UnknownTable: If the table is not registered.
            InvalidConfig: If the table's retention is unbounded.
            BackendUnavailable | BackendTimeout: If a segment could not be created; windows
                created before the failure stay recorded.
        """
        cfg = self.catalog.get_table(table_name)
        if cfg.retention_period is None:
            raise InvalidConfig(f"table {table_name!r} has unbounded retention; nothing to backfill against")
        now = int(self.clock())
        start = align(now - cfg.retention_period, cfg.partition_size)
        created = self.materializer.cover(cfg, start, now + 1)
        logger.info("backfilled %d partition(s) for table %s", created, table_name)
        return created
