"""
Insert routing: map a record's timestamp to the partition that must hold it.

Overview
- route(): catalog hit → existing id; miss → materialize the window lazily.
- route_many(): route a batch of timestamps with one lookup/creation per window.

Notes
- Writes whose timestamp is already past the table's retention threshold are routed
  normally but logged as a warning: the reaper may destroy that partition on its next run.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from pmts.core.align import to_epoch_seconds
from pmts.core.schema import Partition, TableConfig
from pmts.core.typing import Clock, PartitionId, Timestamp
from pmts.io.catalog import PartitionCatalog

from .materialize import PartitionMaterializer

logger = logging.getLogger(__name__)


class InsertRouter:
    """
    Routes timestamps of one or many records to partition ids.

    Attributes:
        catalog (PartitionCatalog): Partition catalog.
        materializer (PartitionMaterializer): Creates missing windows.
        clock (Clock): Current time in epoch seconds.
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        materializer: PartitionMaterializer,
        clock: Clock,
    ) -> None:
        self.catalog = catalog
        self.materializer = materializer
        self.clock = clock

    def route(self, table_name: str, timestamp: Timestamp) -> PartitionId:
        """
        Return the id of the partition that must hold a record stamped timestamp.

        Raises:
            UnknownTable: If the table is not registered (or is being dropped).
            TypeError: If timestamp is not an int, float or datetime.
            BackendUnavailable | BackendTimeout: If a needed segment could not be created.
        """
        cfg = self.catalog.get_table(table_name)
        t = to_epoch_seconds(timestamp)
        self._warn_expired(cfg, t, t, 1)
        return PartitionId(self._lookup_or_create(cfg, t).partition_id)

    def route_many(self, table_name: str, timestamps: Iterable[Timestamp]) -> dict[Timestamp, PartitionId]:
        """
        Route a batch of timestamps.

        Args:
            table_name (str): Target table.
            timestamps (Iterable[Timestamp]): Hashable timestamps; duplicates are routed once.

        Returns:
            dict[Timestamp, PartitionId]: Partition id per distinct input timestamp.
        """
        cfg = self.catalog.get_table(table_name)
        epochs = {ts: to_epoch_seconds(ts) for ts in timestamps}
        if not epochs:
            return {}
        ordered = sorted(epochs.items(), key=lambda kv: kv[1])
        self._warn_expired(cfg, ordered[0][1], ordered[-1][1], len(ordered))

        out: dict[Timestamp, PartitionId] = {}
        current: Partition | None = None
        for ts, t in ordered:
            if current is None or not current.contains(t):
                current = self._lookup_or_create(cfg, t)
            out[ts] = PartitionId(current.partition_id)
        return out

    def _lookup_or_create(self, cfg: TableConfig, t: int) -> Partition:
        hit = self.catalog.find_partition(cfg.name, t)
        if hit is not None:
            logger.debug("routed %s@%d to %s", cfg.name, t, hit.partition_id)
            return hit
        partition, _ = self.materializer.materialize(cfg, t)
        return partition

    def _warn_expired(self, cfg: TableConfig, earliest: int, latest: int, count: int) -> None:
        if cfg.retention_period is None:
            return
        threshold = int(self.clock()) - cfg.retention_period
        if earliest < threshold:
            logger.warning(
                "write of %d timestamp(s) into %s spanning [%d, %d] reaches past the retention threshold %d",
                count,
                cfg.name,
                earliest,
                latest,
                threshold,
            )
