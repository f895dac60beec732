"""
Idempotent partition materialization shared by the router and the scheduler.

Overview
- materialize(): return the partition covering a timestamp, creating it when absent:
  re-lookup → plan window → create segment → record row, under a lock keyed by the
  target window.
- cover(): materialize every missing window across a half-open range.

Notes
- A row is recorded only after its segment creation durably succeeded. An ambiguous
  create (timeout) is resolved by asking the backend whether the segment exists.
- If recording loses to a concurrent writer (DuplicateWindow), the covering partition is
  re-read and the now-orphaned segment is dropped best-effort. When no partition covers
  the timestamp (a writer using another width took part of the window), the window is
  re-planned against the new neighbours, a bounded number of times.
"""

from __future__ import annotations

import logging
import threading
from datetime import UTC, datetime

from pmts.core.align import align, partition_id_for, plan_window, to_epoch_seconds
from pmts.core.errors import DuplicateWindow, UnknownTable
from pmts.core.schema import Partition, TableConfig
from pmts.core.typing import Timestamp
from pmts.io.backend import StorageBackend
from pmts.io.catalog import PartitionCatalog
from pmts.io.errors import BackendError, BackendTimeout, CatalogIoError

logger = logging.getLogger(__name__)

WindowKey = tuple[str, int, int]

MAX_PLAN_ATTEMPTS = 4


class PartitionMaterializer:
    """
    Creates partitions on demand, at most once per window.

    Attributes:
        catalog (PartitionCatalog): Partition catalog.
        backend (StorageBackend): Segment store (normally a GuardedBackend).
    """

    def __init__(self, catalog: PartitionCatalog, backend: StorageBackend) -> None:
        self.catalog = catalog
        self.backend = backend
        self._locks: dict[WindowKey, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _window_lock(self, key: WindowKey) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
            return lock

    def _release_window_lock(self, key: WindowKey) -> None:
        # Waiters already hold a reference; later callers re-check the catalog first.
        with self._locks_guard:
            self._locks.pop(key, None)

    def materialize(self, table: TableConfig, timestamp: Timestamp) -> tuple[Partition, bool]:
        """
        Return the partition of table covering timestamp, creating it if absent.

        Args:
            table (TableConfig): Current configuration of the table.
            timestamp (Timestamp): Point in time to cover.

        Returns:
            tuple[Partition, bool]: The covering partition and whether this call created it.

        Raises:
            BackendUnavailable | BackendTimeout: Segment creation failed; nothing recorded.
            UnknownTable: The table was dropped concurrently.
            CatalogIoError: The catalog could not be persisted; nothing recorded.
            DuplicateWindow: Concurrent writers kept claiming the planned window after
                every re-plan.
        """
        t = to_epoch_seconds(timestamp)
        size = table.partition_size
        key: WindowKey = (table.name, size, align(t, size))
        try:
            with self._window_lock(key):
                return self._materialize_locked(table, t)
        finally:
            self._release_window_lock(key)

    def _materialize_locked(self, table: TableConfig, t: int) -> tuple[Partition, bool]:
        size = table.partition_size
        attempts = 0
        while True:
            attempts += 1
            hit = self.catalog.find_partition(table.name, t)
            if hit is not None:
                return hit, False

            prev, nxt = self.catalog.neighbours(table.name, t)
            if prev is not None and prev.contains(t):
                return prev, False
            start, end = plan_window(
                t,
                size,
                prev_max=prev.stamp_max if prev is not None else None,
                next_min=nxt.stamp_min if nxt is not None else None,
            )
            pid = partition_id_for(table.name, size, start)
            self._create_segment(table, pid, start, end)

            partition = Partition(
                table_name=table.name,
                stamp_min=start,
                stamp_max=end,
                partition_id=pid,
                partition_size=size,
                created_at=datetime.now(UTC).isoformat(),
            )
            try:
                self.catalog.record_partition(partition)
            except DuplicateWindow as exc:
                if self.catalog.get_partition(pid) is None:
                    self._discard_segment(pid)
                winner = self.catalog.find_partition(table.name, t)
                if winner is not None:
                    logger.info("lost creation race for %s; using %s", pid, winner.partition_id)
                    return winner, False
                # A writer using another width claimed part of the window; plan again.
                if attempts >= MAX_PLAN_ATTEMPTS:
                    raise
                logger.info("re-planning window for %s@%d: %s", table.name, t, exc)
                continue
            except (UnknownTable, CatalogIoError):
                self._discard_segment(pid)
                raise
            logger.info("created partition %s [%d, %d) for table %s", pid, start, end, table.name)
            return partition, True

    def cover(self, table: TableConfig, start: int, end: int) -> int:
        """
        Materialize every missing window intersecting [start, end).

        Existing partitions are skipped; gaps are filled with windows clipped to their
        neighbours.

        Returns:
            int: Number of partitions created.
        """
        created = 0
        t = start
        while t < end:
            hit = self.catalog.find_partition(table.name, t)
            if hit is not None:
                t = hit.stamp_max
                continue
            partition, was_created = self.materialize(table, t)
            created += int(was_created)
            t = partition.stamp_max
        return created

    def _create_segment(self, table: TableConfig, pid: str, start: int, end: int) -> None:
        try:
            result = self.backend.create_segment(pid, table.name, start, end, table.index_columns)
        except BackendTimeout:
            # Outcome unknown: the create may still have landed.
            if not self.backend.segment_exists(pid):
                raise
            result = "exists"
        if result == "exists":
            logger.debug("segment %s already existed; adopting it", pid)

    def _discard_segment(self, pid: str) -> None:
        try:
            self.backend.drop_segment(pid)
        except BackendError as exc:
            logger.warning("orphan segment %s could not be dropped: %s", pid, exc)
