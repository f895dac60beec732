"""
Durable partition catalog.

Catalog layout (JSON at <root>/catalog.json):
{
  "version": 1,
  "updated_at": "ISO-8601",
  "tables": [
    {"name": "events", "partition_size": 86400, "retention_period": 31536000,
     "index_columns": ["device_id"], "state": "active",
     "created_at": "ISO-8601", "updated_at": "ISO-8601"}
  ],
  "partitions": [
    {"table_name": "events", "stamp_min": 1767225600, "stamp_max": 1767312000,
     "partition_id": "events_p_86400_20454", "partition_size": 86400,
     "created_at": "ISO-8601"}
  ]
}

Notes:
- Every public mutation is one transaction: it runs under the catalog lock, persists the
  whole document atomically (tmp → fsync → os.replace) and rolls the in-memory state back
  if persisting fails.
- Per table, partitions are kept sorted by stamp_min with a parallel list of starts, so
  find_partition() is a bisect instead of a scan.
- A catalog created without a path is purely in-memory.
- Single-process ownership: the document is read once at open time.
"""

from __future__ import annotations

import bisect
import logging
import os
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from pmts.core.align import to_epoch_seconds
from pmts.core.constants import CATALOG_VERSION
from pmts.core.errors import DuplicateTable, DuplicateWindow, UnknownTable
from pmts.core.schema import Partition, TableConfig, TableStats
from pmts.core.serde import json_dumps_canonical, json_loads
from pmts.core.typing import Timestamp

from .config import PmtsSettings
from .errors import CatalogIoError
from .fs import write_bytes_atomic
from .paths import catalog_path

logger = logging.getLogger(__name__)

# Sentinel for "leave unchanged" where None is a meaningful value (unbounded retention).
UNCHANGED: Any = object()


class PartitionCatalog:
    """
    Durable record of table configurations and partition windows.

    Attributes:
        path (str | None): Catalog document path, or None for an in-memory catalog.
    """

    def __init__(self, path: str | None = None) -> None:
        self.path = path
        self._lock = threading.RLock()
        self._tables: dict[str, TableConfig] = {}
        self._partitions: dict[str, list[Partition]] = {}
        self._starts: dict[str, list[int]] = {}
        self._by_id: dict[str, Partition] = {}
        if path is not None and os.path.exists(path):
            self._load()

    @classmethod
    def open(cls, settings: PmtsSettings) -> PartitionCatalog:
        """Open (or create on first write) the catalog document under settings.root_dir."""
        return cls(catalog_path(settings))

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _snapshot(self) -> tuple[Any, ...]:
        return (
            dict(self._tables),
            {k: list(v) for k, v in self._partitions.items()},
            {k: list(v) for k, v in self._starts.items()},
            dict(self._by_id),
        )

    def _restore(self, snap: tuple[Any, ...]) -> None:
        self._tables, self._partitions, self._starts, self._by_id = snap

    def to_json_obj(self) -> dict[str, Any]:
        with self._lock:
            return {
                "version": CATALOG_VERSION,
                "updated_at": datetime.now(UTC).isoformat(),
                "tables": [self._tables[n].model_dump(mode="json") for n in sorted(self._tables)],
                "partitions": [
                    p.model_dump(mode="json")
                    for name in sorted(self._partitions)
                    for p in self._partitions[name]
                ],
            }

    def _persist(self) -> None:
        if self.path is None:
            return
        payload = json_dumps_canonical(self.to_json_obj()).encode("utf-8")
        try:
            write_bytes_atomic(self.path, payload)
        except OSError as exc:
            raise CatalogIoError(f"failed to write catalog {self.path!r}: {exc}") from exc

    def _load(self) -> None:
        assert self.path is not None
        try:
            with open(self.path, "rb") as fh:
                obj = json_loads(fh.read())
        except (OSError, ValueError) as exc:
            raise CatalogIoError(f"failed to read catalog {self.path!r}: {exc}") from exc
        if not isinstance(obj, dict):
            raise CatalogIoError(f"catalog {self.path!r} is not a JSON object")
        version = obj.get("version")
        if version != CATALOG_VERSION:
            raise CatalogIoError(
                f"catalog {self.path!r} has version {version!r}; expected {CATALOG_VERSION}"
            )
        try:
            tables = [TableConfig.model_validate(t) for t in obj.get("tables") or []]
            partitions = [Partition.model_validate(p) for p in obj.get("partitions") or []]
        except ValidationError as exc:
            raise CatalogIoError(f"catalog {self.path!r} is corrupt: {exc}") from exc

        for cfg in tables:
            self._tables[cfg.name] = cfg
            self._partitions[cfg.name] = []
            self._starts[cfg.name] = []
        try:
            for p in sorted(partitions, key=lambda p: (p.table_name, p.stamp_min)):
                self._insert(p)
        except (DuplicateWindow, UnknownTable) as exc:
            raise CatalogIoError(f"catalog {self.path!r} violates its invariants: {exc}") from exc
        logger.debug("loaded catalog %s: %d tables, %d partitions", self.path, len(tables), len(partitions))

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        """Run a mutation under the lock; persist on success, roll back on any failure."""
        with self._lock:
            snap = self._snapshot()
            try:
                yield
                self._persist()
            except BaseException:
                self._restore(snap)
                raise

    # ------------------------------------------------------------------
    # Tables
    # ------------------------------------------------------------------

    def register_table(
        self,
        name: str,
        partition_size: int,
        retention_period: int | None,
        index_columns: Sequence[str] = (),
    ) -> TableConfig:
        """
        Register a new managed table.

        Raises:
            InvalidConfig: If the configuration is invalid (nothing is mutated).
            DuplicateTable: If name is already registered.
            CatalogIoError: If the catalog could not be persisted.
        """
        cfg = TableConfig.new(name, partition_size, retention_period, index_columns)
        with self._transaction():
            if name in self._tables:
                raise DuplicateTable(name)
            self._tables[name] = cfg
            self._partitions[name] = []
            self._starts[name] = []
        logger.info(
            "registered table %s (partition_size=%s, retention_period=%s)",
            name,
            partition_size,
            retention_period,
        )
        return cfg

    def get_table(self, name: str, *, include_dropping: bool = False) -> TableConfig:
        """
        Return a table's configuration.

        Raises:
            UnknownTable: If the table is not registered, or is being dropped and
                include_dropping is False.
        """
        with self._lock:
            cfg = self._tables.get(name)
        if cfg is None or (not include_dropping and not cfg.is_active):
            raise UnknownTable(name)
        return cfg

    def list_tables(self, *, include_dropping: bool = False) -> list[TableConfig]:
        """Return table configurations ordered by name."""
        with self._lock:
            cfgs = [self._tables[n] for n in sorted(self._tables)]
        if include_dropping:
            return cfgs
        return [c for c in cfgs if c.is_active]

    def update_table(
        self,
        name: str,
        *,
        partition_size: int | None = None,
        retention_period: int | None = UNCHANGED,
    ) -> TableConfig:
        """
        Change a table's partition width and/or retention period.

        Args:
            name (str): Table name.
            partition_size (int | None): New width, or None to keep the current one.
            retention_period (int | None): New retention; None means unbounded. Omit
                to keep the current value.

        Returns:
            TableConfig: The updated configuration.

        Notes:
            Existing partitions are never resized; only later partitions use the new width.
        """
        changes: dict[str, Any] = {}
        if partition_size is not None:
            changes["partition_size"] = partition_size
        if retention_period is not UNCHANGED:
            changes["retention_period"] = retention_period
        with self._transaction():
            cfg = self.get_table(name)
            if not changes:
                return cfg
            updated = cfg.with_changes(**changes)
            self._tables[name] = updated
        logger.info("updated table %s: %s", name, changes)
        return updated

    def mark_dropping(self, name: str) -> TableConfig:
        """
        Flag a table as being dropped; routing and periodic sweeps stop seeing it.

        Idempotent for a table already flagged.

        Raises:
            UnknownTable: If the table is not registered.
        """
        with self._transaction():
            cfg = self.get_table(name, include_dropping=True)
            if cfg.state == "dropping":
                return cfg
            updated = cfg.with_changes(state="dropping")
            self._tables[name] = updated
        return updated

    def drop_table(self, name: str) -> list[Partition]:
        """
        Atomically remove a table's configuration and every partition row.

        Physical segments are not touched here; see PartitionManager.drop_table for the
        full mark → destroy → remove sequence.

        Returns:
            list[Partition]: The partition rows that were removed.

        Raises:
            UnknownTable: If the table is not registered.
        """
        with self._transaction():
            if name not in self._tables:
                raise UnknownTable(name)
            removed = self._partitions.pop(name, [])
            self._starts.pop(name, None)
            for p in removed:
                self._by_id.pop(p.partition_id, None)
            del self._tables[name]
        logger.info("dropped table %s from catalog (%d partitions)", name, len(removed))
        return removed

    # ------------------------------------------------------------------
    # Partitions
    # ------------------------------------------------------------------

    def _insert(self, partition: Partition) -> None:
        name = partition.table_name
        if name not in self._tables:
            raise UnknownTable(name)
        if partition.partition_id in self._by_id:
            raise DuplicateWindow(f"partition id already recorded: {partition.partition_id!r}")
        parts = self._partitions[name]
        starts = self._starts[name]
        i = bisect.bisect_right(starts, partition.stamp_min)
        # Windows are sorted and disjoint, so only the two neighbours can overlap.
        for j in (i - 1, i):
            if 0 <= j < len(parts) and parts[j].overlaps(partition):
                raise DuplicateWindow(
                    f"window [{partition.stamp_min}, {partition.stamp_max}) of {partition.partition_id!r} "
                    f"overlaps {parts[j].partition_id!r} [{parts[j].stamp_min}, {parts[j].stamp_max})"
                )
        parts.insert(i, partition)
        starts.insert(i, partition.stamp_min)
        self._by_id[partition.partition_id] = partition

    def record_partition(self, partition: Partition) -> Partition:
        """
        Insert a partition row.

        Raises:
            UnknownTable: If the owning table is not registered or is being dropped.
            DuplicateWindow: If the window overlaps an existing partition of the same
                table, or the partition id is already used.
        """
        with self._transaction():
            cfg = self._tables.get(partition.table_name)
            if cfg is None or not cfg.is_active:
                raise UnknownTable(partition.table_name)
            self._insert(partition)
        return partition

    def remove_partition(self, partition_id: str) -> bool:
        """
        Remove a partition row.

        Returns:
            bool: True if a row was removed, False if it was already absent.
        """
        with self._transaction():
            p = self._by_id.pop(partition_id, None)
            if p is None:
                return False
            parts = self._partitions[p.table_name]
            starts = self._starts[p.table_name]
            i = bisect.bisect_left(starts, p.stamp_min)
            del parts[i]
            del starts[i]
        return True

    def find_partition(self, table_name: str, timestamp: Timestamp) -> Partition | None:
        """
        Return the partition of table_name whose window contains timestamp, if any.

        Served by bisecting the table's sorted window starts; never scans the catalog.
        """
        t = to_epoch_seconds(timestamp)
        with self._lock:
            starts = self._starts.get(table_name)
            if not starts:
                return None
            i = bisect.bisect_right(starts, t) - 1
            if i < 0:
                return None
            p = self._partitions[table_name][i]
        return p if p.contains(t) else None

    def neighbours(self, table_name: str, timestamp: Timestamp) -> tuple[Partition | None, Partition | None]:
        """
        Return the closest partitions before and after timestamp.

        Returns:
            tuple: (last partition starting at or before timestamp, first partition
            starting after it); either may be None.
        """
        t = to_epoch_seconds(timestamp)
        with self._lock:
            parts = self._partitions.get(table_name) or []
            starts = self._starts.get(table_name) or []
            i = bisect.bisect_right(starts, t)
            prev = parts[i - 1] if i > 0 else None
            nxt = parts[i] if i < len(parts) else None
        return prev, nxt

    def latest_partition(self, table_name: str) -> Partition | None:
        """Return the partition with the greatest window, if any."""
        with self._lock:
            parts = self._partitions.get(table_name)
            return parts[-1] if parts else None

    def get_partition(self, partition_id: str) -> Partition | None:
        with self._lock:
            return self._by_id.get(partition_id)

    def list_partitions(self, table_name: str) -> list[Partition]:
        """
        Return a table's partitions ordered by stamp_min.

        Raises:
            UnknownTable: If the table is not registered.
        """
        with self._lock:
            if table_name not in self._tables:
                raise UnknownTable(table_name)
            return list(self._partitions[table_name])

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    def stats_by_table(self, size_of: Callable[[str], int]) -> list[TableStats]:
        """
        Aggregate per-table size statistics.

        Args:
            size_of (Callable[[str], int]): Byte size of a partition's segment,
                typically StorageBackend.segment_byte_size.

        Returns:
            list[TableStats]: One entry per active table, ordered by name.

        Notes:
            O(partitions): every segment is sized on each call; nothing is cached.
            Sizing happens outside the catalog lock.
        """
        with self._lock:
            snapshot = [(cfg, list(self._partitions[cfg.name])) for cfg in self.list_tables()]
        out: list[TableStats] = []
        for cfg, parts in snapshot:
            total = sum(int(size_of(p.partition_id)) for p in parts)
            count = len(parts)
            out.append(
                TableStats(
                    table_name=cfg.name,
                    total_size=total,
                    partition_count=count,
                    avg_size=total // count if count else 0,
                    partition_size=cfg.partition_size,
                )
            )
        return out
