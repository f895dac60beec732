"""
PartitionManager facade for pmts.

Wires the catalog, a time-bounded storage backend and the lifecycle components behind
the management API: table setup/reconfiguration/drop, routing and writes, and the
periodic sweeps (creation, backfill, reaping, tuning) an external scheduler invokes.

Source of truth
- Records and errors: pmts.core.schema / pmts.core.errors
- Persistence and backends: pmts.io.catalog / pmts.io.backend
- Lifecycle semantics: pmts.lifecycle.*

Notes
- The clock is injectable (defaults to time.time) so lifecycle behavior is testable.
- Every backend call goes through GuardedBackend (settings.backend_timeout).
- Periodic operations return counts and never raise for per-table/per-partition
  failures; those are logged and retried on the next run.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence
from typing import Any

import polars as pl

from pmts.core.constants import DEFAULT_MAX_DAYS, DEFAULT_MIN_DAYS, DEFAULT_PARTITION_SIZE
from pmts.core.constants import DEFAULT_RETENTION_PERIOD, STAMP_COLUMN
from pmts.core.errors import InvalidConfig
from pmts.core.schema import Partition, TableConfig, TableStats
from pmts.core.typing import Clock, PartitionId, Timestamp
from pmts.io.backend import GuardedBackend, ParquetBackend, StorageBackend, stamp_seconds
from pmts.io.catalog import UNCHANGED, PartitionCatalog
from pmts.io.config import PmtsSettings
from pmts.io.errors import SegmentWriteError
from pmts.lifecycle import CreationScheduler, InsertRouter, PartitionMaterializer, RetentionReaper, SizeTuner

logger = logging.getLogger(__name__)

_PID_COLUMN = "__pmts_partition_id"


class PartitionManager:
    """
    Management API over one catalog and one storage backend.

    Attributes:
        settings (PmtsSettings): Runtime settings.
        catalog (PartitionCatalog): Partition catalog.
        backend (GuardedBackend): Time-bounded storage backend.
        clock (Clock): Current time in epoch seconds.

    Examples:
        >>> from pmts import PartitionManager, PmtsSettings  # doctest: +SKIP
        >>> with PartitionManager.open(PmtsSettings(root_dir="data")) as pm:  # doctest: +SKIP
        ...     pm.setup("events", partition_size=86_400, retention_period=7 * 86_400)
        ...     pm.route("events", 1_767_225_600)
    """

    def __init__(
        self,
        catalog: PartitionCatalog,
        backend: StorageBackend,
        settings: PmtsSettings | None = None,
        clock: Clock = time.time,
    ) -> None:
        self.settings = (settings or PmtsSettings()).validate()
        self.catalog = catalog
        if isinstance(backend, GuardedBackend):
            self.backend = backend
        else:
            self.backend = GuardedBackend(
                backend, self.settings.backend_timeout, self.settings.backend_workers
            )
        self.clock = clock
        self.materializer = PartitionMaterializer(catalog, self.backend)
        self.router = InsertRouter(catalog, self.materializer, clock)
        self.scheduler = CreationScheduler(catalog, self.materializer, clock, self.settings.lookahead_seconds)
        self.reaper = RetentionReaper(catalog, self.backend, clock)
        self.tuner = SizeTuner(catalog, self.backend)

    @classmethod
    def open(cls, settings: PmtsSettings | None = None, clock: Clock = time.time) -> PartitionManager:
        """
        Build a manager over the on-disk catalog and Parquet backend under settings.root_dir.

        Args:
            settings (PmtsSettings | None): Settings; PmtsSettings.load() when None.
            clock (Clock): Time source.
        """
        settings = settings or PmtsSettings.load()
        return cls(PartitionCatalog.open(settings), ParquetBackend(settings), settings, clock)

    def close(self) -> None:
        self.backend.close()

    def __enter__(self) -> PartitionManager:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ---------------------------------------------------------------------
    # Table management
    # ---------------------------------------------------------------------

    def _check_retention(self, retention_period: int | None) -> None:
        skew = self.settings.max_clock_skew
        if retention_period is not None and retention_period <= skew:
            raise InvalidConfig(
                f"retention_period ({retention_period}s) must exceed max_clock_skew ({skew}s)"
            )

    def setup(
        self,
        table_name: str,
        partition_size: int = DEFAULT_PARTITION_SIZE,
        retention_period: int | None = DEFAULT_RETENTION_PERIOD,
        index_columns: Sequence[str] = (),
    ) -> TableConfig:
        """
        Register a table for managed partitioning.

        No partition is created; windows appear on first write or scheduler run.

        Raises:
            InvalidConfig: Invalid name/width/retention/index columns, or a retention
                period not exceeding settings.max_clock_skew.
            DuplicateTable: If the table is already registered (or still being dropped).
        """
        TableConfig.new(table_name, partition_size, retention_period, index_columns)
        self._check_retention(retention_period)
        return self.catalog.register_table(table_name, partition_size, retention_period, index_columns)

    def reconfigure(
        self,
        table_name: str,
        partition_size: int | None = None,
        retention_period: int | None = UNCHANGED,
    ) -> TableConfig:
        """
        Change a table's partition width and/or retention period.

        Existing partitions keep their windows; new windows are clipped so they never
        overlap them.

        Raises:
            UnknownTable: If the table is not registered.
            InvalidConfig: On invalid values, or a retention not exceeding max_clock_skew.
        """
        if retention_period is not UNCHANGED and isinstance(retention_period, int):
            self._check_retention(retention_period)
        return self.catalog.update_table(
            table_name, partition_size=partition_size, retention_period=retention_period
        )

    def drop_table(self, table_name: str) -> int:
        """
        Destroy every segment of a table, then its catalog rows and configuration.

        The table is first flagged "dropping" so routing and sweeps stop seeing it. If a
        segment drop fails the error propagates and the table stays flagged with all its
        rows; calling drop_table again resumes.

        Returns:
            int: Number of segments destroyed (already-missing segments are not counted).

        Raises:
            UnknownTable: If the table is not registered.
            BackendUnavailable | BackendTimeout: If a segment could not be dropped.
        """
        self.catalog.mark_dropping(table_name)
        dropped = 0
        for partition in self.catalog.list_partitions(table_name):
            if self.backend.drop_segment(partition.partition_id) == "dropped":
                dropped += 1
        self.catalog.drop_table(table_name)
        logger.info("dropped table %s (%d segments destroyed)", table_name, dropped)
        return dropped

    def list_tables(self) -> list[TableConfig]:
        return self.catalog.list_tables()

    def list_partitions(self, table_name: str) -> list[Partition]:
        self.catalog.get_table(table_name)
        return self.catalog.list_partitions(table_name)

    # ---------------------------------------------------------------------
    # Routing and writes
    # ---------------------------------------------------------------------

    def route(self, table_name: str, timestamp: Timestamp) -> PartitionId:
        """Return the id of the partition a record stamped timestamp belongs to."""
        return self.router.route(table_name, timestamp)

    def insert(self, table_name: str, record: dict[str, Any]) -> PartitionId:
        """
        Route and write a single record.

        Raises:
            SegmentWriteError: If the record lacks a stamp or the write failed.
        """
        if STAMP_COLUMN not in record:
            raise SegmentWriteError(f"record has no {STAMP_COLUMN!r} field")
        pid = self.router.route(table_name, record[STAMP_COLUMN])
        self.backend.write_record(pid, record)
        return pid

    def append(self, table_name: str, df: pl.DataFrame) -> dict[str, Any]:
        """
        Route every row of df by its stamp column and write one part per touched partition.

        Args:
            table_name (str): Target table.
            df (pl.DataFrame): Rows to write; the stamp column holds integer epoch seconds
                or Datetime values.

        Returns:
            dict[str, Any]: Summary with keys:
                - table (str)
                - rows (int): Total rows written
                - partitions (list[str]): Partition ids touched
                - parts (list[dict]): Per-part backend summaries

        Raises:
            UnknownTable: If the table is not registered.
            SegmentWriteError: Missing/invalid stamp column or a failed part write. Parts
                written before the failure remain.
        """
        self.catalog.get_table(table_name)
        if df.is_empty():
            return {"table": table_name, "rows": 0, "partitions": [], "parts": []}

        stamps = stamp_seconds(df)
        mapping = self.router.route_many(table_name, stamps.unique().to_list())
        framed = df.with_columns(
            stamps.replace_strict(
                old=list(mapping.keys()), new=list(mapping.values()), return_dtype=pl.String
            ).alias(_PID_COLUMN)
        )

        parts: list[dict[str, Any]] = []
        total = 0
        pids = sorted(set(mapping.values()))
        for pid in pids:
            sub = framed.filter(pl.col(_PID_COLUMN) == pid).drop(_PID_COLUMN)
            summary = self.backend.write_records(pid, sub)
            total += int(summary["rows"])
            parts.append(summary)
        return {"table": table_name, "rows": total, "partitions": pids, "parts": parts}

    # ---------------------------------------------------------------------
    # Periodic operations
    # ---------------------------------------------------------------------

    def create_due_partitions(self) -> int:
        return self.scheduler.create_due()

    def backfill_partitions(self, table_name: str) -> int:
        return self.scheduler.backfill(table_name)

    def reap_old_partitions(self) -> int:
        return self.reaper.reap()

    def tune_partition_sizes(
        self,
        desired_byte_size: int,
        min_days: int = DEFAULT_MIN_DAYS,
        max_days: int = DEFAULT_MAX_DAYS,
    ) -> dict[str, int]:
        return self.tuner.tune(desired_byte_size, min_days, max_days)

    # ---------------------------------------------------------------------
    # Statistics
    # ---------------------------------------------------------------------

    def table_stats(self) -> list[TableStats]:
        """Per-table totals; O(partitions) backend size calls."""
        return self.catalog.stats_by_table(self.backend.segment_byte_size)

    def total_size(self, table_name: str) -> int:
        """Total bytes held by a table's segments."""
        self.catalog.get_table(table_name)
        return sum(
            self.backend.segment_byte_size(p.partition_id)
            for p in self.catalog.list_partitions(table_name)
        )
