from __future__ import annotations

import threading
import time
from collections.abc import Callable, Iterator, Sequence
from typing import Any

import polars as pl
import pytest

from pmts.core.constants import DAY_SECONDS, STAMP_COLUMN
from pmts.io.backend import stamp_seconds
from pmts.io.catalog import PartitionCatalog
from pmts.io.config import PmtsSettings
from pmts.io.errors import SegmentWriteError
from pmts.manager import PartitionManager

# 2026-01-01T00:00:00Z, a multiple of one day.
D0 = 1_767_225_600


class FakeClock:
    """Manually advanced epoch-seconds clock."""

    def __init__(self, now: float) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class MemoryBackend:
    """
    In-memory StorageBackend with fault injection.

    fail_next(op, exc) makes the next call of op raise exc; with landed=True the call's
    effect is applied before raising (an ambiguous outcome).
    """

    def __init__(self, bytes_per_row: int = 100) -> None:
        self.bytes_per_row = bytes_per_row
        self.segments: dict[str, dict[str, Any]] = {}
        self.rows: dict[str, list[dict[str, Any]]] = {}
        self.sizes: dict[str, int] = {}
        self.calls: list[tuple[str, str]] = []
        self.create_delay = 0.0
        self._failures: dict[str, list[tuple[BaseException, bool]]] = {}
        self._lock = threading.Lock()

    def fail_next(self, op: str, exc: BaseException, *, landed: bool = False, times: int = 1) -> None:
        self._failures.setdefault(op, []).extend([(exc, landed)] * times)

    def _pending_failure(self, op: str, pid: str) -> tuple[BaseException, bool] | None:
        with self._lock:
            self.calls.append((op, pid))
            queue = self._failures.get(op)
            return queue.pop(0) if queue else None

    def count(self, op: str) -> int:
        return sum(1 for name, _ in self.calls if name == op)

    def create_segment(
        self,
        partition_id: str,
        table_name: str,
        stamp_min: int,
        stamp_max: int,
        index_columns: Sequence[str] = (),
    ) -> str:
        failure = self._pending_failure("create_segment", partition_id)
        if failure is not None and not failure[1]:
            raise failure[0]
        if self.create_delay:
            time.sleep(self.create_delay)
        with self._lock:
            if partition_id in self.segments:
                result = "exists"
            else:
                self.segments[partition_id] = {
                    "table_name": table_name,
                    "stamp_min": stamp_min,
                    "stamp_max": stamp_max,
                    "index_columns": tuple(index_columns),
                }
                self.rows[partition_id] = []
                result = "created"
        if failure is not None:
            raise failure[0]
        return result

    def drop_segment(self, partition_id: str) -> str:
        failure = self._pending_failure("drop_segment", partition_id)
        if failure is not None:
            raise failure[0]
        with self._lock:
            if self.segments.pop(partition_id, None) is None:
                return "not_found"
            self.rows.pop(partition_id, None)
            self.sizes.pop(partition_id, None)
            return "dropped"

    def segment_exists(self, partition_id: str) -> bool:
        failure = self._pending_failure("segment_exists", partition_id)
        if failure is not None:
            raise failure[0]
        return partition_id in self.segments

    def segment_byte_size(self, partition_id: str) -> int:
        if partition_id in self.sizes:
            return self.sizes[partition_id]
        return self.bytes_per_row * len(self.rows.get(partition_id, []))

    def write_records(self, partition_id: str, df: pl.DataFrame) -> dict[str, Any]:
        failure = self._pending_failure("write_records", partition_id)
        if failure is not None:
            raise failure[0]
        seg = self.segments.get(partition_id)
        if seg is None:
            raise SegmentWriteError(f"segment {partition_id!r} does not exist")
        stamps = stamp_seconds(df)
        if df.height and (stamps.min() < seg["stamp_min"] or stamps.max() >= seg["stamp_max"]):
            raise SegmentWriteError(f"rows outside segment {partition_id!r}")
        rows = df.to_dicts()
        with self._lock:
            self.rows[partition_id].extend(rows)
        return {"partition_id": partition_id, "rows": len(rows), "bytes": self.bytes_per_row * len(rows)}

    def write_record(self, partition_id: str, record: dict[str, Any]) -> dict[str, Any]:
        return self.write_records(partition_id, pl.from_dicts([record]))


@pytest.fixture
def clock() -> FakeClock:
    # Midday, so day-aligned windows never start exactly at "now".
    return FakeClock(D0 + DAY_SECONDS // 2)


@pytest.fixture
def memory_backend() -> MemoryBackend:
    return MemoryBackend()


@pytest.fixture
def catalog() -> PartitionCatalog:
    return PartitionCatalog()


@pytest.fixture
def make_manager(
    catalog: PartitionCatalog, memory_backend: MemoryBackend, clock: FakeClock
) -> Iterator[Callable[..., PartitionManager]]:
    """Build managers over the in-memory catalog/backend; settings overrides as kwargs."""
    created: list[PartitionManager] = []

    def _make(**overrides: Any) -> PartitionManager:
        settings = PmtsSettings(**overrides)
        pm = PartitionManager(catalog, memory_backend, settings, clock)
        created.append(pm)
        return pm

    yield _make
    for pm in created:
        pm.close()


@pytest.fixture
def manager(make_manager: Callable[..., PartitionManager]) -> PartitionManager:
    return make_manager()


def stamped_frame(stamps: list[int], **columns: list[Any]) -> pl.DataFrame:
    return pl.DataFrame({STAMP_COLUMN: stamps, **columns})


@pytest.fixture
def frame() -> Callable[..., pl.DataFrame]:
    return stamped_frame
