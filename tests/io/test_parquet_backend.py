import glob
import os
import time
from datetime import UTC, datetime
from pathlib import Path

import polars as pl
import pyarrow.parquet as pq
import pytest

from pmts.io.backend import GuardedBackend, ParquetBackend, StorageBackend, stamp_seconds
from pmts.io.config import PmtsSettings
from pmts.io.errors import BackendError, BackendTimeout, BackendUnavailable, SegmentWriteError
from pmts.io.paths import segment_dir

DAY = 86_400
D0 = 1_767_225_600
PID = "events_p_86400_20454"


@pytest.fixture
def backend(tmp_path: Path) -> ParquetBackend:
    return ParquetBackend(PmtsSettings(root_dir=str(tmp_path), compression="zstd"))


def test_satisfies_protocol(backend: ParquetBackend):
    assert isinstance(backend, StorageBackend)


def test_create_is_idempotent(backend: ParquetBackend):
    assert not backend.segment_exists(PID)
    assert backend.create_segment(PID, "events", D0, D0 + DAY, ["device_id"]) == "created"
    assert backend.create_segment(PID, "events", D0, D0 + DAY, ["device_id"]) == "exists"
    assert backend.segment_exists(PID)
    info = backend.read_segment_info(PID)
    assert info is not None
    assert (info.stamp_min, info.stamp_max, info.index_columns) == (D0, D0 + DAY, ("device_id",))
    assert backend.segment_byte_size(PID) == 0


def test_drop_is_idempotent(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY)
    assert backend.drop_segment(PID) == "dropped"
    assert backend.drop_segment(PID) == "not_found"
    assert not backend.segment_exists(PID)
    assert not os.path.exists(segment_dir(backend.settings, PID))


def test_write_records_sorted_with_metadata(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY, ["device_id"])
    df = pl.DataFrame(
        {
            "stamp": [D0 + 30, D0 + 10, D0 + 20, D0 + 5],
            "device_id": ["b", "a", "b", "a"],
            "value": [1.0, 2.0, 3.0, 4.0],
        }
    )

    summary = backend.write_records(PID, df)

    assert summary["rows"] == 4
    assert summary["stamp_min"] == D0 + 5
    assert summary["stamp_max"] == D0 + 30
    assert summary["bytes"] > 0
    assert backend.segment_byte_size(PID) == summary["bytes"]
    assert glob.glob(os.path.join(segment_dir(backend.settings, PID), "*.tmp")) == []

    meta = pq.read_schema(summary["path"]).metadata
    assert meta[b"pmts_table_name"] == b"events"
    assert meta[b"pmts_partition_id"] == PID.encode()
    assert meta[b"pmts_stamp_min"] == str(D0).encode()
    assert meta[b"pmts_stamp_max"] == str(D0 + DAY).encode()

    out = backend.scan_segment(PID).collect()
    assert out.get_column("device_id").to_list() == ["a", "a", "b", "b"]
    assert out.get_column("stamp").to_list() == [D0 + 5, D0 + 10, D0 + 20, D0 + 30]


def test_write_keeps_datetime_stamps_as_written(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY)
    first = datetime(2026, 1, 1, 6, 0, 0, 123456, tzinfo=UTC)
    second = datetime(2026, 1, 1, 5, 59, 59, 999999, tzinfo=UTC)
    backend.write_records(PID, pl.DataFrame({"stamp": [first, second], "value": [1, 2]}))

    out = backend.scan_segment(PID).collect()
    assert out.schema["stamp"] == pl.Datetime("us", "UTC")
    assert out.get_column("stamp").to_list() == [second, first]
    assert out.get_column("value").to_list() == [2, 1]


def test_write_record_appends_single_row(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY)
    backend.write_record(PID, {"stamp": D0 + 7 * 3600, "value": 2})
    backend.write_record(PID, {"stamp": D0 + 6 * 3600, "value": 1})

    out = backend.scan_segment(PID).collect().sort("stamp")
    assert out.get_column("stamp").to_list() == [D0 + 6 * 3600, D0 + 7 * 3600]
    assert out.schema["stamp"] == pl.Int64


def test_write_rejects_rows_outside_window(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY)
    with pytest.raises(SegmentWriteError):
        backend.write_records(PID, pl.DataFrame({"stamp": [D0 + 1, D0 + DAY]}))
    with pytest.raises(SegmentWriteError):
        backend.write_records(PID, pl.DataFrame({"stamp": [D0 - 1]}))
    assert backend.scan_segment(PID).collect().height == 0


def test_write_rejects_missing_segment_and_columns(backend: ParquetBackend):
    with pytest.raises(SegmentWriteError):
        backend.write_records(PID, pl.DataFrame({"stamp": [D0]}))
    backend.create_segment(PID, "events", D0, D0 + DAY, ["device_id"])
    with pytest.raises(SegmentWriteError):
        backend.write_records(PID, pl.DataFrame({"stamp": [D0]}))
    with pytest.raises(SegmentWriteError):
        backend.write_records(PID, pl.DataFrame({"value": [1]}))


def test_empty_write_is_noop(backend: ParquetBackend):
    backend.create_segment(PID, "events", D0, D0 + DAY)
    summary = backend.write_records(PID, pl.DataFrame({"stamp": []}, schema={"stamp": pl.Int64}))
    assert summary["rows"] == 0
    assert backend.segment_byte_size(PID) == 0


def test_scan_missing_segment_raises(backend: ParquetBackend):
    with pytest.raises(BackendError):
        backend.scan_segment(PID)


def test_stamp_seconds_normalizes_dtypes():
    assert stamp_seconds(pl.DataFrame({"stamp": [D0 + 0.7]})).to_list() == [D0]
    dt = pl.DataFrame({"stamp": [datetime(2026, 1, 1, 0, 0, 1)]})
    assert stamp_seconds(dt).to_list() == [D0 + 1]
    with pytest.raises(SegmentWriteError):
        stamp_seconds(pl.DataFrame({"stamp": ["x"]}))
    with pytest.raises(SegmentWriteError):
        stamp_seconds(pl.DataFrame({"stamp": [D0, None]}))


class _SlowBackend:
    def __init__(self, delay: float) -> None:
        self.delay = delay

    def segment_exists(self, partition_id: str) -> bool:
        time.sleep(self.delay)
        return True

    def drop_segment(self, partition_id: str) -> str:
        raise PermissionError("read-only filesystem")

    def segment_byte_size(self, partition_id: str) -> int:
        raise RuntimeError("driver bug")


def test_guarded_backend_times_out_and_maps_os_errors():
    guarded = GuardedBackend(_SlowBackend(0.5), timeout=0.05, workers=2)
    try:
        with pytest.raises(BackendTimeout) as exc_info:
            guarded.segment_exists(PID)
        assert exc_info.value.retryable
        with pytest.raises(BackendUnavailable):
            guarded.drop_segment(PID)
    finally:
        guarded.close()


def test_guarded_backend_without_bound_runs_inline():
    guarded = GuardedBackend(_SlowBackend(0.0), timeout=0)
    assert guarded.segment_exists(PID) is True
    with pytest.raises(BackendUnavailable):
        guarded.drop_segment(PID)


def test_guarded_backend_wraps_unexpected_exceptions():
    guarded = GuardedBackend(_SlowBackend(0.0), timeout=1.0)
    try:
        with pytest.raises(BackendError) as exc_info:
            guarded.segment_byte_size(PID)
        assert not isinstance(exc_info.value, (BackendTimeout, BackendUnavailable))
        assert isinstance(exc_info.value.__cause__, RuntimeError)
    finally:
        guarded.close()
