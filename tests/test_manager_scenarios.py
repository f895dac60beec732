from __future__ import annotations

import threading
from datetime import UTC, datetime, timedelta
from pathlib import Path

import polars as pl
import pytest

from pmts import PartitionManager, PmtsSettings, __version__
from pmts.core.errors import DuplicateTable, InvalidConfig, UnknownTable
from pmts.io.backend import ParquetBackend
from pmts.io.catalog import PartitionCatalog
from pmts.io.errors import BackendUnavailable, SegmentWriteError

DAY = 86_400
D0 = 1_767_225_600  # the fixture clock starts at D0 + 12h


def _assert_disjoint(partitions) -> None:
    for a, b in zip(partitions, partitions[1:]):
        assert a.stamp_max <= b.stamp_min


def test_version():
    assert __version__ == "0.3.0"


def test_ten_days_seven_day_retention(manager, catalog, clock):
    manager.setup("t", partition_size=DAY, retention_period=7 * DAY)
    ids = [manager.route("t", D0 + k * DAY + DAY // 2) for k in range(10)]

    parts = manager.list_partitions("t")
    assert len(parts) == 10
    assert len(set(ids)) == 10
    _assert_disjoint(parts)

    clock.advance(8 * DAY)
    assert manager.reap_old_partitions() == 1

    remaining = manager.list_partitions("t")
    assert len(remaining) == 9
    assert ids[0] not in {p.partition_id for p in remaining}


def test_two_simultaneous_routes_share_one_row(manager, memory_backend, catalog):
    manager.setup("t", partition_size=DAY, retention_period=7 * DAY)
    memory_backend.create_delay = 0.05
    barrier = threading.Barrier(2)
    out: dict[int, str] = {}

    def _route(i: int, ts: int) -> None:
        barrier.wait()
        out[i] = manager.route("t", ts)

    threads = [
        threading.Thread(target=_route, args=(0, D0 + 100)),
        threading.Thread(target=_route, args=(1, D0 + 200)),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert out[0] == out[1]
    assert len(catalog.list_partitions("t")) == 1


def test_setup_validation(manager):
    with pytest.raises(InvalidConfig):
        manager.setup("Bad-Name")
    with pytest.raises(InvalidConfig):
        manager.setup("t", partition_size=0)
    with pytest.raises(InvalidConfig):
        manager.setup("t", retention_period=-DAY)
    # retention must exceed the tolerated clock skew (300 s by default)
    with pytest.raises(InvalidConfig):
        manager.setup("t", partition_size=60, retention_period=300)
    assert manager.list_tables() == []

    cfg = manager.setup("t", partition_size=60, retention_period=301)
    assert cfg.retention_period == 301
    with pytest.raises(DuplicateTable):
        manager.setup("t")


def test_reconfigure(manager):
    manager.setup("t", partition_size=DAY, retention_period=7 * DAY)
    assert manager.reconfigure("t", retention_period=None).retention_period is None
    assert manager.reconfigure("t", partition_size=2 * DAY).partition_size == 2 * DAY
    with pytest.raises(InvalidConfig):
        manager.reconfigure("t", retention_period=10)
    with pytest.raises(UnknownTable):
        manager.reconfigure("missing", partition_size=DAY)


def test_drop_table_destroys_segments_and_rows(manager, memory_backend, catalog):
    manager.setup("t", partition_size=DAY, retention_period=7 * DAY)
    manager.setup("keep", partition_size=DAY, retention_period=7 * DAY)
    for k in range(3):
        manager.route("t", D0 + k * DAY)
    kept = manager.route("keep", D0)

    assert manager.drop_table("t") == 3
    assert [c.name for c in manager.list_tables()] == ["keep"]
    assert set(memory_backend.segments) == {kept}
    with pytest.raises(UnknownTable):
        manager.drop_table("t")
    with pytest.raises(UnknownTable):
        manager.list_partitions("t")


def test_interrupted_drop_resumes(manager, memory_backend, catalog):
    manager.setup("t", partition_size=DAY, retention_period=7 * DAY)
    for k in range(3):
        manager.route("t", D0 + k * DAY)
    memory_backend.fail_next("drop_segment", BackendUnavailable("backend down"))

    with pytest.raises(BackendUnavailable):
        manager.drop_table("t")

    # Half-dropped table is invisible to routing and sweeps, but keeps its rows.
    with pytest.raises(UnknownTable):
        manager.route("t", D0)
    with pytest.raises(DuplicateTable):
        manager.setup("t")
    assert manager.create_due_partitions() == 0
    assert len(catalog.list_partitions("t")) == 3

    assert manager.drop_table("t") == 3
    assert memory_backend.segments == {}
    assert catalog.list_tables(include_dropping=True) == []


def test_append_routes_rows_per_partition(manager, memory_backend, frame):
    manager.setup("t", partition_size=DAY, retention_period=30 * DAY, index_columns=["device_id"])
    df = frame(
        [D0 + 10, D0 + DAY + 5, D0 + 20, D0 + 2 * DAY, D0 + DAY + 1],
        device_id=["a", "b", "a", "c", "b"],
        value=[1.0, 2.0, 3.0, 4.0, 5.0],
    )

    summary = manager.append("t", df)

    assert summary["table"] == "t"
    assert summary["rows"] == 5
    assert len(summary["partitions"]) == 3
    assert sorted(len(memory_backend.rows[pid]) for pid in summary["partitions"]) == [1, 2, 2]
    for pid in summary["partitions"]:
        seg = memory_backend.segments[pid]
        assert all(seg["stamp_min"] <= r["stamp"] < seg["stamp_max"] for r in memory_backend.rows[pid])
        assert all("__pmts_partition_id" not in r for r in memory_backend.rows[pid])


def test_append_accepts_datetime_stamps(manager, memory_backend):
    manager.setup("t", partition_size=DAY, retention_period=30 * DAY)
    start = datetime(2026, 1, 1, 6, 0, tzinfo=UTC)
    df = pl.DataFrame({"stamp": [start, start + timedelta(days=1)], "value": [1, 2]})

    summary = manager.append("t", df)

    assert summary["rows"] == 2
    assert summary["partitions"] == sorted(
        [f"t_p_{DAY}_{D0 // DAY}", f"t_p_{DAY}_{D0 // DAY + 1}"]
    )
    stored = [r["stamp"] for pid in summary["partitions"] for r in memory_backend.rows[pid]]
    assert sorted(stored) == [start, start + timedelta(days=1)]


def test_append_edge_cases(manager):
    manager.setup("t", partition_size=DAY, retention_period=30 * DAY)
    empty = manager.append("t", pl.DataFrame({"stamp": []}, schema={"stamp": pl.Int64}))
    assert empty == {"table": "t", "rows": 0, "partitions": [], "parts": []}
    with pytest.raises(SegmentWriteError):
        manager.append("t", pl.DataFrame({"value": [1]}))
    with pytest.raises(UnknownTable):
        manager.append("missing", pl.DataFrame({"stamp": [D0]}))


def test_insert_single_record(manager, memory_backend):
    manager.setup("t", partition_size=DAY, retention_period=30 * DAY)
    pid = manager.insert("t", {"stamp": D0 + 42, "value": 7})
    assert memory_backend.rows[pid] == [{"stamp": D0 + 42, "value": 7}]
    with pytest.raises(SegmentWriteError):
        manager.insert("t", {"value": 7})


def test_table_stats_and_total_size(manager, frame):
    manager.setup("t", partition_size=DAY, retention_period=30 * DAY)
    manager.setup("empty", partition_size=DAY, retention_period=30 * DAY)
    manager.append("t", frame([D0, D0 + 1, D0 + 2, D0 + DAY]))  # 3 rows + 1 row, 100 bytes/row

    stats = {s.table_name: s for s in manager.table_stats()}

    assert stats["t"].total_size == 400
    assert stats["t"].partition_count == 2
    assert stats["t"].avg_size == 200
    assert stats["t"].partition_size == DAY
    assert (stats["empty"].partition_count, stats["empty"].avg_size) == (0, 0)
    assert manager.total_size("t") == 400
    assert manager.total_size("empty") == 0
    with pytest.raises(UnknownTable):
        manager.total_size("missing")


def test_end_to_end_on_disk(tmp_path: Path, clock):
    settings = PmtsSettings(root_dir=str(tmp_path), lookahead_seconds=DAY)
    with PartitionManager.open(settings, clock=clock) as pm:
        pm.setup("events", partition_size=DAY, retention_period=7 * DAY, index_columns=["device_id"])
        summary = pm.append(
            "events",
            pl.DataFrame({"stamp": [D0 + 5, D0 + 1], "device_id": ["b", "a"], "value": [1, 2]}),
        )
        assert pm.create_due_partitions() == 1
        assert pm.total_size("events") > 0

    (pid,) = summary["partitions"]
    reopened = PartitionCatalog.open(settings)
    assert [p.stamp_min for p in reopened.list_partitions("events")] == [D0, D0 + DAY]
    body = ParquetBackend(settings).scan_segment(pid).collect()
    assert body.get_column("device_id").to_list() == ["a", "b"]

    clock.advance(9 * DAY)
    with PartitionManager.open(settings, clock=clock) as pm:
        assert pm.reap_old_partitions() == 2
        assert pm.drop_table("events") == 0
    assert PartitionCatalog.open(settings).list_tables() == []
    assert not (tmp_path / "segments" / pid).exists()
