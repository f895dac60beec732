from __future__ import annotations

import pytest

from pmts.core.errors import InvalidConfig

DAY = 86_400
D0 = 1_767_225_600


def _route_days(manager, table: str, days: int) -> list[str]:
    return [manager.route(table, D0 + k * DAY) for k in range(days)]


def test_tune_widens_small_partitions(manager, memory_backend, catalog):
    manager.setup("events", partition_size=DAY, retention_period=None)
    for pid in _route_days(manager, "events", 3):
        memory_backend.sizes[pid] = 10_000

    changed = manager.tune_partition_sizes(140_000)

    assert changed == {"events": 14 * DAY}
    assert catalog.get_table("events").partition_size == 14 * DAY
    # Existing partitions keep their width; the next one uses the new width.
    assert all(p.partition_size == DAY for p in catalog.list_partitions("events"))
    manager.route("events", D0 + 30 * DAY)
    assert catalog.latest_partition("events").partition_size == 14 * DAY


def test_tune_clamps_to_day_bounds(manager, memory_backend):
    manager.setup("events", partition_size=DAY, retention_period=None)
    for pid in _route_days(manager, "events", 2):
        memory_backend.sizes[pid] = 10**9

    assert manager.tune_partition_sizes(1_000, min_days=2, max_days=10) == {"events": 2 * DAY}


def test_tables_without_signal_are_untouched(manager, memory_backend, catalog):
    manager.setup("empty", partition_size=DAY, retention_period=None)
    manager.setup("zero", partition_size=DAY, retention_period=None)
    _route_days(manager, "zero", 2)  # segments exist but hold no bytes

    assert manager.tune_partition_sizes(1_000_000) == {}
    assert catalog.get_table("empty").partition_size == DAY
    assert catalog.get_table("zero").partition_size == DAY


def test_unchanged_width_is_not_reported(manager, memory_backend):
    manager.setup("events", partition_size=7 * DAY, retention_period=None)
    pid = manager.route("events", D0)
    memory_backend.sizes[pid] = 70_000

    assert manager.tune_partition_sizes(70_000) == {}


@pytest.mark.parametrize(
    "args",
    [(0,), (-1,), (1000, 0, 5), (1000, 9, 3)],
)
def test_invalid_arguments(manager, args):
    with pytest.raises(InvalidConfig):
        manager.tune_partition_sizes(*args)
