"""
Storage backends for partition segments.

Overview
- StorageBackend: the protocol the lifecycle components drive (create/drop/exists/size
  plus row writes). Any object satisfying it can replace the bundled backend.
- ParquetBackend: local-filesystem backend. One directory per segment holding a
  segment.json marker (its presence defines existence) and append-only Parquet parts.
- GuardedBackend: wraps any backend and bounds every call with a timeout, mapping OSError
  to BackendUnavailable, expiry to BackendTimeout and any other non-pmts failure to
  BackendError.

Source of truth
- Layout: pmts.io.paths (segments/<partition_id>/segment.json, part-<uuid>.parquet).
- Stamp column: pmts.core.constants.STAMP_COLUMN.
- Errors: pmts.io.errors.

Notes
- Parts are written tmp → fsync → os.replace and embed key-value metadata:
    b"pmts_table_name", b"pmts_partition_id", b"pmts_stamp_min", b"pmts_stamp_max"
- create_segment and drop_segment are idempotent and report which outcome occurred.
- A timed-out call keeps running on its worker thread; its outcome is unknown to the caller.
"""

from __future__ import annotations

import logging
import os
import uuid
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeout
from dataclasses import asdict, dataclass
from datetime import UTC, datetime
from typing import Any, Literal, Protocol, TypeVar, runtime_checkable

import polars as pl
import pyarrow as pa
import pyarrow.parquet as pq

from pmts.core.constants import STAMP_COLUMN
from pmts.core.errors import PmtsError
from pmts.core.serde import json_dumps_canonical, json_loads

from .config import PmtsSettings
from .errors import BackendError, BackendTimeout, BackendUnavailable, SegmentWriteError
from .fs import exists, fsync_path, makedirs, remove_file, remove_tree, rename_atomic
from .fs import tree_byte_size, walk_parquet_files, write_bytes_atomic
from .paths import part_paths, segment_dir, segment_marker_path

__all__ = [
    "CreateResult",
    "DropResult",
    "StorageBackend",
    "SegmentInfo",
    "ParquetBackend",
    "GuardedBackend",
    "stamp_seconds",
]

logger = logging.getLogger(__name__)

CreateResult = Literal["created", "exists"]
DropResult = Literal["dropped", "not_found"]

T = TypeVar("T")

_SORT_KEY = "__pmts_stamp_key"


@runtime_checkable
class StorageBackend(Protocol):
    """Physical store of partition segments."""

    def create_segment(
        self,
        partition_id: str,
        table_name: str,
        stamp_min: int,
        stamp_max: int,
        index_columns: Sequence[str] = (),
    ) -> CreateResult: ...

    def drop_segment(self, partition_id: str) -> DropResult: ...

    def segment_exists(self, partition_id: str) -> bool: ...

    def segment_byte_size(self, partition_id: str) -> int: ...

    def write_records(self, partition_id: str, df: pl.DataFrame) -> dict[str, Any]: ...

    def write_record(self, partition_id: str, record: dict[str, Any]) -> dict[str, Any]: ...


def stamp_seconds(df: pl.DataFrame, column: str = STAMP_COLUMN) -> pl.Series:
    """
    Return the stamp column of df as Int64 epoch seconds.

    Integer columns are taken as epoch seconds, Datetime columns are converted (naive
    values are UTC), float columns are floored.

    Raises:
        SegmentWriteError: If the column is missing, has an unsupported dtype or holds nulls.
    """
    if column not in df.columns:
        raise SegmentWriteError(f"column {column!r} is required")
    s = df.get_column(column)
    dtype = s.dtype
    if isinstance(dtype, pl.Datetime):
        out = s.dt.epoch("s")
    elif dtype.is_integer():
        out = s.cast(pl.Int64)
    elif dtype.is_float():
        out = s.floor().cast(pl.Int64)
    else:
        raise SegmentWriteError(f"column {column!r} has unsupported dtype {dtype}")
    if out.null_count():
        raise SegmentWriteError(f"column {column!r} contains nulls")
    return out.cast(pl.Int64).alias(column)


@dataclass(slots=True, frozen=True)
class SegmentInfo:
    """
    Contents of a segment's marker document.

    Attributes:
        partition_id (str): Segment identifier.
        table_name (str): Owning table.
        stamp_min (int): Inclusive window start.
        stamp_max (int): Exclusive window end.
        index_columns (tuple[str, ...]): Sort/index columns (stamp appended on write).
        created_at (str): ISO-8601 creation time.
    """

    partition_id: str
    table_name: str
    stamp_min: int
    stamp_max: int
    index_columns: tuple[str, ...] = ()
    created_at: str = ""

    def to_json_obj(self) -> dict[str, Any]:
        obj = asdict(self)
        obj["index_columns"] = list(self.index_columns)
        return obj

    @classmethod
    def from_json_obj(cls, obj: dict[str, Any]) -> SegmentInfo:
        return cls(
            partition_id=str(obj["partition_id"]),
            table_name=str(obj["table_name"]),
            stamp_min=int(obj["stamp_min"]),
            stamp_max=int(obj["stamp_max"]),
            index_columns=tuple(str(c) for c in obj.get("index_columns") or ()),
            created_at=str(obj.get("created_at", "")),
        )


class ParquetBackend:
    """
    Local-filesystem segment store.

    Attributes:
        settings (PmtsSettings): Root directory, compression and row group size.
    """

    def __init__(self, settings: PmtsSettings) -> None:
        self.settings = settings

    def read_segment_info(self, partition_id: str) -> SegmentInfo | None:
        """Return the segment's marker contents, or None if the segment does not exist."""
        path = segment_marker_path(self.settings, partition_id)
        try:
            with open(path, "rb") as fh:
                obj = json_loads(fh.read())
        except FileNotFoundError:
            return None
        except ValueError as exc:
            raise BackendError(f"segment marker {path!r} is corrupt: {exc}") from exc
        return SegmentInfo.from_json_obj(obj)

    def create_segment(
        self,
        partition_id: str,
        table_name: str,
        stamp_min: int,
        stamp_max: int,
        index_columns: Sequence[str] = (),
    ) -> CreateResult:
        marker = segment_marker_path(self.settings, partition_id)
        if exists(marker):
            return "exists"
        info = SegmentInfo(
            partition_id=partition_id,
            table_name=table_name,
            stamp_min=int(stamp_min),
            stamp_max=int(stamp_max),
            index_columns=tuple(index_columns),
            created_at=datetime.now(UTC).isoformat(),
        )
        write_bytes_atomic(marker, json_dumps_canonical(info.to_json_obj()).encode("utf-8"))
        logger.debug("created segment %s [%d, %d)", partition_id, stamp_min, stamp_max)
        return "created"

    def drop_segment(self, partition_id: str) -> DropResult:
        path = segment_dir(self.settings, partition_id)
        if not remove_tree(path):
            return "not_found"
        logger.debug("dropped segment %s", partition_id)
        return "dropped"

    def segment_exists(self, partition_id: str) -> bool:
        return exists(segment_marker_path(self.settings, partition_id))

    def segment_byte_size(self, partition_id: str) -> int:
        """Total bytes of the segment's Parquet parts; 0 for an empty or absent segment."""
        return tree_byte_size(segment_dir(self.settings, partition_id))

    def write_records(self, partition_id: str, df: pl.DataFrame) -> dict[str, Any]:
        """
        Append rows to a segment as one Parquet part.

        Args:
            partition_id (str): Target segment.
            df (pl.DataFrame): Rows to write. Must include the stamp column and every
                index column; every stamp must fall inside the segment window.

        Returns:
            dict[str, Any]: Summary {"partition_id","path","rows","bytes","stamp_min","stamp_max"}.

        Raises:
            SegmentWriteError: Missing segment, missing columns, out-of-window rows, or a
                failed Parquet write/fsync/rename.
        """
        info = self.read_segment_info(partition_id)
        if info is None:
            raise SegmentWriteError(f"segment {partition_id!r} does not exist")
        if df.is_empty():
            return {"partition_id": partition_id, "path": None, "rows": 0, "bytes": 0,
                    "stamp_min": None, "stamp_max": None}

        stamps = stamp_seconds(df)
        smin, smax = int(stamps.min()), int(stamps.max())  # type: ignore[arg-type]
        if smin < info.stamp_min or smax >= info.stamp_max:
            raise SegmentWriteError(
                f"rows with stamps [{smin}, {smax}] fall outside segment {partition_id!r} "
                f"window [{info.stamp_min}, {info.stamp_max})"
            )
        missing = [c for c in info.index_columns if c not in df.columns]
        if missing:
            raise SegmentWriteError(f"segment {partition_id!r} requires index columns {missing}")

        # Rows are stored as given; the normalized stamps only order them.
        sort_by = [*info.index_columns, _SORT_KEY]
        body = df.with_columns(stamps.alias(_SORT_KEY)).sort(sort_by).drop(_SORT_KEY)

        uid = uuid.uuid4().hex
        ppaths = part_paths(self.settings, partition_id, uid)
        makedirs(os.path.dirname(ppaths.final_path), exist_ok=True)
        try:
            arrow_table = body.to_arrow()
            meta = dict(arrow_table.schema.metadata or {})
            meta.update(
                {
                    b"pmts_table_name": info.table_name.encode("utf-8"),
                    b"pmts_partition_id": partition_id.encode("utf-8"),
                    b"pmts_stamp_min": str(info.stamp_min).encode("ascii"),
                    b"pmts_stamp_max": str(info.stamp_max).encode("ascii"),
                }
            )
            arrow_table = arrow_table.replace_schema_metadata(meta)
            pq.write_table(
                arrow_table,
                ppaths.tmp_path,
                compression=self.settings.compression,
                row_group_size=self.settings.row_group_size,
            )
            fsync_path(ppaths.tmp_path)
            rename_atomic(ppaths.tmp_path, ppaths.final_path)
        except (OSError, pa.ArrowException) as exc:
            remove_file(ppaths.tmp_path)
            raise SegmentWriteError(f"failed to write parquet part for segment {partition_id!r}: {exc}") from exc

        nbytes = int(os.path.getsize(ppaths.final_path))
        return {
            "partition_id": partition_id,
            "path": ppaths.final_path,
            "rows": body.height,
            "bytes": nbytes,
            "stamp_min": smin,
            "stamp_max": smax,
        }

    def write_record(self, partition_id: str, record: dict[str, Any]) -> dict[str, Any]:
        """Append a single row; see write_records."""
        return self.write_records(partition_id, pl.from_dicts([record]))

    def scan_segment(self, partition_id: str) -> pl.LazyFrame:
        """
        Lazily scan every part of a segment.

        Raises:
            BackendError: If the segment does not exist.
        """
        if not self.segment_exists(partition_id):
            raise BackendError(f"segment {partition_id!r} does not exist")
        files = walk_parquet_files(segment_dir(self.settings, partition_id))
        if not files:
            return pl.LazyFrame()
        return pl.scan_parquet(files)


class GuardedBackend:
    """
    Time-bounded, error-normalizing wrapper around a StorageBackend.

    Attributes:
        inner (StorageBackend): Wrapped backend.
        timeout (float): Seconds allowed per call; <= 0 runs calls inline without a bound.
    """

    def __init__(self, inner: StorageBackend, timeout: float, workers: int = 4) -> None:
        self.inner = inner
        self.timeout = timeout
        self._executor: ThreadPoolExecutor | None = None
        if timeout > 0:
            self._executor = ThreadPoolExecutor(max_workers=workers, thread_name_prefix="pmts-backend")

    def _call(self, op: str, fn: Callable[..., T], *args: Any) -> T:
        try:
            if self._executor is None:
                return fn(*args)
            future = self._executor.submit(fn, *args)
            try:
                return future.result(timeout=self.timeout)
            except FuturesTimeout as exc:
                future.cancel()
                raise BackendTimeout(f"{op} did not complete within {self.timeout}s") from exc
        except PmtsError:
            raise
        except OSError as exc:
            raise BackendUnavailable(f"{op} failed: {exc}") from exc
        except Exception as exc:
            raise BackendError(f"{op} failed: {exc!r}") from exc

    def create_segment(
        self,
        partition_id: str,
        table_name: str,
        stamp_min: int,
        stamp_max: int,
        index_columns: Sequence[str] = (),
    ) -> CreateResult:
        return self._call(
            "create_segment",
            self.inner.create_segment,
            partition_id,
            table_name,
            stamp_min,
            stamp_max,
            tuple(index_columns),
        )

    def drop_segment(self, partition_id: str) -> DropResult:
        return self._call("drop_segment", self.inner.drop_segment, partition_id)

    def segment_exists(self, partition_id: str) -> bool:
        return self._call("segment_exists", self.inner.segment_exists, partition_id)

    def segment_byte_size(self, partition_id: str) -> int:
        return self._call("segment_byte_size", self.inner.segment_byte_size, partition_id)

    def write_records(self, partition_id: str, df: pl.DataFrame) -> dict[str, Any]:
        return self._call("write_records", self.inner.write_records, partition_id, df)

    def write_record(self, partition_id: str, record: dict[str, Any]) -> dict[str, Any]:
        return self._call("write_record", self.inner.write_record, partition_id, record)

    def close(self) -> None:
        """Release worker threads; in-flight calls are abandoned."""
        if self._executor is not None:
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._executor = None
