"""
Pydantic v2 models for the catalog records: table configuration, partitions, and
per-table statistics.

Responsibilities
- Define the canonical records persisted by pmts.io.catalog.PartitionCatalog.
- Enforce field-level constraints (lower_snake names, positive sizes, non-empty windows).
- Convert validation failures at construction helpers into pmts.core.errors.InvalidConfig.

Style
- Zero-IO (stdlib + pydantic only).
- Partition is frozen: once recorded it is never resized or merged.

References
- errors: pmts.core.errors (InvalidConfig)
- ids: pmts.core.align.partition_id_for
"""

from __future__ import annotations

import re
from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .constants import STAMP_COLUMN
from .errors import InvalidConfig

__all__ = [
    "TableState",
    "TableConfig",
    "Partition",
    "TableStats",
    "is_table_name",
]

TableState = Literal["active", "dropping"]

_TABLE_NAME_RE = re.compile(r"^[a-z][a-z0-9_]*$")
_COLUMN_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_MAX_NAME_LEN = 63


def _utc_now_iso() -> str:
    return datetime.now(UTC).isoformat()


def is_table_name(name: str) -> bool:
    """
    Check whether name is a valid table name (lower_snake, at most 63 characters).

    Args:
        name (str): Candidate name.

    Returns:
        bool: True if valid.
    """
    return bool(name) and len(name) <= _MAX_NAME_LEN and bool(_TABLE_NAME_RE.match(name))


class TableConfig(BaseModel):
    """
    Per-table partitioning configuration.

    Attributes:
        name (str): Unique, immutable table name (lower_snake).
        partition_size (int): Width in seconds of partitions created from now on (> 0).
        retention_period (int | None): Seconds of history to retain (> 0), or None
            for unbounded retention.
        index_columns (list[str]): Columns segment bodies are sorted/indexed by; the
            stamp column is always appended by the backend.
        state (TableState): "active", or "dropping" while a table drop is in progress.
        created_at (str): ISO-8601 registration time.
        updated_at (str): ISO-8601 time of the last configuration change.
    """

    model_config = ConfigDict(extra="forbid")

    name: str
    partition_size: int = Field(gt=0)
    retention_period: int | None = Field(default=None, gt=0)
    index_columns: list[str] = Field(default_factory=list)
    state: TableState = "active"
    created_at: str = Field(default_factory=_utc_now_iso)
    updated_at: str = Field(default_factory=_utc_now_iso)

    @field_validator("name")
    @classmethod
    def _check_name(cls, v: str) -> str:
        if not is_table_name(v):
            raise ValueError(
                f"table name must be lower_snake ([a-z][a-z0-9_]*, <= {_MAX_NAME_LEN} chars), got {v!r}"
            )
        return v

    @field_validator("index_columns")
    @classmethod
    def _check_index_columns(cls, v: list[str]) -> list[str]:
        seen: set[str] = set()
        for col in v:
            if not _COLUMN_NAME_RE.match(col):
                raise ValueError(f"invalid index column name {col!r}")
            if col == STAMP_COLUMN:
                raise ValueError(f"{STAMP_COLUMN!r} is always indexed; do not list it")
            if col in seen:
                raise ValueError(f"duplicate index column {col!r}")
            seen.add(col)
        return v

    @property
    def is_active(self) -> bool:
        return self.state == "active"

    @classmethod
    def new(
        cls,
        name: str,
        partition_size: int,
        retention_period: int | None,
        index_columns: Sequence[str] = (),
    ) -> TableConfig:
        """
        Build a validated TableConfig.

        Raises:
            InvalidConfig: If any field violates its constraints.
        """
        return cls._validated(
            {
                "name": name,
                "partition_size": partition_size,
                "retention_period": retention_period,
                "index_columns": list(index_columns),
            }
        )

    def with_changes(self, **changes: Any) -> TableConfig:
        """
        Return a re-validated copy with changes applied and updated_at refreshed.

        Raises:
            InvalidConfig: If the resulting configuration is invalid.
        """
        data = self.model_dump()
        data.update(changes)
        data["updated_at"] = _utc_now_iso()
        return self._validated(data)

    @classmethod
    def _validated(cls, data: dict[str, Any]) -> TableConfig:
        for key in ("partition_size", "retention_period"):
            if isinstance(data.get(key), bool):
                raise InvalidConfig(f"{key} must be an integer number of seconds")
        try:
            return cls.model_validate(data)
        except ValidationError as exc:
            raise InvalidConfig(str(exc)) from exc


class Partition(BaseModel):
    """
    One materialized time window of one table.

    Attributes:
        table_name (str): Owning table.
        stamp_min (int): Inclusive window start (epoch seconds).
        stamp_max (int): Exclusive window end (epoch seconds).
        partition_id (str): Globally unique physical identifier
            (see pmts.core.align.partition_id_for).
        partition_size (int): Table partition width when this partition was created.
        created_at (str): ISO-8601 creation time.
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    table_name: str
    stamp_min: int
    stamp_max: int
    partition_id: str
    partition_size: int = Field(gt=0)
    created_at: str = Field(default_factory=_utc_now_iso)

    @model_validator(mode="after")
    def _check_window(self) -> Partition:
        if self.stamp_min >= self.stamp_max:
            raise ValueError(
                f"empty window for {self.partition_id!r}: "
                f"stamp_min={self.stamp_min} >= stamp_max={self.stamp_max}"
            )
        return self

    def contains(self, stamp: int) -> bool:
        """Return True if stamp falls inside [stamp_min, stamp_max)."""
        return self.stamp_min <= stamp < self.stamp_max

    def overlaps(self, other: Partition) -> bool:
        """Return True if the two half-open windows intersect."""
        return self.stamp_min < other.stamp_max and other.stamp_min < self.stamp_max


class TableStats(BaseModel):
    """
    Aggregated size statistics for one table.

    Attributes:
        table_name (str): Table name.
        total_size (int): Sum of segment byte sizes.
        partition_count (int): Number of recorded partitions.
        avg_size (int): total_size // partition_count, or 0 when there are no
            partitions. 0 means "no data", not a measured size.
        partition_size (int): Currently configured partition width (seconds).
    """

    model_config = ConfigDict(extra="forbid", frozen=True)

    table_name: str
    total_size: int = Field(ge=0)
    partition_count: int = Field(ge=0)
    avg_size: int = Field(ge=0)
    partition_size: int = Field(gt=0)
