"""
Path and layout helpers for pmts.io.

Overview (file protocol baseline)
- <root>/catalog.json
- <root>/segments/<partition_id>/segment.json
- <root>/segments/<partition_id>/part-<UUID>.parquet

Notes
- Partition ids are globally unique (pmts.core.align.partition_id_for), so segments
  live in one flat directory regardless of their table.
- This module focuses solely on path construction and identifier safety.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Final

from .config import PmtsSettings

_SEGMENTS_DIR: Final[str] = "segments"
_MARKER_NAME: Final[str] = "segment.json"

# Partition ids are built from lower_snake table names, digits, '_' and '-' (negative refs).
_SEGMENT_ID_ALLOWED_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_-]+$")


def validate_segment_id(partition_id: str) -> str:
    """
    Validate that a partition id is safe to use as a directory name.

    Args:
        partition_id (str): Candidate identifier.

    Returns:
        str: Same value if valid.

    Raises:
        ValueError: If partition_id is empty or contains disallowed characters.
    """
    s = partition_id or ""
    if not s or not _SEGMENT_ID_ALLOWED_RE.match(s):
        raise ValueError(
            f"partition id {partition_id!r} contains illegal characters; allowed pattern is [A-Za-z0-9_-]+"
        )
    return s


def catalog_path(settings: PmtsSettings) -> str:
    """
    Path of the catalog document.

    Returns:
        str: "<root>/<catalog_name>".
    """
    return os.path.join(settings.root_dir, settings.catalog_name)


def segments_root(settings: PmtsSettings) -> str:
    """
    Root directory of all segments.

    Returns:
        str: "<root>/segments".
    """
    return os.path.join(settings.root_dir, _SEGMENTS_DIR)


def segment_dir(settings: PmtsSettings, partition_id: str) -> str:
    """
    Directory of one segment.

    Returns:
        str: "<root>/segments/<partition_id>".
    """
    return os.path.join(segments_root(settings), validate_segment_id(partition_id))


def segment_marker_path(settings: PmtsSettings, partition_id: str) -> str:
    """
    Path of a segment's marker document; its presence defines the segment's existence.

    Returns:
        str: "<root>/segments/<partition_id>/segment.json".
    """
    return os.path.join(segment_dir(settings, partition_id), _MARKER_NAME)


@dataclass(slots=True, frozen=True)
class PartPaths:
    """
    Container for a part's temporary and final file paths.

    Attributes:
        tmp_path (str): Temporary file path used for the initial write ("*.parquet.tmp").
        final_path (str): Final file path after atomic rename ("*.parquet").
    """

    tmp_path: str
    final_path: str


def part_paths(settings: PmtsSettings, partition_id: str, uuid_str: str) -> PartPaths:
    """
    Compute temporary and final part file paths inside a segment.

    Args:
        settings (PmtsSettings): Runtime settings.
        partition_id (str): Owning segment.
        uuid_str (str): Hex string used to build a unique part name.

    Returns:
        PartPaths: Paths for .parquet.tmp and final .parquet files.
    """
    base_dir = segment_dir(settings, partition_id)
    base_name = f"part-{uuid_str}.parquet"
    return PartPaths(
        tmp_path=os.path.join(base_dir, base_name + ".tmp"),
        final_path=os.path.join(base_dir, base_name),
    )
