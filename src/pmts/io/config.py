"""
Configuration for the pmts runtime.

Defines PmtsSettings, a frozen dataclass carrying runtime configuration for the catalog,
the storage backend and the lifecycle components. Defaults are sourced from
pmts.core.constants (the single source of truth).

Source of truth
- pmts.core.constants.DEFAULT_LOOKAHEAD_SECONDS, DEFAULT_BACKEND_TIMEOUT,
  DEFAULT_MAX_CLOCK_SKEW, ROW_GROUP_SIZE, COMPRESSION

Notes
- Precedence when loading: environment (PMTS_*) > TOML > defaults.
- Malformed values are ignored and the previous value is kept.
- Per-table settings (partition_size, retention_period) live in the catalog, not here.
"""

from __future__ import annotations

import os
import tomllib
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Literal

from pmts.core.constants import COMPRESSION as CORE_COMPRESSION
from pmts.core.constants import DEFAULT_BACKEND_TIMEOUT, DEFAULT_LOOKAHEAD_SECONDS
from pmts.core.constants import DEFAULT_MAX_CLOCK_SKEW
from pmts.core.constants import ROW_GROUP_SIZE as CORE_ROW_GROUP_SIZE
from pmts.core.errors import InvalidConfig

Compression = Literal["zstd", "lz4", "snappy"]

_COMPRESSIONS = ("zstd", "lz4", "snappy")
_INT_KEYS = ("lookahead_seconds", "backend_workers", "max_clock_skew", "row_group_size")
_FLOAT_KEYS = ("backend_timeout",)
_STR_KEYS = ("root_dir", "catalog_name")


@dataclass(frozen=True)
class PmtsSettings:
    """
    Runtime settings for pmts.

    Attributes:
        root_dir (str): Directory holding the catalog document and segment directories.
        catalog_name (str): File name of the catalog document under root_dir.
        lookahead_seconds (int): How far past "now" the creation scheduler
            materializes partitions.
        backend_timeout (float): Upper bound in seconds for each storage backend call;
            a value <= 0 disables the bound.
        backend_workers (int): Worker threads used to enforce backend_timeout.
        max_clock_skew (int): Maximum tolerated clock skew between writers and the
            reaper; every table's retention_period must exceed it.
        compression (Literal["zstd","lz4","snappy"]): Parquet codec for segment parts.
        row_group_size (int): Parquet row group size for segment parts.

    Examples:
        >>> from pmts.io import PmtsSettings
        >>> PmtsSettings(root_dir="data", lookahead_seconds=86_400)  # doctest: +ELLIPSIS
        PmtsSettings(...)
    """

    root_dir: str = "pmts-data"
    catalog_name: str = "catalog.json"
    lookahead_seconds: int = DEFAULT_LOOKAHEAD_SECONDS
    backend_timeout: float = DEFAULT_BACKEND_TIMEOUT
    backend_workers: int = 4
    max_clock_skew: int = DEFAULT_MAX_CLOCK_SKEW
    compression: Compression = CORE_COMPRESSION  # type: ignore[assignment]
    row_group_size: int = CORE_ROW_GROUP_SIZE

    def validate(self) -> PmtsSettings:
        """
        Check cross-field sanity of the settings.

        Returns:
            PmtsSettings: self, for chaining.

        Raises:
            InvalidConfig: On negative look-ahead/skew, non-positive workers or
                row group size, or an unknown compression codec.
        """
        if self.lookahead_seconds < 0:
            raise InvalidConfig(f"lookahead_seconds must be >= 0, got {self.lookahead_seconds}")
        if self.max_clock_skew < 0:
            raise InvalidConfig(f"max_clock_skew must be >= 0, got {self.max_clock_skew}")
        if self.backend_workers < 1:
            raise InvalidConfig(f"backend_workers must be >= 1, got {self.backend_workers}")
        if self.row_group_size < 1:
            raise InvalidConfig(f"row_group_size must be >= 1, got {self.row_group_size}")
        if self.compression not in _COMPRESSIONS:
            raise InvalidConfig(f"unsupported compression {self.compression!r}")
        return self

    # Configuration loaders (env/TOML) with precedence: env > TOML > defaults.

    @classmethod
    def _apply_mapping(cls, base: PmtsSettings, cfg: dict[str, Any] | None) -> PmtsSettings:
        """Apply a loose config mapping onto PmtsSettings, returning a new instance."""
        if not isinstance(cfg, dict):
            return base

        s = base

        for key in _STR_KEYS:
            if key in cfg and isinstance(cfg[key], str) and cfg[key]:
                s = replace(s, **{key: cfg[key]})

        for key in _INT_KEYS:
            if key in cfg and not isinstance(cfg[key], bool):
                try:
                    s = replace(s, **{key: int(cfg[key])})
                except (TypeError, ValueError):
                    pass

        for key in _FLOAT_KEYS:
            if key in cfg and not isinstance(cfg[key], bool):
                try:
                    s = replace(s, **{key: float(cfg[key])})
                except (TypeError, ValueError):
                    pass

        if "compression" in cfg and isinstance(cfg["compression"], str):
            comp = cfg["compression"].strip().lower()
            if comp in _COMPRESSIONS:
                s = replace(s, compression=comp)  # type: ignore[arg-type]

        return s

    @classmethod
    def from_env(cls, base: PmtsSettings | None = None, prefix: str = "PMTS_") -> PmtsSettings:
        """
        Build PmtsSettings from environment variables. Precedence is env > base (if provided) > defaults.

        Recognized variables:
            - PMTS_ROOT_DIR
            - PMTS_CATALOG_NAME
            - PMTS_LOOKAHEAD_SECONDS
            - PMTS_BACKEND_TIMEOUT
            - PMTS_BACKEND_WORKERS
            - PMTS_MAX_CLOCK_SKEW
            - PMTS_COMPRESSION ("zstd" | "lz4" | "snappy")
            - PMTS_ROW_GROUP_SIZE
        """
        s = base or cls()

        mapping: dict[str, Any] = {}
        for key in (*_STR_KEYS, *_INT_KEYS, *_FLOAT_KEYS, "compression"):
            v = os.getenv(prefix + key.upper())
            if v:
                mapping[key] = v

        return cls._apply_mapping(s, mapping)

    @classmethod
    def from_toml(cls, path: str | os.PathLike[str] | None = None) -> PmtsSettings:
        """
        Build PmtsSettings from a TOML file.

        Search order when `path` is None:
            1) ./pmts.toml (with either a top-level [pmts] table or direct keys)
            2) ./pyproject.toml under [tool.pmts]

        Returns defaults if no file is present or none of them carries settings.
        """
        s = cls()

        def _load_toml(p: Path) -> dict[str, Any] | None:
            try:
                with p.open("rb") as fh:
                    return tomllib.load(fh)
            except (OSError, tomllib.TOMLDecodeError):
                return None

        cfg: dict[str, Any] | None = None

        cand: list[Path] = []
        if path is not None:
            cand.append(Path(path))
        else:
            cand.append(Path.cwd() / "pmts.toml")
            cand.append(Path.cwd() / "pyproject.toml")

        for p in cand:
            if not p.exists():
                continue
            data = _load_toml(p)
            if not isinstance(data, dict):
                continue
            if p.name == "pyproject.toml":
                tool = data.get("tool", {})
                cfg = tool.get("pmts") if isinstance(tool, dict) else None
            elif isinstance(data.get("pmts"), dict):
                cfg = data["pmts"]
            else:
                cfg = data
            if cfg:
                break

        return cls._apply_mapping(s, cfg)

    @classmethod
    def load(cls, path: str | os.PathLike[str] | None = None) -> PmtsSettings:
        """
        Load PmtsSettings applying precedence: environment > TOML > defaults.

        Args:
            path: Optional explicit TOML path. If None, search defaults (pmts.toml, pyproject.toml).

        Returns:
            PmtsSettings
        """
        s = cls.from_toml(path)
        s = cls.from_env(base=s)
        return s
