"""
Core exception types raised by catalog invariants and configuration checks.

Provides typed exceptions for core-domain failures:
- DuplicateTable / UnknownTable / DuplicateWindow for catalog-invariant violations.
  These are always fatal to the calling operation and never silently ignored.
- InvalidConfig for non-positive sizes/periods, bad names or inconsistent tuning
  bounds. It is raised before any state is mutated.

Notes:
    - This module uses only the Python standard library and has no side effects.
    - Storage/persistence failures live in pmts.io.errors and share the PmtsError base.

Examples:
    Catch a configuration failure.

    >>> from pmts.core.errors import InvalidConfig
    >>> try:
    ...     raise InvalidConfig("partition_size must be > 0")
    ... except ValueError as e:
    ...     msg = str(e)
    >>> "partition_size" in msg
    True
"""

from __future__ import annotations

__all__ = [
    "PmtsError",
    "CatalogError",
    "DuplicateTable",
    "UnknownTable",
    "DuplicateWindow",
    "InvalidConfig",
]


class PmtsError(Exception):
    """Base class for every error raised by pmts."""

    retryable: bool = False


class CatalogError(PmtsError):
    """Catalog invariant violation."""


class DuplicateTable(CatalogError):
    """A table with the same name is already registered."""

    def __init__(self, name: str) -> None:
        super().__init__(f"table already registered: {name!r}")
        self.name = name


class UnknownTable(CatalogError):
    """The table is not registered (or is being dropped)."""

    def __init__(self, name: str) -> None:
        super().__init__(f"unknown table: {name!r}")
        self.name = name


class DuplicateWindow(CatalogError):
    """A partition overlaps an existing window of the same table, or reuses an id."""


class InvalidConfig(PmtsError, ValueError):
    """Invalid table, tuning or runtime configuration."""
