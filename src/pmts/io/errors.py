"""
Custom exceptions for the pmts.io layer.

Purpose
- Provide storage/persistence error types that map cleanly to responsibilities in pmts.io.
- Keep pmts.core.errors as the source of truth for catalog-invariant and configuration errors.

Taxonomy
- BackendError: any storage backend failure.
  - BackendUnavailable: the backend could not be reached or failed with an OS error.
    Transient; retryable by the caller.
  - BackendTimeout: the call did not complete within the configured bound; its
    outcome is unknown. Transient; retryable by the caller.
  - SegmentWriteError: rows rejected by a segment (missing segment, rows outside its
    window, missing columns) or a part write that failed to complete atomically.
- CatalogIoError: the catalog document could not be read or written. In-memory state
  is rolled back before this is raised.
"""

from __future__ import annotations

from pmts.core.errors import PmtsError

__all__ = [
    "BackendError",
    "BackendUnavailable",
    "BackendTimeout",
    "SegmentWriteError",
    "CatalogIoError",
]


class BackendError(PmtsError):
    """Base class for storage backend failures."""


class BackendUnavailable(BackendError):
    """The storage backend is unreachable or failed transiently."""

    retryable = True


class BackendTimeout(BackendError):
    """A storage backend call exceeded its time bound; its outcome is unknown."""

    retryable = True


class SegmentWriteError(BackendError):
    """
    Raised when records cannot be written to a segment.

    Notes:
        The write path is tmp parquet → fsync → os.replace(tmp, final). Failures at any step
        surface as SegmentWriteError (with best-effort cleanup of tmp files).
    """


class CatalogIoError(PmtsError):
    """The catalog document is unreadable, corrupt, or could not be persisted."""
