"""
Filesystem helpers for pmts.io (file protocol baseline).

Responsibilities
- Provide a minimal stdlib-only abstraction for the filesystem operations used by the
  catalog and the Parquet backend: directory creation, safe write handles, fsync,
  atomic renames, tree removal and byte sizing.
- Establish clear semantics for the atomic write path: tmp write → fsync → atomic rename.

Notes
- Atomicity via os.replace is guaranteed only when src and dst reside on the same filesystem.
- All helpers are synchronous; callers decide on concurrency/locking.
"""

from __future__ import annotations

import os
import shutil
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from typing import BinaryIO


def exists(path: str) -> bool:
    """
    Check whether a path exists.

    Args:
        path (str): Filesystem path.

    Returns:
        bool: True if the path exists, False otherwise.
    """
    return os.path.exists(path)


def makedirs(path: str, exist_ok: bool = True) -> None:
    """
    Create directories recursively.

    Args:
        path (str): Directory path to create.
        exist_ok (bool): Do not error if the directory already exists.
    """
    os.makedirs(path, exist_ok=exist_ok)


@contextmanager
def open_write(path: str) -> Iterator[BinaryIO]:
    """
    Open a file for binary write as a context manager.

    Args:
        path (str): Destination path to open in write-binary mode.

    Yields:
        BinaryIO: A writable handle supporting .flush() and .fileno().

    Notes:
        Caller is responsible for the atomic os.replace of the temporary file.
    """
    fh = open(path, "wb")
    try:
        yield fh
    finally:
        fh.close()


def fsync_file(fh: BinaryIO) -> None:
    """
    Flush and fsync an open file handle.

    Args:
        fh (BinaryIO): An open file handle.
    """
    fh.flush()
    os.fsync(fh.fileno())


def fsync_path(path: str) -> None:
    """
    Open a path read-only and fsync its file descriptor.

    Args:
        path (str): Path to an already-written file.

    Notes:
        Used after pyarrow wrote a part directly to disk, before the atomic rename.
    """
    fd = os.open(path, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def rename_atomic(src: str, dst: str) -> None:
    """
    Atomically rename src -> dst on the same filesystem.

    Args:
        src (str): Existing source path (typically a temporary file).
        dst (str): Final destination path.
    """
    os.replace(src, dst)


def tmp_path_for(final_path: str) -> str:
    """
    Unique temporary sibling path for final_path.

    Concurrent writers of the same final path never share a temporary file.
    """
    return f"{final_path}.{uuid.uuid4().hex[:12]}.tmp"


def write_bytes_atomic(path: str, payload: bytes) -> None:
    """
    Write payload to path atomically: tmp write → fsync → os.replace.

    Args:
        path (str): Final destination path. Parent directories are created.
        payload (bytes): Full file contents.

    Raises:
        OSError: If any filesystem step fails; the temporary file is removed best-effort.
    """
    makedirs(os.path.dirname(path) or ".", exist_ok=True)
    tmp_path = tmp_path_for(path)
    try:
        with open_write(tmp_path) as fh:
            fh.write(payload)
            fsync_file(fh)
        rename_atomic(tmp_path, path)
    except OSError:
        remove_file(tmp_path)
        raise


def remove_file(path: str) -> bool:
    """
    Remove a file if present.

    Returns:
        bool: True if a file was removed, False if it did not exist.
    """
    try:
        os.remove(path)
    except FileNotFoundError:
        return False
    return True


def remove_tree(path: str) -> bool:
    """
    Recursively remove a directory if present.

    Returns:
        bool: True if the directory was removed, False if it did not exist.
    """
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        return False
    return True


def walk_parquet_files(root: str) -> list[str]:
    """
    Recursively collect all *.parquet under a root directory.

    Args:
        root (str): Directory to walk.

    Returns:
        list[str]: Sorted full paths to parquet files beneath root.
    """
    out: list[str] = []
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(".parquet"):
                out.append(os.path.join(dirpath, name))
    return sorted(out)


def tree_byte_size(root: str, suffix: str = ".parquet") -> int:
    """
    Sum the sizes of files ending with suffix beneath root.

    Returns:
        int: Total bytes; 0 if root does not exist.
    """
    total = 0
    for dirpath, _dirnames, filenames in os.walk(root):
        for name in filenames:
            if name.endswith(suffix):
                try:
                    total += os.path.getsize(os.path.join(dirpath, name))
                except FileNotFoundError:
                    continue
    return total
