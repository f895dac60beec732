"""
Canonical JSON serialization helpers for persisted pmts state.

The catalog document and segment markers are written with a single canonical JSON
policy so that identical state produces identical bytes. This module is zero-IO.

Notes:
    - Canonical JSON: sort_keys=True, separators=(",", ":"), ensure_ascii=False.
    - No datetime parsing or custom hooks; timestamps are stored as ints or ISO strings.
"""

from __future__ import annotations

import json
from typing import Any

__all__ = [
    "json_dumps_canonical",
    "json_loads",
]


def json_dumps_canonical(obj: Any) -> str:
    """
    Serialize an object to a canonical JSON string.

    Args:
        obj (Any): JSON-serializable object.

    Returns:
        str: Deterministic JSON text.
    """
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def json_loads(s: str | bytes) -> Any:
    """
    Deserialize a JSON document using the stdlib json module.

    Args:
        s (str | bytes): JSON text.

    Returns:
        Any: Decoded Python object.
    """
    return json.loads(s)
