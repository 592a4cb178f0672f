"""Stable short digests for viewer-sync signatures.

stable_hash(obj, length=12) reduces filter state, selections and pair lists to
a canonical JSON form (sorted keys, sets sorted, tuples as lists, dataclasses
as dicts) and returns an xxh64 hex prefix. Equal states hash equal regardless
of dict or set iteration order.
"""
from __future__ import annotations
from dataclasses import asdict, is_dataclass
from typing import Any
import json

import xxhash


def _canonical(obj: Any) -> Any:
    if is_dataclass(obj) and not isinstance(obj, type):
        return _canonical(asdict(obj))
    if isinstance(obj, dict):
        return {str(k): _canonical(v) for k, v in obj.items()}
    if isinstance(obj, (set, frozenset)):
        return sorted((_canonical(v) for v in obj), key=repr)
    if isinstance(obj, (list, tuple)):
        return [_canonical(v) for v in obj]
    return obj


def _to_stable_bytes(obj: Any) -> bytes:
    if obj is None:
        return b"null"
    if isinstance(obj, bytes):
        return obj
    if isinstance(obj, str):
        return obj.encode()
    try:
        return json.dumps(_canonical(obj), sort_keys=True, separators=(",", ":")).encode()
    except (TypeError, ValueError):
        return repr(obj).encode()


def stable_hash(obj: Any, length: int = 12) -> str:
    return xxhash.xxh64(_to_stable_bytes(obj)).hexdigest()[:length]


__all__ = ["stable_hash"]
