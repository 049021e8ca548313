"""Deterministic JSON encoding for signed payloads.

Every mapping is rewritten with its keys sorted at every depth before
encoding, so two structurally equal values always produce the same bytes no
matter how they were built. Sequence order is meaningful and kept as is.

The encoding is compact (no whitespace) and emits non-ASCII characters
verbatim; the bytes handed to the signer are the UTF-8 encoding of that text
and are transmitted unchanged.
"""

from __future__ import annotations

import json
import math
from collections.abc import Mapping, Sequence
from typing import Any

_SEPARATORS = (",", ":")


def _normalize_number(value: float) -> int | float | None:
    if not math.isfinite(value):
        return None
    if value.is_integer():
        return int(value)
    return value


def canonicalize(value: Any) -> Any:
    """Return a copy of ``value`` with every mapping key-sorted.

    A container that appears again inside itself is replaced by ``None``;
    the same container reached through two sibling paths is serialized in
    full both times.
    """
    active: set[int] = set()

    def _walk(val: Any) -> Any:
        if val is None or isinstance(val, (str, bool, int)):
            return val
        if isinstance(val, float):
            return _normalize_number(val)
        if isinstance(val, Mapping):
            marker = id(val)
            if marker in active:
                return None
            active.add(marker)
            try:
                for key in val:
                    if not isinstance(key, str):
                        raise TypeError(f"mapping keys must be str, got {type(key).__name__}")
                return {key: _walk(val[key]) for key in sorted(val)}
            finally:
                active.discard(marker)
        if isinstance(val, Sequence) and not isinstance(val, (bytes, bytearray)):
            marker = id(val)
            if marker in active:
                return None
            active.add(marker)
            try:
                return [_walk(item) for item in val]
            finally:
                active.discard(marker)
        raise TypeError(f"value of type {type(val).__name__} is not JSON serializable")

    return _walk(value)


def stable_json(value: Any) -> str:
    return json.dumps(
        canonicalize(value),
        separators=_SEPARATORS,
        ensure_ascii=False,
        allow_nan=False,
    )


def stable_json_bytes(value: Any) -> bytes:
    return stable_json(value).encode("utf-8")


__all__ = ["canonicalize", "stable_json", "stable_json_bytes"]
