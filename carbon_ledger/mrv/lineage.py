from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


# ---------------------------------------------------------------------
# Deterministic canonical JSON + SHA256 hashing (audit-grade)
#
# - sorted keys, utf-8, no whitespace variance
# - floats quantized through Decimal (no 0.30000000000000004 drift)
#
# Every result_hash / input_hash in the engine is produced here.
# ---------------------------------------------------------------------

DEFAULT_DIGITS = 12


def sha256_bytes(b: bytes) -> str:
    return hashlib.sha256(b).hexdigest()


def _quantize_decimal(d: Decimal, *, digits: int = DEFAULT_DIGITS) -> Decimal:
    q = Decimal(10) ** Decimal(-digits)
    return d.quantize(q, rounding=ROUND_HALF_UP)


def _normalize(obj: Any, digits: int = DEFAULT_DIGITS) -> Any:
    """Recursively normalize objects for deterministic JSON.

    - dict keys are coerced to str
    - lists/tuples keep their order
    - floats / Decimals become fixed-precision strings
    - objects with to_dict() are expanded
    """
    if obj is None:
        return None

    if isinstance(obj, (bool, int, str)):
        return obj

    if isinstance(obj, (bytes, bytearray)):
        return {"__bytes_sha256": sha256_bytes(bytes(obj))}

    if isinstance(obj, Decimal):
        try:
            return format(_quantize_decimal(obj, digits=digits), "f")
        except InvalidOperation:
            return "0"

    if isinstance(obj, float):
        if obj != obj:  # NaN
            return "NaN"
        if obj == float("inf"):
            return "Infinity"
        if obj == float("-inf"):
            return "-Infinity"
        try:
            return format(_quantize_decimal(Decimal(str(obj)), digits=digits), "f")
        except InvalidOperation:
            return "0"

    if isinstance(obj, (list, tuple)):
        return [_normalize(x, digits) for x in obj]

    if isinstance(obj, dict):
        return {str(k): _normalize(v, digits) for k, v in obj.items()}

    # numpy / pandas scalars
    item = getattr(obj, "item", None)
    if callable(item):
        try:
            return _normalize(item(), digits)
        except (TypeError, ValueError):
            pass

    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return _normalize(to_dict(), digits)

    return str(obj)


def canonical_json(obj: Any, *, digits: int = DEFAULT_DIGITS) -> str:
    """Deterministic JSON encoding with stable floats."""
    return json.dumps(
        _normalize(obj, digits),
        ensure_ascii=False,
        sort_keys=True,
        separators=(",", ":"),
    )


def sha256_json(obj: Any, *, digits: int = DEFAULT_DIGITS) -> str:
    return hashlib.sha256(canonical_json(obj, digits=digits).encode("utf-8")).hexdigest()
