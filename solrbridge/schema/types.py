from __future__ import annotations

from typing import Any

from solrbridge.models.catalog import LogicalType

_STRING_TYPES = {"string", "strings", "text", "text_general", "text_en", "text_ws", "lowercase"}
_INTEGER_TYPES = {
    "int", "ints", "pint", "pints", "tint",
    "long", "longs", "plong", "plongs", "tlong",
    "short", "integer",
}
_FLOAT_TYPES = {
    "float", "floats", "pfloat", "pfloats", "tfloat",
    "double", "doubles", "pdouble", "pdoubles", "tdouble",
}

# default dynamic field suffixes of the stock configsets
_DYNAMIC_SUFFIXES = {
    "_s": LogicalType.STRING,
    "_ss": LogicalType.STRING,
    "_t": LogicalType.STRING,
    "_txt": LogicalType.STRING,
    "_i": LogicalType.INTEGER,
    "_is": LogicalType.INTEGER,
    "_l": LogicalType.INTEGER,
    "_ls": LogicalType.INTEGER,
    "_f": LogicalType.FLOAT,
    "_fs": LogicalType.FLOAT,
    "_d": LogicalType.FLOAT,
    "_ds": LogicalType.FLOAT,
}


def infer_logical_type(type_hint: str | None, field_name: str | None = None) -> LogicalType:
    """Map a remote field type name (or, lacking one, a dynamic field suffix) to a logical type."""
    if type_hint:
        hint = type_hint.strip().lower()
        if hint in _STRING_TYPES or hint.startswith("text_"):
            return LogicalType.STRING
        if hint in _INTEGER_TYPES:
            return LogicalType.INTEGER
        if hint in _FLOAT_TYPES:
            return LogicalType.FLOAT
        return LogicalType.ANY
    if field_name:
        for suffix in sorted(_DYNAMIC_SUFFIXES, key=len, reverse=True):
            if field_name.endswith(suffix):
                return _DYNAMIC_SUFFIXES[suffix]
    return LogicalType.ANY


def coerce_value(value: Any, logical_type: LogicalType) -> Any:
    """Convert a value read from a schemaless store to the catalog's logical type."""
    if value is None or logical_type == LogicalType.ANY:
        return value
    if logical_type == LogicalType.STRING:
        return value if isinstance(value, str) else str(value)
    if isinstance(value, bool):
        return int(value) if logical_type == LogicalType.INTEGER else float(value)
    if logical_type == LogicalType.INTEGER:
        if isinstance(value, int):
            return value
        if isinstance(value, float) and value.is_integer():
            return int(value)
        if isinstance(value, str):
            try:
                return int(value.strip())
            except ValueError as exc:
                raise ValueError(f"Cannot coerce {value!r} to integer.") from exc
        raise ValueError(f"Cannot coerce {value!r} to integer.")
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError as exc:
            raise ValueError(f"Cannot coerce {value!r} to float.") from exc
    raise ValueError(f"Cannot coerce {value!r} to float.")
