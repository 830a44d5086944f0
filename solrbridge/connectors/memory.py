from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from solrbridge.connectors.base import FieldMetadata, RemoteStore, SourceCapabilities, TupleStream
from solrbridge.errors import MetadataUnavailable, RemoteQueryError, StreamReadError
from solrbridge.models.plan import SortDirection
from solrbridge.models.remote import RemoteMetric, RemoteQuerySpec

_UNBOUNDED = object()


@dataclass(slots=True)
class InMemoryCollection:
    fields: list[FieldMetadata]
    documents: list[dict[str, Any]]
    # raise an I/O error on the read after this many documents
    fail_after: int | None = None


@dataclass(slots=True)
class _Clause:
    field: str
    matches: Callable[[Any], bool]


class _ListTupleStream(TupleStream):
    def __init__(self, *, rows: list[dict[str, Any]], fail_after: int | None, on_close: Callable[[], None]) -> None:
        self._rows = rows
        self._fail_after = fail_after
        self._on_close = on_close
        self._position = 0
        self.closed = False

    async def read(self) -> dict[str, Any] | None:
        if self.closed:
            raise StreamReadError("Stream is closed.")
        if self._fail_after is not None and self._position >= self._fail_after:
            raise OSError("connection reset by peer")
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    async def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._on_close()


class InMemoryRemoteStore(RemoteStore):
    """
    Store double that runs generated specs against Python documents with Solr semantics:
    a clause on a multi-valued field matches when any value matches.
    """

    def __init__(
        self,
        *,
        collections: dict[str, InMemoryCollection],
        store_id: str = "memory",
        capabilities: SourceCapabilities | None = None,
    ) -> None:
        self.store_id = store_id
        self._collections = collections
        self._capabilities = capabilities or SourceCapabilities()
        self.issued_specs: list[RemoteQuerySpec] = []
        self.open_streams = 0

    def capabilities(self) -> SourceCapabilities:
        return self._capabilities

    async def list_collections(self) -> list[str]:
        return sorted(self._collections)

    async def fetch_field_metadata(self, collection: str) -> list[FieldMetadata]:
        stored = self._collections.get(collection)
        if stored is None:
            raise MetadataUnavailable(f"Collection '{collection}' does not exist.")
        return list(stored.fields)

    async def open_stream(self, spec: RemoteQuerySpec) -> TupleStream:
        stored = self._collections.get(spec.collection)
        if stored is None:
            raise RemoteQueryError(f"Collection '{spec.collection}' does not exist.")
        known = {item.name for item in stored.fields}
        clauses = parse_filter(spec.filter_expression) if spec.filter_expression else []
        referenced = [clause.field for clause in clauses] + list(spec.group_fields)
        referenced += [metric.field for metric in spec.metrics if metric.field is not None]
        if not spec.is_aggregate:
            referenced += list(spec.selected_fields)
            referenced += [key.field for key in spec.sort_spec or ()]
        unknown = sorted({name for name in referenced if name not in known})
        if unknown:
            raise RemoteQueryError(f"undefined field {', '.join(unknown)}")

        self.issued_specs.append(spec)
        documents = [doc for doc in stored.documents if all(clause.matches(doc.get(clause.field)) for clause in clauses)]
        if spec.is_aggregate:
            rows = _aggregate(documents, spec)
        else:
            rows = [{name: doc[name] for name in spec.selected_fields if name in doc} for doc in documents]
        if spec.sort_spec:
            for key in reversed(spec.sort_spec):
                rows = _sorted(rows, key.field, descending=key.direction == SortDirection.DESC)
        if spec.limit is not None:
            rows = rows[: spec.limit]

        self.open_streams += 1
        return _ListTupleStream(rows=rows, fail_after=stored.fail_after, on_close=self._stream_closed)

    def _stream_closed(self) -> None:
        self.open_streams -= 1


def parse_filter(expression: str) -> list[_Clause]:
    """Parse the conjunctive subset of the standard query syntax that the translator emits."""
    clauses: list[_Clause] = []
    for part in _split_top_level(expression, " AND "):
        part = part.strip()
        if part.startswith("(") and part.endswith(")"):
            inner = _split_top_level(part[1:-1], " AND ")
            if len(inner) != 2 or not inner[1].startswith("NOT "):
                raise RemoteQueryError(f"Cannot parse clause {part!r}.")
            name, _ = inner[0].split(":", 1)
            negated = _parse_clause(inner[1][len("NOT "):])
            clauses.append(
                _Clause(
                    field=name,
                    matches=lambda value, clause=negated: _present(value) and not clause.matches(value),
                )
            )
        else:
            clauses.append(_parse_clause(part))
    return clauses


def _parse_clause(text: str) -> _Clause:
    if ":" not in text:
        raise RemoteQueryError(f"Cannot parse clause {text!r}.")
    name, rest = text.split(":", 1)
    if rest and rest[0] in "[{" and rest[-1] in "]}":
        bounds = _split_top_level(rest[1:-1], " TO ")
        if len(bounds) != 2:
            raise RemoteQueryError(f"Cannot parse range {rest!r}.")
        low, high = (_parse_literal(bound.strip(), allow_wildcard=True) for bound in bounds)
        include_low, include_high = rest[0] == "[", rest[-1] == "]"

        def _in_range(value: Any) -> bool:
            if low is not _UNBOUNDED:
                order = _compare(value, low)
                if order is None or order < 0 or (order == 0 and not include_low):
                    return False
            if high is not _UNBOUNDED:
                order = _compare(value, high)
                if order is None or order > 0 or (order == 0 and not include_high):
                    return False
            return True

        return _Clause(field=name, matches=lambda value: _any_value(value, _in_range))

    if rest == "*":
        return _Clause(field=name, matches=_present)
    literal = _parse_literal(rest, allow_wildcard=False)
    return _Clause(field=name, matches=lambda value: _any_value(value, lambda item: _compare(item, literal) == 0))


def _parse_literal(text: str, *, allow_wildcard: bool) -> Any:
    if allow_wildcard and text == "*":
        return _UNBOUNDED
    if len(text) >= 2 and text[0] == '"' and text[-1] == '"':
        chars: list[str] = []
        escaped = False
        for char in text[1:-1]:
            if escaped:
                chars.append(char)
                escaped = False
            elif char == "\\":
                escaped = True
            else:
                chars.append(char)
        return "".join(chars)
    if text in {"true", "false"}:
        return text == "true"
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError as exc:
        raise RemoteQueryError(f"Cannot parse literal {text!r}.") from exc


def _split_top_level(text: str, separator: str) -> list[str]:
    parts: list[str] = []
    depth = 0
    in_quotes = False
    escaped = False
    start = 0
    index = 0
    while index < len(text):
        char = text[index]
        if in_quotes:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_quotes = False
        elif char == '"':
            in_quotes = True
        elif char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif depth == 0 and text.startswith(separator, index):
            parts.append(text[start:index])
            index += len(separator)
            start = index
            continue
        index += 1
    parts.append(text[start:])
    return parts


def _present(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return any(item is not None for item in value)
    return value is not None


def _any_value(value: Any, predicate: Callable[[Any], bool]) -> bool:
    values = value if isinstance(value, (list, tuple)) else [value]
    return any(item is not None and predicate(item) for item in values)


def _compare(left: Any, right: Any) -> int | None:
    if isinstance(left, bool) or isinstance(right, bool):
        if isinstance(left, bool) and isinstance(right, bool):
            return (left > right) - (left < right)
        return None
    # a quoted term on a numeric field is parsed by the field type
    if isinstance(left, (int, float)) and isinstance(right, str):
        right = _as_number(right, right)
    elif isinstance(right, (int, float)) and isinstance(left, str):
        left = _as_number(left, left)
    if isinstance(left, (int, float)) and isinstance(right, (int, float)):
        return (left > right) - (left < right)
    left_text, right_text = str(left), str(right)
    return (left_text > right_text) - (left_text < right_text)


def _as_number(text: str, default: Any) -> Any:
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return default


def _first(value: Any) -> Any:
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def _sorted(rows: list[dict[str, Any]], name: str, *, descending: bool) -> list[dict[str, Any]]:
    present = [row for row in rows if _first(row.get(name)) is not None]
    missing = [row for row in rows if _first(row.get(name)) is None]
    present.sort(key=lambda row: _first(row[name]), reverse=descending)
    return present + missing


def _aggregate(documents: list[dict[str, Any]], spec: RemoteQuerySpec) -> list[dict[str, Any]]:
    groups: dict[tuple[Any, ...], list[dict[str, Any]]] = {}
    for doc in documents:
        key = tuple(_first(doc.get(name)) for name in spec.group_fields)
        groups.setdefault(key, []).append(doc)
    if not spec.group_fields and not groups:
        groups[()] = []

    rows: list[dict[str, Any]] = []
    for key, members in groups.items():
        row: dict[str, Any] = dict(zip(spec.group_fields, key))
        for metric in spec.metrics:
            row[metric.identifier] = _metric_value(metric, members)
        rows.append(row)
    return rows


def _metric_value(metric: RemoteMetric, documents: list[dict[str, Any]]) -> Any:
    if metric.function == "count":
        return len(documents)
    values: list[Any] = []
    for doc in documents:
        value = doc.get(metric.field) if metric.field else None
        items = value if isinstance(value, (list, tuple)) else [value]
        values.extend(item for item in items if item is not None)
    if metric.function == "countvals":
        return len(values)
    if metric.function == "unique":
        return len(set(values))
    if metric.function == "sum":
        return float(sum(values)) if values else 0.0
    if not values:
        return metric.empty_value
    if metric.function == "min":
        return min(values)
    if metric.function == "max":
        return max(values)
    if metric.function == "avg":
        return sum(values) / len(values)
    raise RemoteQueryError(f"Unknown metric function '{metric.function}'.")
