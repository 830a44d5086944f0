from __future__ import annotations

from typing import Any, Mapping, Sequence


def first_value(value: Any) -> Any:
    """Reduce a multi-valued field to its first element; relational rows carry scalars only."""
    if isinstance(value, (list, tuple)):
        return value[0] if value else None
    return value


def convert_document(document: Mapping[str, Any], fields: Sequence[str]) -> tuple[Any, ...]:
    return tuple(first_value(document.get(name)) for name in fields)


def collapse_row(row: Sequence[Any]) -> Any:
    """A one-column row is produced as the bare value; anything wider stays a tuple."""
    if len(row) == 1:
        return row[0]
    return tuple(row)


def shape(raw_row: Sequence[Any], projected_field_indices: Sequence[int] | None = None) -> tuple[Any, ...]:
    """
    Select the projected positions of `raw_row`.

    Rows are positional, so renaming touches column names only; see `shaped_columns` and
    `RowShaper(rename_map=...)`.
    """
    if projected_field_indices is None:
        return tuple(raw_row)
    return tuple(raw_row[index] for index in projected_field_indices)


def shaped_columns(
    columns: Sequence[str],
    projected_field_indices: Sequence[int] | None = None,
    rename_map: Mapping[str, str] | None = None,
) -> tuple[str, ...]:
    renames = rename_map or {}
    selected = shape(columns, projected_field_indices)
    return tuple(renames.get(name, name) for name in selected)


class RowShaper:
    """Projects rows whose columns are `input_columns` into the caller's declared output row."""

    def __init__(
        self,
        *,
        input_columns: Sequence[str],
        output_sources: Sequence[str],
        rename_map: Mapping[str, str] | None = None,
    ) -> None:
        positions = {name: position for position, name in enumerate(input_columns)}
        missing = [name for name in output_sources if name not in positions]
        if missing:
            raise ValueError(f"Output columns {missing} are not present in the input row {list(input_columns)}.")
        self._indices = tuple(positions[name] for name in output_sources)
        self._columns = shaped_columns(input_columns, self._indices, rename_map)

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def indices(self) -> tuple[int, ...]:
        return self._indices

    def shape(self, raw_row: Sequence[Any]) -> Any:
        return collapse_row(shape(raw_row, self._indices))

    def to_record(self, raw_row: Sequence[Any]) -> dict[str, Any]:
        return dict(zip(self._columns, shape(raw_row, self._indices)))
