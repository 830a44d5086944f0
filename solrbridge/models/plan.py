from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, Union

from solrbridge.models.catalog import FieldCatalogEntry


class ComparisonOperator(str, Enum):
    EQ = "="
    NE = "<>"
    LT = "<"
    LE = "<="
    GT = ">"
    GE = ">="

    def flipped(self) -> "ComparisonOperator":
        """Operator to use when the operands are swapped (`1 < x` becomes `x > 1`)."""
        return _FLIPPED[self]


_FLIPPED = {
    ComparisonOperator.EQ: ComparisonOperator.EQ,
    ComparisonOperator.NE: ComparisonOperator.NE,
    ComparisonOperator.LT: ComparisonOperator.GT,
    ComparisonOperator.LE: ComparisonOperator.GE,
    ComparisonOperator.GT: ComparisonOperator.LT,
    ComparisonOperator.GE: ComparisonOperator.LE,
}


@dataclass(frozen=True, slots=True)
class FieldRef:
    index: int


@dataclass(frozen=True, slots=True)
class Constant:
    value: Any


Operand = Union[FieldRef, Constant]


@dataclass(frozen=True, slots=True)
class Comparison:
    op: ComparisonOperator
    left: Operand
    right: Operand


@dataclass(frozen=True, slots=True)
class And:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True, slots=True)
class Or:
    terms: tuple["Predicate", ...]


@dataclass(frozen=True, slots=True)
class Not:
    term: "Predicate"


@dataclass(frozen=True, slots=True)
class IsNull:
    operand: FieldRef
    negated: bool = False


Predicate = Union[Comparison, And, Or, Not, IsNull]


def predicate_fields(predicate: Predicate) -> set[int]:
    """Source field indices referenced anywhere in a predicate tree."""
    if isinstance(predicate, Comparison):
        return {operand.index for operand in (predicate.left, predicate.right) if isinstance(operand, FieldRef)}
    if isinstance(predicate, (And, Or)):
        indices: set[int] = set()
        for term in predicate.terms:
            indices |= predicate_fields(term)
        return indices
    if isinstance(predicate, Not):
        return predicate_fields(predicate.term)
    if isinstance(predicate, IsNull):
        return {predicate.operand.index}
    raise TypeError(f"Unsupported predicate node {predicate!r}.")


class AggregateFunction(str, Enum):
    COUNT = "COUNT"
    SUM = "SUM"
    MIN = "MIN"
    MAX = "MAX"
    AVG = "AVG"


@dataclass(frozen=True, slots=True)
class AggregateSpec:
    function: AggregateFunction
    args: tuple[int, ...] = ()
    distinct: bool = False
    name: str | None = None

    @property
    def arg_field_index(self) -> int | None:
        return self.args[0] if self.args else None

    def output_name(self, position: int) -> str:
        return self.name or f"{self.function.value.lower()}_{position}"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, slots=True)
class SortKey:
    field_index: int
    direction: SortDirection = SortDirection.ASC


@dataclass(frozen=True, slots=True)
class PlanFragment:
    """
    Already decomposed scan/filter/aggregate/sort/limit/project fragment handed in by the caller.

    `predicate`, `group_keys` and aggregate arguments index `source_fields`. `sort_keys` and
    `projected_fields` index the pre-projection row: the source row, or, when the fragment
    aggregates, the group keys in ascending order followed by the aggregates.
    """

    source_fields: tuple[FieldCatalogEntry, ...]
    predicate: Predicate | None = None
    group_keys: tuple[int, ...] = ()
    aggregates: tuple[AggregateSpec, ...] = ()
    sort_keys: tuple[SortKey, ...] = ()
    limit: int | None = None
    projected_fields: tuple[int, ...] | None = None
    aliases: Mapping[int, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        object.__setattr__(self, "source_fields", tuple(self.source_fields))
        object.__setattr__(self, "group_keys", tuple(sorted(set(self.group_keys))))
        object.__setattr__(self, "aggregates", tuple(self.aggregates))
        object.__setattr__(self, "sort_keys", tuple(self.sort_keys))
        if self.projected_fields is not None:
            object.__setattr__(self, "projected_fields", tuple(self.projected_fields))
        self._validate()

    def _validate(self) -> None:
        if not self.source_fields:
            raise ValueError("PlanFragment requires at least one source field.")
        width = len(self.source_fields)
        referenced = set(self.group_keys)
        for aggregate in self.aggregates:
            referenced.update(aggregate.args)
        if self.predicate is not None:
            referenced |= predicate_fields(self.predicate)
        out_of_range = sorted(index for index in referenced if not 0 <= index < width)
        if out_of_range:
            raise ValueError(f"Source field indices out of range: {out_of_range}.")

        row_names = self.row_names
        if len(set(row_names)) != len(row_names):
            raise ValueError(f"Pre-projection column names must be unique: {row_names}.")
        row_width = len(row_names)
        for key in self.sort_keys:
            if not 0 <= key.field_index < row_width:
                raise ValueError(f"Sort key index {key.field_index} out of range.")
        for index in self.projected_fields or ():
            if not 0 <= index < row_width:
                raise ValueError(f"Projected field index {index} out of range.")
        if self.limit is not None and self.limit < 0:
            raise ValueError("Limit must be non-negative.")

    @property
    def source_names(self) -> list[str]:
        return [entry.name for entry in self.source_fields]

    @property
    def has_aggregation(self) -> bool:
        return bool(self.group_keys or self.aggregates)

    @property
    def row_names(self) -> list[str]:
        names = self.source_names
        if not self.has_aggregation:
            return names
        return [names[index] for index in self.group_keys] + [
            aggregate.output_name(position) for position, aggregate in enumerate(self.aggregates)
        ]

    @property
    def projection(self) -> tuple[int, ...]:
        if self.projected_fields is None:
            return tuple(range(len(self.row_names)))
        return self.projected_fields

    @property
    def output_names(self) -> list[str]:
        row_names = self.row_names
        return [self.aliases.get(index, row_names[index]) for index in self.projection]


@dataclass(frozen=True, slots=True)
class ResidualOps:
    """Operations the remote store did not run; the caller applies them in this order."""

    filter: Predicate | None = None
    aggregate: bool = False
    sort_keys: tuple[SortKey, ...] = ()
    limit: int | None = None

    @property
    def is_empty(self) -> bool:
        return self.filter is None and not self.aggregate and not self.sort_keys and self.limit is None
