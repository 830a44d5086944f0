from __future__ import annotations

import logging
from typing import Any, Mapping, Sequence

import duckdb
import pyarrow as pa
from sqlglot import exp

from solrbridge.errors import ResidualEvaluationError
from solrbridge.models.catalog import LogicalType
from solrbridge.models.plan import (
    AggregateFunction,
    AggregateSpec,
    And,
    Comparison,
    ComparisonOperator,
    Constant,
    FieldRef,
    IsNull,
    Not,
    Or,
    PlanFragment,
    Predicate,
    ResidualOps,
)

RESIDUAL_INPUT = "residual_input"

_ARROW_TYPES = {
    LogicalType.STRING: pa.string(),
    LogicalType.INTEGER: pa.int64(),
    LogicalType.FLOAT: pa.float64(),
}

_COMPARISONS = {
    ComparisonOperator.EQ: exp.EQ,
    ComparisonOperator.NE: exp.NEQ,
    ComparisonOperator.LT: exp.LT,
    ComparisonOperator.LE: exp.LTE,
    ComparisonOperator.GT: exp.GT,
    ComparisonOperator.GE: exp.GTE,
}


class ResidualEvaluator:
    """Applies residual operations to pushed rows with an in-memory DuckDB query."""

    def __init__(self, *, logger: logging.Logger | None = None) -> None:
        self._logger = logger or logging.getLogger(__name__)

    def apply(
        self,
        *,
        fragment: PlanFragment,
        residual: ResidualOps,
        columns: Sequence[str],
        rows: Sequence[Sequence[Any]],
        column_types: Mapping[str, LogicalType] | None = None,
    ) -> tuple[list[str], list[tuple[Any, ...]]]:
        if residual.is_empty:
            return list(columns), [tuple(row) for row in rows]

        table = rows_to_arrow(columns, rows, column_types or {})
        sql = build_residual_sql(fragment, residual)
        self._logger.debug("Applying residual operations over %s rows: %s", table.num_rows, sql)

        connection = duckdb.connect(database=":memory:")
        try:
            connection.register(RESIDUAL_INPUT, table)
            result = connection.execute(sql)
            output_columns = [description[0] for description in result.description]
            output_rows = [tuple(row) for row in result.fetchall()]
        except duckdb.Error as exc:
            raise ResidualEvaluationError(f"Residual evaluation failed: {exc}") from exc
        finally:
            connection.close()
        return output_columns, output_rows


def rows_to_arrow(
    columns: Sequence[str],
    rows: Sequence[Sequence[Any]],
    column_types: Mapping[str, LogicalType],
) -> pa.Table:
    arrays: list[pa.Array] = []
    for position, column in enumerate(columns):
        values = [row[position] if position < len(row) else None for row in rows]
        arrow_type = _ARROW_TYPES.get(column_types.get(column, LogicalType.ANY))
        if arrow_type is not None:
            arrays.append(pa.array(values, type=arrow_type))
            continue
        try:
            arrays.append(pa.array(values))
        except (pa.ArrowInvalid, pa.ArrowTypeError):
            # schemaless columns can mix scalar types; compare them as text
            arrays.append(pa.array([None if value is None else str(value) for value in values], type=pa.string()))
    return pa.Table.from_arrays(arrays, names=list(columns))


def build_residual_sql(fragment: PlanFragment, residual: ResidualOps) -> str:
    names = fragment.source_names
    if residual.aggregate:
        projections: list[exp.Expression] = [_column(names[index]) for index in fragment.group_keys]
        projections.extend(
            exp.alias_(_aggregate(aggregate, names), aggregate.output_name(position), quoted=True)
            for position, aggregate in enumerate(fragment.aggregates)
        )
        query = exp.select(*projections).from_(RESIDUAL_INPUT)
    else:
        query = exp.select(exp.Star()).from_(RESIDUAL_INPUT)

    if residual.filter is not None:
        query = query.where(predicate_to_sql(residual.filter, names))
    if residual.aggregate and fragment.group_keys:
        query = query.group_by(*[_column(names[index]) for index in fragment.group_keys])

    if residual.sort_keys or residual.limit is not None:
        row_names = fragment.row_names
        query = exp.select(exp.Star()).from_(query.subquery("residual_rows"))
        if residual.sort_keys:
            query = query.order_by(
                *[
                    exp.Ordered(
                        this=_column(row_names[key.field_index]),
                        desc=key.direction.value == "desc",
                        nulls_first=False,
                    )
                    for key in residual.sort_keys
                ]
            )
        if residual.limit is not None:
            query = query.limit(residual.limit)
    return query.sql(dialect="duckdb")


def predicate_to_sql(predicate: Predicate, names: Sequence[str]) -> exp.Expression:
    match predicate:
        case Comparison(op=op, left=left, right=right):
            return _COMPARISONS[op](this=_operand(left, names), expression=_operand(right, names))
        case And(terms=terms):
            return exp.and_(*[predicate_to_sql(term, names) for term in terms]) if terms else exp.true()
        case Or(terms=terms):
            return exp.or_(*[predicate_to_sql(term, names) for term in terms]) if terms else exp.false()
        case Not(term=term):
            return exp.not_(predicate_to_sql(term, names))
        case IsNull(operand=operand, negated=negated):
            check = exp.Is(this=_operand(operand, names), expression=exp.Null())
            return exp.not_(check) if negated else check
    raise TypeError(f"Unsupported predicate node {predicate!r}.")


def _operand(operand: FieldRef | Constant, names: Sequence[str]) -> exp.Expression:
    if isinstance(operand, FieldRef):
        return _column(names[operand.index])
    return exp.convert(operand.value)


def _column(name: str) -> exp.Column:
    return exp.column(name, quoted=True)


def _aggregate(aggregate: AggregateSpec, names: Sequence[str]) -> exp.Expression:
    if not aggregate.args:
        if aggregate.function != AggregateFunction.COUNT:
            raise ResidualEvaluationError(f"{aggregate.function.value} requires an argument.")
        return exp.Count(this=exp.Star())

    argument: exp.Expression = _column(names[aggregate.args[0]])
    if aggregate.distinct:
        argument = exp.Distinct(expressions=[argument])
    match aggregate.function:
        case AggregateFunction.COUNT:
            return exp.Count(this=argument)
        case AggregateFunction.SUM:
            # matches the store's sum of an empty bucket
            return exp.Coalesce(this=exp.Sum(this=argument), expressions=[exp.Literal.number(0)])
        case AggregateFunction.MIN:
            return exp.Min(this=argument)
        case AggregateFunction.MAX:
            return exp.Max(this=argument)
        case AggregateFunction.AVG:
            return exp.Avg(this=argument)
    raise ResidualEvaluationError(f"Unsupported aggregate {aggregate.function!r}.")
