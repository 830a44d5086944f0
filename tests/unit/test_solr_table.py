from __future__ import annotations

import pytest

from conftest import COLLECTION, FIELDA, FIELDB, FIELDC, FIELDD, FIELDE, FIELDF, FIELDS, build_store
from solrbridge import SolrSchema, SolrTable
from solrbridge.connectors import InMemoryCollection, InMemoryRemoteStore, SourceCapabilities
from solrbridge.errors import StreamReadError
from solrbridge.models import (
    AggregateFunction,
    AggregateSpec,
    And,
    Comparison,
    ComparisonOperator,
    Constant,
    FieldCatalogEntry,
    FieldRef,
    LogicalType,
    Or,
    SortDirection,
    SortKey,
)

NO_PUSHDOWN = SourceCapabilities(
    pushdown_filter=False,
    pushdown_projection=False,
    pushdown_aggregation=False,
    pushdown_sort=False,
    pushdown_limit=False,
)


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _cmp(op: ComparisonOperator, index: int, value) -> Comparison:
    return Comparison(op=op, left=FieldRef(index), right=Constant(value))


def _table(**kwargs) -> SolrTable:
    return SolrTable(store=build_store(**kwargs), collection=COLLECTION)


def _normalize(rows: list) -> list:
    def _value(value):
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return float(value)
        return value

    normalized = [tuple(_value(item) for item in row) if isinstance(row, tuple) else _value(row) for row in rows]
    return sorted(normalized, key=repr)


@pytest.mark.anyio
async def test_single_field_projection_yields_bare_values() -> None:
    table = _table()
    fragment = await table.fragment(
        predicate=_cmp(ComparisonOperator.EQ, FIELDB, "b2"),
        projected_fields=(FIELDA,),
    )

    result = await table.execute(fragment)

    assert result.rows == ["a2", "a2"]
    assert result.columns == ["fielda"]
    assert result.residual.is_empty
    assert result.remote_spec.filter_expression == 'fieldb:"b2"'


@pytest.mark.anyio
async def test_disjunction_is_applied_locally() -> None:
    table = _table()
    fragment = await table.fragment(
        predicate=Or(
            terms=(_cmp(ComparisonOperator.EQ, FIELDB, "b1"), _cmp(ComparisonOperator.EQ, FIELDB, "b3"))
        ),
        projected_fields=(FIELDB, FIELDC),
        sort_keys=(SortKey(FIELDC),),
    )

    result = await table.execute(fragment)

    assert result.rows == [("b1", 1), ("b3", 3)]
    assert result.remote_spec.filter_expression is None
    assert result.remote_rows == 5


@pytest.mark.anyio
async def test_group_by_count_and_sum_are_pushed() -> None:
    table = _table()
    fragment = await table.fragment(
        group_keys=(FIELDD,),
        aggregates=(
            AggregateSpec(AggregateFunction.COUNT),
            AggregateSpec(AggregateFunction.SUM, args=(FIELDE,)),
        ),
    )

    result = await table.execute(fragment)

    assert result.residual.is_empty
    assert result.columns == ["fieldd_s", "count_0", "sum_1"]
    assert _normalize(result.rows) == _normalize([("d1", 2, 2), ("d2", 2, 2), (None, 1, 1)])


@pytest.mark.anyio
async def test_count_star_differs_from_count_of_field() -> None:
    table = _table()
    fragment = await table.fragment(
        aggregates=(
            AggregateSpec(AggregateFunction.COUNT),
            AggregateSpec(AggregateFunction.COUNT, args=(FIELDC,)),
        ),
    )

    result = await table.execute(fragment)

    assert result.rows == [(5, 4)]


@pytest.mark.anyio
async def test_sort_and_limit_are_pushed_with_nulls_last() -> None:
    table = _table()
    fragment = await table.fragment(
        sort_keys=(SortKey(FIELDC, SortDirection.DESC),),
        limit=2,
        projected_fields=(FIELDC,),
    )

    result = await table.execute(fragment)

    assert result.rows == [4, 3]
    assert result.remote_spec.limit == 2


@pytest.mark.anyio
async def test_aliases_rename_output_columns() -> None:
    table = _table()
    fragment = await table.fragment(
        group_keys=(FIELDA,),
        aggregates=(AggregateSpec(AggregateFunction.MAX, args=(FIELDC,)),),
        projected_fields=(1, 0),
        aliases={1: "EXPR$0"},
        sort_keys=(SortKey(0),),
    )

    result = await table.execute(fragment)

    assert result.columns == ["EXPR$0", "fielda"]
    assert result.rows == [(4, "a1"), (2, "a2")]
    assert result.residual.sort_keys == (SortKey(0),)


@pytest.mark.anyio
async def test_multi_valued_filter_uses_first_value_locally() -> None:
    table = _table()
    fragment = await table.fragment(
        predicate=_cmp(ComparisonOperator.EQ, FIELDF, "y"),
        projected_fields=(0,),
    )

    result = await table.execute(fragment)

    # document 1 holds ["x", "y"], so only document 2 has "y" first
    assert result.rows == ["2"]
    assert result.residual.filter is not None


FRAGMENTS = [
    dict(predicate=_cmp(ComparisonOperator.NE, FIELDD, "d1"), projected_fields=(0,)),
    dict(
        predicate=And(terms=(_cmp(ComparisonOperator.GE, FIELDC, 2), _cmp(ComparisonOperator.LT, FIELDE, 2))),
        projected_fields=(0, FIELDC),
    ),
    dict(
        group_keys=(FIELDA,),
        aggregates=(
            AggregateSpec(AggregateFunction.COUNT),
            AggregateSpec(AggregateFunction.SUM, args=(FIELDC,)),
            AggregateSpec(AggregateFunction.MIN, args=(FIELDC,)),
            AggregateSpec(AggregateFunction.AVG, args=(FIELDE,)),
        ),
    ),
    dict(
        predicate=_cmp(ComparisonOperator.EQ, FIELDA, "zz"),
        aggregates=(AggregateSpec(AggregateFunction.SUM, args=(FIELDC,)), AggregateSpec(AggregateFunction.COUNT)),
    ),
    dict(sort_keys=(SortKey(FIELDC),), limit=3, projected_fields=(0,)),
]


@pytest.mark.anyio
@pytest.mark.parametrize("kwargs", FRAGMENTS)
async def test_pushdown_and_local_evaluation_agree(kwargs) -> None:
    pushed_table = _table()
    local_table = _table(capabilities=NO_PUSHDOWN)

    pushed = await pushed_table.execute(await pushed_table.fragment(**kwargs))
    local = await local_table.execute(await local_table.fragment(**kwargs))

    assert local.remote_spec.filter_expression is None
    assert not local.remote_spec.is_aggregate
    if "sort_keys" in kwargs:
        assert pushed.rows == local.rows
    else:
        assert _normalize(pushed.rows) == _normalize(local.rows)


@pytest.mark.anyio
async def test_describe_row_type_collapses_single_column() -> None:
    table = _table()

    single = table.describe_row_type(await table.fragment(projected_fields=(FIELDC,), aliases={FIELDC: "c"}))
    wide = table.describe_row_type(
        await table.fragment(group_keys=(FIELDA,), aggregates=(AggregateSpec(AggregateFunction.AVG, args=(FIELDC,)),))
    )

    assert single == FieldCatalogEntry(name="c", logical_type=LogicalType.INTEGER)
    assert [entry.logical_type for entry in wide] == [LogicalType.STRING, LogicalType.FLOAT]


@pytest.mark.anyio
async def test_scan_returns_open_cursor_over_pushed_part() -> None:
    table = _table()
    fragment = await table.fragment(predicate=_cmp(ComparisonOperator.EQ, FIELDA, "a2"), projected_fields=(0,))

    cursor = await table.scan(fragment)
    ids = [row async for row in cursor]

    assert ids == ["2", "5"]


@pytest.mark.anyio
async def test_catalog_is_fetched_once() -> None:
    table = _table()

    first = await table.catalog()
    second = await table.catalog()

    assert first is second


@pytest.mark.anyio
async def test_schema_lists_collections() -> None:
    schema = SolrSchema(store=build_store())

    tables = await schema.tables()

    assert list(tables) == [COLLECTION]
    assert (await schema.table(COLLECTION)) is tables[COLLECTION]
    with pytest.raises(KeyError):
        await schema.table("missing")


@pytest.mark.anyio
async def test_explain_reports_residual_steps() -> None:
    table = _table()
    fragment = await table.fragment(
        group_keys=(FIELDA,),
        aggregates=(AggregateSpec(AggregateFunction.COUNT),),
        sort_keys=(SortKey(1, SortDirection.DESC),),
    )

    explained = table.explain(fragment)

    assert explained["remote"]["group_fields"] == ["fielda"]
    assert explained["residual"]["sort"] == ["count_0 desc"]


@pytest.mark.anyio
async def test_equality_filter_keeps_source_order() -> None:
    table = _table()
    fragment = await table.fragment(predicate=_cmp(ComparisonOperator.EQ, FIELDA, "a1"), projected_fields=(0,))

    result = await table.execute(fragment)

    assert result.rows == ["1", "3", "4"]


@pytest.mark.anyio
async def test_field_to_field_comparison_matches_native_filtering() -> None:
    table = _table()
    fragment = await table.fragment(
        predicate=Comparison(op=ComparisonOperator.EQ, left=FieldRef(FIELDC), right=FieldRef(FIELDE)),
        projected_fields=(0,),
    )

    result = await table.execute(fragment)

    assert result.rows == ["1"]
    assert result.residual.filter is not None


@pytest.mark.anyio
async def test_count_distinct_falls_back_to_local_aggregation() -> None:
    table = _table()
    fragment = await table.fragment(
        group_keys=(FIELDA,),
        aggregates=(AggregateSpec(AggregateFunction.COUNT, args=(FIELDB,), distinct=True),),
        sort_keys=(SortKey(0),),
    )

    result = await table.execute(fragment)

    assert result.residual.aggregate
    assert not result.remote_spec.is_aggregate
    assert result.rows == [("a1", 3), ("a2", 1)]


@pytest.mark.anyio
async def test_value_of_the_wrong_type_is_a_read_error() -> None:
    store = InMemoryRemoteStore(
        collections={
            COLLECTION: InMemoryCollection(
                fields=list(FIELDS),
                documents=[{"id": "1", "fieldc": 1}, {"id": "2", "fieldc": "abc"}],
            )
        }
    )
    table = SolrTable(store=store, collection=COLLECTION)
    fragment = await table.fragment(projected_fields=(0, FIELDC))

    with pytest.raises(StreamReadError, match="fieldc"):
        await table.execute(fragment)
    assert store.open_streams == 0
