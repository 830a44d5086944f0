from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any

from solrbridge.connectors.base import RemoteStore
from solrbridge.errors import StreamReadError
from solrbridge.executor.adapter import StreamingResultAdapter
from solrbridge.executor.cursor import ResultCursor
from solrbridge.executor.row_shaping import RowShaper, collapse_row
from solrbridge.models.catalog import FieldCatalog, FieldCatalogEntry, LogicalType
from solrbridge.models.plan import AggregateFunction, PlanFragment, ResidualOps
from solrbridge.models.remote import RemoteQuerySpec
from solrbridge.planner.pushdown import PushdownPlan, PushdownPlanner
from solrbridge.planner.residual import ResidualEvaluator
from solrbridge.schema.inspector import SchemaInspector
from solrbridge.schema.types import coerce_value
from solrbridge.utils.logger import get_tracer


@dataclass(slots=True)
class QueryResult:
    columns: list[str]
    rows: list[Any]
    remote_spec: RemoteQuerySpec
    residual: ResidualOps
    remote_rows: int = 0
    elapsed_ms: int = 0
    notes: list[str] = field(default_factory=list)


class SolrTable:
    """
    One remote collection exposed as a relational table.

    The field catalog is fetched on first use and cached for the life of the table; it is never
    mutated afterwards, so cursors opened concurrently share it without locking.
    """

    def __init__(
        self,
        *,
        store: RemoteStore,
        collection: str,
        inspector: SchemaInspector | None = None,
        planner: PushdownPlanner | None = None,
        residual_evaluator: ResidualEvaluator | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._store = store
        self._collection = collection
        self._logger = logger or logging.getLogger(__name__)
        self._inspector = inspector or SchemaInspector(store=store, logger=self._logger)
        self._planner = planner or PushdownPlanner(capabilities=store.capabilities(), logger=self._logger)
        self._residual_evaluator = residual_evaluator or ResidualEvaluator(logger=self._logger)
        self._adapter = StreamingResultAdapter(store=store, logger=self._logger)
        self._catalog: FieldCatalog | None = None

    @property
    def collection(self) -> str:
        return self._collection

    async def catalog(self) -> FieldCatalog:
        if self._catalog is None:
            self._catalog = await self._inspector.fetch_catalog(self._collection)
        return self._catalog

    async def fragment(self, **kwargs: Any) -> PlanFragment:
        """Build a fragment over every catalog field, in catalog order."""
        catalog = await self.catalog()
        return PlanFragment(source_fields=catalog.entries, **kwargs)

    def plan(self, fragment: PlanFragment) -> PushdownPlan:
        return self._planner.plan(fragment, collection=self._collection)

    def explain(self, fragment: PlanFragment) -> dict[str, Any]:
        return self.plan(fragment).explain()

    def describe_row_type(self, fragment: PlanFragment) -> FieldCatalogEntry | tuple[FieldCatalogEntry, ...]:
        """Output row type: one entry when a single column is projected, a tuple otherwise."""
        row_types = _row_types(fragment)
        row_names = fragment.row_names
        columns = tuple(
            FieldCatalogEntry(
                name=fragment.aliases.get(index, row_names[index]),
                logical_type=row_types[index],
            )
            for index in fragment.projection
        )
        return collapse_row(columns)

    async def scan(self, fragment: PlanFragment) -> ResultCursor:
        """Open a cursor over the pushed part of `fragment`; residual operations are not applied."""
        plan = self.plan(fragment)
        return await self._adapter.open(plan.remote_spec)

    async def execute(self, fragment: PlanFragment) -> QueryResult:
        started = time.perf_counter()
        plan = self.plan(fragment)
        column_types = _column_types(fragment, plan)

        with get_tracer().start_as_current_span("solrbridge.execute") as span:
            span.set_attribute("solr.collection", self._collection)
            span.set_attribute("solr.fully_pushed", plan.fully_pushed)

            columns = plan.stream_columns
            rows: list[tuple[Any, ...]] = []
            cursor = await self._adapter.open(plan.remote_spec)
            async with cursor:
                while await cursor.advance():
                    rows.append(_coerce_row(columns, cursor.current_row or (), column_types))
            remote_rows = len(rows)
            span.set_attribute("solr.remote_rows", remote_rows)

            columns, rows = self._residual_evaluator.apply(
                fragment=fragment,
                residual=plan.residual,
                columns=columns,
                rows=rows,
                column_types=column_types,
            )

        row_names = fragment.row_names
        shaper = RowShaper(
            input_columns=columns,
            output_sources=[row_names[index] for index in fragment.projection],
            rename_map={row_names[index]: alias for index, alias in fragment.aliases.items()},
        )
        elapsed_ms = int((time.perf_counter() - started) * 1000)
        self._logger.info(
            "Executed collection=%s remote_rows=%s rows=%s fully_pushed=%s elapsed_ms=%s",
            self._collection,
            remote_rows,
            len(rows),
            plan.fully_pushed,
            elapsed_ms,
        )
        return QueryResult(
            columns=list(shaper.columns),
            rows=[shaper.shape(row) for row in rows],
            remote_spec=plan.remote_spec,
            residual=plan.residual,
            remote_rows=remote_rows,
            elapsed_ms=elapsed_ms,
            notes=list(plan.notes),
        )


class SolrSchema:
    """Tables for every collection the store's metadata service reports."""

    def __init__(self, *, store: RemoteStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)
        self._tables: dict[str, SolrTable] = {}

    async def tables(self) -> dict[str, SolrTable]:
        for collection in await self._store.list_collections():
            if collection not in self._tables:
                self._tables[collection] = SolrTable(store=self._store, collection=collection, logger=self._logger)
        return dict(self._tables)

    async def table(self, collection: str) -> SolrTable:
        tables = await self.tables()
        try:
            return tables[collection]
        except KeyError as exc:
            raise KeyError(f"Collection '{collection}' is not available from store '{self._store.store_id}'.") from exc


def _row_types(fragment: PlanFragment) -> list[LogicalType]:
    source_types = [entry.logical_type for entry in fragment.source_fields]
    if not fragment.has_aggregation:
        return source_types
    types = [source_types[index] for index in fragment.group_keys]
    for aggregate in fragment.aggregates:
        match aggregate.function:
            case AggregateFunction.COUNT:
                types.append(LogicalType.INTEGER)
            case AggregateFunction.MIN | AggregateFunction.MAX:
                index = aggregate.arg_field_index
                types.append(source_types[index] if index is not None else LogicalType.ANY)
            case _:
                types.append(LogicalType.FLOAT)
    return types


def _column_types(fragment: PlanFragment, plan: PushdownPlan) -> dict[str, LogicalType]:
    types = {entry.name: entry.logical_type for entry in fragment.source_fields}
    if plan.field_mappings:
        row_types = _row_types(fragment)
        types.update(zip(fragment.row_names, row_types))
    return types


def _coerce_row(
    columns: list[str],
    row: tuple[Any, ...],
    column_types: dict[str, LogicalType],
) -> tuple[Any, ...]:
    coerced: list[Any] = []
    for name, value in zip(columns, row):
        try:
            coerced.append(coerce_value(value, column_types.get(name, LogicalType.ANY)))
        except ValueError as exc:
            raise StreamReadError(f"Column '{name}' returned a value of the wrong type: {exc}") from exc
    return tuple(coerced)
