from __future__ import annotations

from typing import Sequence

from solrbridge.connectors.base import SourceCapabilities
from solrbridge.errors import UnsupportedAggregate
from solrbridge.models.catalog import FieldCatalogEntry, LogicalType
from solrbridge.models.plan import AggregateFunction, AggregateSpec
from solrbridge.models.remote import RemoteMetric

_NUMERIC_ARGUMENT = {AggregateFunction.SUM, AggregateFunction.AVG}


def translate_aggregate(
    aggregate: AggregateSpec,
    fields: Sequence[FieldCatalogEntry | str],
    *,
    position: int = 0,
    capabilities: SourceCapabilities | None = None,
) -> RemoteMetric:
    """
    Map one aggregate call onto a JSON facet metric.

    COUNT() and COUNT(field) stay distinct metrics (bucket count vs. countvals) because the
    field may be null. Raises UnsupportedAggregate for anything without an exact remote
    equivalent so the caller falls back to local aggregation.
    """
    capabilities = capabilities or SourceCapabilities()
    entries = [FieldCatalogEntry(name=item) if isinstance(item, str) else item for item in fields]
    identifier = f"m{position}"

    match (aggregate.function, len(aggregate.args)):
        case (AggregateFunction.COUNT, 0):
            if aggregate.distinct:
                raise UnsupportedAggregate("COUNT(DISTINCT) requires an argument.")
            return RemoteMetric(identifier=identifier, function="count", empty_value=0)
        case (AggregateFunction.COUNT, 1):
            entry = _argument(aggregate, entries)
            if aggregate.distinct:
                if not capabilities.exact_distinct_count:
                    raise UnsupportedAggregate(
                        f"COUNT(DISTINCT {entry.name}) has no exact distinct metric on this store."
                    )
                return RemoteMetric(identifier=identifier, function="unique", field=entry.name, empty_value=0)
            return RemoteMetric(identifier=identifier, function="countvals", field=entry.name, empty_value=0)
        case (AggregateFunction.SUM, 1):
            entry = _argument(aggregate, entries)
            _reject_distinct(aggregate)
            # the store answers 0 for a bucket without values; keep it rather than mapping to NULL
            return RemoteMetric(identifier=identifier, function="sum", field=entry.name, empty_value=0)
        case (AggregateFunction.MIN, 1) | (AggregateFunction.MAX, 1):
            # DISTINCT does not change MIN/MAX
            entry = _argument(aggregate, entries)
            return RemoteMetric(identifier=identifier, function=aggregate.function.value.lower(), field=entry.name)
        case (AggregateFunction.AVG, 1):
            entry = _argument(aggregate, entries)
            _reject_distinct(aggregate)
            return RemoteMetric(identifier=identifier, function="avg", field=entry.name)
        case (function, count):
            raise UnsupportedAggregate(f"Invalid aggregation {function.value} with {count} argument(s).")


def _argument(aggregate: AggregateSpec, entries: list[FieldCatalogEntry]) -> FieldCatalogEntry:
    entry = entries[aggregate.args[0]]
    if entry.multi_valued:
        # facet stats aggregate every value of a multi-valued field, not the first one
        raise UnsupportedAggregate(f"{aggregate.function.value} over multi-valued field '{entry.name}'.")
    if aggregate.function in _NUMERIC_ARGUMENT and entry.logical_type == LogicalType.STRING:
        raise UnsupportedAggregate(f"{aggregate.function.value} over string field '{entry.name}'.")
    return entry


def _reject_distinct(aggregate: AggregateSpec) -> None:
    if aggregate.distinct:
        raise UnsupportedAggregate(f"{aggregate.function.value}(DISTINCT) has no remote metric.")
