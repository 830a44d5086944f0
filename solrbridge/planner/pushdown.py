from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from solrbridge.connectors.base import SourceCapabilities
from solrbridge.errors import UnsupportedAggregate
from solrbridge.models.plan import PlanFragment, ResidualOps, SortKey, predicate_fields
from solrbridge.models.remote import RemoteMetric, RemoteQuerySpec, RemoteSortKey
from solrbridge.planner.metric_translator import translate_aggregate
from solrbridge.planner.predicate_translator import NotTranslatable, translate_predicate


@dataclass(slots=True)
class PushdownPlan:
    fragment: PlanFragment
    remote_spec: RemoteQuerySpec
    residual: ResidualOps
    # remote column name -> pre-projection column name (metric identifier -> aggregate name)
    field_mappings: dict[str, str] = field(default_factory=dict)
    notes: list[str] = field(default_factory=list)

    @property
    def fully_pushed(self) -> bool:
        return self.residual.is_empty

    @property
    def stream_columns(self) -> list[str]:
        return [self.field_mappings.get(name, name) for name in self.remote_spec.selected_fields]

    def explain(self) -> dict[str, Any]:
        residual = self.residual
        names = self.fragment.row_names
        return {
            "remote": self.remote_spec.model_dump(mode="json"),
            "residual": {
                "filter": residual.filter is not None,
                "aggregate": residual.aggregate,
                "sort": [f"{names[key.field_index]} {key.direction.value}" for key in residual.sort_keys],
                "limit": residual.limit,
            },
            "field_mappings": dict(self.field_mappings),
            "notes": list(self.notes),
        }


class PushdownPlanner:
    """
    Decides the longest prefix of filter -> aggregate -> sort -> limit the store can run.

    Once a step stays local every later step stays local too: a limit pushed ahead of a local
    filter, or a remote aggregate over unfiltered rows, would return wrong rows.
    """

    def __init__(
        self,
        *,
        capabilities: SourceCapabilities | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._capabilities = capabilities or SourceCapabilities()
        self._logger = logger or logging.getLogger(__name__)

    def plan(self, fragment: PlanFragment, *, collection: str) -> PushdownPlan:
        caps = self._capabilities
        fields = fragment.source_fields
        notes: list[str] = []

        filter_expression: str | None = None
        residual_filter = None
        if fragment.predicate is not None:
            if caps.pushdown_filter:
                translated = translate_predicate(fragment.predicate, fields)
            else:
                translated = NotTranslatable(reason="store does not accept filters")
            if isinstance(translated, NotTranslatable):
                residual_filter = fragment.predicate
                notes.append(f"filter kept local: {translated.reason}")
            else:
                filter_expression = translated.expression
        blocked = residual_filter is not None

        metrics: tuple[RemoteMetric, ...] = ()
        group_fields: tuple[str, ...] = ()
        aggregate_pushed = False
        residual_aggregate = False
        if fragment.has_aggregation:
            if blocked:
                residual_aggregate = True
                notes.append("aggregation kept local: filter is applied locally")
            elif not caps.pushdown_aggregation:
                residual_aggregate = True
                notes.append("aggregation kept local: store does not aggregate")
            else:
                try:
                    group_fields = self._group_fields(fragment)
                    metrics = tuple(
                        translate_aggregate(aggregate, fields, position=position, capabilities=caps)
                        for position, aggregate in enumerate(fragment.aggregates)
                    )
                except UnsupportedAggregate as exc:
                    residual_aggregate = True
                    group_fields, metrics = (), ()
                    notes.append(f"aggregation kept local: {exc}")
                else:
                    aggregate_pushed = True
            blocked = blocked or residual_aggregate

        sort_spec: tuple[RemoteSortKey, ...] | None = None
        residual_sort: tuple[SortKey, ...] = ()
        if fragment.sort_keys:
            reason = self._sort_blocker(fragment, blocked=blocked, aggregate_pushed=aggregate_pushed)
            if reason is None:
                sort_spec = tuple(
                    RemoteSortKey(
                        field=self._remote_column(fragment, key.field_index, group_fields, metrics),
                        direction=key.direction,
                    )
                    for key in fragment.sort_keys
                )
            else:
                residual_sort = fragment.sort_keys
                notes.append(f"sort kept local: {reason}")
                blocked = True

        limit: int | None = None
        residual_limit: int | None = None
        if fragment.limit is not None:
            if blocked or not caps.pushdown_limit or (aggregate_pushed and not caps.pushdown_aggregate_sort):
                residual_limit = fragment.limit
                notes.append("limit kept local")
            else:
                limit = fragment.limit

        field_mappings: dict[str, str] = {}
        if aggregate_pushed:
            aggregate_names = fragment.row_names[len(group_fields):]
            field_mappings = {metric.identifier: name for metric, name in zip(metrics, aggregate_names)}
            selected = group_fields + tuple(metric.identifier for metric in metrics)
        else:
            selected = self._selected_fields(fragment, residual_filter is not None, residual_aggregate)

        spec = RemoteQuerySpec(
            collection=collection,
            selected_fields=selected,
            filter_expression=filter_expression,
            group_fields=group_fields,
            metrics=metrics,
            sort_spec=sort_spec,
            limit=limit,
        )
        residual = ResidualOps(
            filter=residual_filter,
            aggregate=residual_aggregate,
            sort_keys=residual_sort,
            limit=residual_limit,
        )
        self._logger.debug(
            "Planned collection=%s filter=%s metrics=%s sort=%s limit=%s residual_empty=%s",
            collection,
            filter_expression,
            [metric.expression for metric in metrics],
            sort_spec,
            limit,
            residual.is_empty,
        )
        return PushdownPlan(
            fragment=fragment,
            remote_spec=spec,
            residual=residual,
            field_mappings=field_mappings,
            notes=notes,
        )

    @staticmethod
    def _group_fields(fragment: PlanFragment) -> tuple[str, ...]:
        names: list[str] = []
        for index in fragment.group_keys:
            entry = fragment.source_fields[index]
            if entry.multi_valued:
                # terms facets bucket every value, not the first one
                raise UnsupportedAggregate(f"Grouping on multi-valued field '{entry.name}'.")
            names.append(entry.name)
        return tuple(names)

    def _sort_blocker(self, fragment: PlanFragment, *, blocked: bool, aggregate_pushed: bool) -> str | None:
        caps = self._capabilities
        if blocked:
            return "an earlier step is applied locally"
        if not caps.pushdown_sort:
            return "store does not sort"
        if aggregate_pushed:
            if not caps.pushdown_aggregate_sort:
                return "store does not sort aggregated buckets"
            return None
        for key in fragment.sort_keys:
            if fragment.source_fields[key.field_index].multi_valued:
                return f"'{fragment.source_fields[key.field_index].name}' is multi-valued"
        return None

    @staticmethod
    def _remote_column(
        fragment: PlanFragment,
        index: int,
        group_fields: tuple[str, ...],
        metrics: tuple[RemoteMetric, ...],
    ) -> str:
        if not fragment.has_aggregation:
            return fragment.source_names[index]
        if index < len(group_fields):
            return group_fields[index]
        return metrics[index - len(group_fields)].identifier

    def _selected_fields(
        self,
        fragment: PlanFragment,
        residual_filter: bool,
        residual_aggregate: bool,
    ) -> tuple[str, ...]:
        names = fragment.source_names
        if not self._capabilities.pushdown_projection:
            return tuple(names)

        needed: set[int] = set()
        if residual_filter and fragment.predicate is not None:
            needed |= predicate_fields(fragment.predicate)
        if residual_aggregate:
            needed.update(fragment.group_keys)
            for aggregate in fragment.aggregates:
                needed.update(aggregate.args)
        else:
            needed.update(fragment.projection)
            needed.update(key.field_index for key in fragment.sort_keys)
        if not needed:
            # COUNT(*) alone still needs one column per document
            needed.add(0)
        return tuple(names[index] for index in sorted(needed))
