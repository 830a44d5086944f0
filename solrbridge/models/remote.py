from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator

from solrbridge.models.plan import SortDirection


class RemoteMetric(BaseModel):
    model_config = ConfigDict(frozen=True)

    identifier: str
    function: str
    field: str | None = None
    empty_value: Any = None

    @property
    def expression(self) -> str:
        if self.field is None:
            return f"{self.function}(*)"
        return f"{self.function}({self.field})"


class RemoteSortKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    field: str
    direction: SortDirection = SortDirection.ASC

    def render(self) -> str:
        return f"{self.field} {self.direction.value}"


class RemoteQuerySpec(BaseModel):
    """
    Request issued to the remote store. `selected_fields` names the columns of every streamed
    tuple: raw document fields for scans, group fields followed by metric identifiers for
    aggregations.
    """

    model_config = ConfigDict(frozen=True)

    collection: str
    selected_fields: tuple[str, ...]
    filter_expression: str | None = None
    group_fields: tuple[str, ...] = ()
    metrics: tuple[RemoteMetric, ...] = ()
    sort_spec: tuple[RemoteSortKey, ...] | None = None
    limit: int | None = Field(default=None, ge=0)

    @model_validator(mode="after")
    def _validate_aggregate_shape(self) -> "RemoteQuerySpec":
        if self.is_aggregate:
            expected = self.group_fields + tuple(metric.identifier for metric in self.metrics)
            if self.selected_fields != expected:
                raise ValueError("Aggregate specs must select group fields followed by metric identifiers.")
        return self

    @property
    def is_aggregate(self) -> bool:
        return bool(self.metrics or self.group_fields)
