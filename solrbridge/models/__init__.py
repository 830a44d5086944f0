from solrbridge.models.catalog import FieldCatalog, FieldCatalogEntry, LogicalType
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
    SortDirection,
    SortKey,
)
from solrbridge.models.remote import RemoteMetric, RemoteQuerySpec, RemoteSortKey

__all__ = [
    "FieldCatalog",
    "FieldCatalogEntry",
    "LogicalType",
    "AggregateFunction",
    "AggregateSpec",
    "And",
    "Comparison",
    "ComparisonOperator",
    "Constant",
    "FieldRef",
    "IsNull",
    "Not",
    "Or",
    "PlanFragment",
    "Predicate",
    "ResidualOps",
    "SortDirection",
    "SortKey",
    "RemoteMetric",
    "RemoteQuerySpec",
    "RemoteSortKey",
]
