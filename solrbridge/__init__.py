"""Push-down adapter exposing Solr collections as relational tables."""

from solrbridge.connectors import InMemoryRemoteStore, SolrRemoteStore
from solrbridge.errors import (
    CursorBusy,
    CursorClosed,
    MetadataUnavailable,
    RemoteQueryError,
    ResidualEvaluationError,
    SolrBridgeError,
    StreamReadError,
    UnsupportedAggregate,
)
from solrbridge.table import QueryResult, SolrSchema, SolrTable

__all__ = [
    "InMemoryRemoteStore",
    "SolrRemoteStore",
    "CursorBusy",
    "CursorClosed",
    "MetadataUnavailable",
    "RemoteQueryError",
    "ResidualEvaluationError",
    "SolrBridgeError",
    "StreamReadError",
    "UnsupportedAggregate",
    "QueryResult",
    "SolrSchema",
    "SolrTable",
]
