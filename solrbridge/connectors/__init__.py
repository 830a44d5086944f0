from solrbridge.connectors.base import FieldMetadata, RemoteStore, SourceCapabilities, TupleStream
from solrbridge.connectors.memory import InMemoryCollection, InMemoryRemoteStore
from solrbridge.connectors.solr import SolrRemoteStore

__all__ = [
    "FieldMetadata",
    "RemoteStore",
    "SourceCapabilities",
    "TupleStream",
    "InMemoryCollection",
    "InMemoryRemoteStore",
    "SolrRemoteStore",
]
