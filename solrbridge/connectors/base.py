from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from solrbridge.models.remote import RemoteQuerySpec


@dataclass(slots=True)
class SourceCapabilities:
    pushdown_filter: bool = True
    pushdown_projection: bool = True
    pushdown_aggregation: bool = True
    pushdown_sort: bool = True
    pushdown_limit: bool = True
    # sort/limit applied to aggregated buckets
    pushdown_aggregate_sort: bool = False
    exact_distinct_count: bool = False


@dataclass(frozen=True, slots=True)
class FieldMetadata:
    name: str
    type_hint: str | None = None
    multi_valued: bool = False


class TupleStream:
    """Open remote result stream. `read` returns one document per call and None at EOF."""

    async def read(self) -> dict[str, Any] | None:
        raise NotImplementedError

    async def close(self) -> None:
        raise NotImplementedError


class RemoteStore:
    """
    Remote document store the adapter pushes work into.

    `fetch_field_metadata` raises MetadataUnavailable, `open_stream` raises RemoteQueryError and
    `TupleStream.read` raises StreamReadError; transport exceptions never leak unwrapped.
    """

    store_id: str

    def capabilities(self) -> SourceCapabilities:
        raise NotImplementedError

    async def list_collections(self) -> list[str]:
        raise NotImplementedError

    async def fetch_field_metadata(self, collection: str) -> list[FieldMetadata]:
        raise NotImplementedError

    async def open_stream(self, spec: RemoteQuerySpec) -> TupleStream:
        raise NotImplementedError
