from __future__ import annotations

import json
import logging
from typing import Any

import httpx

from solrbridge.config import settings
from solrbridge.connectors.base import FieldMetadata, RemoteStore, SourceCapabilities, TupleStream
from solrbridge.errors import MetadataUnavailable, RemoteQueryError, StreamReadError
from solrbridge.models.remote import RemoteQuerySpec, RemoteSortKey

GROUP_FACET_PREFIX = "group_"


class _BufferedTupleStream(TupleStream):
    """Serves tuples that arrived in a single response (facet buckets)."""

    def __init__(self, rows: list[dict[str, Any]]) -> None:
        self._rows = rows
        self._position = 0
        self._closed = False

    async def read(self) -> dict[str, Any] | None:
        if self._closed:
            raise StreamReadError("Stream is closed.")
        if self._position >= len(self._rows):
            return None
        row = self._rows[self._position]
        self._position += 1
        return row

    async def close(self) -> None:
        self._closed = True
        self._rows = []


class _CursorMarkStream(TupleStream):
    """Pages through /select with cursorMark; the next page is requested only when the buffer drains."""

    def __init__(
        self,
        *,
        store: "SolrRemoteStore",
        spec: RemoteQuerySpec,
        params: dict[str, Any],
        page_size: int,
    ) -> None:
        self._store = store
        self._spec = spec
        self._params = params
        self._page_size = page_size
        self._remaining = spec.limit
        self._cursor_mark = "*"
        self._buffer: list[dict[str, Any]] = []
        self._position = 0
        self._done = spec.limit == 0
        self._closed = False

    async def fetch_first_page(self) -> None:
        if not self._done:
            await self._fetch_page()

    async def read(self) -> dict[str, Any] | None:
        if self._closed:
            raise StreamReadError("Stream is closed.")
        while self._position >= len(self._buffer):
            if self._done:
                return None
            try:
                await self._fetch_page()
            except RemoteQueryError as exc:
                raise StreamReadError(f"Fetching the next page of '{self._spec.collection}' failed: {exc}") from exc
        document = self._buffer[self._position]
        self._position += 1
        return document

    async def close(self) -> None:
        self._closed = True
        self._done = True
        self._buffer = []

    async def _fetch_page(self) -> None:
        rows = self._page_size if self._remaining is None else min(self._page_size, self._remaining)
        params = {**self._params, "rows": rows, "cursorMark": self._cursor_mark}
        payload = await self._store.request_json("GET", f"/{self._spec.collection}/select", params=params)
        documents = list(payload.get("response", {}).get("docs", []))
        next_mark = payload.get("nextCursorMark")

        if self._remaining is not None:
            documents = documents[: self._remaining]
            self._remaining -= len(documents)
        self._buffer = documents
        self._position = 0
        if (
            not documents
            or len(documents) < rows
            or next_mark is None
            or next_mark == self._cursor_mark
            or self._remaining == 0
        ):
            self._done = True
        else:
            self._cursor_mark = next_mark


class SolrRemoteStore(RemoteStore):
    """
    Remote store backed by a Solr HTTP endpoint.

    Scans page through /select with cursorMark so only one page is in flight; aggregations are
    expressed as nested JSON facet terms buckets and flattened into one tuple per bucket.
    """

    def __init__(
        self,
        *,
        base_url: str | None = None,
        store_id: str = "solr",
        client: httpx.AsyncClient | None = None,
        page_size: int | None = None,
        unique_key: str | None = None,
        timeout_s: float | None = None,
        exact_distinct_count: bool | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.store_id = store_id
        self._base_url = (base_url or settings.solr_base_url).rstrip("/")
        self._timeout_s = timeout_s if timeout_s is not None else settings.SOLR_TIMEOUT_SECONDS
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self._timeout_s)
        self._page_size = page_size or settings.SOLR_PAGE_SIZE
        if self._page_size <= 0:
            raise ValueError("page_size must be positive.")
        self._unique_key = unique_key or settings.SOLR_UNIQUE_KEY
        self._exact_distinct_count = (
            exact_distinct_count if exact_distinct_count is not None else settings.SOLR_EXACT_DISTINCT_COUNT
        )
        self._logger = logger or logging.getLogger(__name__)

    def capabilities(self) -> SourceCapabilities:
        return SourceCapabilities(exact_distinct_count=self._exact_distinct_count)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def __aenter__(self) -> "SolrRemoteStore":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.aclose()

    async def list_collections(self) -> list[str]:
        try:
            payload = await self.request_json(
                "GET", "/admin/collections", params={"action": "LIST", "wt": "json"}
            )
        except RemoteQueryError as exc:
            raise MetadataUnavailable(f"Unable to list collections: {exc}") from exc
        return sorted(payload.get("collections", []))

    async def fetch_field_metadata(self, collection: str) -> list[FieldMetadata]:
        try:
            payload = await self.request_json(
                "GET", f"/{collection}/admin/luke", params={"numTerms": 0, "show": "schema", "wt": "json"}
            )
        except RemoteQueryError as exc:
            raise MetadataUnavailable(f"Unable to read fields of '{collection}': {exc}") from exc

        fields = payload.get("fields")
        if not isinstance(fields, dict):
            raise MetadataUnavailable(f"Luke response for '{collection}' has no field listing.")
        metadata: list[FieldMetadata] = []
        for name, info in fields.items():
            info = info or {}
            flags = info.get("schema") or ""
            metadata.append(
                FieldMetadata(name=name, type_hint=info.get("type"), multi_valued="M" in flags)
            )
        return metadata

    async def open_stream(self, spec: RemoteQuerySpec) -> TupleStream:
        if spec.is_aggregate:
            return await self._open_facet_stream(spec)
        return await self._open_scan_stream(spec)

    async def request_json(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        url = f"{self._base_url}{path}"
        try:
            response = await self._client.request(method, url, **kwargs)
        except httpx.HTTPError as exc:
            raise RemoteQueryError(f"Request to {url} failed: {exc}") from exc
        if response.status_code >= 400:
            raise RemoteQueryError(f"Solr returned {response.status_code}: {_error_message(response)}")
        try:
            payload = response.json()
        except ValueError as exc:
            raise RemoteQueryError(f"Solr returned a non-JSON body from {url}.") from exc
        if not isinstance(payload, dict):
            raise RemoteQueryError(f"Solr returned an unexpected body from {url}.")
        return payload

    async def _open_scan_stream(self, spec: RemoteQuerySpec) -> TupleStream:
        sort_clauses = [clause for key in spec.sort_spec or () for clause in _nulls_last_sort(key)]
        if not any(key.field == self._unique_key for key in spec.sort_spec or ()):
            # cursorMark requires the unique key as the final tiebreaker
            sort_clauses.append(f"{self._unique_key} asc")
        params: dict[str, Any] = {
            "q": "*:*",
            "fl": ",".join(spec.selected_fields),
            "sort": ",".join(sort_clauses),
            "wt": "json",
        }
        if spec.filter_expression:
            params["fq"] = spec.filter_expression
        self._logger.debug("Solr scan collection=%s params=%s limit=%s", spec.collection, params, spec.limit)

        stream = _CursorMarkStream(store=self, spec=spec, params=params, page_size=self._page_size)
        await stream.fetch_first_page()
        return stream

    async def _open_facet_stream(self, spec: RemoteQuerySpec) -> TupleStream:
        request = build_facet_request(spec)
        self._logger.debug("Solr facet collection=%s request=%s", spec.collection, json.dumps(request))
        payload = await self.request_json("POST", f"/{spec.collection}/select", json=request)
        facets = dict(payload.get("facets") or {})
        if "count" not in facets:
            # a request without facet stats gets no facets block; the match count is numFound
            facets["count"] = payload.get("response", {}).get("numFound", 0)
        rows = flatten_facets(spec, facets)
        return _BufferedTupleStream(rows)


def build_facet_request(spec: RemoteQuerySpec) -> dict[str, Any]:
    """Build a JSON request whose facet nests one terms bucket per group field, metrics at the leaf."""
    facet: dict[str, Any] = {
        metric.identifier: metric.expression for metric in spec.metrics if metric.field is not None
    }
    for depth in reversed(range(len(spec.group_fields))):
        terms: dict[str, Any] = {
            "type": "terms",
            "field": spec.group_fields[depth],
            "limit": -1,
            "missing": True,
        }
        if facet:
            terms["facet"] = facet
        facet = {f"{GROUP_FACET_PREFIX}{depth}": terms}

    request: dict[str, Any] = {"query": "*:*", "limit": 0}
    if spec.filter_expression:
        request["filter"] = [spec.filter_expression]
    if facet:
        request["facet"] = facet
    return request


def flatten_facets(spec: RemoteQuerySpec, facets: dict[str, Any]) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []

    def _leaf(bucket: dict[str, Any], keys: dict[str, Any]) -> dict[str, Any]:
        row = dict(keys)
        for metric in spec.metrics:
            if metric.field is None:
                row[metric.identifier] = bucket.get("count", 0)
            else:
                value = bucket.get(metric.identifier)
                row[metric.identifier] = metric.empty_value if value is None else value
        return row

    def _walk(bucket: dict[str, Any], depth: int, keys: dict[str, Any]) -> None:
        if depth == len(spec.group_fields):
            rows.append(_leaf(bucket, keys))
            return
        group_field = spec.group_fields[depth]
        terms = bucket.get(f"{GROUP_FACET_PREFIX}{depth}") or {}
        for child in terms.get("buckets", []):
            _walk(child, depth + 1, {**keys, group_field: child.get("val")})
        missing = terms.get("missing")
        if missing and missing.get("count", 0) > 0:
            _walk(missing, depth + 1, {**keys, group_field: None})

    _walk(facets, 0, {})
    return rows


def _error_message(response: httpx.Response) -> str:
    try:
        payload = response.json()
    except ValueError:
        return response.text or response.reason_phrase
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict) and error.get("msg"):
        return str(error["msg"])
    return response.reason_phrase


def _nulls_last_sort(key: RemoteSortKey) -> list[str]:
    """Sort clauses that put documents missing `key.field` last, whatever the schema's sortMissing* setting."""
    return [f"if(exists({key.field}),0,1) asc", key.render()]
