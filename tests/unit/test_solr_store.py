from __future__ import annotations

import json

import httpx
import pytest

from solrbridge import SolrTable
from solrbridge.connectors import SolrRemoteStore
from solrbridge.connectors.solr import build_facet_request, flatten_facets
from solrbridge.errors import MetadataUnavailable, RemoteQueryError, StreamReadError
from solrbridge.models import (
    AggregateFunction,
    AggregateSpec,
    RemoteMetric,
    RemoteQuerySpec,
    RemoteSortKey,
    SortDirection,
)

BASE_URL = "http://solr.test/solr"


@pytest.fixture
def anyio_backend():
    return "asyncio"


def _store(handler, **kwargs) -> SolrRemoteStore:
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return SolrRemoteStore(base_url=BASE_URL, client=client, **kwargs)


def _group_spec() -> RemoteQuerySpec:
    return RemoteQuerySpec(
        collection="collection1",
        selected_fields=("fielda", "fieldd_s", "m0", "m1"),
        filter_expression="fieldc:[1 TO *]",
        group_fields=("fielda", "fieldd_s"),
        metrics=(
            RemoteMetric(identifier="m0", function="count", empty_value=0),
            RemoteMetric(identifier="m1", function="sum", field="fielde_i", empty_value=0),
        ),
    )


@pytest.mark.anyio
async def test_luke_flags_drive_multi_valued_detection() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/solr/collection1/admin/luke"
        assert request.url.params["numTerms"] == "0"
        return httpx.Response(
            200,
            json={
                "fields": {
                    "id": {"type": "string", "schema": "I-S-----OF-----l"},
                    "tags_ss": {"type": "strings", "schema": "I-S-M---OF-----l"},
                    "fielde_i": {"type": "pint", "schema": "I-S------------l"},
                }
            },
        )

    store = _store(handler)
    metadata = {item.name: item for item in await store.fetch_field_metadata("collection1")}

    assert metadata["tags_ss"].multi_valued
    assert not metadata["id"].multi_valued
    assert metadata["fielde_i"].type_hint == "pint"


@pytest.mark.anyio
async def test_missing_collection_is_metadata_unavailable() -> None:
    store = _store(lambda request: httpx.Response(404, json={"error": {"msg": "Not Found", "code": 404}}))

    with pytest.raises(MetadataUnavailable, match="Not Found"):
        await store.fetch_field_metadata("missing")


@pytest.mark.anyio
async def test_list_collections() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/solr/admin/collections"
        assert request.url.params["action"] == "LIST"
        return httpx.Response(200, json={"collections": ["b", "a"]})

    assert await _store(handler).list_collections() == ["a", "b"]


def test_facet_request_nests_terms_buckets() -> None:
    request = build_facet_request(_group_spec())

    assert request["limit"] == 0
    assert request["filter"] == ["fieldc:[1 TO *]"]
    outer = request["facet"]["group_0"]
    assert outer["field"] == "fielda"
    assert outer["limit"] == -1
    assert outer["missing"] is True
    inner = outer["facet"]["group_1"]
    assert inner["field"] == "fieldd_s"
    assert inner["facet"] == {"m1": "sum(fielde_i)"}


def test_flatten_facets_skips_empty_missing_buckets() -> None:
    facets = {
        "count": 4,
        "group_0": {
            "buckets": [
                {
                    "val": "a1",
                    "count": 3,
                    "group_1": {
                        "buckets": [{"val": "d1", "count": 1, "m1": 1.0}, {"val": "d2", "count": 1}],
                        "missing": {"count": 1, "m1": 1.0},
                    },
                },
            ],
            "missing": {"count": 0},
        },
    }

    rows = flatten_facets(_group_spec(), facets)

    assert rows == [
        {"fielda": "a1", "fieldd_s": "d1", "m0": 1, "m1": 1.0},
        {"fielda": "a1", "fieldd_s": "d2", "m0": 1, "m1": 0},
        {"fielda": "a1", "fieldd_s": None, "m0": 1, "m1": 1.0},
    ]


@pytest.mark.anyio
async def test_aggregate_stream_posts_json_facet_request() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        seen.append(json.loads(request.content))
        return httpx.Response(200, json={"facets": {"count": 0}})

    spec = RemoteQuerySpec(
        collection="collection1",
        selected_fields=("m0", "m1"),
        metrics=(
            RemoteMetric(identifier="m0", function="count", empty_value=0),
            RemoteMetric(identifier="m1", function="max", field="fieldc"),
        ),
    )
    stream = await _store(handler).open_stream(spec)

    assert await stream.read() == {"m0": 0, "m1": None}
    assert await stream.read() is None
    assert seen[0]["facet"] == {"m1": "max(fieldc)"}


@pytest.mark.anyio
async def test_count_only_aggregate_reads_num_found() -> None:
    seen: list[dict] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        # no facet stats were requested, so Solr sends no facets block
        return httpx.Response(200, json={"response": {"numFound": 5, "start": 0, "docs": []}})

    spec = RemoteQuerySpec(
        collection="collection1",
        selected_fields=("m0",),
        filter_expression="fieldc:[1 TO *]",
        metrics=(RemoteMetric(identifier="m0", function="count", empty_value=0),),
    )
    stream = await _store(handler).open_stream(spec)

    assert await stream.read() == {"m0": 5}
    assert await stream.read() is None
    assert "facet" not in seen[0]
    assert seen[0]["filter"] == ["fieldc:[1 TO *]"]


@pytest.mark.anyio
async def test_count_star_through_table_matches_num_found() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/admin/luke"):
            return httpx.Response(
                200,
                json={"fields": {"id": {"type": "string", "schema": "I-S-----OF-----l"}}},
            )
        return httpx.Response(200, json={"response": {"numFound": 7, "start": 0, "docs": []}})

    table = SolrTable(store=_store(handler), collection="collection1")
    fragment = await table.fragment(aggregates=(AggregateSpec(AggregateFunction.COUNT),))

    result = await table.execute(fragment)

    assert result.remote_spec.is_aggregate
    assert result.rows == [7]


@pytest.mark.anyio
async def test_scan_pages_with_cursor_mark_until_limit() -> None:
    requests: list[httpx.QueryParams] = []
    pages = {
        "*": ([{"id": "1"}, {"id": "2"}], "AoE1"),
        "AoE1": ([{"id": "3"}, {"id": "4"}], "AoE2"),
    }

    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        requests.append(params)
        docs, next_mark = pages[params["cursorMark"]]
        rows = int(params["rows"])
        return httpx.Response(200, json={"response": {"docs": docs[:rows]}, "nextCursorMark": next_mark})

    spec = RemoteQuerySpec(
        collection="collection1",
        selected_fields=("id",),
        filter_expression='fielda:"a1"',
        sort_spec=(RemoteSortKey(field="fieldc", direction=SortDirection.DESC),),
        limit=3,
    )
    stream = await _store(handler, page_size=2).open_stream(spec)
    assert len(requests) == 1

    ids = []
    while (doc := await stream.read()) is not None:
        ids.append(doc["id"])

    assert ids == ["1", "2", "3"]
    assert len(requests) == 2
    assert requests[0]["sort"] == "if(exists(fieldc),0,1) asc,fieldc desc,id asc"
    assert requests[0]["fq"] == 'fielda:"a1"'
    assert requests[1]["rows"] == "1"


@pytest.mark.anyio
async def test_rejected_query_reports_solr_message() -> None:
    store = _store(lambda request: httpx.Response(400, json={"error": {"msg": "undefined field nope"}}))

    with pytest.raises(RemoteQueryError, match="undefined field nope"):
        await store.open_stream(RemoteQuerySpec(collection="collection1", selected_fields=("nope",)))


@pytest.mark.anyio
async def test_later_page_failure_is_stream_read_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.params["cursorMark"] == "*":
            return httpx.Response(200, json={"response": {"docs": [{"id": "1"}]}, "nextCursorMark": "AoE1"})
        raise httpx.ReadError("connection reset", request=request)

    stream = await _store(handler, page_size=1).open_stream(
        RemoteQuerySpec(collection="collection1", selected_fields=("id",))
    )

    assert await stream.read() == {"id": "1"}
    with pytest.raises(StreamReadError):
        await stream.read()


@pytest.mark.anyio
async def test_closed_scan_requests_no_more_pages() -> None:
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(200, json={"response": {"docs": [{"id": str(calls)}]}, "nextCursorMark": f"m{calls}"})

    stream = await _store(handler, page_size=1).open_stream(
        RemoteQuerySpec(collection="collection1", selected_fields=("id",))
    )
    await stream.read()
    await stream.close()

    assert calls == 1
    with pytest.raises(StreamReadError):
        await stream.read()
