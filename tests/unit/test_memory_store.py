from __future__ import annotations

import pytest

from conftest import COLLECTION, DOCUMENTS
from solrbridge.connectors import InMemoryRemoteStore
from solrbridge.connectors.memory import parse_filter
from solrbridge.errors import MetadataUnavailable, RemoteQueryError
from solrbridge.models import RemoteMetric, RemoteQuerySpec


@pytest.fixture
def anyio_backend():
    return "asyncio"


async def _drain(store: InMemoryRemoteStore, spec: RemoteQuerySpec) -> list[dict]:
    stream = await store.open_stream(spec)
    rows = []
    while (row := await stream.read()) is not None:
        rows.append(row)
    await stream.close()
    return rows


@pytest.mark.parametrize(
    ("expression", "matching"),
    [
        ("fieldc:[2 TO *]", {"2", "3", "4"}),
        ("fieldc:{* TO 3}", {"1", "2"}),
        ("(fieldd_s:* AND NOT fieldd_s:\"d1\")", {"4", "5"}),
        ('fielda:"a1" AND fieldc:{1 TO 4]', {"3", "4"}),
        ('fieldf_ss:"y"', {"1", "2"}),
        ('fieldc:["-1" TO 2]', {"1", "2"}),
        ('(fieldc:* AND NOT fieldc:"-1")', {"1", "2", "3", "4"}),
    ],
)
def test_filter_syntax_matches_documents(expression: str, matching: set[str]) -> None:
    clauses = parse_filter(expression)
    selected = {doc["id"] for doc in DOCUMENTS if all(clause.matches(doc.get(clause.field)) for clause in clauses)}

    assert selected == matching


def test_quoted_literals_are_opaque() -> None:
    clauses = parse_filter('fielda:"a1 AND fieldb:b1"')

    assert len(clauses) == 1
    assert clauses[0].matches("a1 AND fieldb:b1")
    assert not clauses[0].matches("a1")


@pytest.mark.anyio
async def test_metrics_group_by_first_value(store: InMemoryRemoteStore) -> None:
    spec = RemoteQuerySpec(
        collection=COLLECTION,
        selected_fields=("fieldd_s", "m0", "m1"),
        group_fields=("fieldd_s",),
        metrics=(
            RemoteMetric(identifier="m0", function="count", empty_value=0),
            RemoteMetric(identifier="m1", function="sum", field="fielde_i", empty_value=0),
        ),
    )

    rows = await _drain(store, spec)

    assert store.issued_specs == [spec]

    assert {row["fieldd_s"]: (row["m0"], row["m1"]) for row in rows} == {
        "d1": (2, 2.0),
        None: (1, 1.0),
        "d2": (2, 2.0),
    }


@pytest.mark.anyio
async def test_unknown_fields_and_collections_are_rejected(store: InMemoryRemoteStore) -> None:
    with pytest.raises(RemoteQueryError, match="undefined field"):
        await store.open_stream(RemoteQuerySpec(collection=COLLECTION, selected_fields=("nope",)))
    with pytest.raises(RemoteQueryError):
        await store.open_stream(RemoteQuerySpec(collection="other", selected_fields=("id",)))
    with pytest.raises(MetadataUnavailable):
        await store.fetch_field_metadata("other")
