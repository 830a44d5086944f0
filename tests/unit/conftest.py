from __future__ import annotations

import pytest

from solrbridge.connectors import FieldMetadata, InMemoryCollection, InMemoryRemoteStore
from solrbridge.models import FieldCatalogEntry, LogicalType

COLLECTION = "collection1"

FIELDS = [
    FieldMetadata(name="id", type_hint="string"),
    FieldMetadata(name="fielda", type_hint="string"),
    FieldMetadata(name="fieldb", type_hint="string"),
    FieldMetadata(name="fieldc", type_hint="pint"),
    FieldMetadata(name="fieldd_s"),
    FieldMetadata(name="fielde_i"),
    FieldMetadata(name="fieldf_ss", type_hint="strings", multi_valued=True),
]

DOCUMENTS = [
    {"id": "1", "fielda": "a1", "fieldb": "b1", "fieldc": 1, "fieldd_s": "d1", "fielde_i": 1, "fieldf_ss": ["x", "y"]},
    {"id": "2", "fielda": "a2", "fieldb": "b2", "fieldc": 2, "fieldd_s": "d1", "fielde_i": 1, "fieldf_ss": ["y"]},
    {"id": "3", "fielda": "a1", "fieldb": "b3", "fieldc": 3, "fielde_i": 1},
    {"id": "4", "fielda": "a1", "fieldb": "b4", "fieldc": 4, "fieldd_s": "d2"},
    {"id": "5", "fielda": "a2", "fieldb": "b2", "fieldd_s": "d2", "fielde_i": 2},
]

ENTRIES = (
    FieldCatalogEntry(name="id", logical_type=LogicalType.STRING),
    FieldCatalogEntry(name="fielda", logical_type=LogicalType.STRING),
    FieldCatalogEntry(name="fieldb", logical_type=LogicalType.STRING),
    FieldCatalogEntry(name="fieldc", logical_type=LogicalType.INTEGER),
    FieldCatalogEntry(name="fieldd_s", logical_type=LogicalType.STRING),
    FieldCatalogEntry(name="fielde_i", logical_type=LogicalType.INTEGER),
    FieldCatalogEntry(name="fieldf_ss", logical_type=LogicalType.STRING, multi_valued=True),
)

ID, FIELDA, FIELDB, FIELDC, FIELDD, FIELDE, FIELDF = range(7)


def build_store(*, fail_after: int | None = None, **kwargs) -> InMemoryRemoteStore:
    return InMemoryRemoteStore(
        collections={
            COLLECTION: InMemoryCollection(
                fields=list(FIELDS),
                documents=[dict(doc) for doc in DOCUMENTS],
                fail_after=fail_after,
            )
        },
        **kwargs,
    )


@pytest.fixture
def store() -> InMemoryRemoteStore:
    return build_store()


@pytest.fixture
def entries() -> tuple[FieldCatalogEntry, ...]:
    return ENTRIES
