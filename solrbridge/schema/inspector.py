from __future__ import annotations

import logging

from solrbridge.connectors.base import RemoteStore
from solrbridge.errors import MetadataUnavailable
from solrbridge.models.catalog import FieldCatalog, FieldCatalogEntry
from solrbridge.schema.types import infer_logical_type


class SchemaInspector:
    def __init__(self, *, store: RemoteStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def fetch_catalog(self, collection: str) -> FieldCatalog:
        metadata = await self._store.fetch_field_metadata(collection)
        entries = tuple(
            FieldCatalogEntry(
                name=item.name,
                logical_type=infer_logical_type(item.type_hint, item.name),
                multi_valued=item.multi_valued is True,
            )
            for item in metadata
        )
        try:
            catalog = FieldCatalog(collection=collection, entries=entries)
        except ValueError as exc:
            raise MetadataUnavailable(str(exc)) from exc
        self._logger.debug(
            "Fetched catalog for collection=%s store=%s fields=%s",
            collection,
            self._store.store_id,
            len(catalog),
        )
        return catalog
