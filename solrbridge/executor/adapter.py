from __future__ import annotations

import logging

from solrbridge.connectors.base import RemoteStore, TupleStream
from solrbridge.executor.cursor import ResultCursor
from solrbridge.models.remote import RemoteQuerySpec


class StreamingResultAdapter:
    def __init__(self, *, store: RemoteStore, logger: logging.Logger | None = None) -> None:
        self._store = store
        self._logger = logger or logging.getLogger(__name__)

    async def open(self, spec: RemoteQuerySpec) -> ResultCursor:
        """Issue `spec` and return an open cursor; raises RemoteQueryError if the store rejects it."""

        async def _open_stream() -> TupleStream:
            self._logger.debug(
                "Opening stream store=%s collection=%s fields=%s filter=%s",
                self._store.store_id,
                spec.collection,
                spec.selected_fields,
                spec.filter_expression,
            )
            return await self._store.open_stream(spec)

        cursor = ResultCursor(stream_opener=_open_stream, columns=spec.selected_fields, logger=self._logger)
        return await cursor.open()

    async def advance(self, cursor: ResultCursor) -> bool:
        return await cursor.advance()

    async def close(self, cursor: ResultCursor) -> None:
        await cursor.close()
