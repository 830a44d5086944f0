from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, AsyncIterator, Awaitable, Callable, Sequence

from solrbridge.connectors.base import TupleStream
from solrbridge.errors import CursorBusy, CursorClosed, RemoteQueryError, StreamReadError
from solrbridge.executor.row_shaping import collapse_row, convert_document


class CursorState(str, Enum):
    CREATED = "created"
    OPEN = "open"
    ADVANCING = "advancing"
    EXHAUSTED = "exhausted"
    ERRORED = "errored"
    CLOSED = "closed"


class ResultCursor:
    """
    Forward-only, single-use cursor over a remote tuple stream.

    Each `advance` pulls exactly one tuple. The stream is released as soon as it reports EOF
    or fails, and `close` releases it early, so no further remote pages are requested.
    """

    def __init__(
        self,
        *,
        stream_opener: Callable[[], Awaitable[TupleStream]],
        columns: Sequence[str],
        logger: logging.Logger | None = None,
    ) -> None:
        self._stream_opener = stream_opener
        self._columns = tuple(columns)
        self._logger = logger or logging.getLogger(__name__)
        self._stream: TupleStream | None = None
        self._stream_released = False
        self._state = CursorState.CREATED
        self._current_row: tuple[Any, ...] | None = None
        self._rows_read = 0
        self._iterated = False

    @property
    def state(self) -> CursorState:
        return self._state

    @property
    def columns(self) -> tuple[str, ...]:
        return self._columns

    @property
    def exhausted(self) -> bool:
        return self._state == CursorState.EXHAUSTED

    @property
    def rows_read(self) -> int:
        return self._rows_read

    @property
    def current_row(self) -> tuple[Any, ...] | None:
        self._ensure_not_closed()
        return self._current_row

    @property
    def current(self) -> Any:
        """Current row in output shape: the bare value when the cursor has a single column."""
        row = self.current_row
        if row is None:
            return None
        return collapse_row(row)

    async def open(self) -> "ResultCursor":
        self._ensure_not_closed()
        if self._state != CursorState.CREATED:
            raise RuntimeError(f"Cursor cannot be opened from state '{self._state.value}'.")
        try:
            self._stream = await self._stream_opener()
        except RemoteQueryError:
            self._state = CursorState.ERRORED
            raise
        except OSError as exc:
            self._state = CursorState.ERRORED
            raise RemoteQueryError(f"Failed to open remote stream: {exc}") from exc
        self._state = CursorState.OPEN
        return self

    async def advance(self) -> bool:
        self._ensure_not_closed()
        if self._state == CursorState.CREATED:
            raise RuntimeError("Cursor has not been opened.")
        if self._state == CursorState.ADVANCING:
            raise CursorBusy("Cursor is already being advanced.")
        if self._state == CursorState.EXHAUSTED:
            return False
        if self._state == CursorState.ERRORED:
            raise StreamReadError("Cursor failed earlier; results are incomplete.")

        if self._stream is None:
            raise RuntimeError("Cursor is open without a stream.")
        self._state = CursorState.ADVANCING
        try:
            document = await self._stream.read()
        except asyncio.CancelledError:
            if self._state != CursorState.CLOSED:
                self._state = CursorState.ERRORED
            self._current_row = None
            raise
        except (StreamReadError, OSError) as exc:
            if self._state == CursorState.CLOSED:
                raise CursorClosed("Cursor was closed while a row was being read.") from exc
            await self._fail()
            if isinstance(exc, StreamReadError):
                raise
            raise StreamReadError(f"Remote stream read failed after {self._rows_read} rows: {exc}") from exc

        if self._state == CursorState.CLOSED:
            # closed while the read was in flight; the row is dropped
            raise CursorClosed("Cursor was closed while a row was being read.")
        if document is None:
            self._state = CursorState.EXHAUSTED
            self._current_row = None
            await self._release()
            self._logger.debug("Cursor exhausted after %s rows", self._rows_read)
            return False

        self._current_row = convert_document(document, self._columns)
        self._rows_read += 1
        self._state = CursorState.OPEN
        return True

    async def close(self) -> None:
        if self._state == CursorState.CLOSED:
            return
        self._state = CursorState.CLOSED
        self._current_row = None
        await self._release()

    async def rows(self) -> AsyncIterator[Any]:
        """Yield every remaining row in output shape, closing the cursor at the end."""
        if self._iterated:
            raise RuntimeError("Cursor rows can only be iterated once.")
        self._iterated = True
        try:
            while await self.advance():
                yield self.current
        finally:
            await self.close()

    def __aiter__(self) -> AsyncIterator[Any]:
        return self.rows()

    async def __aenter__(self) -> "ResultCursor":
        return self

    async def __aexit__(self, *_exc_info: object) -> None:
        await self.close()

    async def _fail(self) -> None:
        self._state = CursorState.ERRORED
        self._current_row = None
        await self._release()

    async def _release(self) -> None:
        if self._stream is None or self._stream_released:
            return
        self._stream_released = True
        await self._stream.close()

    def _ensure_not_closed(self) -> None:
        if self._state == CursorState.CLOSED:
            raise CursorClosed("Cursor is closed.")
