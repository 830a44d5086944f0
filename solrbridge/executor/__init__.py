from solrbridge.executor.adapter import StreamingResultAdapter
from solrbridge.executor.cursor import CursorState, ResultCursor
from solrbridge.executor.row_shaping import RowShaper, collapse_row, convert_document, first_value, shape

__all__ = [
    "StreamingResultAdapter",
    "CursorState",
    "ResultCursor",
    "RowShaper",
    "collapse_row",
    "convert_document",
    "first_value",
    "shape",
]
