class SolrBridgeError(RuntimeError):
    """Base error for the Solr push-down adapter."""


class MetadataUnavailable(SolrBridgeError):
    """Raised when the remote field catalog cannot be fetched."""


class UnsupportedAggregate(SolrBridgeError):
    """Raised when an aggregate call has no equivalent remote metric."""


class RemoteQueryError(SolrBridgeError):
    """Raised when the remote store rejects a query or the connection fails."""


class StreamReadError(SolrBridgeError):
    """Raised when reading from an open result stream fails mid-way."""


class CursorClosed(SolrBridgeError):
    """Raised when a cursor is used after it has been closed."""


class CursorBusy(SolrBridgeError):
    """Raised when a cursor is advanced while another pull is in flight."""


class ResidualEvaluationError(SolrBridgeError):
    """Raised when locally applied residual operations fail."""
