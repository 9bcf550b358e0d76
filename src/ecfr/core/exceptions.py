class EcfrError(Exception):
    """Base class for all ingestion errors."""


class FetchError(EcfrError):
    """Raised when a document cannot be retrieved from the upstream API.

    Permanent failures (4xx, connection refused, malformed responses) are raised
    immediately. Transient failures surface as TransientFetchError once the
    retry budget is spent.
    """

    def __init__(self, message: str, url: str = None, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class TransientFetchError(FetchError):
    """A timeout or gateway timeout. Retried with backoff before surfacing."""


class DocumentStructureError(EcfrError):
    """The document does not have the expected top-level structure."""


class ExtractionError(EcfrError):
    """A node could not be classified or lacks the context needed to store it.

    The node is skipped; this is never fatal for the title.
    """

    def __init__(self, message: str, node_type: str = None, identifier: str = None):
        super().__init__(message)
        self.node_type = node_type
        self.identifier = identifier


class PersistenceError(EcfrError):
    """A database write failed. Aborts the enclosing transaction."""
