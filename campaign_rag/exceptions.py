# =============================================================================
# Exceptions
# =============================================================================
# Every error raised on purpose by the pipeline derives from CampaignRagError,
# so the CLI can report a one-line message without catching everything.


class CampaignRagError(Exception):
    """Base class for all campaign RAG errors."""


class NotInitializedError(CampaignRagError):
    """Raised when the vector store is used before open() or after close()."""


class ConfigurationError(CampaignRagError):
    """Raised when a required setting (API key, provider, store) is missing."""


class EmbeddingProviderError(CampaignRagError):
    """
    Raised when the embedding provider fails or returns malformed data.

    The caller may retry with backoff; the pipeline itself never retries.

    Attributes:
        status_code: HTTP status returned by the provider, if there was one
    """

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class StoreError(CampaignRagError):
    """Raised when the underlying SQLite storage cannot be read or written."""


class IndexingInProgressError(CampaignRagError):
    """Raised when a reindex is requested while another one is running."""


class IndexingCancelledError(CampaignRagError):
    """Raised when a running reindex is cancelled between batches."""
