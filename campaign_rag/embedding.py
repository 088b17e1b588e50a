# =============================================================================
# Embedding Module
# =============================================================================
# This module turns text into vector embeddings through an external provider.
# Every gateway takes an ordered batch of texts and returns one vector per
# text, in the same order. A batch either succeeds completely or raises.

from openai import OpenAI, OpenAIError, APIStatusError

from campaign_rag.config import get_secrets, get_section
from campaign_rag.exceptions import ConfigurationError, EmbeddingProviderError


DEFAULT_MODEL = 'text-embedding-3-small'
DEFAULT_BATCH_SIZE = 20

# Known dimensions for common embedding models
KNOWN_DIMENSIONS = {
    'text-embedding-3-small': 1536,
    'text-embedding-3-large': 3072,
    'text-embedding-ada-002': 1536,
    'openai/text-embedding-3-small': 1536,
    'openai/text-embedding-3-large': 3072,
    'all-MiniLM-L6-v2': 384,
}


class EmbeddingGateway:
    """Contract for embedding providers."""

    model = None

    @property
    def is_configured(self):
        return True

    def embed(self, texts, model=None):
        """
        Embed an ordered batch of texts.

        Args:
            texts: List of strings
            model: Optional model identifier overriding the default

        Returns:
            list: One list of floats per input text, same order
        """
        raise NotImplementedError


class OpenAIEmbeddingGateway(EmbeddingGateway):
    """
    Embeddings from any OpenAI-compatible endpoint (OpenAI, OpenRouter, ...).

    Provider failures (connection errors, timeouts, HTTP errors) are raised
    as EmbeddingProviderError with the provider's own message when there is
    one. Nothing is retried here unless max_retries is configured.
    """

    def __init__(self, client, model=DEFAULT_MODEL):
        self.client = client
        self.model = model

    @property
    def is_configured(self):
        return self.client is not None and bool(self.model)

    def embed(self, texts, model=None):
        texts = list(texts)
        if not texts:
            return []

        model = model or self.model

        try:
            response = self.client.embeddings.create(input=texts, model=model)
        except APIStatusError as e:
            raise EmbeddingProviderError(
                f"Embeddings error ({e.status_code}): {_provider_message(e)}",
                status_code=e.status_code,
            ) from e
        except OpenAIError as e:
            raise EmbeddingProviderError(f"Embeddings request failed: {e}") from e

        data = getattr(response, 'data', None) or []
        if len(data) != len(texts):
            raise EmbeddingProviderError(
                f"Malformed embeddings response: expected {len(texts)} vectors, got {len(data)}"
            )

        # Providers normally keep input order, but the index field is authoritative
        items = sorted(data, key=lambda item: item.index if item.index is not None else 0)
        vectors = []
        for item in items:
            if not item.embedding:
                raise EmbeddingProviderError("Malformed embeddings response: empty vector")
            vectors.append([float(x) for x in item.embedding])

        return vectors


def _provider_message(error):
    """Pull the most useful message out of an API error body."""
    body = getattr(error, 'body', None)
    if isinstance(body, dict):
        nested = body.get('error')
        if isinstance(nested, dict) and nested.get('message'):
            return nested['message']
        if body.get('message'):
            return body['message']
    return getattr(error, 'message', None) or str(error) or 'Unknown error'


def create_embedder(config):
    """
    Create the embedding gateway described by the config.

    Args:
        config: Configuration dictionary with an 'embedding' section

    Returns:
        EmbeddingGateway: A ready-to-use gateway

    Raises:
        ConfigurationError: If the provider is unknown or the API key is missing
    """
    settings = get_section(config, 'embedding')
    provider = settings.get('provider', 'openai')
    model = settings.get('model', DEFAULT_MODEL)

    if provider == 'local':
        # Imported here so the OpenAI path never loads torch
        from campaign_rag.local_embedding import LocalEmbeddingGateway
        return LocalEmbeddingGateway(model=model, device=settings.get('device', 'cpu'))

    if provider != 'openai':
        raise ConfigurationError(f"Unknown embedding provider: {provider}")

    api_key = get_secrets().get('openai_api_key')
    if not api_key:
        raise ConfigurationError(
            "API key not found. Add openai_api_key to configs/secrets.yaml "
            "or set OPENAI_API_KEY."
        )

    client = OpenAI(
        api_key=api_key,
        base_url=settings.get('base_url') or None,
        timeout=settings.get('timeout', 60),
        max_retries=settings.get('max_retries', 0),
    )
    return OpenAIEmbeddingGateway(client, model=model)


def get_batch_size(config):
    return get_section(config, 'embedding').get('batch_size', DEFAULT_BATCH_SIZE)


def iter_batches(items, batch_size=DEFAULT_BATCH_SIZE):
    """
    Split a list into consecutive batches.

    Example:
        list(iter_batches([1, 2, 3, 4, 5], 2)) -> [[1, 2], [3, 4], [5]]
    """
    if batch_size <= 0:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    for i in range(0, len(items), batch_size):
        yield items[i:i + batch_size]


def get_embedding_dimension(config, embedder=None):
    """
    Get the dimension (size) of embeddings for the configured model.

    Args:
        config: Configuration dictionary with embedding settings
        embedder: Optional gateway used to measure the dimension of an unknown model

    Returns:
        int: The embedding dimension for the configured model
    """
    model = get_section(config, 'embedding').get('model', DEFAULT_MODEL)

    if model in KNOWN_DIMENSIONS:
        return KNOWN_DIMENSIONS[model]

    # Unknown model: embed a sample and measure it
    embedder = embedder or create_embedder(config)
    return len(embedder.embed(["test"])[0])
