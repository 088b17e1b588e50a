"""Tests for the OpenAI-compatible embedding gateway and its helpers."""

from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import openai
import pytest

from campaign_rag import embedding
from campaign_rag.embedding import (
    OpenAIEmbeddingGateway,
    create_embedder,
    get_embedding_dimension,
    iter_batches,
)
from campaign_rag.exceptions import ConfigurationError, EmbeddingProviderError
from tests.conftest import FakeEmbedder


def embeddings_response(vectors, order=None):
    order = order if order is not None else range(len(vectors))
    return SimpleNamespace(data=[SimpleNamespace(index=i, embedding=vectors[i]) for i in order])


def make_gateway(response=None, error=None):
    client = MagicMock()
    if error is not None:
        client.embeddings.create.side_effect = error
    else:
        client.embeddings.create.return_value = response
    return OpenAIEmbeddingGateway(client, model='text-embedding-3-small'), client


def fake_request():
    return httpx.Request("POST", "https://api.example.com/v1/embeddings")


# =============================================================================
# Gateway
# =============================================================================

def test_embed_returns_vectors_in_input_order():
    gateway, client = make_gateway(embeddings_response([[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]], order=[2, 0, 1]))

    vectors = gateway.embed(["a", "b", "c"])

    assert vectors == [[0.1, 0.2], [0.3, 0.4], [0.5, 0.6]]
    client.embeddings.create.assert_called_once_with(input=["a", "b", "c"], model='text-embedding-3-small')


def test_embed_model_override():
    gateway, client = make_gateway(embeddings_response([[1.0]]))

    gateway.embed(["a"], model='other-model')

    assert client.embeddings.create.call_args.kwargs['model'] == 'other-model'


def test_embed_empty_batch_makes_no_request():
    gateway, client = make_gateway(embeddings_response([]))

    assert gateway.embed([]) == []
    client.embeddings.create.assert_not_called()


def test_embed_wrong_vector_count():
    gateway, _ = make_gateway(embeddings_response([[1.0]]))

    with pytest.raises(EmbeddingProviderError, match="Malformed"):
        gateway.embed(["a", "b"])


def test_embed_http_error_keeps_status_and_message():
    response = httpx.Response(429, request=fake_request())
    error = openai.APIStatusError(
        "Error code: 429",
        response=response,
        body={"error": {"message": "Rate limit exceeded"}},
    )
    gateway, _ = make_gateway(error=error)

    with pytest.raises(EmbeddingProviderError) as exc_info:
        gateway.embed(["a"])

    assert exc_info.value.status_code == 429
    assert str(exc_info.value) == "Embeddings error (429): Rate limit exceeded"


def test_embed_connection_error():
    gateway, _ = make_gateway(error=openai.APIConnectionError(request=fake_request()))

    with pytest.raises(EmbeddingProviderError, match="Embeddings request failed") as exc_info:
        gateway.embed(["a"])

    assert exc_info.value.status_code is None


def test_gateway_configured_flag():
    assert OpenAIEmbeddingGateway(MagicMock()).is_configured
    assert not OpenAIEmbeddingGateway(None).is_configured


# =============================================================================
# Factory
# =============================================================================

def test_create_embedder_without_key(monkeypatch):
    monkeypatch.setattr(embedding, 'get_secrets', lambda: {})

    with pytest.raises(ConfigurationError, match="API key not found"):
        create_embedder({'embedding': {'provider': 'openai'}})


def test_create_embedder_unknown_provider():
    with pytest.raises(ConfigurationError, match="Unknown embedding provider"):
        create_embedder({'embedding': {'provider': 'carrier-pigeon'}})


def test_create_embedder_with_key(monkeypatch):
    monkeypatch.setattr(embedding, 'get_secrets', lambda: {'openai_api_key': 'sk-test'})

    gateway = create_embedder({'embedding': {
        'model': 'openai/text-embedding-3-small',
        'base_url': 'https://openrouter.ai/api/v1',
    }})

    assert isinstance(gateway, OpenAIEmbeddingGateway)
    assert gateway.model == 'openai/text-embedding-3-small'
    assert str(gateway.client.base_url).startswith('https://openrouter.ai/api/v1')


# =============================================================================
# Helpers
# =============================================================================

def test_iter_batches():
    assert list(iter_batches([1, 2, 3, 4, 5], 2)) == [[1, 2], [3, 4], [5]]
    assert list(iter_batches([], 20)) == []
    with pytest.raises(ValueError):
        list(iter_batches([1], 0))


def test_embedding_dimension_known_and_measured():
    assert get_embedding_dimension({'embedding': {'model': 'text-embedding-3-large'}}) == 3072

    sample_embedder = FakeEmbedder()
    assert get_embedding_dimension({'embedding': {'model': 'custom'}}, embedder=sample_embedder) == 5
    assert sample_embedder.calls == [["test"]]


def test_local_gateway_uses_cached_model(monkeypatch):
    import numpy as np

    from campaign_rag import local_embedding

    encoder = MagicMock()
    encoder.encode.return_value = np.array([[0.5, 0.25], [1.0, 0.0]], dtype=np.float32)
    loaded = []

    def fake_load(model_name, device='cpu'):
        loaded.append((model_name, device))
        return encoder

    monkeypatch.setattr(local_embedding, 'load_local_model', fake_load)
    gateway = create_embedder({'embedding': {'provider': 'local', 'model': 'all-MiniLM-L6-v2'}})

    assert isinstance(gateway, local_embedding.LocalEmbeddingGateway)
    assert gateway.embed(["a", "b"]) == [[0.5, 0.25], [1.0, 0.0]]
    assert loaded == [('all-MiniLM-L6-v2', 'cpu')]


def test_local_model_load_failure_is_a_provider_error(monkeypatch):
    from campaign_rag import local_embedding

    def fail_load(model_name, device='cpu'):
        raise OSError("model not found on the hub")

    monkeypatch.setattr(local_embedding, 'load_local_model', fail_load)
    gateway = local_embedding.LocalEmbeddingGateway(model='missing-model')

    with pytest.raises(EmbeddingProviderError, match="Could not load local embedding model missing-model"):
        gateway.embed(["a"])


def test_local_encode_failure_is_a_provider_error(monkeypatch):
    from campaign_rag import local_embedding

    encoder = MagicMock()
    encoder.encode.side_effect = TypeError("bad input")
    monkeypatch.setattr(local_embedding, 'load_local_model', lambda model_name, device='cpu': encoder)

    with pytest.raises(EmbeddingProviderError, match="Local embedding failed: bad input"):
        local_embedding.LocalEmbeddingGateway().embed(["a"])
