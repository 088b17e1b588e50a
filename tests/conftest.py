"""Shared fixtures: a temporary vector store, a fake embedder and an in-memory source."""

import pytest

from campaign_rag.embedding import EmbeddingGateway
from campaign_rag.exceptions import EmbeddingProviderError
from campaign_rag.extraction import DocumentSource
from campaign_rag.models import DocumentType, JournalMetadata, SourceDocument
from campaign_rag.vector_store import VectorStore


KEYWORDS = ['dragon', 'castle', 'tavern', 'sword']


class FakeEmbedder(EmbeddingGateway):
    """
    Deterministic embedder: one dimension per keyword plus a constant one.

    fail_on_call makes the n-th embed() call (1-based) raise like a provider
    outage would.
    """

    model = 'fake-embedding'

    def __init__(self, fail_on_call=None):
        self.fail_on_call = fail_on_call
        self.calls = []

    def embed(self, texts, model=None):
        texts = list(texts)
        self.calls.append(texts)
        if self.fail_on_call is not None and len(self.calls) == self.fail_on_call:
            raise EmbeddingProviderError("Embeddings error (503): provider unavailable", status_code=503)
        return [embed_text(text) for text in texts]


def embed_text(text):
    lowered = text.lower()
    return [float(lowered.count(keyword)) for keyword in KEYWORDS] + [1.0]


class InMemorySource(DocumentSource):
    def __init__(self, documents):
        self.documents = list(documents)

    def extract(self, selectors):
        return list(self.documents)


def make_document(doc_id, content, doc_type=DocumentType.JOURNAL, name=None,
                  folder_name='Campaign', last_modified=1000.0):
    return SourceDocument(
        id=doc_id,
        type=doc_type,
        name=name or f"Document {doc_id}",
        folder_name=folder_name,
        content=content,
        last_modified=last_modified,
        metadata=JournalMetadata(folder_path=folder_name) if doc_type == DocumentType.JOURNAL else {},
    )


@pytest.fixture
def store(tmp_path):
    vector_store = VectorStore(tmp_path / 'vectors-test.sqlite3')
    vector_store.open()
    yield vector_store
    vector_store.close()


@pytest.fixture
def embedder():
    return FakeEmbedder()
