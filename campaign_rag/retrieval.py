# =============================================================================
# Retrieval Module
# =============================================================================
# This module handles searching the vector store.
# A query is embedded as a one-element batch and compared against every
# stored chunk (optionally only chunks of one document type).

import logging

from campaign_rag.config import get_section
from campaign_rag.exceptions import ConfigurationError
from campaign_rag.models import DocumentType


DEFAULT_TOP_K = 5


class SearchService:
    """Semantic search over one world's vector store."""

    def __init__(self, store, embedder, config=None, logger=None):
        self.store = store
        self.embedder = embedder
        self.default_top_k = get_section(config, 'retrieval').get('top_k', DEFAULT_TOP_K)
        self.logger = logger or logging.getLogger(__name__)

    def search(self, query, top_k=None, document_type=None):
        """
        Find the chunks most relevant to a question.

        Args:
            query: The user's question
            top_k: Maximum number of results (defaults to retrieval.top_k)
            document_type: Optional DocumentType or 'journal'/'actor' filter

        Returns:
            list: SearchResult objects, highest score first. Empty when the
                  store is empty or the query is blank.

        Raises:
            ConfigurationError: If the store is not open or there is no embedder
        """
        if self.store is None or not self.store.is_open:
            raise ConfigurationError("Vector store is not open")
        if self.embedder is None or not self.embedder.is_configured:
            raise ConfigurationError("Embedding provider is not configured")

        top_k = self.default_top_k if top_k is None else top_k
        if document_type is not None:
            document_type = DocumentType(document_type)

        if not query or not query.strip():
            return []

        self.logger.info(f"Searching for: '{query}'")

        query_vector = self.embedder.embed([query])[0]
        results = self.store.search(query_vector, top_k, document_type)

        self.logger.info(f"Found {len(results)} results")
        return results


def result_to_dict(result):
    """
    Flatten a SearchResult for JSON output (the vector is left out).

    Returns:
        dict: chunk_id, name, folder, type, chunk_index, score, content
    """
    entry = result.entry
    return {
        'chunk_id': entry.id,
        'name': entry.document_name,
        'folder': entry.folder_name,
        'type': entry.document_type.value,
        'chunk_index': entry.chunk_index,
        'score': result.score,
        'content': entry.text,
    }


def print_results(results):
    """Print search results for interactive use."""
    print(f"\n{'=' * 70}")
    print(f"Top {len(results)} results:")
    print('=' * 70)

    for i, result in enumerate(results, 1):
        entry = result.entry
        print(f"\n{i}. {entry.document_name} - part {entry.chunk_index + 1} (score: {result.score:.4f})")
        print(f"   Source: {entry.document_type.value} / {entry.folder_name}")
        print(f"   Content:\n   {entry.text[:200]}...")
