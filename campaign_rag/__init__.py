# =============================================================================
# Campaign RAG - Source Package
# =============================================================================
# This package contains all modules for the retrieval pipeline:
#   - config.py          : Configuration loading and merging
#   - models.py          : Dataclasses shared by every module
#   - exceptions.py      : Error types
#   - extraction.py      : Read journals (Markdown) and actors (YAML) from disk
#   - chunking.py        : Split document text into overlapping chunks
#   - embedding.py       : Embedding gateway (OpenAI-compatible APIs)
#   - local_embedding.py : Embedding gateway running sentence-transformers locally
#   - vector_store.py    : SQLite vector store with cosine similarity search
#   - indexing.py        : Full and incremental indexing pipeline
#   - retrieval.py       : Search the vector store
#   - context.py         : Format search results into a prompt context block
#   - run_tracker.py     : Logging and run folders in ./runs
# =============================================================================
