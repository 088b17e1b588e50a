# =============================================================================
# Indexing Module
# =============================================================================
# This module runs the write path: extract -> chunk -> embed -> store.
#
# reindex_all() rebuilds a world's index from scratch (the store is cleared
# first). update_changed() only re-embeds documents whose source changed
# since they were last indexed and drops documents that disappeared.
#
# Progress is reported through an optional callback receiving IndexProgress
# events; phases go extracting -> chunking -> embedding -> storing ->
# complete, or end in error.

import logging
from contextlib import contextmanager

from campaign_rag.chunking import chunk_document
from campaign_rag.embedding import get_batch_size, iter_batches
from campaign_rag.exceptions import (
    ConfigurationError,
    EmbeddingProviderError,
    IndexingCancelledError,
    IndexingInProgressError,
    NotInitializedError,
)
from campaign_rag.models import (
    ChunkRecord,
    DocumentType,
    IndexingSummary,
    IndexMeta,
    IndexPhase,
    IndexProgress,
    make_chunk_id,
)


def build_chunk_record(chunk, vector):
    """
    Turn a PendingChunk and its embedding into a ChunkRecord.

    Args:
        chunk: PendingChunk (document, chunk_index, text)
        vector: The embedding returned for chunk.text

    Returns:
        ChunkRecord: Ready to upsert
    """
    document = chunk.document
    return ChunkRecord(
        id=make_chunk_id(document.type, document.id, chunk.chunk_index),
        document_id=document.id,
        document_type=document.type,
        document_name=document.name,
        folder_name=document.folder_name,
        chunk_index=chunk.chunk_index,
        text=chunk.text,
        vector=vector,
        metadata=document.metadata,
    )


def document_key(document_type, document_id):
    """Identity of a document in the store: ids are only unique per type."""
    return DocumentType(document_type).value, document_id


def needs_update(document, meta):
    """True if a document has never been indexed or changed since it was."""
    if meta is None:
        return True
    if meta.document_type != document.type:
        return True
    return meta.last_modified < document.last_modified


def summarize_error(error):
    """One line suitable for a status bar, never the raw error object."""
    text = str(error).strip().splitlines()
    return text[0] if text else type(error).__name__


class IndexingOrchestrator:
    """
    Coordinates the document source, chunker, embedding gateway and store.

    Only one reindex/update may run against a store at a time; a second
    concurrent call raises IndexingInProgressError instead of racing on
    clear().
    """

    def __init__(self, store, embedder, source, config=None, logger=None):
        self.store = store
        self.embedder = embedder
        self.source = source
        self.config = config or {}
        self.batch_size = get_batch_size(self.config)
        self.logger = logger or logging.getLogger(__name__)

    # ---- Full reindex ----

    def reindex_all(self, selectors, progress_callback=None, cancel_event=None):
        """
        Rebuild the whole index for the selected collections.

        Steps:
        1. Extract documents (nothing found -> complete, store untouched)
        2. Clear the store
        3. Chunk every document
        4. Embed chunks in batches and upsert each batch
        5. Write one IndexMeta per document
        6. Report complete

        Any failure reports an 'error' event and is re-raised. Batches stored
        before the failure stay in the store, so the index is incomplete
        until the next successful run.

        Args:
            selectors: SourceSelectors passed to the document source
            progress_callback: Optional callable receiving IndexProgress
            cancel_event: Optional threading.Event checked between batches

        Returns:
            IndexingSummary: Documents, chunks and batches processed
        """
        self._check_ready()

        with self._exclusive():
            try:
                documents = self._extract(selectors, progress_callback)

                if not documents:
                    self._report(progress_callback, IndexPhase.COMPLETE, 0, 0,
                                 message="No documents to index.")
                    return IndexingSummary()

                self.store.clear()

                pending, counts = self._chunk(documents, progress_callback)
                batches = self._embed_and_store(pending, progress_callback, cancel_event)
                self._write_meta(documents, counts, progress_callback)

                self._report(
                    progress_callback, IndexPhase.COMPLETE, len(pending), len(pending),
                    message=f"Indexed {len(documents)} documents ({len(pending)} chunks)",
                )
                return IndexingSummary(documents=len(documents), chunks=len(pending), batches=batches)

            except Exception as e:
                self._report(progress_callback, IndexPhase.ERROR, 0, 0,
                             message=f"Indexing failed: {summarize_error(e)}")
                raise

    # ---- Incremental update ----

    def update_changed(self, selectors, progress_callback=None, cancel_event=None):
        """
        Re-index only documents that changed since they were last indexed.

        Documents are matched by (type, id). A document is re-chunked and
        re-embedded when it has no IndexMeta or its stored last_modified is
        older than the source's. Documents that have IndexMeta but are no
        longer in the source are removed. The store is never cleared.

        Args:
            selectors: SourceSelectors passed to the document source
            progress_callback: Optional callable receiving IndexProgress
            cancel_event: Optional threading.Event checked between batches

        Returns:
            IndexingSummary: 'skipped' counts unchanged documents,
                             'removed' counts deleted ones
        """
        self._check_ready()

        with self._exclusive():
            try:
                documents = self._extract(selectors, progress_callback)
                existing = {
                    document_key(meta.document_type, meta.document_id): meta
                    for meta in self.store.get_all_index_meta()
                }
                current = {document_key(d.type, d.id) for d in documents}

                removed = [key for key in existing if key not in current]
                for document_type, document_id in removed:
                    self._remove(document_id, document_type)

                changed = [d for d in documents if needs_update(d, existing.get(document_key(d.type, d.id)))]
                skipped = len(documents) - len(changed)

                if not changed:
                    self._report(progress_callback, IndexPhase.COMPLETE, 0, 0,
                                 message=f"Index is up to date ({len(removed)} removed).")
                    return IndexingSummary(skipped=skipped, removed=len(removed))

                # Drop old rows first; metadata is rewritten only once embedding succeeded
                for document in changed:
                    self._remove(document.id, document.type)

                pending, counts = self._chunk(changed, progress_callback)
                batches = self._embed_and_store(pending, progress_callback, cancel_event)
                self._write_meta(changed, counts, progress_callback)

                self._report(
                    progress_callback, IndexPhase.COMPLETE, len(pending), len(pending),
                    message=(f"Updated {len(changed)} documents ({len(pending)} chunks), "
                             f"{skipped} unchanged, {len(removed)} removed"),
                )
                return IndexingSummary(
                    documents=len(changed),
                    chunks=len(pending),
                    batches=batches,
                    skipped=skipped,
                    removed=len(removed),
                )

            except Exception as e:
                self._report(progress_callback, IndexPhase.ERROR, 0, 0,
                             message=f"Indexing failed: {summarize_error(e)}")
                raise

    # ---- Single documents ----

    def index_document(self, document):
        """
        (Re)index one document: old chunks are replaced, metadata rewritten.

        Returns:
            int: Number of chunks stored
        """
        self._check_ready()

        with self._exclusive():
            self._remove(document.id, document.type)
            pending, counts = self._chunk([document], None)
            self._embed_and_store(pending, None, None)
            self._write_meta([document], counts, None)
            return len(pending)

    def remove_document(self, document_id, document_type=None):
        """
        Delete a document's chunks and metadata (e.g. the source was deleted).

        Without document_type every document with this id is removed,
        whatever its type.
        """
        if not self.store.is_open:
            raise NotInitializedError("VectorStore not opened. Call open() first.")

        with self._exclusive():
            self._remove(document_id, document_type)

    def get_stats(self):
        return self.store.get_stats()

    # ---- Steps ----

    def _extract(self, selectors, progress_callback):
        self._report(progress_callback, IndexPhase.EXTRACTING, 0, 0,
                     message="Extracting documents...")
        documents = self.source.extract(selectors)
        self.logger.info(f"Found {len(documents)} documents")
        return documents

    def _chunk(self, documents, progress_callback):
        """
        Chunk documents, reporting once per document (not per chunk).

        Returns:
            tuple: (list of PendingChunk, dict of (type, id) -> chunk count)
        """
        total = len(documents)
        self._report(progress_callback, IndexPhase.CHUNKING, 0, total,
                     message="Chunking documents...")

        pending = []
        counts = {}
        for i, document in enumerate(documents, 1):
            chunks = chunk_document(document, self.config)
            pending.extend(chunks)
            key = document_key(document.type, document.id)
            counts[key] = counts.get(key, 0) + len(chunks)

            self._report(progress_callback, IndexPhase.CHUNKING, i, total,
                         document_name=document.name)

        return pending, counts

    def _embed_and_store(self, pending, progress_callback, cancel_event):
        """
        Embed pending chunks batch by batch and upsert each batch.

        Returns:
            int: Number of batches stored
        """
        total = len(pending)
        self._report(progress_callback, IndexPhase.EMBEDDING, 0, total,
                     message=f"Generating embeddings for {total} chunks...")

        done = 0
        batches = 0
        for batch in iter_batches(pending, self.batch_size):
            if cancel_event is not None and cancel_event.is_set():
                raise IndexingCancelledError(f"Indexing cancelled after {done}/{total} chunks")

            vectors = self.embedder.embed([chunk.text for chunk in batch])
            if len(vectors) != len(batch):
                raise EmbeddingProviderError(
                    f"Expected {len(batch)} embeddings, got {len(vectors)}"
                )

            records = [build_chunk_record(chunk, vector) for chunk, vector in zip(batch, vectors)]
            self.store.upsert_vectors(records)

            done += len(batch)
            batches += 1
            self._report(progress_callback, IndexPhase.EMBEDDING, done, total,
                         message=f"Embedded {done}/{total} chunks")

        return batches

    def _write_meta(self, documents, counts, progress_callback):
        total = len(documents)
        self._report(progress_callback, IndexPhase.STORING, 0, total,
                     message="Saving index metadata...")

        for document in documents:
            self.store.set_index_meta(IndexMeta(
                document_id=document.id,
                document_type=document.type,
                document_name=document.name,
                last_modified=document.last_modified,
                chunk_count=counts.get(document_key(document.type, document.id), 0),
            ))

        self._report(progress_callback, IndexPhase.STORING, total, total)

    def _remove(self, document_id, document_type=None):
        deleted = self.store.delete_by_document(document_id, document_type)
        self.store.delete_index_meta(document_id, document_type)
        self.logger.info(f"Removed {deleted} chunks of document '{document_id}'")

    # ---- Helpers ----

    def _check_ready(self):
        if not self.store.is_open:
            raise NotInitializedError("VectorStore not opened. Call open() first.")
        if self.embedder is None or not self.embedder.is_configured:
            raise ConfigurationError("Embedding provider is not configured")

    @contextmanager
    def _exclusive(self):
        if not self.store.reindex_lock.acquire(blocking=False):
            raise IndexingInProgressError("An indexing run is already in progress for this store")
        try:
            yield
        finally:
            self.store.reindex_lock.release()

    def _report(self, progress_callback, phase, current, total, document_name=None, message=None):
        progress = IndexProgress(
            phase=phase,
            current=current,
            total=total,
            document_name=document_name,
            message=message,
        )

        if phase == IndexPhase.ERROR:
            self.logger.error(message)
        elif message:
            self.logger.info(message)

        if progress_callback:
            progress_callback(progress)
