# =============================================================================
# Chunking Module
# =============================================================================
# This module splits document text into overlapping chunks.
# Each chunk becomes a separate entry in the vector store for search.

from campaign_rag.config import get_section
from campaign_rag.models import PendingChunk


DEFAULT_CHUNK_SIZE = 500
DEFAULT_OVERLAP = 50
DEFAULT_MAX_CHUNKS = 1000

PARAGRAPH_BREAK = '\n\n'
SENTENCE_BREAK = '. '


def _last_break_at_or_before(text, separator, position):
    """Index of the last `separator` starting at or before `position`, or -1."""
    return text.rfind(separator, 0, position + len(separator))


def chunk_text(text, chunk_size=DEFAULT_CHUNK_SIZE, overlap=DEFAULT_OVERLAP,
               max_chunks=DEFAULT_MAX_CHUNKS):
    """
    Split text into overlapping chunks, preferring natural boundaries.

    Each window is at most `chunk_size` characters. The cut point is moved
    back to the last paragraph break, or failing that the last sentence end
    ('. '), as long as that keeps at least half a window. Otherwise the text
    is cut hard at the window edge. Consecutive chunks share `overlap`
    characters so context is not lost at the boundaries.

    Args:
        text: The plain text to split
        chunk_size: Target chunk length in characters
        overlap: Characters shared between consecutive chunks
        max_chunks: Hard cap on the number of chunks returned

    Returns:
        list: The chunk strings in reading order (trimmed, never empty)

    Example:
        chunk_text("short note") -> ["short note"]
    """
    if chunk_size <= 0:
        raise ValueError(f"chunk_size must be positive, got {chunk_size}")
    if overlap < 0 or overlap >= chunk_size:
        raise ValueError(f"overlap must be in [0, {chunk_size}), got {overlap}")

    if not text:
        return []

    # Small enough to keep whole
    if len(text) <= chunk_size:
        return [text]

    chunks = []
    start = 0
    half_window = chunk_size * 0.5

    while start < len(text):
        end = start + chunk_size

        # Only look for a nicer boundary if the window ends inside the text
        if end < len(text):
            paragraph_break = _last_break_at_or_before(text, PARAGRAPH_BREAK, end)
            if paragraph_break > start + half_window:
                end = paragraph_break
            else:
                sentence_break = _last_break_at_or_before(text, SENTENCE_BREAK, end)
                if sentence_break > start + half_window:
                    end = sentence_break + 1

        piece = text[start:end].strip()
        if piece:
            chunks.append(piece)

        if len(chunks) >= max_chunks:
            break

        next_start = max(end - overlap, 0)
        # Never step backwards, even with unusual size/overlap settings
        if next_start <= start:
            next_start = end
        start = next_start

        if start >= len(text) - 1:
            break

    return chunks


def get_chunking_settings(config):
    """
    Read chunk size, overlap and cap from the config (with defaults).

    Returns:
        tuple: (chunk_size, overlap, max_chunks)
    """
    section = get_section(config, 'chunking')
    return (
        section.get('chunk_size', DEFAULT_CHUNK_SIZE),
        section.get('overlap', DEFAULT_OVERLAP),
        section.get('max_chunks', DEFAULT_MAX_CHUNKS),
    )


def chunk_document(document, config=None):
    """
    Chunk a single source document.

    Args:
        document: A SourceDocument
        config: Optional configuration dictionary with chunking settings

    Returns:
        list: PendingChunk objects numbered from 0
    """
    chunk_size, overlap, max_chunks = get_chunking_settings(config)
    pieces = chunk_text(document.content, chunk_size, overlap, max_chunks)
    return [
        PendingChunk(document=document, chunk_index=index, text=piece)
        for index, piece in enumerate(pieces)
    ]


def chunk_documents(documents, config=None):
    """Chunk every document and return all PendingChunk objects in order."""
    all_chunks = []
    for document in documents:
        all_chunks.extend(chunk_document(document, config))
    return all_chunks
