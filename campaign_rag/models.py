# =============================================================================
# Data Model
# =============================================================================
# Plain dataclasses shared by the chunker, the vector store, the indexing
# orchestrator and the search service.

from dataclasses import asdict, dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class DocumentType(str, Enum):
    JOURNAL = 'journal'
    ACTOR = 'actor'


class IndexPhase(str, Enum):
    EXTRACTING = 'extracting'
    CHUNKING = 'chunking'
    EMBEDDING = 'embedding'
    STORING = 'storing'
    COMPLETE = 'complete'
    ERROR = 'error'


# =============================================================================
# Source-specific metadata
# =============================================================================

@dataclass
class JournalMetadata:
    folder_path: str = ''
    page_count: int = 1
    extra: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ActorMetadata:
    folder_path: str = ''
    actor_type: str = ''
    item_count: int = 0
    img: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


ChunkMetadata = Union[JournalMetadata, ActorMetadata, Dict[str, Any]]

_METADATA_KINDS = {
    DocumentType.JOURNAL.value: JournalMetadata,
    DocumentType.ACTOR.value: ActorMetadata,
}


def metadata_to_dict(metadata):
    """
    Turn a metadata value into a JSON-friendly dict tagged with its kind.

    Args:
        metadata: JournalMetadata, ActorMetadata, a plain dict or None

    Returns:
        dict: The metadata fields plus a 'kind' key for typed variants
    """
    if metadata is None:
        return {}
    if isinstance(metadata, JournalMetadata):
        return {'kind': DocumentType.JOURNAL.value, **asdict(metadata)}
    if isinstance(metadata, ActorMetadata):
        return {'kind': DocumentType.ACTOR.value, **asdict(metadata)}
    return dict(metadata)


def metadata_from_dict(data):
    """
    Rebuild a typed metadata value from metadata_to_dict() output.

    Dicts without a known 'kind' tag are returned unchanged. Keys the
    dataclass does not define (e.g. rows written before a field was renamed)
    are kept in 'extra' instead of failing the whole read.
    """
    if not data:
        return {}
    kind = data.get('kind')
    cls = _METADATA_KINDS.get(kind)
    if cls is None:
        return dict(data)
    known = {f.name for f in fields(cls)}
    values = {key: value for key, value in data.items() if key in known}
    unknown = {key: value for key, value in data.items() if key not in known and key != 'kind'}
    if unknown:
        values['extra'] = {**(values.get('extra') or {}), **unknown}
    return cls(**values)


# =============================================================================
# Records
# =============================================================================

def make_chunk_id(document_type, document_id, chunk_index):
    """
    Build the composite key of a chunk record.

    The same (type, document, position) always maps to the same id, so
    re-indexing a chunk overwrites the old row instead of duplicating it.

    Example:
        make_chunk_id('journal', 'abc', 2) -> 'journal:abc:2'
    """
    type_value = getattr(document_type, 'value', document_type)
    return f"{type_value}:{document_id}:{chunk_index}"


@dataclass
class ChunkRecord:
    """One embedded chunk of a source document."""
    id: str
    document_id: str
    document_type: DocumentType
    document_name: str
    folder_name: str
    chunk_index: int
    text: str
    vector: List[float]
    metadata: ChunkMetadata = field(default_factory=dict)


@dataclass
class IndexMeta:
    """Per-document bookkeeping, stored apart from the chunk rows."""
    document_id: str
    document_type: DocumentType
    document_name: str
    last_modified: float
    chunk_count: int


@dataclass
class SearchResult:
    entry: ChunkRecord
    score: float


@dataclass
class StoreStats:
    total_vectors: int = 0
    total_documents: int = 0
    by_type: Dict[str, int] = field(default_factory=dict)


@dataclass
class IndexProgress:
    phase: IndexPhase
    current: int
    total: int
    document_name: Optional[str] = None
    message: Optional[str] = None


@dataclass
class SourceDocument:
    """A document handed over by the extraction layer, already plain text."""
    id: str
    type: DocumentType
    name: str
    folder_name: str
    content: str
    last_modified: float
    metadata: ChunkMetadata = field(default_factory=dict)


@dataclass
class SourceSelectors:
    """Which collections to pull documents from (folder names per type)."""
    journal_folders: List[str] = field(default_factory=list)
    actor_folders: List[str] = field(default_factory=list)

    def is_empty(self):
        return not self.journal_folders and not self.actor_folders


@dataclass
class PendingChunk:
    """A chunk of text waiting to be embedded."""
    document: SourceDocument
    chunk_index: int
    text: str


@dataclass
class IndexingSummary:
    documents: int = 0
    chunks: int = 0
    batches: int = 0
    skipped: int = 0
    removed: int = 0
