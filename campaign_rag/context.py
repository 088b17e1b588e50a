# =============================================================================
# Context Module
# =============================================================================
# Formats search results into one block of text for a downstream prompt.
# Chunks from the same document are grouped and put back in reading order.

from campaign_rag.models import DocumentType


CONTEXT_TITLE = "## Relevant Campaign Information"

TYPE_LABELS = {
    DocumentType.JOURNAL.value: 'Journal',
    DocumentType.ACTOR.value: 'Actor',
}


def build_context(results):
    """
    Build a prompt context from ranked search results.

    Results are grouped by (document type, document id). Groups appear in
    the order their first result was ranked; inside a group chunks are
    sorted by chunk index. Each group gets a heading with the document
    name and folder, then the raw chunk texts, separated by blank lines.

    Args:
        results: List of SearchResult

    Returns:
        str: The context block, or "" if there are no results

    Example output:
        ## Relevant Campaign Information

        ### Journal: The Sunken Keep (Session Notes)

        The party entered the flooded hall...
    """
    if not results:
        return ""

    # dicts keep insertion order, so groups stay in first-seen order
    groups = {}
    for result in results:
        key = (_type_value(result.entry.document_type), result.entry.document_id)
        groups.setdefault(key, []).append(result.entry)

    parts = [CONTEXT_TITLE]
    for entries in groups.values():
        first = entries[0]
        type_value = _type_value(first.document_type)
        label = TYPE_LABELS.get(type_value, type_value.capitalize())
        parts.append(f"### {label}: {first.document_name} ({first.folder_name})")

        for entry in sorted(entries, key=lambda e: e.chunk_index):
            parts.append(entry.text)

    return "\n\n".join(parts) + "\n"


def _type_value(document_type):
    return getattr(document_type, 'value', document_type)
