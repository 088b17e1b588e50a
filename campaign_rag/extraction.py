# =============================================================================
# Extraction Module
# =============================================================================
# Turns campaign notes on disk into plain-text SourceDocuments.
#
#   journals : Markdown files (e.g. an Obsidian vault export)
#   actors   : YAML files describing characters, NPCs and monsters
#
# Folders are selected by name relative to the journal/actor root, and
# every child folder of a selected folder is included.

import html
import logging
import re
from pathlib import Path

import yaml

from campaign_rag.config import get_section, resolve_path
from campaign_rag.models import (
    ActorMetadata,
    DocumentType,
    JournalMetadata,
    SourceDocument,
    SourceSelectors,
)


UNCATEGORIZED = 'Uncategorized'
JOURNAL_PATTERN = '*.md'
ACTOR_PATTERNS = ('*.yaml', '*.yml')


class DocumentSource:
    """Anything that can hand the indexer a list of SourceDocuments."""

    def extract(self, selectors):
        raise NotImplementedError


# =============================================================================
# Text cleanup
# =============================================================================

def remove_obsidian_links(text):
    """
    Remove Obsidian wiki-link syntax and replace with plain text.

    Obsidian uses [[link]] and [[link|alias]] syntax for internal links.
    This function converts them to readable text:
      - [[link|alias]] becomes "alias"
      - [[link]] becomes "link"

    Example:
        "Met [[Bob the Wizard|Bob]] at the [[Tavern]]"
        becomes "Met Bob at the Tavern"
    """
    # First, handle links with aliases: [[link|alias]] -> alias
    text = re.sub(r'\[\[([^\]|]+)\|([^\]]+)\]\]', r'\2', text)

    # Then, handle simple links: [[link]] -> link
    text = re.sub(r'\[\[([^\]]+)\]\]', r'\1', text)

    return text


def strip_html(text):
    """
    Remove HTML markup but keep line structure.

    Script and style blocks are dropped entirely, tags are removed,
    entities are decoded and runs of blank lines are collapsed to one
    paragraph break.
    """
    text = re.sub(r'<(script|style)\b.*?</\1\s*>', '', text, flags=re.DOTALL | re.IGNORECASE)
    text = re.sub(r'<br\s*/?>|</p\s*>|</div\s*>|</h\d\s*>|</li\s*>', '\n', text, flags=re.IGNORECASE)
    text = re.sub(r'<[^>]+>', '', text)
    text = html.unescape(text)
    text = re.sub(r'[ \t]+', ' ', text)
    text = re.sub(r' *\n *', '\n', text)
    text = re.sub(r'\n{3,}', '\n\n', text)
    return text.strip()


def clean_text(text):
    return strip_html(remove_obsidian_links(text))


# =============================================================================
# Content builders
# =============================================================================

def build_journal_content(name, body):
    """Journal text: a '# name' title followed by the cleaned body."""
    cleaned = clean_text(body)
    if not cleaned:
        return ''
    return f"# {name}\n\n{cleaned}".strip()


def count_pages(body):
    """Each '## ' heading starts a page; a note without one is a single page."""
    pages = len(re.findall(r'^## ', body, flags=re.MULTILINE))
    return max(pages, 1)


def build_actor_content(data, name):
    """
    Flatten an actor description into readable text.

    Args:
        data: Parsed actor YAML (name, type, biography, hp, ac, abilities, items)
        name: Fallback name (the file name) if the YAML has none

    Returns:
        str: The actor as plain text
    """
    parts = [f"# {data.get('name') or name}"]
    actor_type = data.get('type') or 'unknown'
    parts.append(f"Type: {actor_type}")

    biography = data.get('biography') or data.get('description') or ''
    if isinstance(biography, str) and biography.strip():
        plain_bio = clean_text(biography)
        if plain_bio:
            parts.append(f"\nBiography:\n{plain_bio}")

    hp = data.get('hp')
    if isinstance(hp, dict):
        parts.append(f"HP: {hp.get('value', hp.get('max', '?'))}/{hp.get('max', '?')}")
    elif hp is not None:
        parts.append(f"HP: {hp}")

    ac = data.get('ac')
    if ac is not None:
        parts.append(f"AC: {ac}")

    abilities = data.get('abilities') or {}
    if isinstance(abilities, dict):
        scores = [f"{key.upper()}: {value}" for key, value in abilities.items() if value is not None]
        if scores:
            parts.append(f"Abilities: {', '.join(scores)}")

    # Group items by type, e.g. "Weapons: Longsword, Dagger"
    items_by_type = {}
    for item in _actor_items(data):
        items_by_type.setdefault(item['type'], []).append(item['name'])
    for item_type, names in items_by_type.items():
        parts.append(f"\n{item_type.capitalize()}s: {', '.join(names)}")

    return '\n'.join(parts).strip()


def _actor_items(data):
    items = []
    for item in data.get('items') or []:
        if isinstance(item, dict) and item.get('name'):
            items.append({'name': str(item['name']), 'type': str(item.get('type') or 'other')})
        elif isinstance(item, str):
            items.append({'name': item, 'type': 'other'})
    return items


# =============================================================================
# Folder-based source
# =============================================================================

class FolderDocumentSource(DocumentSource):
    """
    Reads journals and actors from two root folders.

    Document ids are paths relative to their root, without suffix, so they
    stay stable between runs. last_modified is the file's mtime, which is
    what the incremental update compares against.
    """

    def __init__(self, journal_root, actor_root, logger=None):
        self.journal_root = Path(journal_root)
        self.actor_root = Path(actor_root)
        self.logger = logger or logging.getLogger(__name__)

    def extract(self, selectors):
        """
        Extract every selected journal and actor.

        Args:
            selectors: SourceSelectors naming the folders to read

        Returns:
            list: SourceDocuments, journals first, each sorted by path
        """
        documents = []
        documents.extend(self.get_journals(selectors.journal_folders))
        documents.extend(self.get_actors(selectors.actor_folders))
        return documents

    def get_journals(self, folders):
        documents = []
        for path in self._resolve_files(self.journal_root, folders, (JOURNAL_PATTERN,)):
            with open(path, 'r', encoding='utf-8') as f:
                body = f.read()

            content = build_journal_content(path.stem, body)
            if not content:
                self.logger.warning(f"Skipping {path.name} - no content")
                continue

            folder_name, folder_path = self._folder_info(self.journal_root, path)
            documents.append(SourceDocument(
                id=self._document_id(self.journal_root, path),
                type=DocumentType.JOURNAL,
                name=path.stem,
                folder_name=folder_name,
                content=content,
                last_modified=path.stat().st_mtime,
                metadata=JournalMetadata(folder_path=folder_path, page_count=count_pages(body)),
            ))

        self.logger.info(f"Extracted {len(documents)} journals")
        return documents

    def get_actors(self, folders):
        documents = []
        used_ids = set()
        for path in self._resolve_files(self.actor_root, folders, ACTOR_PATTERNS):
            with open(path, 'r', encoding='utf-8') as f:
                data = yaml.safe_load(f) or {}

            if not isinstance(data, dict):
                self.logger.warning(f"Skipping {path.name} - not an actor mapping")
                continue

            # bob.yaml and bob.yml would share an id; the later one keeps its suffix
            document_id = self._document_id(self.actor_root, path)
            if document_id in used_ids:
                document_id = path.relative_to(self.actor_root).as_posix()
                self.logger.warning(f"Duplicate actor name {path.stem}, indexing {path.name} as '{document_id}'")
            used_ids.add(document_id)

            name = str(data.get('name') or path.stem)
            folder_name, folder_path = self._folder_info(self.actor_root, path)
            documents.append(SourceDocument(
                id=document_id,
                type=DocumentType.ACTOR,
                name=name,
                folder_name=folder_name,
                content=build_actor_content(data, name),
                last_modified=path.stat().st_mtime,
                metadata=ActorMetadata(
                    folder_path=folder_path,
                    actor_type=str(data.get('type') or ''),
                    item_count=len(_actor_items(data)),
                    img=data.get('img'),
                ),
            ))

        self.logger.info(f"Extracted {len(documents)} actors")
        return documents

    def _resolve_files(self, root, folders, patterns):
        """All matching files under the selected folders and their children, once each."""
        seen = set()
        files = []
        for folder in folders:
            base = root / folder if folder not in ('', '.') else root
            if not base.is_dir():
                self.logger.warning(f"Folder not found: {base}")
                continue
            for pattern in patterns:
                for path in base.rglob(pattern):
                    resolved = path.resolve()
                    if path.is_file() and resolved not in seen:
                        seen.add(resolved)
                        files.append(path)
        return sorted(files)

    @staticmethod
    def _document_id(root, path):
        return path.relative_to(root).with_suffix('').as_posix()

    @staticmethod
    def _folder_info(root, path):
        parts = path.relative_to(root).parent.parts
        if not parts:
            return UNCATEGORIZED, ''
        return parts[-1], ' / '.join(parts)


def create_document_source(config, logger=None):
    """Build a FolderDocumentSource from config paths."""
    paths = get_section(config, 'paths')
    return FolderDocumentSource(
        journal_root=resolve_path(paths.get('journal_root', 'data/journals')),
        actor_root=resolve_path(paths.get('actor_root', 'data/actors')),
        logger=logger,
    )


def get_selectors(config):
    """Read the configured source folders."""
    sources = get_section(config, 'sources')
    return SourceSelectors(
        journal_folders=list(sources.get('journal_folders') or []),
        actor_folders=list(sources.get('actor_folders') or []),
    )
