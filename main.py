# =============================================================================
# Campaign RAG - Main CLI Entry Point
# =============================================================================
# This is the command-line interface for the campaign RAG system.
#
# Usage:
#   python main.py index                       # Rebuild the index from scratch
#   python main.py index --incremental         # Only re-embed changed documents
#   python main.py search "your question"      # Search the vector store
#   python main.py search "q" --context        # Print the prompt context block
#   python main.py stats                       # Show index statistics
#   python main.py clear                       # Delete everything in the index
#
# All commands support:
#   --config FILE    Load a custom config file
#   --world ID       Use the vector store of another world

import argparse
import sys

from campaign_rag.config import get_world_id, load_config, print_config
from campaign_rag.context import build_context
from campaign_rag.embedding import create_embedder
from campaign_rag.exceptions import CampaignRagError
from campaign_rag.extraction import create_document_source, get_selectors
from campaign_rag.indexing import IndexingOrchestrator
from campaign_rag.retrieval import SearchService, print_results, result_to_dict
from campaign_rag.run_tracker import (
    create_run,
    get_logger,
    save_config,
    save_index_report,
    save_results,
)
from campaign_rag.vector_store import create_vector_store


# =============================================================================
# Helpers
# =============================================================================

def load_cli_config(args, extra_overrides=None):
    """Load config with the overrides every command shares."""
    cli_overrides = dict(extra_overrides or {})
    if getattr(args, 'world', None):
        cli_overrides['world_id'] = args.world

    config = load_config(args.config, cli_overrides)

    if getattr(args, 'verbose', False):
        print("\nConfiguration:")
        print_config(config)
        print()

    return config


def start_run(args, config, run_name):
    """Create a run folder if --track was given; returns (run_dir, logger)."""
    if getattr(args, 'track', False):
        run_dir = create_run(config, run_name)
        save_config(run_dir, config)
        return run_dir, get_logger(run_dir)
    return None, get_logger()


def make_progress_printer(logger, events):
    """Progress callback that logs each phase change and keeps the events."""
    last_phase = {'value': None}

    def on_progress(progress):
        events.append(progress)
        if progress.phase != last_phase['value']:
            last_phase['value'] = progress.phase
            logger.info(f"[{progress.phase.value}] {progress.current}/{progress.total}")

    return on_progress


# =============================================================================
# Command Handlers
# =============================================================================

def cmd_index(args):
    """
    Handle the 'index' command.

    Extracts the configured journal and actor folders, chunks them,
    generates embeddings and stores everything in the world's vector store.
    """
    print("=" * 70)
    print("Campaign RAG - Indexing")
    print("=" * 70)

    config = load_cli_config(args)
    run_dir, logger = start_run(args, config, "index")

    selectors = get_selectors(config)
    if selectors.is_empty():
        logger.warning("No source folders configured (sources.journal_folders / sources.actor_folders)")

    events = []
    with create_vector_store(config) as store:
        orchestrator = IndexingOrchestrator(
            store=store,
            embedder=create_embedder(config),
            source=create_document_source(config, logger),
            config=config,
            logger=logger,
        )

        progress = make_progress_printer(logger, events)
        if args.incremental:
            summary = orchestrator.update_changed(selectors, progress)
        else:
            summary = orchestrator.reindex_all(selectors, progress)

        if run_dir:
            save_index_report(run_dir, summary, store.get_all_index_meta(), events)

        stats = store.get_stats()

    print(f"\nDone! {summary.documents} documents indexed ({summary.chunks} chunks), "
          f"{summary.skipped} unchanged, {summary.removed} removed.")
    print(f"Store now holds {stats.total_vectors} chunks from {stats.total_documents} documents.")

    return 0


def cmd_search(args):
    """
    Handle the 'search' command.

    Searches the vector store for chunks relevant to the question.
    """
    print("=" * 70)
    print("Campaign RAG - Search")
    print("=" * 70)

    overrides = {'retrieval': {'top_k': args.top_k}} if args.top_k else None
    config = load_cli_config(args, overrides)
    run_dir, logger = start_run(args, config, "search")

    with create_vector_store(config) as store:
        service = SearchService(store, create_embedder(config), config, logger)
        results = service.search(args.question, document_type=args.type)

    print_results(results)

    context = build_context(results) if args.context else None
    if context is not None:
        print(f"\n{'=' * 70}\nContext:\n{'=' * 70}\n")
        print(context or "(no context)")

    if run_dir:
        save_results(run_dir, args.question, [result_to_dict(r) for r in results],
                     query_number=1, context=context)

    print(f"\nFound {len(results)} results.")

    return 0


def cmd_stats(args):
    """Handle the 'stats' command: print index statistics."""
    config = load_cli_config(args)

    with create_vector_store(config) as store:
        stats = store.get_stats()

    print(f"World: {get_world_id(config)}")
    print(f"Chunks:    {stats.total_vectors}")
    print(f"Documents: {stats.total_documents}")
    for document_type, count in sorted(stats.by_type.items()):
        print(f"  {document_type}: {count}")

    return 0


def cmd_clear(args):
    """Handle the 'clear' command: empty the world's vector store."""
    config = load_cli_config(args)

    if not args.yes:
        answer = input(f"Delete the whole index of world '{get_world_id(config)}'? [y/N] ")
        if answer.strip().lower() != 'y':
            print("Aborted.")
            return 1

    with create_vector_store(config) as store:
        store.clear()

    print("Index cleared.")
    return 0


# =============================================================================
# Main Entry Point
# =============================================================================

def add_common_arguments(parser):
    parser.add_argument(
        '--config', '-c',
        help='Path to custom config YAML file'
    )
    parser.add_argument(
        '--world', '-w',
        help='World id (one vector store per world)'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Print detailed configuration'
    )


def build_parser():
    parser = argparse.ArgumentParser(
        description='Campaign RAG - Semantic search over your campaign journals and actors',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py index                            # Rebuild the whole index
  python main.py index --incremental              # Only changed documents
  python main.py search "Who rules Saltmarsh?"    # Search for relevant info
  python main.py search "query" --type actor      # Only search actors
  python main.py search "query" --context         # Show the prompt context
  python main.py stats                            # Index statistics
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    # -------------------------------------------------------------------------
    # Index command
    # -------------------------------------------------------------------------
    index_parser = subparsers.add_parser(
        'index',
        help='Chunk, embed and store the configured documents'
    )
    add_common_arguments(index_parser)
    index_parser.add_argument(
        '--incremental', '-i',
        action='store_true',
        help='Only re-embed documents that changed since the last run'
    )
    index_parser.add_argument(
        '--track', '-t',
        action='store_true',
        help='Create a run folder to track this operation'
    )

    # -------------------------------------------------------------------------
    # Search command
    # -------------------------------------------------------------------------
    search_parser = subparsers.add_parser(
        'search',
        help='Search for relevant campaign information'
    )
    search_parser.add_argument(
        'question',
        help='The question to search for'
    )
    add_common_arguments(search_parser)
    search_parser.add_argument(
        '--top-k', '-k',
        type=int,
        help='Number of results to return'
    )
    search_parser.add_argument(
        '--type',
        choices=['journal', 'actor'],
        help='Only return chunks of this document type'
    )
    search_parser.add_argument(
        '--context',
        action='store_true',
        help='Also print the context block built from the results'
    )
    search_parser.add_argument(
        '--track', '-t',
        action='store_true',
        help='Create a run folder to track this operation'
    )

    # -------------------------------------------------------------------------
    # Stats / clear commands
    # -------------------------------------------------------------------------
    stats_parser = subparsers.add_parser('stats', help='Show index statistics')
    add_common_arguments(stats_parser)

    clear_parser = subparsers.add_parser('clear', help='Delete the whole index of a world')
    add_common_arguments(clear_parser)
    clear_parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Do not ask for confirmation'
    )

    return parser


COMMANDS = {
    'index': cmd_index,
    'search': cmd_search,
    'stats': cmd_stats,
    'clear': cmd_clear,
}


def main(argv=None):
    """
    Main entry point - parse arguments and run the appropriate command.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    try:
        return COMMANDS[args.command](args)
    except CampaignRagError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
