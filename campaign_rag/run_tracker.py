# =============================================================================
# Run Tracker Module
# =============================================================================
# This module tracks CLI runs by saving configs, logs, and results
# to timestamped folders in ./runs.

import json
import logging
import yaml
from dataclasses import asdict
from datetime import datetime
from pathlib import Path

from campaign_rag.config import get_project_root


def create_run(config, run_name=None):
    """
    Create a new run folder with a timestamp.

    Each run gets its own folder like: runs/20260128_143022_index/

    Args:
        config: The configuration dictionary used for this run
        run_name: Optional custom name to append to the folder name

    Returns:
        Path: The path to the newly created run folder
    """
    runs_dir = get_project_root() / 'runs'
    runs_dir.mkdir(exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')

    if run_name:
        folder_name = f"{timestamp}_{run_name}"
    else:
        folder_name = timestamp

    run_dir = runs_dir / folder_name
    run_dir.mkdir(exist_ok=True)

    # Also create a results subfolder for search results
    (run_dir / 'results').mkdir(exist_ok=True)

    print(f"Created run folder: {run_dir}")

    return run_dir


def save_config(run_dir, config):
    """
    Save the configuration used for this run.

    Args:
        run_dir: Path to the run folder
        config: The configuration dictionary to save
    """
    config_path = Path(run_dir) / 'config.yaml'

    with open(config_path, 'w', encoding='utf-8') as f:
        yaml.dump(config, f, default_flow_style=False, sort_keys=False)

    print(f"Saved config to: {config_path}")


def _jsonable(value):
    """Enums become their value so json.dump can handle dataclass dicts."""
    return getattr(value, 'value', str(value))


def save_index_report(run_dir, summary, index_meta, progress_events=None):
    """
    Save what an indexing run produced.

    The report lists every indexed document with its chunk count, so you
    can see how the text was split without opening the database.

    Args:
        run_dir: Path to the run folder
        summary: IndexingSummary returned by the orchestrator
        index_meta: List of IndexMeta read back from the store
        progress_events: Optional list of IndexProgress events seen during the run
    """
    report_path = Path(run_dir) / 'index_report.json'

    data = {
        'timestamp': datetime.now().isoformat(),
        'summary': asdict(summary),
        'documents': [asdict(meta) for meta in index_meta],
    }
    if progress_events is not None:
        data['progress'] = [asdict(event) for event in progress_events]

    with open(report_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False, default=_jsonable)

    print(f"Saved index report ({len(index_meta)} documents) to: {report_path}")


def save_results(run_dir, query, results, query_number=None, context=None):
    """
    Save search results for a query.

    Results are saved to runs/TIMESTAMP/results/query_001.json

    Args:
        run_dir: Path to the run folder
        query: The search query string
        results: List of result dictionaries (see retrieval.result_to_dict)
        query_number: Optional number for ordering multiple queries
        context: Optional context block built from the results
    """
    results_dir = Path(run_dir) / 'results'
    results_dir.mkdir(exist_ok=True)

    if query_number is not None:
        filename = f"query_{query_number:03d}.json"
    else:
        timestamp = datetime.now().strftime('%H%M%S')
        filename = f"query_{timestamp}.json"

    results_path = results_dir / filename

    data = {
        'query': query,
        'timestamp': datetime.now().isoformat(),
        'num_results': len(results),
        'results': results,
    }
    if context is not None:
        data['context'] = context

    with open(results_path, 'w', encoding='utf-8') as f:
        json.dump(data, f, indent=2, ensure_ascii=False)

    print(f"Saved results to: {results_path}")


def get_logger(run_dir=None, name='campaign_rag'):
    """
    Create a logger that writes to the console and, for tracked runs,
    to a log file in the run folder.

    The logger is named after the package so module loggers
    (campaign_rag.indexing, ...) propagate into it.

    Args:
        run_dir: Optional path to the run folder
        name: Name for the logger (default: 'campaign_rag')

    Returns:
        logging.Logger: A configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)

    # Clear any existing handlers (in case this is called multiple times)
    logger.handlers.clear()

    formatter = logging.Formatter(
        '%(asctime)s - %(levelname)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if run_dir is not None:
        log_path = Path(run_dir) / 'run.log'
        file_handler = logging.FileHandler(log_path, encoding='utf-8')
        file_handler.setLevel(logging.INFO)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if run_dir is not None:
        logger.info(f"Logging to: {Path(run_dir) / 'run.log'}")

    return logger
