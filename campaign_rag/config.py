# =============================================================================
# Configuration
# =============================================================================
# Settings come from three layers, later ones winning:
#   1. configs/base.yaml          (shipped defaults)
#   2. a YAML file given by --config
#   3. CLI overrides such as --world or --top-k
# The result is a plain nested dict. Small accessors below read the parts
# several modules share (world id, folders, secrets).

import os
import re
from pathlib import Path

import yaml
from dotenv import load_dotenv


DEFAULT_WORLD = 'default'
DEFAULT_STORAGE_DIR = 'data/vectors'


def get_project_root():
    """Folder holding main.py and configs/ (one level above this package)."""
    return Path(__file__).parent.parent


def load_yaml_file(file_path):
    """
    Read a YAML mapping from disk.

    Args:
        file_path: Path to the YAML file

    Returns:
        dict: Parsed contents; {} for a missing or empty file
    """
    path = Path(file_path)
    if not path.exists():
        return {}

    with open(path, 'r', encoding='utf-8') as f:
        return yaml.safe_load(f) or {}


def deep_merge(base, override):
    """
    Merge `override` into a copy of `base`, descending into nested dicts.

    Example:
        deep_merge({'chunking': {'chunk_size': 500, 'overlap': 50}},
                   {'chunking': {'chunk_size': 800}})
        -> {'chunking': {'chunk_size': 800, 'overlap': 50}}
    """
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = value
    return merged


def load_config(config_path=None, cli_overrides=None):
    """
    Build the effective configuration.

    Args:
        config_path: Optional YAML file layered over configs/base.yaml
        cli_overrides: Optional dict layered over everything else

    Returns:
        dict: The merged configuration
    """
    config = load_yaml_file(get_project_root() / 'configs' / 'base.yaml')

    for layer in (load_yaml_file(config_path) if config_path else None, cli_overrides):
        if layer:
            config = deep_merge(config, layer)

    return config


def get_section(config, name):
    """Return a config section as a dict, treating a missing or null section as empty."""
    return (config or {}).get(name) or {}


def resolve_path(path_str):
    """Absolute paths are kept; relative ones are taken from the project root."""
    path = Path(path_str)
    return path if path.is_absolute() else get_project_root() / path


# =============================================================================
# World and storage settings
# =============================================================================

def get_world_id(config, world_id=None):
    """The world to work on: an explicit id, else config['world_id'], else 'default'."""
    return str(world_id or (config or {}).get('world_id') or DEFAULT_WORLD)


def get_storage_dir(config):
    """Directory holding one vector database per world."""
    return resolve_path(get_section(config, 'paths').get('storage_dir') or DEFAULT_STORAGE_DIR)


def safe_world_name(world_id):
    """World id reduced to characters that are safe in a file name."""
    return re.sub(r'[^A-Za-z0-9_.-]', '_', world_id)


# =============================================================================
# Secrets
# =============================================================================

def get_secrets():
    """
    Load API keys.

    configs/secrets.yaml wins when it exists. Otherwise OPENAI_API_KEY is
    read from the environment, after loading a .env file from the project
    root if there is one.

    Returns:
        dict: e.g. {'openai_api_key': 'sk-...'}; {} when nothing is set
    """
    secrets_path = get_project_root() / 'configs' / 'secrets.yaml'
    if secrets_path.exists():
        return load_yaml_file(secrets_path)

    load_dotenv(get_project_root() / '.env')
    api_key = os.getenv('OPENAI_API_KEY')
    return {'openai_api_key': api_key} if api_key else {}


def print_config(config, indent=0):
    """Print a nested config as indented 'key: value' lines (used by --verbose)."""
    prefix = "  " * indent
    for key, value in config.items():
        if isinstance(value, dict):
            print(f"{prefix}{key}:")
            print_config(value, indent + 1)
        else:
            print(f"{prefix}{key}: {value}")
