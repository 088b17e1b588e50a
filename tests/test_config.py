"""Tests for config loading, merging and secrets."""

from pathlib import Path

import yaml

from campaign_rag import config as config_module
from campaign_rag.config import deep_merge, get_section, load_config, resolve_path


def test_deep_merge_nested():
    base = {'a': 1, 'b': {'x': 10, 'y': 20}}
    override = {'b': {'x': 99}, 'c': 3}

    assert deep_merge(base, override) == {'a': 1, 'b': {'x': 99, 'y': 20}, 'c': 3}
    assert base == {'a': 1, 'b': {'x': 10, 'y': 20}}


def test_load_config_defaults():
    config = load_config()

    assert config['chunking'] == {'chunk_size': 500, 'overlap': 50, 'max_chunks': 1000}
    assert config['embedding']['batch_size'] == 20
    assert config['retrieval']['top_k'] == 5


def test_load_config_custom_file_and_overrides(tmp_path):
    custom = tmp_path / 'custom.yaml'
    custom.write_text(yaml.safe_dump({'chunking': {'chunk_size': 800}, 'world_id': 'eberron'}))

    config = load_config(custom, {'retrieval': {'top_k': 9}})

    assert config['chunking']['chunk_size'] == 800
    assert config['chunking']['overlap'] == 50
    assert config['world_id'] == 'eberron'
    assert config['retrieval']['top_k'] == 9


def test_resolve_path(tmp_path):
    assert resolve_path(str(tmp_path)) == tmp_path
    assert resolve_path('data/vectors') == config_module.get_project_root() / 'data' / 'vectors'


def test_get_section():
    assert get_section({'a': {'b': 1}}, 'a') == {'b': 1}
    assert get_section({'a': None}, 'a') == {}
    assert get_section(None, 'a') == {}


def test_secrets_file_wins(tmp_path, monkeypatch):
    (tmp_path / 'configs').mkdir()
    (tmp_path / 'configs' / 'secrets.yaml').write_text("openai_api_key: sk-from-file\n")
    monkeypatch.setattr(config_module, 'get_project_root', lambda: tmp_path)
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-from-env')

    assert config_module.get_secrets() == {'openai_api_key': 'sk-from-file'}


def test_secrets_from_environment(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, 'get_project_root', lambda: Path(tmp_path))
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv('OPENAI_API_KEY', 'sk-from-env')

    assert config_module.get_secrets() == {'openai_api_key': 'sk-from-env'}


def test_no_secrets(tmp_path, monkeypatch):
    monkeypatch.setattr(config_module, 'get_project_root', lambda: tmp_path)
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv('OPENAI_API_KEY', raising=False)

    assert config_module.get_secrets() == {}


def test_world_and_storage_settings(tmp_path):
    config = {'world_id': 'Curse of Strahd', 'paths': {'storage_dir': str(tmp_path)}}

    assert config_module.get_world_id(config) == 'Curse of Strahd'
    assert config_module.get_world_id(config, 'eberron') == 'eberron'
    assert config_module.get_world_id({}) == 'default'
    assert config_module.get_storage_dir(config) == tmp_path
    assert config_module.get_storage_dir({}) == config_module.get_project_root() / 'data' / 'vectors'
    assert config_module.safe_world_name('Curse of Strahd/2') == 'Curse_of_Strahd_2'
