"""End-to-end tests of the command-line interface with a fake embedder."""

import pytest
import yaml

import main
from tests.conftest import FakeEmbedder


@pytest.fixture
def cli_config(tmp_path, monkeypatch):
    journals = tmp_path / 'journals' / 'Sessions'
    journals.mkdir(parents=True)
    (journals / 'Dragon.md').write_text("The red dragon lairs in the castle ruins.", encoding='utf-8')
    (journals / 'Inn.md').write_text("The tavern keeper owes the party gold.", encoding='utf-8')

    config_path = tmp_path / 'test.yaml'
    config_path.write_text(yaml.safe_dump({
        'world_id': 'test-world',
        'paths': {
            'storage_dir': str(tmp_path / 'vectors'),
            'journal_root': str(tmp_path / 'journals'),
            'actor_root': str(tmp_path / 'actors'),
        },
        'sources': {'journal_folders': ['Sessions']},
    }))

    monkeypatch.setattr(main, 'create_embedder', lambda config: FakeEmbedder())
    return str(config_path)


def test_no_command_prints_help(capsys):
    assert main.main([]) == 1
    assert 'usage' in capsys.readouterr().out


def test_stats_on_empty_world(cli_config, capsys):
    assert main.main(['stats', '--config', cli_config]) == 0

    out = capsys.readouterr().out
    assert 'World: test-world' in out
    assert 'Chunks:    0' in out


def test_index_then_search(cli_config, capsys):
    assert main.main(['index', '--config', cli_config]) == 0
    assert 'Store now holds 2 chunks from 2 documents.' in capsys.readouterr().out

    assert main.main(['search', 'where is the dragon', '--config', cli_config, '-k', '1', '--context']) == 0
    out = capsys.readouterr().out
    assert '### Journal: Dragon (Sessions)' in out
    assert 'Found 1 results.' in out


def test_incremental_index_skips_unchanged(cli_config, capsys):
    main.main(['index', '--config', cli_config])
    capsys.readouterr()

    assert main.main(['index', '--incremental', '--config', cli_config]) == 0
    assert '0 documents indexed (0 chunks), 2 unchanged, 0 removed.' in capsys.readouterr().out


def test_clear(cli_config, capsys):
    main.main(['index', '--config', cli_config])

    assert main.main(['clear', '--yes', '--config', cli_config]) == 0
    main.main(['stats', '--config', cli_config])
    assert 'Documents: 0' in capsys.readouterr().out


def test_errors_are_reported(cli_config, monkeypatch, capsys):
    def no_key(config):
        from campaign_rag.exceptions import ConfigurationError
        raise ConfigurationError("API key not found")

    monkeypatch.setattr(main, 'create_embedder', no_key)

    assert main.main(['search', 'dragon', '--config', cli_config]) == 1
    assert 'Error: API key not found' in capsys.readouterr().err


def test_incremental_index_keeps_actor_with_same_path_as_journal(tmp_path, monkeypatch, capsys):
    (tmp_path / 'journals' / 'NPCs').mkdir(parents=True)
    (tmp_path / 'journals' / 'NPCs' / 'Bob.md').write_text("Bob runs the tavern.", encoding='utf-8')
    (tmp_path / 'actors' / 'NPCs').mkdir(parents=True)
    (tmp_path / 'actors' / 'NPCs' / 'Bob.yaml').write_text("name: Bob\ntype: npc\n", encoding='utf-8')

    config_path = tmp_path / 'npcs.yaml'
    config_path.write_text(yaml.safe_dump({
        'paths': {
            'storage_dir': str(tmp_path / 'vectors'),
            'journal_root': str(tmp_path / 'journals'),
            'actor_root': str(tmp_path / 'actors'),
        },
        'sources': {'journal_folders': ['NPCs'], 'actor_folders': ['NPCs']},
    }))
    monkeypatch.setattr(main, 'create_embedder', lambda config: FakeEmbedder())

    main.main(['index', '--config', str(config_path)])
    assert 'Store now holds 2 chunks from 2 documents.' in capsys.readouterr().out

    main.main(['index', '--incremental', '--config', str(config_path)])
    out = capsys.readouterr().out
    assert '2 unchanged, 0 removed.' in out
    assert 'Store now holds 2 chunks from 2 documents.' in out
