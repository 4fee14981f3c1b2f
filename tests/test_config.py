"""Tests for PorterConfig class."""

import json
from pathlib import Path

import pytest

from kit_porter.config import PorterConfig
from kit_porter.exceptions import InvalidProviderError
from kit_porter.types import Registry


class TestPorterConfig:
    """Test cases for PorterConfig."""

    def test_paths(self, config: PorterConfig, temp_dir: Path):
        base = (temp_dir / 'porter-home').resolve()
        assert config.base_path == base
        assert config.registry_path == base / 'portable-registry.json'
        assert config.locks_path == base / 'locks'

    def test_home_from_environment(self, temp_dir: Path, monkeypatch):
        monkeypatch.setenv('KIT_PORTER_HOME', str(temp_dir / 'env-home'))
        assert PorterConfig().base_path == (temp_dir / 'env-home').resolve()

    def test_defaults(self, config: PorterConfig):
        assert config.default_providers == ['claude-code']
        assert config.default_global is False
        assert config.color is True

    def test_missing_keys_filled_from_defaults(self, temp_dir: Path):
        (temp_dir / 'config.json').write_text(json.dumps({'color': False}))
        config = PorterConfig(temp_dir)

        assert config.color is False
        assert config.default_providers == ['claude-code']

    def test_unreadable_config_warns(self, temp_dir: Path, capsys):
        (temp_dir / 'config.json').write_text('{broken')
        config = PorterConfig(temp_dir)

        assert 'Warning: Could not load config file' in capsys.readouterr().out
        assert config.default_global is False

    def test_save_and_reload(self, config: PorterConfig):
        config.set_providers(['Cursor', 'codex'])
        config.config['global'] = True
        config.save_config()

        reloaded = PorterConfig(config.base_path)
        assert reloaded.default_providers == ['cursor', 'codex']
        assert reloaded.default_global is True

    def test_invalid_provider_rejected(self, config: PorterConfig):
        with pytest.raises(InvalidProviderError):
            config.set_providers(['emacs'])
        with pytest.raises(InvalidProviderError):
            config.set_providers([])

    def test_registry_round_trip(self, config: PorterConfig):
        assert config.load_registry() == Registry()
        config.save_registry(Registry(applied_manifest_version='1.0.0'))
        assert config.load_registry().applied_manifest_version == '1.0.0'
