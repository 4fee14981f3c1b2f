"""
Configuration management for Kit Porter.

Handles loading and saving user settings and locating the registry and lock
directory under the Kit Porter home.
"""

import json
import os
from pathlib import Path
from typing import Dict, List, Optional

from kit_porter.exceptions import InvalidProviderError
from kit_porter.providers import parse_provider
from kit_porter.registry import load_registry, save_registry
from kit_porter.types import Registry


class PorterConfig:
    """Configuration management for Kit Porter settings and state paths."""

    HOME_ENV = 'KIT_PORTER_HOME'
    DEFAULT_HOME = '.kitporter'
    CONFIG_FILE = 'config.json'
    REGISTRY_FILE = 'portable-registry.json'
    LOCKS_DIR = 'locks'

    DEFAULT_SETTINGS = {
        'providers': ['claude-code'],
        'global': False,
        'color': True,
    }

    def __init__(self, base_path: Optional[Path] = None):
        if base_path is None:
            base_path = os.environ.get(self.HOME_ENV) or Path.home() / self.DEFAULT_HOME
        self.base_path = Path(base_path).expanduser().resolve()
        self.config_path = self.base_path / self.CONFIG_FILE
        self.registry_path = self.base_path / self.REGISTRY_FILE
        self.locks_path = self.base_path / self.LOCKS_DIR

        self.config = self._load_config()

    def _load_config(self) -> Dict:
        """Load configuration from file, filling in defaults for missing keys."""
        config = dict(self.DEFAULT_SETTINGS)
        if self.config_path.exists():
            try:
                with open(self.config_path) as f:
                    loaded = json.load(f)
                if isinstance(loaded, dict):
                    config.update(loaded)
                else:
                    print(f"Warning: Ignoring config file {self.config_path}: expected a JSON object")
            except (OSError, json.JSONDecodeError) as e:
                print(f"Warning: Could not load config file: {e}")
        return config

    def save_config(self):
        """Save current configuration to file."""
        try:
            self.base_path.mkdir(parents=True, exist_ok=True)
            with open(self.config_path, 'w') as f:
                json.dump(self.config, f, indent=2)
        except OSError as e:
            raise RuntimeError(f"Could not save config file: {e}") from e

    @property
    def default_providers(self) -> List[str]:
        """Configured provider ids, validated against the catalog.

        Raises:
            InvalidProviderError: If the config names an unknown provider
        """
        providers = self.config.get('providers') or []
        if isinstance(providers, str):
            providers = [providers]
        return [parse_provider(name).value for name in providers]

    @property
    def default_global(self) -> bool:
        return bool(self.config.get('global', False))

    @property
    def color(self) -> bool:
        return bool(self.config.get('color', True))

    def set_providers(self, providers: List[str]):
        """Validate and store the default provider list."""
        if not providers:
            raise InvalidProviderError("At least one provider is required")
        self.config['providers'] = [parse_provider(name).value for name in providers]

    def load_registry(self) -> Registry:
        return load_registry(self.registry_path)

    def save_registry(self, registry: Registry):
        save_registry(registry, self.registry_path)
