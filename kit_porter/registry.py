"""
Installation registry store.

The registry records every item Kit Porter installed: where, for which
provider and scope, and with which checksums. The reconciler only reads a
snapshot of it; rows change only after the execution layer has acted.
"""

import json
import logging
import os
import tempfile
from dataclasses import replace
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, List, Optional

from kit_porter.checksum import UNKNOWN_CHECKSUM
from kit_porter.exceptions import RegistryError
from kit_porter.types import (
    INSTALL_SOURCE_KIT,
    PortableType,
    ProviderConfig,
    Registry,
    RegistryEntry,
    SourceItemState,
)

logger = logging.getLogger(__name__)

REGISTRY_VERSION = '3.0'
LEGACY_REGISTRY_VERSION = '2.0'


def _upgrade_v2_entry(data: Dict) -> Dict:
    upgraded = dict(data)
    upgraded['sourceChecksum'] = UNKNOWN_CHECKSUM
    upgraded.setdefault('targetChecksum', UNKNOWN_CHECKSUM)
    upgraded.setdefault('installSource', INSTALL_SOURCE_KIT)
    return upgraded


def parse_registry(data: Dict) -> Registry:
    """Build a Registry from raw JSON.

    v3.0 data is read as-is. v2.0 data is upgraded in memory: source checksums
    become unknown so the next run only repopulates them.

    Raises:
        RegistryError: For any other schema version or malformed entries
    """
    if not isinstance(data, dict):
        raise RegistryError("portable-registry.json must contain a JSON object")

    version = data.get('version')
    if version == LEGACY_REGISTRY_VERSION:
        logger.info("Upgrading registry from v2.0 to v3.0 in memory")
        data = dict(data, version=REGISTRY_VERSION,
                    installations=[_upgrade_v2_entry(e) for e in data.get('installations', [])])
    elif version != REGISTRY_VERSION:
        raise RegistryError(f"portable-registry.json has unsupported schema/version: {version!r}")

    try:
        return Registry.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise RegistryError(f"portable-registry.json has a malformed installation: {e}") from e


def load_registry(registry_path: Path) -> Registry:
    """Load the registry file, returning an empty registry when it does not exist."""
    registry_path = Path(registry_path)
    if not registry_path.exists():
        return Registry()

    try:
        with open(registry_path) as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise RegistryError(f"portable-registry.json is not valid JSON: {e}") from e
    except OSError as e:
        raise RegistryError(f"Could not read registry file: {e}") from e

    return parse_registry(data)


def save_registry(registry: Registry, registry_path: Path):
    """Write the registry atomically (temp file in the same directory, then rename)."""
    registry_path = Path(registry_path)
    registry_path.parent.mkdir(parents=True, exist_ok=True)

    fd, temp_name = tempfile.mkstemp(prefix=f"{registry_path.name}.tmp-", dir=registry_path.parent)
    try:
        with os.fdopen(fd, 'w') as f:
            json.dump(registry.to_dict(), f, indent=2)
        os.replace(temp_name, registry_path)
    except OSError as e:
        try:
            os.unlink(temp_name)
        except OSError:
            pass
        raise RegistryError(f"Could not save registry file: {e}") from e


def find_registry_entry(source: SourceItemState, provider_config: ProviderConfig,
                        registry: Registry) -> Optional[RegistryEntry]:
    """Find the canonical registry entry for a source item on one provider/scope.

    Config is a singleton per provider and scope, so a config source matches the
    existing config entry even when the item name changed.
    """
    for entry in registry.installations:
        if (entry.item == source.item and entry.type == source.type
                and entry.provider == provider_config.provider
                and entry.is_global == provider_config.is_global):
            return entry

    if source.type == PortableType.CONFIG:
        for entry in registry.installations:
            if (entry.type == PortableType.CONFIG
                    and entry.provider == provider_config.provider
                    and entry.is_global == provider_config.is_global):
                return entry

    return None


def find_installations(registry: Registry, item: Optional[str] = None,
                       portable_type: Optional[PortableType] = None,
                       provider: Optional[str] = None,
                       is_global: Optional[bool] = None) -> List[RegistryEntry]:
    """Filter registry entries; None arguments match anything."""
    return [
        entry for entry in registry.installations
        if (item is None or entry.item == item)
        and (portable_type is None or entry.type == portable_type)
        and (provider is None or entry.provider == provider)
        and (is_global is None or entry.is_global == is_global)
    ]


def add_installation(registry: Registry, entry: RegistryEntry) -> Registry:
    """Return a registry with entry added, replacing any row with the same identity."""
    if entry.installed_at is None:
        entry = replace(entry, installed_at=datetime.now(timezone.utc).isoformat())
    kept = tuple(e for e in registry.installations if e.identity != entry.identity)
    return replace(registry, installations=kept + (entry,))


def remove_installation(registry: Registry, item: str, portable_type: PortableType,
                        provider: str, is_global: bool) -> Registry:
    """Return a registry without the row for this identity."""
    identity = (item, portable_type, provider, is_global)
    kept = tuple(e for e in registry.installations if e.identity != identity)
    return replace(registry, installations=kept)
