"""
Core data types for Kit Porter.

Immutable snapshots handed to the reconciler, and the actions and plans it
produces. Every type that travels through JSON (registry file, manifest,
plan output) knows how to convert itself to and from its camelCase dict form.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Mapping, Optional, Tuple

from kit_porter.checksum import UNKNOWN_CHECKSUM, normalize_checksum


class PortableType(str, Enum):
    """Kind of kit content."""

    AGENT = 'agent'
    COMMAND = 'command'
    SKILL = 'skill'
    CONFIG = 'config'
    RULES = 'rules'


class ActionType(str, Enum):
    """What the execution layer should do with one (item, provider) pair."""

    INSTALL = 'install'
    UPDATE = 'update'
    SKIP = 'skip'
    CONFLICT = 'conflict'
    DELETE = 'delete'


class TargetChangeState(str, Enum):
    """How the installed file drifted since the last recorded install."""

    UNCHANGED = 'unchanged'
    CHANGED = 'changed'
    DELETED = 'deleted'
    UNKNOWN = 'unknown'


INSTALL_SOURCE_KIT = 'kit'
INSTALL_SOURCE_MANUAL = 'manual'

# (item, type, provider, global)
IdentityKey = Tuple[str, PortableType, str, bool]


def _optional_checksum(value: Optional[str]) -> Optional[str]:
    return None if value is None else normalize_checksum(value)


@dataclass(frozen=True)
class SourceItemState:
    """A kit item with its checksums pre-computed.

    ``converted_checksums`` maps provider id to the digest of the content as it
    would be written for that provider.
    """

    item: str
    type: PortableType
    source_checksum: str
    converted_checksums: Mapping[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {
            'item': self.item,
            'type': self.type.value,
            'sourceChecksum': self.source_checksum,
            'convertedChecksums': dict(self.converted_checksums),
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'SourceItemState':
        return cls(
            item=data['item'],
            type=PortableType(data['type']),
            source_checksum=normalize_checksum(data.get('sourceChecksum')),
            converted_checksums=dict(data.get('convertedChecksums') or {}),
        )


@dataclass(frozen=True)
class ProviderConfig:
    """One provider x scope pair to reconcile against."""

    provider: str
    is_global: bool

    @property
    def key(self) -> Tuple[str, bool]:
        return (self.provider, self.is_global)


@dataclass(frozen=True)
class RegistryEntry:
    """Persisted record of one installation."""

    item: str
    type: PortableType
    provider: str
    is_global: bool
    path: str
    source_path: str = ''
    source_checksum: str = UNKNOWN_CHECKSUM
    target_checksum: str = UNKNOWN_CHECKSUM
    install_source: str = INSTALL_SOURCE_KIT
    installed_at: Optional[str] = None
    cli_version: Optional[str] = None

    @property
    def identity(self) -> IdentityKey:
        return (self.item, self.type, self.provider, self.is_global)

    @property
    def is_manual(self) -> bool:
        return self.install_source == INSTALL_SOURCE_MANUAL

    def to_dict(self) -> Dict:
        data = {
            'item': self.item,
            'type': self.type.value,
            'provider': self.provider,
            'global': self.is_global,
            'path': self.path,
            'installedAt': self.installed_at,
            'sourcePath': self.source_path,
            'sourceChecksum': self.source_checksum,
            'targetChecksum': self.target_checksum,
            'installSource': self.install_source,
        }
        if self.cli_version:
            data['cliVersion'] = self.cli_version
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'RegistryEntry':
        """Create a RegistryEntry from its JSON form, normalizing checksums."""
        install_source = data.get('installSource') or INSTALL_SOURCE_KIT
        if install_source == 'ck':
            install_source = INSTALL_SOURCE_KIT
        return cls(
            item=data['item'],
            type=PortableType(data['type']),
            provider=data['provider'],
            is_global=bool(data['global']),
            path=data['path'],
            source_path=data.get('sourcePath') or '',
            source_checksum=normalize_checksum(data.get('sourceChecksum')),
            target_checksum=normalize_checksum(data.get('targetChecksum')),
            install_source=install_source,
            installed_at=data.get('installedAt'),
            cli_version=data.get('cliVersion'),
        )


@dataclass(frozen=True)
class Registry:
    """Snapshot of the installation registry.

    ``applied_manifest_version`` is what the reconciler gates directives on.
    The stored registry is shared by every scope, so it keeps the applied
    version per scope key in ``applied_manifest_versions`` and a scoped view
    carries its own scope's value in ``applied_manifest_version``.
    """

    installations: Tuple[RegistryEntry, ...] = ()
    applied_manifest_version: Optional[str] = None
    last_reconciled: Optional[str] = None
    version: str = '3.0'
    applied_manifest_versions: Dict[str, str] = field(default_factory=dict, hash=False)

    def to_dict(self) -> Dict:
        data = {
            'version': self.version,
            'installations': [entry.to_dict() for entry in self.installations],
        }
        if self.last_reconciled:
            data['lastReconciled'] = self.last_reconciled
        if self.applied_manifest_version:
            data['appliedManifestVersion'] = self.applied_manifest_version
        if self.applied_manifest_versions:
            data['appliedManifestVersions'] = dict(sorted(self.applied_manifest_versions.items()))
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'Registry':
        versions = data.get('appliedManifestVersions')
        if not isinstance(versions, dict):
            versions = {}
        return cls(
            installations=tuple(RegistryEntry.from_dict(e) for e in data.get('installations', [])),
            applied_manifest_version=data.get('appliedManifestVersion'),
            last_reconciled=data.get('lastReconciled'),
            version=data.get('version', '3.0'),
            applied_manifest_versions={str(scope): str(value) for scope, value in versions.items() if value},
        )


@dataclass(frozen=True)
class TargetFileState:
    """What exists on disk right now for one installed path."""

    path: str
    exists: bool
    current_checksum: Optional[str] = None

    def to_dict(self) -> Dict:
        return {
            'path': self.path,
            'exists': self.exists,
            'currentChecksum': self.current_checksum,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'TargetFileState':
        return cls(
            path=data['path'],
            exists=bool(data['exists']),
            current_checksum=data.get('currentChecksum'),
        )


@dataclass(frozen=True)
class RenameEntry:
    """Source file renamed in the kit at version ``since``."""

    from_path: str
    to_path: str
    since: str


@dataclass(frozen=True)
class ProviderPathMigration:
    """Provider install directory moved at version ``since``."""

    provider: str
    type: PortableType
    from_path: str
    to_path: str
    since: str


@dataclass(frozen=True)
class SectionRename:
    """Section renamed inside a merge target. Reserved; never acted upon yet."""

    type: PortableType
    from_path: str
    to_path: str
    since: str


@dataclass(frozen=True)
class ManifestDirectives:
    """Kit-shipped evolution directives."""

    cli_version: str
    renames: Tuple[RenameEntry, ...] = ()
    provider_path_migrations: Tuple[ProviderPathMigration, ...] = ()
    section_renames: Tuple[SectionRename, ...] = ()
    version: str = '1.0'


@dataclass(frozen=True)
class ReconcileAction:
    """A single planned action for one (item, provider) combination."""

    action: ActionType
    item: str
    type: PortableType
    provider: str
    is_global: bool
    target_path: str
    reason: str
    source_checksum: Optional[str] = None
    registered_source_checksum: Optional[str] = None
    current_target_checksum: Optional[str] = None
    registered_target_checksum: Optional[str] = None
    previous_item: Optional[str] = None
    previous_path: Optional[str] = None
    resolution: Optional[str] = None

    @property
    def identity(self) -> IdentityKey:
        return (self.item, self.type, self.provider, self.is_global)

    def with_action(self, action: ActionType, **changes) -> 'ReconcileAction':
        """Return a copy with a different action kind."""
        return replace(self, action=action, **changes)

    def to_dict(self) -> Dict:
        data = {
            'action': self.action.value,
            'item': self.item,
            'type': self.type.value,
            'provider': self.provider,
            'global': self.is_global,
            'targetPath': self.target_path,
            'reason': self.reason,
        }
        optional = {
            'sourceChecksum': self.source_checksum,
            'registeredSourceChecksum': self.registered_source_checksum,
            'currentTargetChecksum': self.current_target_checksum,
            'registeredTargetChecksum': self.registered_target_checksum,
            'previousItem': self.previous_item,
            'previousPath': self.previous_path,
            'resolution': self.resolution,
        }
        data.update({key: value for key, value in optional.items() if value is not None})
        return data

    @classmethod
    def from_dict(cls, data: Dict) -> 'ReconcileAction':
        return cls(
            action=ActionType(data['action']),
            item=data['item'],
            type=PortableType(data['type']),
            provider=data['provider'],
            is_global=bool(data['global']),
            target_path=data.get('targetPath', ''),
            reason=data.get('reason', ''),
            source_checksum=_optional_checksum(data.get('sourceChecksum')),
            registered_source_checksum=_optional_checksum(data.get('registeredSourceChecksum')),
            current_target_checksum=_optional_checksum(data.get('currentTargetChecksum')),
            registered_target_checksum=_optional_checksum(data.get('registeredTargetChecksum')),
            previous_item=data.get('previousItem'),
            previous_path=data.get('previousPath'),
            resolution=data.get('resolution'),
        )


def empty_summary() -> Dict[ActionType, int]:
    """Summary with every action kind present at zero."""
    return {action: 0 for action in ActionType}


@dataclass(frozen=True)
class ReconcilePlan:
    """Ordered actions plus per-kind counts."""

    actions: Tuple[ReconcileAction, ...]
    summary: Dict[ActionType, int]
    has_conflicts: bool

    def actions_of(self, action: ActionType) -> List[ReconcileAction]:
        return [a for a in self.actions if a.action == action]

    def to_dict(self) -> Dict:
        return {
            'actions': [action.to_dict() for action in self.actions],
            'summary': {action.value: count for action, count in self.summary.items()},
            'hasConflicts': self.has_conflicts,
        }

    @classmethod
    def from_dict(cls, data: Dict) -> 'ReconcilePlan':
        actions = tuple(ReconcileAction.from_dict(a) for a in data.get('actions', []))
        summary = empty_summary()
        for key, count in (data.get('summary') or {}).items():
            summary[ActionType(key)] = int(count)
        return cls(actions=actions, summary=summary, has_conflicts=summary[ActionType.CONFLICT] > 0)


@dataclass(frozen=True)
class ReconcileInput:
    """Everything the reconciler needs, gathered up front by collaborators."""

    source_items: Tuple[SourceItemState, ...]
    registry: Registry
    target_states: Mapping[str, TargetFileState]
    provider_configs: Tuple[ProviderConfig, ...]
    manifest: Optional[ManifestDirectives] = None
    cli_version: Optional[str] = None
    force: bool = False
