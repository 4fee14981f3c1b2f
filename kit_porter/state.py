"""
State gathering and plan execution.

Everything the reconciler needs is collected here before it runs (kit scan,
converted checksums, live target state), and the resulting plan is carried out
here afterwards. The reconciler itself never touches the filesystem.
"""

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from fs_backend import FileSystemBackend
from kit_porter.checksum import (
    UNKNOWN_CHECKSUM,
    calculate_content_checksum,
    calculate_directory_checksum,
    is_unknown_checksum,
)
from kit_porter.exceptions import FileOperationError
from kit_porter.hal import get_hal
from kit_porter.lock import GLOBAL_SCOPE
from kit_porter.providers import get_install_path, get_provider_spec
from kit_porter.reconciler import REASON_REGISTRY_UPGRADE
from kit_porter.registry import add_installation, find_installations, remove_installation
from kit_porter.resolution import require_no_conflicts
from kit_porter.types import (
    INSTALL_SOURCE_KIT,
    ActionType,
    ManifestDirectives,
    PortableType,
    ProviderConfig,
    ReconcileAction,
    ReconcileInput,
    ReconcilePlan,
    Registry,
    RegistryEntry,
    SourceItemState,
    TargetFileState,
)
from kit_porter.utils import utc_timestamp

logger = logging.getLogger(__name__)

CONFIG_SOURCE_FILE = 'CLAUDE.md'
CONFIG_ITEM = 'CLAUDE'

STATUS_APPLIED = 'applied'
STATUS_SKIPPED = 'skipped'
STATUS_FAILED = 'failed'


@dataclass(frozen=True)
class KitItem:
    """One item discovered in a kit directory.

    ``content`` is None when the file could not be read.
    """

    item: str
    type: PortableType
    source_path: str
    content: Optional[str]


@dataclass(frozen=True)
class KitSnapshot:
    """Scanned kit: discovered items and their pre-computed checksums."""

    kit_path: Path
    items: Tuple[KitItem, ...]
    source_items: Tuple[SourceItemState, ...]

    def get(self, item: str, portable_type: PortableType) -> Optional[KitItem]:
        for kit_item in self.items:
            if kit_item.item == item and kit_item.type == portable_type:
                return kit_item
        return None


def _discover(kit_path: Path) -> List[Tuple[str, PortableType, Path]]:
    found = []

    agents_dir = kit_path / 'agents'
    if agents_dir.is_dir():
        for path in sorted(agents_dir.glob('*.md')):
            found.append((path.stem, PortableType.AGENT, path))

    commands_dir = kit_path / 'commands'
    if commands_dir.is_dir():
        for path in sorted(commands_dir.rglob('*.md')):
            relative = path.relative_to(commands_dir).with_suffix('')
            found.append(('/'.join(relative.parts), PortableType.COMMAND, path))

    skills_dir = kit_path / 'skills'
    if skills_dir.is_dir():
        for skill_dir in sorted(p for p in skills_dir.iterdir() if p.is_dir()):
            skill_file = skill_dir / 'SKILL.md'
            if skill_file.is_file():
                found.append((skill_dir.name, PortableType.SKILL, skill_file))

    rules_dir = kit_path / 'rules'
    if rules_dir.is_dir():
        for path in sorted(rules_dir.glob('*.md')):
            found.append((path.stem, PortableType.RULES, path))

    config_file = kit_path / CONFIG_SOURCE_FILE
    if config_file.is_file():
        found.append((CONFIG_ITEM, PortableType.CONFIG, config_file))

    return found


def _skill_checksums(skill_dir: Path, providers: List[str]) -> Tuple[str, Dict[str, str]]:
    """Checksum a whole skill directory; skills are copied as-is to every provider."""
    checksum = calculate_directory_checksum(skill_dir)
    converted = {}
    for provider in providers:
        spec = get_provider_spec(provider)
        if spec.path_spec(PortableType.SKILL) is not None:
            converted[spec.name.value] = checksum
    return checksum, converted


def scan_kit(kit_path: Path, providers: Iterable[str]) -> KitSnapshot:
    """Discover kit items and compute source and per-provider converted checksums.

    A skill is its whole directory: ``source_path`` names the directory and
    its checksum covers every file in it, not just SKILL.md.

    Args:
        kit_path: Kit root directory
        providers: Provider ids to compute converted checksums for

    Returns:
        KitSnapshot with one SourceItemState per discovered item
    """
    kit_path = Path(kit_path)
    providers = list(providers)
    hal = get_hal()

    items = []
    source_items = []
    for name, portable_type, path in _discover(kit_path):
        is_skill = portable_type == PortableType.SKILL
        source_path = (path.parent if is_skill else path).relative_to(kit_path).as_posix()
        try:
            content: Optional[str] = path.read_text(encoding='utf-8')
            if is_skill:
                source_checksum, converted = _skill_checksums(path.parent, providers)
            else:
                source_checksum = calculate_content_checksum(content)
                converted = hal.converted_checksums(content, name, portable_type, providers)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Could not read kit file %s: %s", path, e)
            content = None
            source_checksum = UNKNOWN_CHECKSUM
            converted = {provider: UNKNOWN_CHECKSUM for provider in providers}

        items.append(KitItem(item=name, type=portable_type, source_path=source_path, content=content))
        source_items.append(SourceItemState(
            item=name,
            type=portable_type,
            source_checksum=source_checksum,
            converted_checksums=converted,
        ))

    logger.debug("Scanned %d item(s) in %s", len(items), kit_path)
    return KitSnapshot(kit_path=kit_path, items=tuple(items), source_items=tuple(source_items))


def read_target_state(path: str, backend: FileSystemBackend) -> TargetFileState:
    """Check one installed path; read errors mean "exists, checksum unknown"."""
    try:
        if not backend.exists(path):
            return TargetFileState(path=path, exists=False)
        return TargetFileState(path=path, exists=True, current_checksum=backend.checksum(path))
    except OSError as e:
        logger.debug("Could not checksum %s: %s", path, e)
        return TargetFileState(path=path, exists=True, current_checksum=UNKNOWN_CHECKSUM)


def collect_target_states(registry: Registry, backend: FileSystemBackend) -> Dict[str, TargetFileState]:
    """Check every path recorded in the registry."""
    states: Dict[str, TargetFileState] = {}
    for entry in registry.installations:
        if entry.path and entry.path not in states:
            states[entry.path] = read_target_state(entry.path, backend)
    return states


def _is_within(path: str, directory: Path) -> bool:
    try:
        Path(path).resolve().relative_to(Path(directory).resolve())
    except ValueError:
        return False
    return True


def registry_scope_key(project_dir: Path, is_global: bool = False) -> str:
    """Key one scope of the shared registry: 'global' or the resolved project dir."""
    return GLOBAL_SCOPE if is_global else str(Path(project_dir).resolve())


def split_registry_scope(registry: Registry, project_dir: Path,
                         is_global: bool = False) -> Tuple[Registry, Tuple[RegistryEntry, ...]]:
    """Split the shared registry into the rows of one scope and the rest.

    A global run sees the global rows; a project run sees the project rows
    installed under project_dir. Rows of other scopes must never look like
    orphans or match manifest directives here. The scoped registry carries
    the manifest version last applied in this scope, not in any other.
    """
    visible = []
    others = []
    for entry in registry.installations:
        if is_global:
            in_scope = entry.is_global
        else:
            in_scope = not entry.is_global and _is_within(entry.path, project_dir)
        if in_scope:
            visible.append(entry)
        else:
            others.append(entry)

    scope = registry_scope_key(project_dir, is_global)
    scoped = replace(
        registry,
        installations=tuple(visible),
        applied_manifest_version=registry.applied_manifest_versions.get(scope),
    )
    return scoped, tuple(others)


def merge_registry_scope(scoped: Registry, others: Tuple[RegistryEntry, ...],
                         project_dir: Path, is_global: bool = False) -> Registry:
    """Put rows set aside by split_registry_scope back and store the scope's manifest version."""
    versions = dict(scoped.applied_manifest_versions)
    if scoped.applied_manifest_version:
        versions[registry_scope_key(project_dir, is_global)] = scoped.applied_manifest_version
    return replace(
        scoped,
        installations=others + scoped.installations,
        applied_manifest_version=None,
        applied_manifest_versions=versions,
    )


def prepare_reconcile(kit_path: Path, registry: Registry, provider_configs: Sequence[ProviderConfig],
                      backend: FileSystemBackend, manifest: Optional[ManifestDirectives] = None,
                      cli_version: Optional[str] = None,
                      force: bool = False) -> Tuple[ReconcileInput, KitSnapshot]:
    """Gather a full ReconcileInput for a kit and a set of provider configs."""
    providers = []
    for config in provider_configs:
        if config.provider not in providers:
            providers.append(config.provider)

    kit = scan_kit(kit_path, providers)
    inputs = ReconcileInput(
        source_items=kit.source_items,
        registry=registry,
        target_states=collect_target_states(registry, backend),
        provider_configs=tuple(provider_configs),
        manifest=manifest,
        cli_version=cli_version,
        force=force,
    )
    return inputs, kit


@dataclass(frozen=True)
class ActionResult:
    """Outcome of carrying out one planned action."""

    action: ReconcileAction
    status: str
    message: str = ''


@dataclass
class ExecutionReport:
    """Registry after execution plus one result per action."""

    registry: Registry
    results: List[ActionResult] = field(default_factory=list)

    @property
    def failed(self) -> List[ActionResult]:
        return [r for r in self.results if r.status == STATUS_FAILED]

    @property
    def applied(self) -> List[ActionResult]:
        return [r for r in self.results if r.status == STATUS_APPLIED]


class PlanExecutor:
    """Carry out a resolved plan against a filesystem backend.

    Registry rows change only after the file operation for the action
    succeeded; a failed action leaves its row as it was.
    """

    def __init__(self, kit: KitSnapshot, backend: FileSystemBackend,
                 home: Optional[Path] = None, project_dir: Optional[Path] = None,
                 cli_version: Optional[str] = None):
        self.kit = kit
        self.backend = backend
        self.home = home
        self.project_dir = project_dir
        self.cli_version = cli_version
        self.hal = get_hal()

    def _require_per_file(self, action: ReconcileAction):
        path_spec = get_provider_spec(action.provider).path_spec(action.type)
        if path_spec is not None and path_spec.is_merge_target:
            raise FileOperationError(
                f"{action.provider} stores {action.type.value} items in a shared "
                f"{path_spec.write_strategy.value} file, which cannot be written per item"
            )

    def _install_path(self, action: ReconcileAction) -> Optional[str]:
        if action.target_path:
            return action.target_path
        return get_install_path(action.item, action.provider, action.type, action.is_global,
                                home=self.home, project_dir=self.project_dir)

    def unsupported_reason(self, action: ReconcileAction) -> Optional[str]:
        """Explain why a write cannot target any path for this provider and scope."""
        if action.action not in (ActionType.INSTALL, ActionType.UPDATE) or self._install_path(action):
            return None
        scope = 'global' if action.is_global else 'project'
        return f"{action.provider} does not support {action.type.value} items in {scope} scope"

    def write(self, action: ReconcileAction, registry: Registry) -> Registry:
        """Install or update one item and record it."""
        self._require_per_file(action)
        kit_item = self.kit.get(action.item, action.type)
        if kit_item is None or kit_item.content is None:
            raise FileOperationError(f"Kit content unavailable for {action.type.value} '{action.item}'")

        target_path = self._install_path(action)
        if not target_path:
            raise FileOperationError(self.unsupported_reason(action))

        if action.type == PortableType.SKILL:
            # Skills carry scripts and references beside SKILL.md; copy the directory.
            skill_dir = self.kit.kit_path / kit_item.source_path
            checksum = calculate_directory_checksum(skill_dir)
            self.backend.copy_tree(str(skill_dir), target_path)
        else:
            converted = self.hal.convert(kit_item.content, action.item, action.type, action.provider)
            if converted is None:
                raise FileOperationError(f"{action.provider} does not support {action.type.value} items")
            checksum = calculate_content_checksum(converted)
            self.backend.write_text(target_path, converted)

        if action.type == PortableType.CONFIG:
            # Config is a singleton per provider and scope.
            for entry in find_installations(registry, portable_type=PortableType.CONFIG,
                                            provider=action.provider, is_global=action.is_global):
                registry = remove_installation(registry, entry.item, entry.type,
                                               entry.provider, entry.is_global)

        return add_installation(registry, RegistryEntry(
            item=action.item,
            type=action.type,
            provider=action.provider,
            is_global=action.is_global,
            path=target_path,
            source_path=kit_item.source_path,
            source_checksum=checksum,
            target_checksum=checksum,
            install_source=INSTALL_SOURCE_KIT,
            cli_version=self.cli_version,
        ))

    def delete(self, action: ReconcileAction, registry: Registry) -> Registry:
        """Remove one installed item and its registry row."""
        self._require_per_file(action)
        if action.target_path and self.backend.exists(action.target_path):
            if action.type == PortableType.SKILL:
                self.backend.remove_tree(action.target_path)
            else:
                self.backend.remove_file(action.target_path)
        return remove_installation(registry, action.item, action.type, action.provider, action.is_global)

    def populate_checksums(self, action: ReconcileAction, registry: Registry) -> Registry:
        """Record checksums for an upgraded registry row without touching the target."""
        for entry in find_installations(registry, item=action.item, portable_type=action.type,
                                        provider=action.provider, is_global=action.is_global):
            target_checksum = entry.target_checksum
            if is_unknown_checksum(target_checksum):
                target_checksum = read_target_state(entry.path, self.backend).current_checksum or UNKNOWN_CHECKSUM
            registry = add_installation(registry, replace(
                entry,
                source_checksum=action.source_checksum or UNKNOWN_CHECKSUM,
                target_checksum=target_checksum,
            ))
        return registry

    def run(self, plan: ReconcilePlan, registry: Registry) -> ExecutionReport:
        require_no_conflicts(plan)

        report = ExecutionReport(registry=registry)
        for action in plan.actions:
            unsupported = self.unsupported_reason(action)
            if unsupported:
                logger.info("Skipping %s/%s: %s", action.type.value, action.item, unsupported)
                report.results.append(ActionResult(action, STATUS_SKIPPED, unsupported))
                continue

            try:
                if action.action in (ActionType.INSTALL, ActionType.UPDATE):
                    report.registry = self.write(action, report.registry)
                elif action.action == ActionType.DELETE:
                    report.registry = self.delete(action, report.registry)
                elif action.action == ActionType.SKIP:
                    if action.reason == REASON_REGISTRY_UPGRADE:
                        report.registry = self.populate_checksums(action, report.registry)
                    report.results.append(ActionResult(action, STATUS_SKIPPED, action.reason))
                    continue
                else:
                    raise ValueError(f"Unhandled action type: {action.action}")
            except (OSError, FileOperationError) as e:
                logger.error("Failed to %s %s/%s for %s: %s", action.action.value,
                             action.type.value, action.item, action.provider, e)
                report.results.append(ActionResult(action, STATUS_FAILED, str(e)))
                continue

            logger.debug("%s %s/%s for %s", action.action.value, action.type.value,
                         action.item, action.provider)
            report.results.append(ActionResult(action, STATUS_APPLIED, action.reason))

        return report


def execute_plan(plan: ReconcilePlan, registry: Registry, kit: KitSnapshot,
                 backend: FileSystemBackend, home: Optional[Path] = None,
                 project_dir: Optional[Path] = None, cli_version: Optional[str] = None,
                 manifest: Optional[ManifestDirectives] = None) -> ExecutionReport:
    """Execute a resolved plan and return the updated registry.

    The manifest version is recorded as applied only when every action
    succeeded, so failed runs see the same directives again next time.

    Raises:
        UnresolvedConflictError: If the plan still contains conflicts
    """
    executor = PlanExecutor(kit, backend, home=home, project_dir=project_dir, cli_version=cli_version)
    report = executor.run(plan, registry)

    updates = {'last_reconciled': utc_timestamp()}
    if manifest is not None and not report.failed:
        updates['applied_manifest_version'] = cli_version or manifest.cli_version
    report.registry = replace(report.registry, **updates)
    return report
