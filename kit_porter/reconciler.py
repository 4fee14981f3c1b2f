"""
Reconciliation engine for Kit Porter.

Turns (source items x provider configs x registry x live target state x
optional manifest) into an ordered plan of install/update/skip/conflict/delete
actions. The engine performs no I/O: every checksum and file state is gathered
by the caller beforehand, so the same function serves dry-run previews and
real executions.
"""

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Set, Tuple

from kit_porter.checksum import UNKNOWN_CHECKSUM, is_unknown_checksum, normalize_checksum
from kit_porter.manifest import get_applicable_entries
from kit_porter.paths import (
    has_dot_dot_segment,
    is_absolute_like,
    normalize_portable_path,
    path_contains_segments,
)
from kit_porter.registry import find_registry_entry
from kit_porter.types import (
    ActionType,
    IdentityKey,
    PortableType,
    ProviderConfig,
    ReconcileAction,
    ReconcileInput,
    ReconcilePlan,
    RegistryEntry,
    SourceItemState,
    TargetChangeState,
    TargetFileState,
    empty_summary,
)

logger = logging.getLogger(__name__)

REASON_NEW_ITEM = "New item, not previously installed"
REASON_NEW_PROVIDER = "New provider for existing item"
REASON_CHECKSUM_UNAVAILABLE = "Provider checksum unavailable — cannot verify safely"
REASON_REGISTRY_UPGRADE = "First run after registry upgrade — populating checksums (no writes)"
REASON_DELETED_REINSTALL = "Target was deleted, CK has updates — reinstalling"
REASON_DELETED_RESPECTED = "Target was deleted by user, CK unchanged — respecting deletion"
REASON_UNKNOWN_CONFLICT = "Target state unavailable while CK changed — manual review required"
REASON_UNKNOWN_PRESERVED = "Target state unavailable, CK unchanged — preserving target"
REASON_NO_CHANGES = "No changes"
REASON_USER_EDITED = "User edited, CK unchanged — preserving edits"
REASON_SAFE_UPDATE = "CK updated, no user edits — safe overwrite"
REASON_BOTH_MODIFIED = "Both CK and user modified this item"
REASON_ORPHANED = "Item no longer in CK source — orphaned"
REASON_FORCE_REINSTALL = "Force reinstall — target was deleted"
REASON_FORCE_OVERWRITE = "Force overwrite — discarding user edits"

TargetStateIndex = Dict[str, TargetFileState]


def _identity(item: str, portable_type: PortableType, provider: str, is_global: bool) -> IdentityKey:
    return (item, portable_type, provider, is_global)


def dedupe_provider_configs(provider_configs: Iterable[ProviderConfig]) -> List[ProviderConfig]:
    """Drop repeated (provider, scope) pairs, keeping first-seen order."""
    seen: Set[Tuple[str, bool]] = set()
    unique = []
    for config in provider_configs:
        if config.key in seen:
            continue
        seen.add(config.key)
        unique.append(config)
    return unique


def build_target_state_index(target_states: Mapping[str, TargetFileState]) -> TargetStateIndex:
    """Index target states by normalized map key and by normalized state path.

    The first state registered for a normalized path wins.
    """
    index: TargetStateIndex = {}
    for map_path, state in target_states.items():
        for candidate in (map_path, state.path):
            normalized = normalize_portable_path(candidate)
            if normalized and normalized not in index:
                index[normalized] = state
    return index


def lookup_target_state(index: TargetStateIndex, path: str) -> Optional[TargetFileState]:
    return index.get(normalize_portable_path(path))


def get_target_change_state(target_state: Optional[TargetFileState],
                            registered_target_checksum: str) -> TargetChangeState:
    """Classify how the installed file drifted from what was registered.

    No target state, or an unknown checksum on either side, is UNKNOWN; a
    file known to be missing is DELETED.
    """
    if target_state is None:
        return TargetChangeState.UNKNOWN
    if not target_state.exists:
        return TargetChangeState.DELETED

    current = normalize_checksum(target_state.current_checksum)
    if is_unknown_checksum(current) or is_unknown_checksum(registered_target_checksum):
        return TargetChangeState.UNKNOWN

    if current == registered_target_checksum:
        return TargetChangeState.UNCHANGED
    return TargetChangeState.CHANGED


def _install_reason(source: SourceItemState, inputs: ReconcileInput) -> str:
    exists_elsewhere = any(
        entry.item == source.item and entry.type == source.type
        for entry in inputs.registry.installations
    )
    return REASON_NEW_PROVIDER if exists_elsewhere else REASON_NEW_ITEM


def determine_action(source: SourceItemState, provider_config: ProviderConfig,
                     inputs: ReconcileInput, target_state_index: TargetStateIndex,
                     cleared_identities: Set[IdentityKey]) -> ReconcileAction:
    """Decide the action for one (source item, provider config) pair.

    Args:
        source: Kit item with pre-computed checksums
        provider_config: Provider and scope being reconciled
        inputs: Full reconcile input (registry, force flag)
        target_state_index: Normalized path -> observed target state
        cleared_identities: Identities already scheduled for deletion by
            rename/migration processing this run

    Returns:
        Exactly one ReconcileAction
    """
    registry_entry = find_registry_entry(source, provider_config, inputs.registry)
    identity = _identity(source.item, source.type, provider_config.provider, provider_config.is_global)
    if registry_entry is not None and (identity in cleared_identities
                                       or registry_entry.identity in cleared_identities):
        # Old row is being deleted this run; reinstall at the new location.
        registry_entry = None

    common = dict(
        item=source.item,
        type=source.type,
        provider=provider_config.provider,
        is_global=provider_config.is_global,
        target_path=registry_entry.path if registry_entry else '',
    )

    raw_checksum = source.converted_checksums.get(provider_config.provider)
    if raw_checksum is None or is_unknown_checksum(raw_checksum):
        if registry_entry is not None:
            return ReconcileAction(
                action=ActionType.SKIP,
                reason=REASON_CHECKSUM_UNAVAILABLE,
                source_checksum=UNKNOWN_CHECKSUM,
                registered_source_checksum=normalize_checksum(registry_entry.source_checksum),
                registered_target_checksum=normalize_checksum(registry_entry.target_checksum),
                **common,
            )
        return ReconcileAction(
            action=ActionType.INSTALL,
            reason=_install_reason(source, inputs),
            source_checksum=UNKNOWN_CHECKSUM,
            **common,
        )

    converted_checksum = normalize_checksum(raw_checksum)

    if registry_entry is None:
        return ReconcileAction(
            action=ActionType.INSTALL,
            reason=_install_reason(source, inputs),
            source_checksum=converted_checksum,
            **common,
        )

    registered_source = normalize_checksum(registry_entry.source_checksum)
    registered_target = normalize_checksum(registry_entry.target_checksum)

    if is_unknown_checksum(registered_source):
        return ReconcileAction(
            action=ActionType.SKIP,
            reason=REASON_REGISTRY_UPGRADE,
            source_checksum=converted_checksum,
            current_target_checksum=registered_target,
            **common,
        )

    source_changed = converted_checksum != registered_source
    target_state = lookup_target_state(target_state_index, registry_entry.path)
    change_state = get_target_change_state(target_state, registered_target)
    current_target = normalize_checksum(target_state.current_checksum if target_state else None)

    if change_state == TargetChangeState.DELETED:
        if source_changed:
            action, reason = ActionType.INSTALL, REASON_DELETED_REINSTALL
        elif inputs.force:
            action, reason = ActionType.INSTALL, REASON_FORCE_REINSTALL
        else:
            action, reason = ActionType.SKIP, REASON_DELETED_RESPECTED
        return ReconcileAction(
            action=action,
            reason=reason,
            source_checksum=converted_checksum,
            registered_source_checksum=registered_source,
            **common,
        )

    if change_state == TargetChangeState.UNKNOWN:
        action, reason = ((ActionType.CONFLICT, REASON_UNKNOWN_CONFLICT) if source_changed
                          else (ActionType.SKIP, REASON_UNKNOWN_PRESERVED))
    elif change_state == TargetChangeState.UNCHANGED:
        action, reason = ((ActionType.UPDATE, REASON_SAFE_UPDATE) if source_changed
                          else (ActionType.SKIP, REASON_NO_CHANGES))
    elif change_state == TargetChangeState.CHANGED:
        if source_changed:
            action, reason = ActionType.CONFLICT, REASON_BOTH_MODIFIED
        elif inputs.force:
            action, reason = ActionType.INSTALL, REASON_FORCE_OVERWRITE
        else:
            action, reason = ActionType.SKIP, REASON_USER_EDITED
    else:
        raise ValueError(f"Unhandled target change state: {change_state}")

    if change_state == TargetChangeState.UNCHANGED and not source_changed:
        return ReconcileAction(
            action=action,
            reason=reason,
            source_checksum=converted_checksum,
            current_target_checksum=current_target,
            **common,
        )

    return ReconcileAction(
        action=action,
        reason=reason,
        source_checksum=converted_checksum,
        registered_source_checksum=registered_source,
        current_target_checksum=current_target,
        registered_target_checksum=registered_target,
        **common,
    )


def _is_suspicious_directive(from_path: str, to_path: str) -> bool:
    return (has_dot_dot_segment(from_path) or has_dot_dot_segment(to_path)
            or is_absolute_like(from_path) or is_absolute_like(to_path))


def _running_version(inputs: ReconcileInput) -> str:
    return inputs.cli_version or inputs.manifest.cli_version


def detect_renames(inputs: ReconcileInput) -> List[ReconcileAction]:
    """Emit deletes for registry rows whose source file was renamed in the kit."""
    if inputs.manifest is None:
        return []

    applicable = get_applicable_entries(
        inputs.manifest.renames,
        inputs.registry.applied_manifest_version,
        _running_version(inputs),
    )

    actions = []
    for rename in applicable:
        if _is_suspicious_directive(rename.from_path, rename.to_path):
            logger.warning("Skipping suspicious manifest rename: %s -> %s",
                           rename.from_path, rename.to_path)
            continue

        normalized_from = normalize_portable_path(rename.from_path)
        for entry in inputs.registry.installations:
            if normalize_portable_path(entry.source_path) != normalized_from:
                continue
            actions.append(ReconcileAction(
                action=ActionType.DELETE,
                item=entry.item,
                type=entry.type,
                provider=entry.provider,
                is_global=entry.is_global,
                target_path=entry.path,
                reason=f"Renamed: {rename.from_path} -> {rename.to_path}",
                previous_item=entry.item,
            ))
    return actions


def detect_path_migrations(inputs: ReconcileInput) -> List[ReconcileAction]:
    """Emit deletes for registry rows installed under a provider directory that moved."""
    if inputs.manifest is None:
        return []

    applicable = get_applicable_entries(
        inputs.manifest.provider_path_migrations,
        inputs.registry.applied_manifest_version,
        _running_version(inputs),
    )

    actions = []
    for migration in applicable:
        if _is_suspicious_directive(migration.from_path, migration.to_path):
            logger.warning("Skipping suspicious provider path migration: %s -> %s",
                           migration.from_path, migration.to_path)
            continue

        for entry in inputs.registry.installations:
            if (entry.provider != migration.provider or entry.type != migration.type
                    or not path_contains_segments(entry.path, migration.from_path)):
                continue
            actions.append(ReconcileAction(
                action=ActionType.DELETE,
                item=entry.item,
                type=entry.type,
                provider=entry.provider,
                is_global=entry.is_global,
                target_path=entry.path,
                reason=f"Provider path migrated: {migration.from_path} -> {migration.to_path}",
                previous_path=entry.path,
            ))
    return actions


def detect_section_renames(inputs: ReconcileInput) -> List[ReconcileAction]:
    """Section renames inside merge targets are reserved and produce no actions."""
    return []


def _is_orphan_candidate(entry: RegistryEntry, active_providers: Set[Tuple[str, bool]],
                         renamed_identities: Set[IdentityKey], has_config_source: bool) -> bool:
    if (entry.provider, entry.is_global) not in active_providers:
        return False
    if entry.identity in renamed_identities:
        return False
    if entry.is_manual:
        return False
    # Skills are discovered from the filesystem, not tracked through source items.
    if entry.type == PortableType.SKILL:
        return False
    if entry.type == PortableType.CONFIG and has_config_source:
        return False
    return True


def detect_orphans(inputs: ReconcileInput,
                   renamed_identities: Set[IdentityKey]) -> List[ReconcileAction]:
    """Emit deletes for registry rows with no matching source item this run."""
    source_keys = {(source.item, source.type) for source in inputs.source_items}
    active_providers = {config.key for config in inputs.provider_configs}
    has_config_source = any(source.type == PortableType.CONFIG for source in inputs.source_items)

    actions = []
    for entry in inputs.registry.installations:
        if not _is_orphan_candidate(entry, active_providers, renamed_identities, has_config_source):
            continue
        if (entry.item, entry.type) in source_keys:
            continue
        actions.append(ReconcileAction(
            action=ActionType.DELETE,
            item=entry.item,
            type=entry.type,
            provider=entry.provider,
            is_global=entry.is_global,
            target_path=entry.path,
            reason=REASON_ORPHANED,
        ))
    return actions


def dedupe_actions(actions: Iterable[ReconcileAction]) -> List[ReconcileAction]:
    """Collapse exact duplicates, keeping the first occurrence."""
    seen = set()
    deduped = []
    for action in actions:
        key = (action.action, action.item, action.type, action.provider, action.is_global,
               normalize_portable_path(action.target_path))
        if key in seen:
            continue
        seen.add(key)
        deduped.append(action)
    return deduped


def suppress_overlapping_actions(actions: List[ReconcileAction]) -> List[ReconcileAction]:
    """Within an identity that is being deleted, keep only delete and install actions."""
    deleted = {action.identity for action in actions if action.action == ActionType.DELETE}
    return [
        action for action in actions
        if action.identity not in deleted
        or action.action in (ActionType.DELETE, ActionType.INSTALL)
    ]


def build_plan(actions: Iterable[ReconcileAction]) -> ReconcilePlan:
    """Package actions with per-kind counts."""
    actions = tuple(actions)
    summary = empty_summary()
    for action in actions:
        summary[action.action] += 1
    return ReconcilePlan(
        actions=actions,
        summary=summary,
        has_conflicts=summary[ActionType.CONFLICT] > 0,
    )


def reconcile(inputs: ReconcileInput) -> ReconcilePlan:
    """Main reconciliation entry point.

    Renames and path migrations run first and clear the identities they
    delete; then every source item is decided against every unique provider
    config; then orphans are detected. The combined list is deduplicated and
    overlapping actions are suppressed before counting.
    """
    actions: List[ReconcileAction] = []
    target_state_index = build_target_state_index(inputs.target_states)
    provider_configs = dedupe_provider_configs(inputs.provider_configs)
    cleared_identities: Set[IdentityKey] = set()

    renamed_identities: Set[IdentityKey] = set()
    for action in detect_renames(inputs):
        actions.append(action)
        renamed_identities.add(action.identity)
        cleared_identities.add(action.identity)

    for action in detect_path_migrations(inputs):
        actions.append(action)
        cleared_identities.add(action.identity)

    actions.extend(detect_section_renames(inputs))

    for source in inputs.source_items:
        for provider_config in provider_configs:
            actions.append(determine_action(
                source, provider_config, inputs, target_state_index, cleared_identities,
            ))

    actions.extend(detect_orphans(inputs, renamed_identities))

    return build_plan(suppress_overlapping_actions(dedupe_actions(actions)))
