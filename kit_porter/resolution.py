"""
Conflict resolution for reconcile plans.

Every conflict in a plan needs an explicit resolution before anything is
executed; one unresolved conflict blocks the whole run.
"""

from enum import Enum
from typing import Mapping, Tuple

from kit_porter.exceptions import UnresolvedConflictError, UnsupportedResolutionError
from kit_porter.reconciler import build_plan
from kit_porter.types import ActionType, PortableType, ReconcileAction, ReconcilePlan

ConflictKey = Tuple[str, PortableType, str, bool]


class ConflictResolution(str, Enum):
    """How the user chose to settle a conflict."""

    OVERWRITE = 'overwrite'
    KEEP = 'keep'
    SMART_MERGE = 'smart-merge'


def parse_resolution(value: str) -> ConflictResolution:
    """Map user input to a ConflictResolution.

    'overwrite-with-source' and 'keep-target' are accepted as long forms.
    """
    aliases = {
        'overwrite-with-source': ConflictResolution.OVERWRITE,
        'keep-target': ConflictResolution.KEEP,
    }
    normalized = value.strip().lower()
    if normalized in aliases:
        return aliases[normalized]
    try:
        return ConflictResolution(normalized)
    except ValueError:
        valid = ', '.join(r.value for r in ConflictResolution)
        raise ValueError(f"Invalid resolution '{value}'. Valid resolutions: {valid}") from None


def conflict_key(action: ReconcileAction) -> ConflictKey:
    """Key a resolution by (provider, type, item, global)."""
    return (action.provider, action.type, action.item, action.is_global)


def describe_conflict(action: ReconcileAction) -> str:
    scope = 'global' if action.is_global else 'project'
    return f"{action.provider}/{action.type.value}/{action.item} ({scope})"


def apply_resolutions(plan: ReconcilePlan,
                      resolutions: Mapping[ConflictKey, ConflictResolution]) -> ReconcilePlan:
    """Return a new plan with every conflict turned into a concrete action.

    Overwrite becomes an update, keep becomes a skip. Smart merge is accepted
    as a value but has no merge algorithm yet, so it is rejected here.

    Raises:
        UnresolvedConflictError: If any conflict has no resolution
        UnsupportedResolutionError: If any resolution is smart-merge
    """
    conflicts = plan.actions_of(ActionType.CONFLICT)
    missing = [describe_conflict(a) for a in conflicts if conflict_key(a) not in resolutions]
    if missing:
        raise UnresolvedConflictError(missing)

    resolved = []
    for action in plan.actions:
        if action.action != ActionType.CONFLICT:
            resolved.append(action)
            continue

        resolution = ConflictResolution(resolutions[conflict_key(action)])
        if resolution == ConflictResolution.OVERWRITE:
            resolved.append(action.with_action(ActionType.UPDATE, resolution=resolution.value))
        elif resolution == ConflictResolution.KEEP:
            resolved.append(action.with_action(ActionType.SKIP, resolution=resolution.value))
        elif resolution == ConflictResolution.SMART_MERGE:
            raise UnsupportedResolutionError(
                f"smart-merge is not supported yet for {describe_conflict(action)}; "
                "choose overwrite or keep"
            )
        else:
            raise ValueError(f"Unhandled resolution: {resolution}")

    return build_plan(resolved)


def require_no_conflicts(plan: ReconcilePlan):
    """Refuse a plan that still has conflict actions."""
    conflicts = plan.actions_of(ActionType.CONFLICT)
    if conflicts:
        raise UnresolvedConflictError([describe_conflict(a) for a in conflicts])
