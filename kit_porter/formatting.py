"""
Output formatting utilities for Kit Porter.

Provides color codes and formatting functions for terminal output.
"""

from typing import Dict, List

from kit_porter.types import ActionType, PortableType, ReconcileAction, ReconcilePlan
from kit_porter.utils import sanitize_terminal_text


class Colors:
    """ANSI color codes for terminal output."""
    RED = '\033[0;31m'
    GREEN = '\033[0;32m'
    YELLOW = '\033[1;33m'
    BLUE = '\033[0;34m'
    MAGENTA = '\033[0;35m'
    CYAN = '\033[0;36m'
    NC = '\033[0m'  # No Color

    @staticmethod
    def colorize(text: str, color: str) -> str:
        """Wrap text in color codes."""
        return f"{color}{text}{Colors.NC}"


def colored_status(status_type: str, message: str = "", color: bool = True) -> str:
    """Return a colored status message.

    Args:
        status_type: Type of status (SUCCESS, ERROR, WARNING, INFO, etc.)
        message: Optional message to append after the status
        color: Emit ANSI color codes

    Returns:
        Status string, colored unless color is False
    """
    color_map = {
        'SUCCESS': Colors.GREEN,
        'ERROR': Colors.RED,
        'WARNING': Colors.YELLOW,
        'INFO': Colors.BLUE,
        'INSTALL': Colors.GREEN,
        'UPDATE': Colors.CYAN,
        'SKIP': Colors.NC,
        'CONFLICT': Colors.RED,
        'DELETE': Colors.MAGENTA,
        'TIP': Colors.CYAN,
    }

    status_text = f"[{status_type}]"
    if color:
        status_text = Colors.colorize(status_text, color_map.get(status_type, Colors.NC))

    if message:
        return f"{status_text} {message}"
    return status_text


# Display order of plan groups
ACTION_ORDER = [ActionType.INSTALL, ActionType.UPDATE, ActionType.CONFLICT,
                ActionType.DELETE, ActionType.SKIP]


def _describe_action(action: ReconcileAction) -> str:
    scope = 'global' if action.is_global else 'project'
    item = sanitize_terminal_text(action.item)
    provider = sanitize_terminal_text(action.provider)
    reason = sanitize_terminal_text(action.reason)
    return f"{item} -> {provider} ({scope}): {reason}"


def _group_by_type(actions: List[ReconcileAction]) -> Dict[PortableType, List[ReconcileAction]]:
    grouped: Dict[PortableType, List[ReconcileAction]] = {}
    for action in actions:
        grouped.setdefault(action.type, []).append(action)
    return grouped


def format_summary(plan: ReconcilePlan) -> str:
    parts = [f"{plan.summary.get(action, 0)} {action.value}" for action in ACTION_ORDER]
    return f"Summary: {', '.join(parts)}"


def format_plan(plan: ReconcilePlan, color: bool = True, max_items_per_group: int = 20) -> str:
    """Format a reconcile plan for display.

    Actions are grouped by kind, then by portable type. Each kind shows at most
    ``max_items_per_group`` lines; the remainder is collapsed into a count.

    Args:
        plan: Plan to display
        color: Emit ANSI color codes
        max_items_per_group: Lines shown per action kind before truncating

    Returns:
        Multi-line plan description ending with a summary line
    """
    lines = []
    for action_type in ACTION_ORDER:
        actions = plan.actions_of(action_type)
        if not actions:
            continue

        header = colored_status(action_type.value.upper(), f"{len(actions)} item(s)", color=color)
        lines.append(header)

        shown = 0
        for portable_type, typed_actions in _group_by_type(actions).items():
            if shown >= max_items_per_group:
                break
            lines.append(f"  {portable_type.value}:")
            for action in typed_actions:
                if shown >= max_items_per_group:
                    break
                lines.append(f"    • {_describe_action(action)}")
                shown += 1

        if len(actions) > shown:
            lines.append(f"    ... and {len(actions) - shown} more")
        lines.append("")

    if not plan.actions:
        lines.append("Nothing to do.")
        lines.append("")

    lines.append(format_summary(plan))
    if plan.has_conflicts:
        lines.append(colored_status(
            'TIP', "Resolve each conflict with --resolve provider:type:item=overwrite|keep", color=color,
        ))
    return '\n'.join(lines)
