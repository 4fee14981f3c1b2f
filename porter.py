#!/usr/bin/env python3
"""
Kit Porter - Keep kits of AI-assistant content in sync across providers.

This script previews and applies reconcile plans: which kit agents, commands,
skills, rules and config to install, update, skip or delete for each provider,
and which items need a decision because both the kit and the user changed them.
"""

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from fs_backend import LocalBackend
from kit_porter import __version__
from kit_porter.config import PorterConfig
from kit_porter.exceptions import (
    FileOperationError,
    InvalidProviderError,
    LockHeldError,
    PorterError,
    UnresolvedConflictError,
)
from kit_porter.formatting import colored_status, format_plan
from kit_porter.lock import GLOBAL_SCOPE, ExecutionLock
from kit_porter.log import configure_logging
from kit_porter.manifest import load_manifest
from kit_porter.providers import PROVIDERS, all_providers, detect_installed_providers, parse_provider
from kit_porter.reconciler import reconcile
from kit_porter.resolution import ConflictKey, ConflictResolution, apply_resolutions, parse_resolution
from kit_porter.state import (
    KitSnapshot,
    execute_plan,
    merge_registry_scope,
    prepare_reconcile,
    split_registry_scope,
)
from kit_porter.types import (
    ManifestDirectives,
    PortableType,
    ProviderConfig,
    ReconcilePlan,
    Registry,
    RegistryEntry,
)

logger = logging.getLogger('kit_porter.cli')


def parse_resolve_arg(value: str, is_global: bool) -> Tuple[ConflictKey, ConflictResolution]:
    """Parse a --resolve value of the form provider:type:item=resolution.

    Raises:
        ValueError: If the value is malformed
    """
    target, sep, resolution = value.rpartition('=')
    if not sep:
        raise ValueError(f"Invalid --resolve '{value}'. Expected provider:type:item=overwrite|keep")

    parts = target.split(':', 2)
    if len(parts) != 3 or not all(parts):
        raise ValueError(f"Invalid --resolve '{value}'. Expected provider:type:item=overwrite|keep")

    provider, type_name, item = parts
    try:
        portable_type = PortableType(type_name.strip().lower())
    except ValueError:
        valid = ', '.join(t.value for t in PortableType)
        raise ValueError(f"Invalid type '{type_name}' in --resolve. Valid types: {valid}") from None

    key = (parse_provider(provider).value, portable_type, item, is_global)
    return key, parse_resolution(resolution)


def create_parser() -> argparse.ArgumentParser:
    """Create the command-line argument parser."""
    parser = argparse.ArgumentParser(
        description='Kit Porter - Keep kits of AI-assistant content in sync across providers',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Preview what would change for the configured providers
  %(prog)s plan --kit ./my-kit

  # Preview for specific providers, user-wide
  %(prog)s plan --kit ./my-kit --provider cursor --provider codex --global

  # Machine-readable plan
  %(prog)s plan --kit ./my-kit --json

  # Apply, resolving every conflict explicitly
  %(prog)s apply --kit ./my-kit --resolve cursor:rules:style=keep

  # Reinstall deleted targets and discard local edits
  %(prog)s apply --kit ./my-kit --force

  # Provider catalog
  %(prog)s providers --detect

  # Default providers
  %(prog)s config --set-providers claude-code cursor
        """
    )

    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    parser.add_argument('--no-color', action='store_true', help='Disable colored output')
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    def add_reconcile_args(sub: argparse.ArgumentParser):
        sub.add_argument('--kit', metavar='PATH', default='.',
                         help='Kit directory to reconcile from (default: current directory)')
        sub.add_argument('--provider', '-p', action='append', metavar='PROVIDER',
                         help='Provider to reconcile (repeatable; default: configured providers)')
        sub.add_argument('--global', dest='is_global', action='store_true', default=None,
                         help='Reconcile user-wide installs instead of project installs')
        sub.add_argument('--project-dir', metavar='PATH',
                         help='Project root for project installs (default: current directory)')
        sub.add_argument('--force', action='store_true',
                         help='Reinstall deleted targets and overwrite user edits')
        sub.add_argument('--cli-version', metavar='VERSION',
                         help='Version used to gate manifest entries (default: manifest cliVersion)')

    plan_parser = subparsers.add_parser('plan', help='Preview the reconcile plan without changing anything')
    add_reconcile_args(plan_parser)
    plan_parser.add_argument('--json', action='store_true', help='Print the plan as JSON')
    plan_parser.add_argument('--max-items', type=int, default=20, metavar='N',
                             help='Items shown per action group (default: 20)')

    apply_parser = subparsers.add_parser('apply', help='Reconcile and execute the plan')
    add_reconcile_args(apply_parser)
    apply_parser.add_argument('--resolve', action='append', default=[], metavar='PROVIDER:TYPE:ITEM=RES',
                              help='Resolve a conflict with overwrite or keep (repeatable)')

    providers_parser = subparsers.add_parser('providers', help='List supported providers')
    providers_parser.add_argument('--detect', action='store_true',
                                  help='Only list providers found in the home directory')

    config_parser = subparsers.add_parser('config', help='View or modify Kit Porter configuration')
    config_parser.add_argument('--set-providers', nargs='+', metavar='PROVIDER',
                               help='Set the default providers')
    config_parser.add_argument('--set-global', metavar='BOOL',
                               help='Default to user-wide installs (true/false)')
    config_parser.add_argument('--show', action='store_true', help='Show current configuration')

    return parser


def _is_global(args, config: PorterConfig) -> bool:
    return config.default_global if args.is_global is None else args.is_global


def _project_dir(args) -> Path:
    return Path(args.project_dir or os.getcwd()).expanduser().resolve()


class PlanContext:
    """Everything gathered for one reconcile run of the CLI."""

    def __init__(self, plan: ReconcilePlan, kit: KitSnapshot, registry: Registry,
                 other_rows: Tuple[RegistryEntry, ...], manifest: Optional[ManifestDirectives]):
        self.plan = plan
        self.kit = kit
        self.registry = registry
        self.other_rows = other_rows
        self.manifest = manifest


def build_plan_for_args(args, config: PorterConfig, backend: LocalBackend) -> PlanContext:
    """Gather state for the requested providers and reconcile it."""
    kit_path = Path(args.kit).expanduser().resolve()
    if not kit_path.is_dir():
        raise FileNotFoundError(f"Kit directory not found: {kit_path}")

    is_global = _is_global(args, config)
    names = args.provider or config.default_providers
    provider_configs = [ProviderConfig(provider=parse_provider(name).value, is_global=is_global)
                        for name in names]

    registry, other_rows = split_registry_scope(config.load_registry(), _project_dir(args), is_global)
    manifest = load_manifest(kit_path)
    inputs, kit = prepare_reconcile(
        kit_path, registry, provider_configs, backend,
        manifest=manifest, cli_version=args.cli_version, force=args.force,
    )
    logger.debug("Reconciling %d item(s) for %s", len(kit.items),
                 ', '.join(c.provider for c in provider_configs))
    return PlanContext(reconcile(inputs), kit, registry, other_rows, manifest)


def cmd_plan(args, config: PorterConfig) -> int:
    plan = build_plan_for_args(args, config, LocalBackend()).plan
    if args.json:
        print(json.dumps(plan.to_dict(), indent=2))
    else:
        print(format_plan(plan, color=config.color and not args.no_color,
                          max_items_per_group=args.max_items))
    return 0


def cmd_apply(args, config: PorterConfig) -> int:
    color = config.color and not args.no_color
    backend = LocalBackend()
    project_dir = _project_dir(args)
    is_global = _is_global(args, config)
    scope = GLOBAL_SCOPE if is_global else str(project_dir)

    resolutions: Dict[ConflictKey, ConflictResolution] = {}
    for value in args.resolve:
        key, resolution = parse_resolve_arg(value, is_global)
        resolutions[key] = resolution

    with ExecutionLock(config.locks_path, scope):
        context = build_plan_for_args(args, config, backend)
        plan = context.plan
        if plan.has_conflicts:
            plan = apply_resolutions(plan, resolutions)

        print(format_plan(plan, color=color))
        report = execute_plan(
            plan, context.registry, context.kit, backend,
            project_dir=project_dir, cli_version=args.cli_version, manifest=context.manifest,
        )
        config.save_registry(merge_registry_scope(report.registry, context.other_rows,
                                                  project_dir, is_global))

    for result in report.failed:
        print(colored_status('ERROR', f"{result.action.item} -> {result.action.provider}: {result.message}",
                             color=color), file=sys.stderr)

    if report.failed:
        print(colored_status('WARNING', f"{len(report.failed)} action(s) failed", color=color))
        return 1

    print(colored_status('SUCCESS', f"Applied {len(report.applied)} action(s)", color=color))
    return 0


def cmd_providers(args, config: PorterConfig) -> int:
    providers = detect_installed_providers() if args.detect else all_providers()
    if not providers:
        print("No providers detected")
        return 0

    configured = set(config.default_providers)
    print("Providers:")
    for provider in providers:
        spec = PROVIDERS[provider]
        supported = [t.value for t in PortableType if spec.path_spec(t) is not None]
        marker = ' *' if provider.value in configured else ''
        print(f"  {provider.value:<16} {spec.display_name:<16} {', '.join(supported)}{marker}")
    return 0


def cmd_config(args, config: PorterConfig) -> int:
    color = config.color and not args.no_color
    if args.set_providers:
        config.set_providers(args.set_providers)
        config.save_config()
        print(colored_status('SUCCESS', f"Default providers set to: {', '.join(config.default_providers)}",
                             color=color))
    elif args.set_global is not None:
        value = args.set_global.lower() in ('true', '1', 'yes', 'on')
        config.config['global'] = value
        config.save_config()
        print(colored_status('SUCCESS', f"Default scope set to: {'global' if value else 'project'}",
                             color=color))
    elif args.show:
        print(f"Kit Porter home: {config.base_path}")
        print(f"Default providers: {', '.join(config.default_providers)}")
        print(f"Default scope: {'global' if config.default_global else 'project'}")
        print(f"Color output: {config.color}")
    else:
        print("[ERROR] Must specify --set-providers, --set-global, or --show")
        return 1
    return 0


COMMANDS = {
    'plan': cmd_plan,
    'apply': cmd_apply,
    'providers': cmd_providers,
    'config': cmd_config,
}


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    configure_logging(verbose=args.verbose)

    try:
        config = PorterConfig()
        return COMMANDS[args.command](args, config)

    except KeyboardInterrupt:
        print("\n[ERROR] Operation cancelled by user", file=sys.stderr)
        return 1
    except UnresolvedConflictError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        print("[TIP] Pass --resolve provider:type:item=overwrite|keep for each conflict", file=sys.stderr)
        return 1
    except (InvalidProviderError, LockHeldError) as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    except ValueError as e:
        print(f"[ERROR] {e}", file=sys.stderr)
        return 1
    except (FileNotFoundError, NotADirectoryError, PermissionError) as e:
        print(f"[ERROR] File system error: {e}", file=sys.stderr)
        return 1
    except FileOperationError as e:
        print(f"[ERROR] File operation failed: {e}", file=sys.stderr)
        return 1
    except PorterError as e:
        print(f"[ERROR] Kit Porter error: {e}", file=sys.stderr)
        return 1


if __name__ == '__main__':
    sys.exit(main())
