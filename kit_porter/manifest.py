"""
Portable manifest loading and version gating.

A kit may ship ``portable-manifest.json`` describing how its content evolved:
source renames, provider path migrations and (reserved) section renames. Each
entry carries the version it was introduced in, so a run only applies entries
newer than what the registry last recorded.
"""

import json
import logging
import re
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, TypeVar, Union

from kit_porter.exceptions import ManifestError
from kit_porter.paths import is_safe_relative_path
from kit_porter.types import (
    ManifestDirectives,
    PortableType,
    ProviderPathMigration,
    RenameEntry,
    SectionRename,
)

logger = logging.getLogger(__name__)

MANIFEST_FILE = 'portable-manifest.json'
MANIFEST_VERSION = '1.0'

_SEMVER = re.compile(
    r'^v?(?P<major>0|[1-9]\d*)\.(?P<minor>0|[1-9]\d*)\.(?P<patch>0|[1-9]\d*)'
    r'(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$'
)

VersionKey = Tuple[int, int, int, int, Tuple[Tuple[int, Union[int, str]], ...]]
Entry = TypeVar('Entry', RenameEntry, ProviderPathMigration, SectionRename)


def parse_version(version: str) -> VersionKey:
    """Parse a semantic version into a sortable key.

    Prerelease versions sort before the matching release, and numeric
    prerelease identifiers sort before alphanumeric ones.

    Raises:
        ValueError: If the string is not a semantic version
    """
    match = _SEMVER.match(version.strip()) if version else None
    if not match:
        raise ValueError(f"Invalid semantic version: {version!r}")

    pre = match.group('pre')
    if pre is None:
        pre_key: Tuple[Tuple[int, Union[int, str]], ...] = ()
        release_flag = 1
    else:
        pre_key = tuple((0, int(part)) if part.isdigit() else (1, part) for part in pre.split('.'))
        release_flag = 0

    return (int(match.group('major')), int(match.group('minor')), int(match.group('patch')),
            release_flag, pre_key)


def compare_versions(left: str, right: str) -> int:
    """Return -1, 0 or 1 as left is older, equal to or newer than right."""
    left_key, right_key = parse_version(left), parse_version(right)
    return (left_key > right_key) - (left_key < right_key)


def get_applicable_entries(entries: Sequence[Entry], applied_version: Optional[str],
                           current_version: str) -> List[Entry]:
    """Filter manifest entries by version range.

    An entry applies when ``applied_version < entry.since <= current_version``;
    with no applied version every entry up to the current version applies.
    Entries whose versions cannot be parsed are included.

    Args:
        entries: Manifest entries with a ``since`` field
        applied_version: Last manifest version applied (from the registry)
        current_version: Version of the running tool

    Returns:
        Applicable entries in manifest order
    """
    applicable = []
    for entry in entries:
        try:
            newer_than_applied = applied_version is None or compare_versions(entry.since, applied_version) > 0
            not_in_future = compare_versions(entry.since, current_version) <= 0
        except ValueError:
            logger.debug(
                "Semver parse error for since=%s, applied=%s, current=%s; including entry",
                entry.since, applied_version, current_version,
            )
            applicable.append(entry)
            continue
        if newer_than_applied and not_in_future:
            applicable.append(entry)
    return applicable


def _require_str(data: Dict, key: str, context: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value:
        raise ManifestError(f"{context}: '{key}' must be a non-empty string")
    return value


def _require_path(data: Dict, key: str, context: str) -> str:
    value = _require_str(data, key, context)
    if not is_safe_relative_path(value):
        raise ManifestError(f"{context}: '{key}' must be relative without traversal: {value}")
    return value


def _require_type(data: Dict, context: str) -> PortableType:
    try:
        return PortableType(data.get('type'))
    except ValueError:
        raise ManifestError(f"{context}: invalid type {data.get('type')!r}") from None


def _entries(data: Dict, key: str) -> List[Tuple[str, Dict]]:
    """Return (context, entry) pairs for a directive list, checking its shape."""
    raw_entries = data.get(key)
    if raw_entries is None:
        return []
    if not isinstance(raw_entries, list):
        raise ManifestError(f"'{key}' must be a list")

    entries = []
    for index, raw in enumerate(raw_entries):
        context = f"{key}[{index}]"
        if not isinstance(raw, dict):
            raise ManifestError(f"{context}: must be an object")
        entries.append((context, raw))
    return entries


def parse_manifest(data: Dict) -> ManifestDirectives:
    """Validate raw manifest JSON and build ManifestDirectives.

    Unknown top-level fields are ignored for forward compatibility.

    Raises:
        ManifestError: On a wrong version, missing fields or unsafe paths
    """
    if not isinstance(data, dict):
        raise ManifestError("Manifest must be a JSON object")
    if data.get('version') != MANIFEST_VERSION:
        raise ManifestError(f"Unsupported manifest version: {data.get('version')!r}")
    cli_version = _require_str(data, 'cliVersion', 'manifest')

    renames = []
    for context, raw in _entries(data, 'renames'):
        renames.append(RenameEntry(
            from_path=_require_path(raw, 'from', context),
            to_path=_require_path(raw, 'to', context),
            since=_require_str(raw, 'since', context),
        ))

    migrations = []
    for context, raw in _entries(data, 'providerPathMigrations'):
        migrations.append(ProviderPathMigration(
            provider=_require_str(raw, 'provider', context),
            type=_require_type(raw, context),
            from_path=_require_path(raw, 'from', context),
            to_path=_require_path(raw, 'to', context),
            since=_require_str(raw, 'since', context),
        ))

    section_renames = []
    for context, raw in _entries(data, 'sectionRenames'):
        section_renames.append(SectionRename(
            type=_require_type(raw, context),
            from_path=_require_path(raw, 'from', context),
            to_path=_require_path(raw, 'to', context),
            since=_require_str(raw, 'since', context),
        ))

    return ManifestDirectives(
        cli_version=cli_version,
        renames=tuple(renames),
        provider_path_migrations=tuple(migrations),
        section_renames=tuple(section_renames),
        version=MANIFEST_VERSION,
    )


def load_manifest(kit_path: Path) -> Optional[ManifestDirectives]:
    """Load portable-manifest.json from a kit directory.

    Returns None when the file is missing or invalid; evolution tracking is
    optional and a broken manifest must not block a run.
    """
    manifest_path = Path(kit_path) / MANIFEST_FILE
    if not manifest_path.exists():
        logger.debug("No %s found; no evolution tracking", MANIFEST_FILE)
        return None

    try:
        with open(manifest_path) as f:
            manifest = parse_manifest(json.load(f))
    except (OSError, json.JSONDecodeError, ManifestError) as e:
        logger.warning("Failed to load portable manifest %s: %s", manifest_path, e)
        return None

    logger.debug(
        "Loaded portable manifest v%s (cli %s): %d renames, %d path migrations, %d section renames",
        manifest.version, manifest.cli_version, len(manifest.renames),
        len(manifest.provider_path_migrations), len(manifest.section_renames),
    )
    return manifest
