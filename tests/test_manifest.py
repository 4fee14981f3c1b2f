"""Tests for manifest parsing and version gating."""

import json
from pathlib import Path

import pytest

from kit_porter.exceptions import ManifestError
from kit_porter.manifest import (
    MANIFEST_FILE,
    compare_versions,
    get_applicable_entries,
    load_manifest,
    parse_manifest,
    parse_version,
)
from kit_porter.types import PortableType, RenameEntry


def rename(since: str) -> RenameEntry:
    return RenameEntry(from_path='agents/a.md', to_path='agents/b.md', since=since)


class TestVersions:
    """Test semantic version parsing and comparison."""

    def test_compare(self):
        assert compare_versions('1.2.0', '1.10.0') == -1
        assert compare_versions('v2.0.0', '2.0.0') == 0
        assert compare_versions('2.0.1', '2.0.0') == 1

    def test_prerelease_sorts_before_release(self):
        assert compare_versions('1.0.0-beta.1', '1.0.0') == -1
        assert compare_versions('1.0.0-beta.2', '1.0.0-beta.10') == -1
        assert compare_versions('1.0.0-1', '1.0.0-alpha') == -1

    def test_invalid_version_raises(self):
        for value in ('', '1.0', 'latest', '01.0.0'):
            with pytest.raises(ValueError):
                parse_version(value)


class TestApplicableEntries:
    """Test the applied < since <= current window."""

    def test_window(self):
        entries = [rename('1.0.0'), rename('1.1.0'), rename('1.2.0'), rename('1.3.0')]
        applicable = get_applicable_entries(entries, '1.0.0', '1.2.0')

        assert [e.since for e in applicable] == ['1.1.0', '1.2.0']

    def test_no_applied_version(self):
        entries = [rename('0.1.0'), rename('9.0.0')]
        assert [e.since for e in get_applicable_entries(entries, None, '1.0.0')] == ['0.1.0']

    def test_parse_error_includes_entry(self):
        assert get_applicable_entries([rename('soon')], '1.0.0', '2.0.0') == [rename('soon')]
        assert get_applicable_entries([rename('1.5.0')], 'garbage', '2.0.0') == [rename('1.5.0')]


class TestParseManifest:
    """Test manifest validation."""

    def valid(self):
        return {
            'version': '1.0',
            'cliVersion': '1.4.0',
            'renames': [{'from': 'agents/old.md', 'to': 'agents/new.md', 'since': '1.3.0'}],
            'providerPathMigrations': [{
                'provider': 'codex', 'type': 'skill',
                'from': '.codex/skills', 'to': '.agents/skills', 'since': '1.4.0',
            }],
            'sectionRenames': [],
            'futureField': True,
        }

    def test_parse_valid(self):
        manifest = parse_manifest(self.valid())

        assert manifest.cli_version == '1.4.0'
        assert manifest.renames[0].from_path == 'agents/old.md'
        assert manifest.provider_path_migrations[0].type == PortableType.SKILL
        assert manifest.section_renames == ()

    def test_wrong_version_rejected(self):
        data = dict(self.valid(), version='2.0')
        with pytest.raises(ManifestError, match='Unsupported manifest version'):
            parse_manifest(data)

    def test_traversal_rejected(self):
        data = self.valid()
        data['renames'][0]['to'] = '../../etc/passwd'
        with pytest.raises(ManifestError, match='renames\\[0\\]'):
            parse_manifest(data)

    def test_invalid_type_rejected(self):
        data = self.valid()
        data['providerPathMigrations'][0]['type'] = 'widget'
        with pytest.raises(ManifestError, match='invalid type'):
            parse_manifest(data)

    def test_missing_cli_version_rejected(self):
        data = self.valid()
        del data['cliVersion']
        with pytest.raises(ManifestError):
            parse_manifest(data)

    def test_non_object_entry_rejected(self):
        data = dict(self.valid(), renames=['agents/a.md'])
        with pytest.raises(ManifestError, match='renames\\[0\\]: must be an object'):
            parse_manifest(data)

    def test_non_list_directives_rejected(self):
        data = dict(self.valid(), providerPathMigrations={'from': '.codex/skills'})
        with pytest.raises(ManifestError, match="'providerPathMigrations' must be a list"):
            parse_manifest(data)


class TestLoadManifest:
    """Test loading manifests from a kit directory."""

    def test_missing_file_returns_none(self, temp_dir: Path):
        assert load_manifest(temp_dir) is None

    def test_invalid_file_returns_none(self, temp_dir: Path):
        (temp_dir / MANIFEST_FILE).write_text('{not json')
        assert load_manifest(temp_dir) is None

    def test_load_valid_file(self, temp_dir: Path):
        (temp_dir / MANIFEST_FILE).write_text(json.dumps({'version': '1.0', 'cliVersion': '1.0.0'}))
        manifest = load_manifest(temp_dir)

        assert manifest is not None
        assert manifest.renames == ()

    def test_malformed_directive_returns_none(self, temp_dir: Path):
        (temp_dir / MANIFEST_FILE).write_text(json.dumps({
            'version': '1.0', 'cliVersion': '1.0.0', 'renames': ['agents/a.md'],
        }))
        assert load_manifest(temp_dir) is None
