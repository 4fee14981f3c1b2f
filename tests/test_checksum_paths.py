"""Tests for checksum normalization and portable path handling."""

from pathlib import Path

from kit_porter.checksum import (
    UNKNOWN_CHECKSUM,
    calculate_content_checksum,
    calculate_directory_checksum,
    calculate_file_checksum,
    is_unknown_checksum,
    normalize_checksum,
)
from kit_porter.paths import (
    has_dot_dot_segment,
    is_absolute_like,
    is_safe_relative_path,
    normalize_portable_path,
    path_contains_segments,
    to_path_segments,
)


class TestChecksums:
    """Test checksum helpers."""

    def test_missing_values_are_unknown(self):
        for value in (None, '', '   ', 'unknown', 'UNKNOWN', ' Unknown '):
            assert normalize_checksum(value) == UNKNOWN_CHECKSUM
            assert is_unknown_checksum(value)

    def test_known_value_is_trimmed(self):
        assert normalize_checksum('  abc123\n') == 'abc123'

    def test_directory_checksum_ignores_listing_order(self, temp_dir: Path):
        for root, names in ((temp_dir / 'a', ['x.md', 'y.md']), (temp_dir / 'b', ['y.md', 'x.md'])):
            root.mkdir()
            for name in names:
                (root / name).write_text(name)

        assert calculate_directory_checksum(temp_dir / 'a') == calculate_directory_checksum(temp_dir / 'b')
        (temp_dir / 'b' / 'y.md').rename(temp_dir / 'b' / 'z.md')
        assert calculate_directory_checksum(temp_dir / 'a') != calculate_directory_checksum(temp_dir / 'b')

    def test_file_and_content_checksums_agree(self, temp_dir: Path):
        path = temp_dir / 'a.md'
        path.write_text('# Title\n', encoding='utf-8')

        assert calculate_file_checksum(path) == calculate_content_checksum('# Title\n')
        assert len(calculate_content_checksum('')) == 64


class TestPortablePaths:
    """Test separator-independent, segment-wise path handling."""

    def test_normalize(self):
        assert normalize_portable_path('a\\b\\c.md') == 'a/b/c.md'
        assert normalize_portable_path('./a//b/./c.md') == 'a/b/c.md'
        assert normalize_portable_path('/x/y/../z') == '/x/z'
        assert normalize_portable_path('.') == ''
        assert normalize_portable_path('') == ''

    def test_absolute_like(self):
        assert is_absolute_like('/etc/hosts')
        assert is_absolute_like('C:\\Users\\me')
        assert is_absolute_like('d:/work')
        assert is_absolute_like('\\\\server\\share')
        assert not is_absolute_like('agents/a.md')

    def test_dot_dot_segments(self):
        assert has_dot_dot_segment('../a')
        assert has_dot_dot_segment('a\\..\\b')
        assert not has_dot_dot_segment('a/..b/c')
        assert not is_safe_relative_path('')
        assert is_safe_relative_path('agents/a.md')

    def test_segments(self):
        assert to_path_segments('/a/b/') == ['a', 'b']
        assert to_path_segments('') == []

    def test_contains_segments_contiguously(self):
        assert path_contains_segments('/home/u/.codex/skills/x/SKILL.md', '.codex/skills/')
        assert path_contains_segments('C:\\home\\.codex\\skills\\x', '.codex/skills')
        assert not path_contains_segments('/home/u/.codex/skills-old/x', '.codex/skills')
        assert not path_contains_segments('/home/u/.codex/x/skills', '.codex/skills')
        assert not path_contains_segments('/a/b', '')
        assert not path_contains_segments('a', 'a/b')
