"""Tests for utility functions."""

from kit_porter.utils import (
    dump_frontmatter,
    parse_frontmatter,
    sanitize_terminal_text,
    utc_timestamp,
)


class TestFrontmatter:
    """Test frontmatter parsing edge cases."""

    def test_parse(self):
        frontmatter, body = parse_frontmatter("---\nname: a\n---\n\n\nBody\n")
        assert frontmatter == {'name': 'a'}
        assert body == 'Body\n'

    def test_no_frontmatter(self):
        assert parse_frontmatter('Just text') == ({}, 'Just text')

    def test_unclosed_frontmatter(self):
        content = '---\nname: a\nBody'
        assert parse_frontmatter(content) == ({}, content)

    def test_invalid_yaml_ignored(self):
        frontmatter, body = parse_frontmatter('---\nname: [unclosed\n---\nBody')
        assert frontmatter == {}
        assert body == 'Body'

    def test_non_mapping_frontmatter_ignored(self):
        assert parse_frontmatter('---\n- a\n- b\n---\nBody')[0] == {}

    def test_dump_round_trip(self):
        rendered = dump_frontmatter({'name': 'a', 'alwaysApply': True}, 'Body')
        assert rendered == '---\nname: a\nalwaysApply: true\n---\n\nBody'
        assert parse_frontmatter(rendered) == ({'name': 'a', 'alwaysApply': True}, 'Body')

    def test_dump_without_frontmatter(self):
        assert dump_frontmatter({}, 'Body') == 'Body'


class TestTerminalText:
    """Test sanitizing text before it reaches the terminal."""

    def test_strips_escape_sequences_and_controls(self):
        assert sanitize_terminal_text('evil\x1b[31mred\x1b[0m\x07') == 'evilred'

    def test_collapses_newlines_and_whitespace(self):
        assert sanitize_terminal_text('line one\n\tline   two\r') == 'line one line two'

    def test_timestamp_is_utc(self):
        assert utc_timestamp().endswith('+00:00')
