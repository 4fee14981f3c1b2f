"""Tests for provider format conversion."""

import json

import yaml

from kit_porter.checksum import calculate_content_checksum
from kit_porter.hal import (
    ConversionContext,
    FrontmatterStripConverter,
    MarkdownToTomlConverter,
    get_hal,
    rewrite_claude_references,
)
from kit_porter.providers import Provider
from kit_porter.types import PortableType
from kit_porter.utils import parse_frontmatter

AGENT = """---
name: reviewer
description: Reviews code changes
model: sonnet
color: blue
---

# Reviewer

Read the diff.
"""


class TestConverters:
    """Test individual conversion formats."""

    def test_direct_copy_is_byte_identical(self):
        assert get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'claude-code') == AGENT

    def test_frontmatter_filter_drops_unknown_fields(self):
        converted = get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'github-copilot')
        frontmatter, body = parse_frontmatter(converted)

        assert frontmatter == {'name': 'reviewer', 'description': 'Reviews code changes', 'model': 'sonnet'}
        assert body.startswith('# Reviewer')

    def test_frontmatter_strip_keeps_existing_heading(self):
        converted = get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'windsurf')
        assert not converted.startswith('---')
        assert converted.startswith('# Reviewer')

    def test_frontmatter_strip_adds_heading(self):
        context = ConversionContext('helper', PortableType.AGENT, Provider.WINDSURF)
        converted = FrontmatterStripConverter().convert('Body', {}, 'Body', context)
        assert converted == '# helper\n\nBody'

    def test_yaml_custom_mode(self):
        converted = get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'roo')
        mode = yaml.safe_load(converted)['customModes'][0]

        assert mode['slug'] == 'reviewer'
        assert mode['roleDefinition'] == 'Reviews code changes'
        assert mode['customInstructions'].startswith('# Reviewer')

    def test_json_custom_mode(self):
        converted = get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'cline')
        assert json.loads(converted)['customModes'][0]['name'] == 'reviewer'

    def test_toml_prompt(self):
        command = "---\ndescription: Plan a feature\n---\n\nWrite a plan.\n"
        converted = get_hal().convert(command, 'plan', PortableType.COMMAND, 'gemini-cli')

        assert converted == "description = \"Plan a feature\"\nprompt = '''\nWrite a plan.\n'''\n"

    def test_toml_prompt_with_triple_quotes_uses_basic_string(self):
        context = ConversionContext('plan', PortableType.COMMAND, Provider.GEMINI_CLI)
        converted = MarkdownToTomlConverter().convert("say '''hi'''", {}, "say '''hi'''", context)
        assert 'prompt = "say \'\'\'hi\'\'\'"' in converted

    def test_skill_markdown(self):
        converted = get_hal().convert(AGENT, 'reviewer', PortableType.AGENT, 'openhands')
        frontmatter, _ = parse_frontmatter(converted)
        assert frontmatter == {'name': 'reviewer', 'description': 'Reviews code changes'}

    def test_mdc_rules(self):
        converted = get_hal().convert('Use .claude/rules/ files.\n', 'style', PortableType.RULES, 'cursor')
        frontmatter, body = parse_frontmatter(converted)

        assert frontmatter['alwaysApply'] is True
        assert frontmatter['description'] == 'style rules'
        assert body == 'Use .cursor/rules/ files.\n'

    def test_unsupported_type_returns_none(self):
        assert get_hal().convert(AGENT, 'x', PortableType.RULES, 'goose') is None


class TestReferenceRewriting:
    """Test Claude path references rewritten for other providers."""

    def test_rewrites_to_provider_paths(self):
        text = 'See .claude/agents/ and CLAUDE.md'
        assert rewrite_claude_references(text, Provider.OPENCODE) == 'See .opencode/agents/ and AGENTS.md'

    def test_unsupported_kind_falls_back_to_plain_dir(self):
        assert rewrite_claude_references('.claude/commands/x.md', Provider.CURSOR) == 'commands/x.md'

    def test_claude_config_body_unchanged(self):
        content = '# Project\n\nSee .claude/agents/\n'
        assert get_hal().convert(content, 'CLAUDE', PortableType.CONFIG, 'claude-code') == content


class TestConvertedChecksums:
    """Test per-provider checksums of converted content."""

    def test_checksums_keyed_by_provider_id(self):
        checksums = get_hal().converted_checksums(AGENT, 'reviewer', PortableType.AGENT,
                                                  ['claude-code', 'windsurf'])

        assert set(checksums) == {'claude-code', 'windsurf'}
        assert checksums['claude-code'] == calculate_content_checksum(AGENT)
        assert checksums['claude-code'] != checksums['windsurf']

    def test_unsupported_providers_left_out(self):
        checksums = get_hal().converted_checksums('x', 'style', PortableType.RULES, ['goose', 'cursor'])
        assert list(checksums) == ['cursor']
