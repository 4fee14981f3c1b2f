"""
Kit Porter Hardware Abstraction Layer (HAL).

Converts canonical kit markdown (YAML frontmatter plus body) into the format
each provider expects. The converted text is what gets written to disk, so its
checksum, not the raw source checksum, is what the reconciler compares for a
provider.
"""

import json
import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import yaml

from kit_porter.checksum import calculate_content_checksum
from kit_porter.providers import PROVIDERS, ConversionFormat, Provider, get_provider_spec
from kit_porter.types import PortableType
from kit_porter.utils import dump_frontmatter, parse_frontmatter

# Source directory name used inside kit content for each portable type
_KIND_DIRS = {
    PortableType.AGENT: 'agents',
    PortableType.COMMAND: 'commands',
    PortableType.SKILL: 'skills',
    PortableType.RULES: 'rules',
}


@dataclass(frozen=True)
class ConversionContext:
    """What is being converted and for whom."""

    item: str
    type: PortableType
    provider: Provider


class FormatConverter:
    """Base class for provider format converters."""

    # Frontmatter fields carried over by this converter
    SUPPORTED_FIELDS: List[str] = []

    def convert(self, content: str, frontmatter: dict, body: str, context: ConversionContext) -> str:
        """Convert canonical content to the provider format.

        Args:
            content: Original item content
            frontmatter: Parsed frontmatter dictionary
            body: Item body (without frontmatter)
            context: Item, type and provider being converted for

        Returns:
            Converted content
        """
        raise NotImplementedError("Subclasses must implement convert()")

    def _pick_fields(self, frontmatter: dict) -> dict:
        return {key: frontmatter[key] for key in self.SUPPORTED_FIELDS if key in frontmatter}


class DirectCopyConverter(FormatConverter):
    """Keep content byte-for-byte."""

    def convert(self, content, frontmatter, body, context):
        return content


class FrontmatterFilterConverter(FormatConverter):
    """Keep frontmatter, restricted to the fields providers understand (Copilot, Cursor)."""

    SUPPORTED_FIELDS = ['name', 'description', 'model', 'tools', 'globs', 'alwaysApply']

    def convert(self, content, frontmatter, body, context):
        return dump_frontmatter(self._pick_fields(frontmatter), body)


class FrontmatterStripConverter(FormatConverter):
    """Drop frontmatter, keep a heading so merged files stay readable."""

    def convert(self, content, frontmatter, body, context):
        title = frontmatter.get('name') or context.item
        if body.lstrip().startswith('# '):
            return body
        return f"# {title}\n\n{body}"


def _mode_definition(frontmatter: dict, body: str, context: ConversionContext) -> dict:
    return {
        'slug': context.item,
        'name': frontmatter.get('name') or context.item,
        'roleDefinition': frontmatter.get('description') or '',
        'customInstructions': body.strip(),
        'groups': ['read', 'edit', 'command'],
    }


class FrontmatterToYamlConverter(FormatConverter):
    """Render an agent as one custom mode entry (Roo, Kilo)."""

    def convert(self, content, frontmatter, body, context):
        mode = _mode_definition(frontmatter, body, context)
        return yaml.safe_dump({'customModes': [mode]}, default_flow_style=False,
                              sort_keys=False, allow_unicode=True)


class FrontmatterToJsonConverter(FormatConverter):
    """Render an agent as one custom mode entry in JSON (Cline)."""

    def convert(self, content, frontmatter, body, context):
        mode = _mode_definition(frontmatter, body, context)
        return json.dumps({'customModes': [mode]}, indent=2, ensure_ascii=False) + '\n'


class MarkdownToTomlConverter(FormatConverter):
    """Render a command as a TOML prompt file (Gemini CLI)."""

    def convert(self, content, frontmatter, body, context):
        description = str(frontmatter.get('description') or context.item)
        lines = [f"description = {json.dumps(description, ensure_ascii=False)}"]
        prompt = body.strip()
        if "'''" in prompt:
            lines.append(f"prompt = {json.dumps(prompt, ensure_ascii=False)}")
        else:
            lines.append(f"prompt = '''\n{prompt}\n'''")
        return '\n'.join(lines) + '\n'


class SkillMarkdownConverter(FormatConverter):
    """Render an agent as a skill file with name/description frontmatter (OpenHands)."""

    def convert(self, content, frontmatter, body, context):
        skill_frontmatter = {
            'name': frontmatter.get('name') or context.item,
            'description': frontmatter.get('description') or '',
        }
        return dump_frontmatter(skill_frontmatter, body)


def rewrite_claude_references(text: str, provider: Provider) -> str:
    """Point '.claude/<kind>/' and 'CLAUDE.md' references at the provider's own locations."""
    spec = PROVIDERS[provider]
    for portable_type, kind_dir in _KIND_DIRS.items():
        path_spec = spec.path_spec(portable_type)
        if path_spec is None or path_spec.project_path is None:
            replacement = f"{kind_dir}/"
        else:
            replacement = path_spec.project_path.rstrip('/') + '/'
        text = re.sub(rf'\.claude/{kind_dir}/', replacement, text)

    config_spec = spec.config
    config_name = config_spec.project_path if config_spec and config_spec.project_path else 'AGENTS.md'
    return re.sub(r'\bCLAUDE\.md\b', config_name, text)


class MarkdownStripConverter(FormatConverter):
    """Drop frontmatter and Claude-specific path references (config and rules)."""

    def convert(self, content, frontmatter, body, context):
        if context.provider == Provider.CLAUDE_CODE:
            return body
        return rewrite_claude_references(body, context.provider)


class MarkdownToMdcConverter(FormatConverter):
    """Render config/rules as an always-applied Cursor MDC rule."""

    def convert(self, content, frontmatter, body, context):
        mdc_frontmatter = {
            'description': frontmatter.get('description') or f"{context.item} rules",
            'globs': frontmatter.get('globs') or '',
            'alwaysApply': True,
        }
        return dump_frontmatter(mdc_frontmatter, rewrite_claude_references(body, context.provider))


class ProviderHAL:
    """Unified interface for converting kit content for any provider."""

    def __init__(self):
        """Initialize the HAL with one converter per conversion format."""
        self._converters: Dict[ConversionFormat, FormatConverter] = {
            ConversionFormat.DIRECT_COPY: DirectCopyConverter(),
            ConversionFormat.FM_TO_FM: FrontmatterFilterConverter(),
            ConversionFormat.FM_TO_YAML: FrontmatterToYamlConverter(),
            ConversionFormat.FM_STRIP: FrontmatterStripConverter(),
            ConversionFormat.FM_TO_JSON: FrontmatterToJsonConverter(),
            ConversionFormat.MD_TO_TOML: MarkdownToTomlConverter(),
            ConversionFormat.SKILL_MD: SkillMarkdownConverter(),
            ConversionFormat.MD_STRIP: MarkdownStripConverter(),
            ConversionFormat.MD_TO_MDC: MarkdownToMdcConverter(),
        }

    def get_converter(self, conversion_format: ConversionFormat) -> FormatConverter:
        return self._converters[conversion_format]

    def convert(self, content: str, item: str, portable_type: PortableType,
                provider: str) -> Optional[str]:
        """Convert item content for a provider.

        Returns:
            Converted content, or None when the provider does not support the type
        """
        spec = get_provider_spec(provider)
        path_spec = spec.path_spec(portable_type)
        if path_spec is None:
            return None

        frontmatter, body = parse_frontmatter(content)
        context = ConversionContext(item=item, type=portable_type, provider=spec.name)
        return self.get_converter(path_spec.format).convert(content, frontmatter, body, context)

    def converted_checksums(self, content: str, item: str, portable_type: PortableType,
                            providers: Iterable[str]) -> Dict[str, str]:
        """Checksum the converted content for each provider that supports the type."""
        checksums = {}
        for provider in providers:
            converted = self.convert(content, item, portable_type, provider)
            if converted is not None:
                checksums[get_provider_spec(provider).name.value] = calculate_content_checksum(converted)
        return checksums


# Global HAL instance
_hal_instance = None


def get_hal() -> ProviderHAL:
    """Get the global HAL instance (singleton pattern)."""
    global _hal_instance
    if _hal_instance is None:
        _hal_instance = ProviderHAL()
    return _hal_instance
