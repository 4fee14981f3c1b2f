"""
Provider catalog for Kit Porter.

Defines every supported AI-assistant integration with its install locations,
conversion format and write strategy per portable type. The catalog is closed:
providers are versioned with the tool, not registered at runtime.
"""

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

from kit_porter.exceptions import InvalidProviderError
from kit_porter.types import PortableType


class Provider(str, Enum):
    """Supported provider identifiers."""

    CLAUDE_CODE = 'claude-code'
    CURSOR = 'cursor'
    CODEX = 'codex'
    OPENCODE = 'opencode'
    GOOSE = 'goose'
    GEMINI_CLI = 'gemini-cli'
    ANTIGRAVITY = 'antigravity'
    GITHUB_COPILOT = 'github-copilot'
    AMP = 'amp'
    KILO = 'kilo'
    ROO = 'roo'
    WINDSURF = 'windsurf'
    CLINE = 'cline'
    OPENHANDS = 'openhands'


class ConversionFormat(str, Enum):
    """How canonical kit markdown is transformed before it is written."""

    DIRECT_COPY = 'direct-copy'
    FM_TO_FM = 'fm-to-fm'
    FM_TO_YAML = 'fm-to-yaml'
    FM_STRIP = 'fm-strip'
    FM_TO_JSON = 'fm-to-json'
    MD_TO_TOML = 'md-to-toml'
    SKILL_MD = 'skill-md'
    MD_STRIP = 'md-strip'
    MD_TO_MDC = 'md-to-mdc'


class WriteStrategy(str, Enum):
    PER_FILE = 'per-file'
    MERGE_SINGLE = 'merge-single'
    JSON_MERGE = 'json-merge'
    YAML_MERGE = 'yaml-merge'
    SINGLE_FILE = 'single-file'


MERGE_STRATEGIES = (WriteStrategy.MERGE_SINGLE, WriteStrategy.JSON_MERGE, WriteStrategy.YAML_MERGE)


@dataclass(frozen=True)
class PathSpec:
    """Install location for one portable type.

    ``global_path`` is relative to the user's home directory. A ``None`` path
    means the scope is unsupported.
    """

    project_path: Optional[str]
    global_path: Optional[str]
    format: ConversionFormat
    write_strategy: WriteStrategy = WriteStrategy.PER_FILE
    file_extension: str = '.md'

    @property
    def is_merge_target(self) -> bool:
        return self.write_strategy in MERGE_STRATEGIES


@dataclass(frozen=True)
class ProviderSpec:
    """Full provider configuration."""

    name: Provider
    display_name: str
    detect_path: str
    agents: Optional[PathSpec] = None
    commands: Optional[PathSpec] = None
    skills: Optional[PathSpec] = None
    config: Optional[PathSpec] = None
    rules: Optional[PathSpec] = None

    def path_spec(self, portable_type: PortableType) -> Optional[PathSpec]:
        """Return the PathSpec for a portable type, or None when unsupported."""
        if portable_type == PortableType.AGENT:
            return self.agents
        if portable_type == PortableType.COMMAND:
            return self.commands
        if portable_type == PortableType.SKILL:
            return self.skills
        if portable_type == PortableType.CONFIG:
            return self.config
        if portable_type == PortableType.RULES:
            return self.rules
        raise ValueError(f"Unhandled portable type: {portable_type}")


F = ConversionFormat
W = WriteStrategy


def _skills(project: str, global_path: Optional[str]) -> PathSpec:
    return PathSpec(project, global_path, ConversionFormat.DIRECT_COPY)


PROVIDERS: Dict[Provider, ProviderSpec] = {
    Provider.CLAUDE_CODE: ProviderSpec(
        name=Provider.CLAUDE_CODE,
        display_name='Claude Code',
        detect_path='.claude',
        agents=PathSpec('.claude/agents', '.claude/agents', F.DIRECT_COPY),
        commands=PathSpec('.claude/commands', '.claude/commands', F.DIRECT_COPY),
        skills=_skills('.claude/skills', '.claude/skills'),
        config=PathSpec('CLAUDE.md', '.claude/CLAUDE.md', F.DIRECT_COPY, W.SINGLE_FILE),
        rules=PathSpec('.claude/rules', '.claude/rules', F.DIRECT_COPY),
    ),
    Provider.OPENCODE: ProviderSpec(
        name=Provider.OPENCODE,
        display_name='OpenCode',
        detect_path='.config/opencode',
        agents=PathSpec('.opencode/agents', '.config/opencode/agents', F.DIRECT_COPY),
        commands=PathSpec('.opencode/commands', '.config/opencode/commands', F.DIRECT_COPY),
        skills=_skills('.opencode/skill', '.config/opencode/skill'),
        config=PathSpec('AGENTS.md', '.config/opencode/AGENTS.md', F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.opencode/rules', '.config/opencode/rules', F.MD_STRIP),
    ),
    Provider.GITHUB_COPILOT: ProviderSpec(
        name=Provider.GITHUB_COPILOT,
        display_name='GitHub Copilot',
        detect_path='.copilot',
        agents=PathSpec('.github/agents', None, F.FM_TO_FM, file_extension='.agent.md'),
        skills=_skills('.github/skills', '.copilot/skills'),
        config=PathSpec('.github/copilot-instructions.md', None, F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.github/instructions', None, F.MD_STRIP, file_extension='.instructions.md'),
    ),
    Provider.CODEX: ProviderSpec(
        name=Provider.CODEX,
        display_name='Codex',
        detect_path='.codex',
        agents=PathSpec('AGENTS.md', '.codex/AGENTS.md', F.FM_STRIP, W.MERGE_SINGLE),
        commands=PathSpec(None, '.codex/prompts', F.DIRECT_COPY),
        skills=_skills('.codex/skills', '.codex/skills'),
        config=PathSpec('AGENTS.md', '.codex/AGENTS.md', F.MD_STRIP, W.MERGE_SINGLE),
        rules=PathSpec('.codex/prompts/rules.md', '.codex/prompts/rules.md', F.MD_STRIP, W.MERGE_SINGLE),
    ),
    Provider.CURSOR: ProviderSpec(
        name=Provider.CURSOR,
        display_name='Cursor',
        detect_path='.cursor',
        agents=PathSpec('.cursor/rules', '.cursor/rules', F.FM_TO_FM, file_extension='.mdc'),
        skills=_skills('.cursor/skills', '.cursor/skills'),
        config=PathSpec('.cursor/rules/project-config.mdc', '.cursor/rules/project-config.mdc',
                        F.MD_TO_MDC, W.SINGLE_FILE, '.mdc'),
        rules=PathSpec('.cursor/rules', '.cursor/rules', F.MD_TO_MDC, file_extension='.mdc'),
    ),
    Provider.ROO: ProviderSpec(
        name=Provider.ROO,
        display_name='Roo Code',
        detect_path='.roo',
        agents=PathSpec('.roomodes', '.roo/custom_modes.yaml', F.FM_TO_YAML, W.YAML_MERGE, '.yaml'),
        skills=_skills('.roo/skills', '.roo/skills'),
        config=PathSpec('.roo/rules/project-config.md', '.roo/rules/project-config.md',
                        F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.roo/rules', '.roo/rules', F.MD_STRIP),
    ),
    Provider.KILO: ProviderSpec(
        name=Provider.KILO,
        display_name='Kilo Code',
        detect_path='.kilocode',
        agents=PathSpec('.kilocodemodes', '.kilocode/custom_modes.yaml', F.FM_TO_YAML, W.YAML_MERGE, '.yaml'),
        skills=_skills('.kilocode/skills', '.kilocode/skills'),
        config=PathSpec('.kilocode/rules/project-config.md', '.kilocode/rules/project-config.md',
                        F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.kilocode/rules', '.kilocode/rules', F.MD_STRIP),
    ),
    Provider.WINDSURF: ProviderSpec(
        name=Provider.WINDSURF,
        display_name='Windsurf',
        detect_path='.codeium/windsurf',
        agents=PathSpec('.windsurf/rules', '.codeium/windsurf/rules', F.FM_STRIP),
        skills=_skills('.windsurf/skills', '.codeium/windsurf/skills'),
        config=PathSpec('.windsurf/rules/project-config.md', '.codeium/windsurf/memories/global_rules.md',
                        F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.windsurf/rules', '.codeium/windsurf/rules', F.MD_STRIP),
    ),
    Provider.GOOSE: ProviderSpec(
        name=Provider.GOOSE,
        display_name='Goose',
        detect_path='.config/goose',
        agents=PathSpec('AGENTS.md', None, F.FM_STRIP, W.MERGE_SINGLE),
        skills=_skills('.goose/skills', '.config/goose/skills'),
        config=PathSpec('.goosehints', '.config/goose/.goosehints', F.MD_STRIP, W.SINGLE_FILE, ''),
    ),
    Provider.GEMINI_CLI: ProviderSpec(
        name=Provider.GEMINI_CLI,
        display_name='Gemini CLI',
        detect_path='.gemini',
        agents=PathSpec('AGENTS.md', '.gemini/GEMINI.md', F.FM_STRIP, W.MERGE_SINGLE),
        commands=PathSpec('.gemini/commands', '.gemini/commands', F.MD_TO_TOML, file_extension='.toml'),
        skills=_skills('.gemini/skills', '.gemini/skills'),
        config=PathSpec('GEMINI.md', '.gemini/GEMINI.md', F.MD_STRIP, W.MERGE_SINGLE),
    ),
    Provider.AMP: ProviderSpec(
        name=Provider.AMP,
        display_name='Amp',
        detect_path='.config/amp',
        agents=PathSpec('AGENTS.md', '.config/AGENTS.md', F.FM_STRIP, W.MERGE_SINGLE),
        skills=_skills('.agents/skills', '.config/agents/skills'),
        config=PathSpec('AGENTS.md', '.config/AGENTS.md', F.MD_STRIP, W.MERGE_SINGLE),
    ),
    Provider.ANTIGRAVITY: ProviderSpec(
        name=Provider.ANTIGRAVITY,
        display_name='Antigravity',
        detect_path='.gemini/antigravity',
        agents=PathSpec('.agent/rules', '.gemini/antigravity', F.FM_STRIP),
        skills=_skills('.agent/skills', '.gemini/antigravity/skills'),
        config=PathSpec('.agent/rules/project-config.md', None, F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.agent/rules', None, F.MD_STRIP),
    ),
    Provider.CLINE: ProviderSpec(
        name=Provider.CLINE,
        display_name='Cline',
        detect_path='.cline',
        agents=PathSpec('.cline/custom_modes.json', None, F.FM_TO_JSON, W.JSON_MERGE, '.json'),
        skills=_skills('.cline/skills', '.cline/skills'),
        config=PathSpec('.clinerules/project-config.md', None, F.MD_STRIP, W.SINGLE_FILE),
        rules=PathSpec('.clinerules', None, F.MD_STRIP),
    ),
    Provider.OPENHANDS: ProviderSpec(
        name=Provider.OPENHANDS,
        display_name='OpenHands',
        detect_path='.openhands',
        agents=PathSpec('.openhands/skills', '.openhands/skills', F.SKILL_MD),
        skills=_skills('.openhands/skills', '.openhands/skills'),
        config=PathSpec('.openhands/microagents/repo.md', None, F.MD_STRIP, W.SINGLE_FILE),
    ),
}


def all_providers() -> List[Provider]:
    """Get every provider in catalog order."""
    return list(Provider)


def parse_provider(name: str) -> Provider:
    """Resolve a provider id, raising InvalidProviderError for unknown names."""
    try:
        return Provider(name.strip().lower())
    except ValueError:
        valid = ', '.join(p.value for p in Provider)
        raise InvalidProviderError(f"Unknown provider '{name}'. Valid providers: {valid}") from None


def get_provider_spec(provider: str) -> ProviderSpec:
    """Get the catalog entry for a provider id."""
    return PROVIDERS[parse_provider(provider)]


def providers_supporting(portable_type: PortableType) -> List[Provider]:
    """Get providers that can install a portable type in at least one scope."""
    return [p for p in Provider if PROVIDERS[p].path_spec(portable_type) is not None]


def get_base_path(provider: str, portable_type: PortableType, is_global: bool,
                  home: Optional[Path] = None, project_dir: Optional[Path] = None) -> Optional[str]:
    """Get the directory (or merge file) a provider installs a type into.

    Global paths are anchored at home. Project paths are anchored at project_dir
    when given, otherwise returned relative.
    """
    path_spec = get_provider_spec(provider).path_spec(portable_type)
    if path_spec is None:
        return None
    if is_global:
        if path_spec.global_path is None:
            return None
        return str(Path(home or Path.home()) / path_spec.global_path)
    if path_spec.project_path is None:
        return None
    if project_dir is not None:
        return str(Path(project_dir) / path_spec.project_path)
    return path_spec.project_path


def get_install_path(item: str, provider: str, portable_type: PortableType, is_global: bool,
                     home: Optional[Path] = None, project_dir: Optional[Path] = None) -> Optional[str]:
    """Get the install path for an item on a specific provider.

    Args:
        item: Item name; nested commands use '/' separators
        provider: Provider id
        portable_type: Kind of item
        is_global: Install user-wide instead of into the project
        home: Home directory override for global paths
        project_dir: Project root for project-scoped paths

    Returns:
        Target path (a directory for skills), or None when the provider does not
        support this type/scope
    """
    base_path = get_base_path(provider, portable_type, is_global, home, project_dir)
    if base_path is None:
        return None

    path_spec = get_provider_spec(provider).path_spec(portable_type)
    if path_spec.is_merge_target or path_spec.write_strategy == WriteStrategy.SINGLE_FILE:
        return base_path

    if portable_type == PortableType.SKILL:
        return os.path.join(base_path, item)

    return os.path.join(base_path, f"{item}{path_spec.file_extension}")


def detect_installed_providers(home: Optional[Path] = None) -> List[Provider]:
    """Detect which providers have a marker directory under home."""
    home_path = Path(home or Path.home())
    return [p for p in Provider if (home_path / PROVIDERS[p].detect_path).exists()]
