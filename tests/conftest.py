"""Pytest configuration and fixtures for Kit Porter tests."""

import tempfile
from pathlib import Path
from typing import Callable, Dict, Generator, Optional

import pytest

from kit_porter.config import PorterConfig
from kit_porter.types import (
    ManifestDirectives,
    PortableType,
    ProviderConfig,
    ReconcileInput,
    Registry,
    RegistryEntry,
    SourceItemState,
    TargetFileState,
)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for testing."""
    with tempfile.TemporaryDirectory() as tmp_dir:
        yield Path(tmp_dir)


@pytest.fixture
def config(temp_dir: Path) -> PorterConfig:
    """Create a test configuration rooted in a temp directory."""
    return PorterConfig(temp_dir / 'porter-home')


@pytest.fixture
def make_source() -> Callable[..., SourceItemState]:
    """Factory for source items with one converted checksum per provider."""

    def _make(item: str = 'reviewer', portable_type: PortableType = PortableType.AGENT,
              checksums: Optional[Dict[str, str]] = None) -> SourceItemState:
        if checksums is None:
            checksums = {'claude-code': 'src-1'}
        return SourceItemState(
            item=item,
            type=portable_type,
            source_checksum='raw-' + item,
            converted_checksums=checksums,
        )

    return _make


@pytest.fixture
def make_entry() -> Callable[..., RegistryEntry]:
    """Factory for registry rows installed by the kit."""

    def _make(item: str = 'reviewer', portable_type: PortableType = PortableType.AGENT,
              provider: str = 'claude-code', is_global: bool = False,
              path: Optional[str] = None, source_checksum: str = 'src-1',
              target_checksum: str = 'tgt-1', source_path: Optional[str] = None,
              install_source: str = 'kit') -> RegistryEntry:
        return RegistryEntry(
            item=item,
            type=portable_type,
            provider=provider,
            is_global=is_global,
            path=path or f'/work/.claude/agents/{item}.md',
            source_path=source_path if source_path is not None else f'agents/{item}.md',
            source_checksum=source_checksum,
            target_checksum=target_checksum,
            install_source=install_source,
        )

    return _make


@pytest.fixture
def make_input() -> Callable[..., ReconcileInput]:
    """Factory for reconcile inputs; targets may be given as a list or a mapping."""

    def _make(sources=(), entries=(), targets=(), providers=None,
              manifest: Optional[ManifestDirectives] = None, applied_version: Optional[str] = None,
              cli_version: Optional[str] = None, force: bool = False) -> ReconcileInput:
        if providers is None:
            providers = [ProviderConfig('claude-code', False)]
        if isinstance(targets, dict):
            target_states = targets
        else:
            target_states = {state.path: state for state in targets}
        return ReconcileInput(
            source_items=tuple(sources),
            registry=Registry(installations=tuple(entries), applied_manifest_version=applied_version),
            target_states=target_states,
            provider_configs=tuple(providers),
            manifest=manifest,
            cli_version=cli_version,
            force=force,
        )

    return _make


def target(path: str, checksum: Optional[str] = 'tgt-1', exists: bool = True) -> TargetFileState:
    """Shorthand for an observed target state."""
    return TargetFileState(path=path, exists=exists, current_checksum=checksum if exists else None)


@pytest.fixture
def make_target() -> Callable[..., TargetFileState]:
    return target


@pytest.fixture
def kit_dir(temp_dir: Path) -> Path:
    """Create a small kit with one item of every type."""
    kit = temp_dir / 'kit'
    (kit / 'agents').mkdir(parents=True)
    (kit / 'agents' / 'reviewer.md').write_text("""---
name: reviewer
description: Reviews code changes
model: sonnet
color: blue
---

# Reviewer

Read the diff and comment on risky changes.
""")

    (kit / 'commands' / 'git').mkdir(parents=True)
    (kit / 'commands' / 'plan.md').write_text("""---
description: Plan a feature
---

Write a plan for $ARGUMENTS.
""")
    (kit / 'commands' / 'git' / 'commit.md').write_text("Write a commit message.\n")

    (kit / 'skills' / 'testing').mkdir(parents=True)
    (kit / 'skills' / 'testing' / 'SKILL.md').write_text("""---
name: testing
description: Write tests
---

Use pytest.
""")
    (kit / 'skills' / 'empty').mkdir()

    (kit / 'rules').mkdir()
    (kit / 'rules' / 'style.md').write_text("Follow .claude/rules/naming.md and CLAUDE.md.\n")

    (kit / 'CLAUDE.md').write_text("# Project\n\nSee .claude/agents/ for agents.\n")
    return kit
