"""
Kit Porter utility functions.

This module contains frontmatter parsing, timestamp helpers and terminal text
sanitizing shared across the package.
"""

import re
from datetime import datetime, timezone

import yaml

_CONTROL_CHARS = re.compile(r'\x1b\[[0-9;]*[A-Za-z]|[\x00-\x08\x0b-\x1f\x7f]')


def parse_frontmatter(content: str) -> tuple[dict, str]:
    """Parse YAML frontmatter from markdown content.

    Args:
        content: Markdown content that may contain frontmatter

    Returns:
        Tuple of (frontmatter_dict, body_content)
    """
    lines = content.split('\n')

    # Check if file starts with frontmatter delimiter
    if not lines or lines[0].strip() != '---':
        return {}, content

    frontmatter_lines = []
    body_start_idx = 0

    for i in range(1, len(lines)):
        if lines[i].strip() == '---':
            body_start_idx = i + 1
            break
        frontmatter_lines.append(lines[i])
    else:
        # No closing delimiter found
        return {}, content

    try:
        frontmatter = yaml.safe_load('\n'.join(frontmatter_lines)) or {}
    except yaml.YAMLError:
        frontmatter = {}
    if not isinstance(frontmatter, dict):
        frontmatter = {}

    # Get body content (skip leading blank lines)
    body_lines = lines[body_start_idx:]
    while body_lines and not body_lines[0].strip():
        body_lines.pop(0)

    return frontmatter, '\n'.join(body_lines)


def dump_frontmatter(frontmatter: dict, body: str) -> str:
    """Render frontmatter and body back into markdown."""
    if not frontmatter:
        return body
    yaml_str = yaml.safe_dump(frontmatter, default_flow_style=False, sort_keys=False, allow_unicode=True)
    return f"---\n{yaml_str}---\n\n{body}"


def utc_timestamp() -> str:
    """Current time as an ISO 8601 UTC string."""
    return datetime.now(timezone.utc).isoformat()


def sanitize_terminal_text(text: str) -> str:
    """Collapse text to one printable line (no escape sequences or newlines)."""
    without_controls = _CONTROL_CHARS.sub('', text.replace('\n', ' ').replace('\t', ' '))
    return ' '.join(without_controls.split())
