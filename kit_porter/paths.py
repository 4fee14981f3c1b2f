"""
Portable path handling.

Registry paths, target state keys and manifest fragments may come from
different platforms. Everything here compares them as '/'-separated segment
lists so that '.codex/skills' never matches '.codex/skills-old'.
"""

import posixpath
import re
from typing import List

_DRIVE_LETTER = re.compile(r'^[a-zA-Z]:[\\/]')


def normalize_portable_path(value: str) -> str:
    """Normalize a path to POSIX form without redundant segments.

    Backslashes become slashes, '.' and duplicate separators collapse, and a
    leading './' is dropped. The current directory normalizes to ''.
    """
    as_posix = value.replace('\\', '/')
    if not as_posix:
        return ''
    normalized = posixpath.normpath(as_posix)
    # normpath keeps a leading '//' intact
    if normalized.startswith('//'):
        normalized = '/' + normalized.lstrip('/')
    if normalized == '.':
        return ''
    return re.sub(r'^\./+', '', normalized)


def is_absolute_like(value: str) -> bool:
    """True for POSIX absolute, Windows drive-letter and UNC paths."""
    return value.startswith('/') or bool(_DRIVE_LETTER.match(value)) or value.startswith('\\\\')


def has_dot_dot_segment(value: str) -> bool:
    return any(segment == '..' for segment in value.replace('\\', '/').split('/'))


def is_safe_relative_path(value: str) -> bool:
    """Relative, non-empty, and free of parent-directory segments."""
    return bool(value) and not has_dot_dot_segment(value) and not is_absolute_like(value)


def to_path_segments(value: str) -> List[str]:
    normalized = normalize_portable_path(value).strip('/')
    if not normalized:
        return []
    return [segment for segment in normalized.split('/') if segment]


def path_contains_segments(target_path: str, fragment_path: str) -> bool:
    """Check whether fragment's segments appear contiguously inside target.

    Args:
        target_path: Full installed path
        fragment_path: Directory fragment such as '.codex/skills/'

    Returns:
        True if every fragment segment matches a consecutive run of target segments
    """
    target_segments = to_path_segments(target_path)
    fragment_segments = to_path_segments(fragment_path)
    if not fragment_segments or len(fragment_segments) > len(target_segments):
        return False

    width = len(fragment_segments)
    for start in range(len(target_segments) - width + 1):
        if target_segments[start:start + width] == fragment_segments:
            return True
    return False
