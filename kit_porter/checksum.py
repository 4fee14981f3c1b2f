"""
Checksum helpers for Kit Porter.

Digests are SHA-256 hex strings. ``UNKNOWN_CHECKSUM`` marks a digest that could
not be computed or was never recorded; it means "cannot verify", never
"verified different".
"""

import hashlib
from pathlib import Path
from typing import Optional

UNKNOWN_CHECKSUM = 'unknown'


def normalize_checksum(checksum: Optional[str]) -> str:
    """Map missing, blank, or 'unknown' (any case) checksums to UNKNOWN_CHECKSUM.

    Args:
        checksum: Raw checksum value, possibly None or padded with whitespace

    Returns:
        The trimmed checksum, or UNKNOWN_CHECKSUM
    """
    if not checksum:
        return UNKNOWN_CHECKSUM
    trimmed = checksum.strip()
    if not trimmed or trimmed.lower() == UNKNOWN_CHECKSUM:
        return UNKNOWN_CHECKSUM
    return trimmed


def is_unknown_checksum(checksum: Optional[str]) -> bool:
    return normalize_checksum(checksum) == UNKNOWN_CHECKSUM


def calculate_file_checksum(file_path: Path) -> str:
    """Calculate SHA256 checksum of a file."""
    sha256_hash = hashlib.sha256()
    with open(file_path, "rb") as f:
        for byte_block in iter(lambda: f.read(4096), b""):
            sha256_hash.update(byte_block)
    return sha256_hash.hexdigest()


def calculate_content_checksum(content: str) -> str:
    """Calculate SHA256 checksum of string content.

    Args:
        content: String content to checksum

    Returns:
        SHA256 hex digest of the content
    """
    return hashlib.sha256(content.encode('utf-8')).hexdigest()


def calculate_directory_checksum(dir_path: Path) -> str:
    """Calculate one SHA256 checksum over every file in a directory tree.

    Files are visited in order of their '/'-separated relative paths, and each
    contributes that path and its content digest, so adding, removing or
    renaming a file changes the result.
    """
    dir_path = Path(dir_path)
    files = sorted((p.relative_to(dir_path).as_posix(), p) for p in dir_path.rglob('*') if p.is_file())

    sha256_hash = hashlib.sha256()
    for relative, file_path in files:
        sha256_hash.update(f"{relative}\0{calculate_file_checksum(file_path)}\n".encode('utf-8'))
    return sha256_hash.hexdigest()
