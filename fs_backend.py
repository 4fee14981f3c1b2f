#!/usr/bin/env python3
"""
Filesystem backend abstraction layer.

Provides the interface Kit Porter uses for every filesystem interaction outside
the reconciler: probing installed targets, and writing or removing files and
skill directories when a plan is executed.
"""

import os
import shutil
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from kit_porter.checksum import calculate_directory_checksum, calculate_file_checksum


class FileSystemBackend(ABC):
    """Abstract base class for file system operations."""

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if path exists."""
        pass

    @abstractmethod
    def write_text(self, path: str, content: str):
        """Write a UTF-8 text file, creating parent directories."""
        pass

    @abstractmethod
    def copy_tree(self, source: str, dest: str):
        """Replace dest with a recursive copy of the source directory."""
        pass

    @abstractmethod
    def remove_file(self, path: str):
        """Remove a file."""
        pass

    @abstractmethod
    def remove_tree(self, path: str):
        """Remove a directory and everything below it."""
        pass

    @abstractmethod
    def checksum(self, path: str) -> str:
        """Calculate SHA256 checksum of a file, or of a directory tree."""
        pass


class LocalBackend(FileSystemBackend):
    """Backend for local file system operations."""

    def __init__(self, base_path: Optional[str] = None):
        """Initialize local backend.

        Args:
            base_path: Optional base path for relative operations
        """
        self.base_path = Path(base_path).resolve() if base_path else None

    def _resolve_path(self, path: str) -> Path:
        """Resolve path to absolute Path object."""
        p = Path(path).expanduser()
        if self.base_path and not p.is_absolute():
            return self.base_path / p
        return p if p.is_absolute() else Path.cwd() / p

    def exists(self, path: str) -> bool:
        """Check if path exists."""
        return self._resolve_path(path).exists()

    def write_text(self, path: str, content: str):
        """Write content atomically through a temp file in the destination directory."""
        dest_path = self._resolve_path(path)
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        fd, temp_name = tempfile.mkstemp(prefix=f".{dest_path.name}.", dir=dest_path.parent)
        try:
            with os.fdopen(fd, 'w', encoding='utf-8', newline='') as f:
                f.write(content)
            os.replace(temp_name, dest_path)
        except OSError:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    def copy_tree(self, source: str, dest: str):
        """Copy into a temp sibling first so a failed copy leaves dest untouched."""
        src_path = self._resolve_path(source)
        dest_path = self._resolve_path(dest)
        if not src_path.is_dir():
            raise NotADirectoryError(f"Source directory not found: {src_path}")
        dest_path.parent.mkdir(parents=True, exist_ok=True)

        staging = Path(tempfile.mkdtemp(prefix=f".{dest_path.name}.", dir=dest_path.parent))
        try:
            shutil.copytree(src_path, staging / dest_path.name)
            if dest_path.is_dir() and not dest_path.is_symlink():
                shutil.rmtree(dest_path)
            elif dest_path.exists() or dest_path.is_symlink():
                dest_path.unlink()
            os.replace(staging / dest_path.name, dest_path)
        finally:
            shutil.rmtree(staging, ignore_errors=True)

    def remove_file(self, path: str):
        """Remove a file."""
        p = self._resolve_path(path)
        if p.exists() or p.is_symlink():
            p.unlink()

    def remove_tree(self, path: str):
        """Remove a directory tree; a missing directory is not an error."""
        p = self._resolve_path(path)
        if p.is_dir() and not p.is_symlink():
            shutil.rmtree(p)
        elif p.exists() or p.is_symlink():
            p.unlink()

    def checksum(self, path: str) -> str:
        """Calculate SHA256 checksum of a file, or of a directory tree."""
        p = self._resolve_path(path)
        if p.is_dir():
            return calculate_directory_checksum(p)
        return calculate_file_checksum(p)
