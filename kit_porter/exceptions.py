"""
Kit Porter exceptions.

This module contains all custom exception classes used throughout Kit Porter.
The reconciler itself never raises for ordinary drift; these belong to the
collaborators around it.
"""

from typing import List, Optional


class PorterError(Exception):
    """Base exception for Kit Porter errors."""
    pass


class InvalidProviderError(PorterError):
    """Raised when an unknown provider is specified."""
    pass


class RegistryError(PorterError):
    """Raised when the installation registry cannot be read or has an unsupported schema."""
    pass


class ManifestError(PorterError):
    """Raised when a portable manifest fails validation."""
    pass


class FileOperationError(PorterError):
    """Raised when file operations fail."""
    pass


class LockHeldError(PorterError):
    """Raised when another process already holds the execution lock."""

    def __init__(self, scope: str, lock_path: str, holder_pid: Optional[int] = None):
        self.scope = scope
        self.lock_path = lock_path
        self.holder_pid = holder_pid
        holder = f" by pid {holder_pid}" if holder_pid else ""
        super().__init__(
            f"Another kit-porter run is already in progress for '{scope}' "
            f"(lock {lock_path} held{holder})"
        )


class UnresolvedConflictError(PorterError):
    """Raised when a plan with conflicts is executed without a resolution for each one."""

    def __init__(self, conflicts: List[str]):
        self.conflicts = conflicts
        super().__init__(f"Unresolved conflicts: {', '.join(conflicts)}")


class UnsupportedResolutionError(PorterError):
    """Raised for resolution kinds that are accepted as input but not implemented."""
    pass
