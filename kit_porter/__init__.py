"""
Kit Porter - Reconcile kits of AI-assistant content across providers.

This package decides, for every kit item and every provider it is installed
for, whether to install, update, skip, flag a conflict or delete, and carries
out the resulting plan.
"""

__version__ = "1.0.0"

# Import exceptions
from .exceptions import (
    FileOperationError,
    InvalidProviderError,
    LockHeldError,
    ManifestError,
    PorterError,
    RegistryError,
    UnresolvedConflictError,
    UnsupportedResolutionError,
)

# Import the engine
from .reconciler import reconcile

# Import data types
from .types import (
    ActionType,
    ManifestDirectives,
    PortableType,
    ProviderConfig,
    ReconcileAction,
    ReconcileInput,
    ReconcilePlan,
    Registry,
    RegistryEntry,
    SourceItemState,
    TargetFileState,
)

__all__ = [
    # Version
    "__version__",
    # Exceptions
    "PorterError",
    "InvalidProviderError",
    "RegistryError",
    "ManifestError",
    "FileOperationError",
    "LockHeldError",
    "UnresolvedConflictError",
    "UnsupportedResolutionError",
    # Engine
    "reconcile",
    # Types
    "ActionType",
    "PortableType",
    "ProviderConfig",
    "SourceItemState",
    "RegistryEntry",
    "Registry",
    "TargetFileState",
    "ManifestDirectives",
    "ReconcileAction",
    "ReconcilePlan",
    "ReconcileInput",
]
