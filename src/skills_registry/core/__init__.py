"""
Skills Registry Core

Capability descriptors, the registry that aggregates them, and the
permission gate over dangerous tools.
"""

from .capability import (
    CapabilityDescriptor,
    Provenance,
    McpServerTools,
    ResolvedGroup,
    GroupSummary,
)
from .sources import (
    ToolProvider,
    McpServerManager,
    SourceResult,
    LoadReport,
    classify_offer,
)
from .permission import (
    PermissionGate,
    PermissionDecision,
    permission_rank,
    has_permission,
)
from .capability_registry import CapabilityRegistry

__all__ = [
    # Descriptors
    "CapabilityDescriptor",
    "Provenance",
    "McpServerTools",
    "ResolvedGroup",
    "GroupSummary",
    # Sources
    "ToolProvider",
    "McpServerManager",
    "SourceResult",
    "LoadReport",
    "classify_offer",
    # Permissions
    "PermissionGate",
    "PermissionDecision",
    "permission_rank",
    "has_permission",
    # Registry
    "CapabilityRegistry",
]
