"""
Capability Descriptor

One shape for every tool the registry aggregates, whatever its source.
Provenance is resolved once at ingestion; nothing downstream inspects
source-specific flags.
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_CATEGORY = "general"


class Provenance(str, Enum):
    """Which source contributed a capability"""
    BUILTIN = "builtin"    # Native tools
    CUSTOM = "custom"      # User script tools
    MCP = "mcp"            # Remote tool server


def _empty_schema() -> Dict[str, Any]:
    return {"type": "object", "properties": {}}


@dataclass(frozen=True)
class CapabilityDescriptor:
    """
    A callable tool as seen by the registry.

    Descriptors are read-only snapshots; the registry rebuilds them on every
    load instead of patching them.
    """
    name: str
    description: str
    provenance: Provenance
    category: str = DEFAULT_CATEGORY
    _schema: Dict[str, Any] = field(default_factory=_empty_schema, repr=False)
    server_name: Optional[str] = None    # Only for MCP provenance

    @classmethod
    def from_offer(
        cls,
        offer: Dict[str, Any],
        provenance: Provenance,
        server_name: Optional[str] = None,
    ) -> "CapabilityDescriptor":
        """Build from a source's raw tool mapping"""
        if provenance == Provenance.MCP:
            server = server_name or offer.get("serverName")
        else:
            server = None

        schema = offer.get("inputSchema")
        if not isinstance(schema, dict):
            schema = _empty_schema()

        category = offer.get("category") or server or DEFAULT_CATEGORY

        return cls(
            name=str(offer["name"]),
            description=str(offer.get("description") or ""),
            provenance=provenance,
            category=str(category),
            _schema=copy.deepcopy(schema),
            server_name=server,
        )

    @property
    def input_schema(self) -> Dict[str, Any]:
        """Copy of the JSON schema; the descriptor keeps its own"""
        return copy.deepcopy(self._schema)

    @property
    def is_builtin(self) -> bool:
        return self.provenance == Provenance.BUILTIN

    @property
    def is_custom(self) -> bool:
        return self.provenance == Provenance.CUSTOM

    @property
    def is_mcp(self) -> bool:
        return self.provenance == Provenance.MCP

    def to_dict(self) -> Dict[str, Any]:
        """Serialize for UI / dispatch consumers"""
        return {
            "name": self.name,
            "description": self.description,
            "inputSchema": self.input_schema,
            "category": self.category,
            "source": self.provenance.value,
            "serverName": self.server_name,
        }


@dataclass(frozen=True)
class McpServerTools:
    """What one connected remote server contributed on the last load"""
    name: str
    status: str
    type: Optional[str] = None
    tools: Tuple[str, ...] = ()

    @property
    def tool_count(self) -> int:
        return len(self.tools)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "status": self.status,
            "type": self.type,
            "tools": list(self.tools),
            "toolCount": self.tool_count,
        }


@dataclass
class ResolvedGroup:
    """A configured group joined against the live capability table"""
    index: Optional[int]
    name: Optional[str]
    description: str
    tools: List[CapabilityDescriptor]
    required_permission: Optional[str] = None
    enabled: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "description": self.description,
            "tools": [t.to_dict() for t in self.tools],
            "requiredPermission": self.required_permission,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class GroupSummary:
    """Lightweight group listing for a dispatch heuristic (no schemas)"""
    index: Optional[int]
    name: Optional[str]
    description: str
    tool_count: int
    required_permission: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "description": self.description,
            "toolCount": self.tool_count,
            "requiredPermission": self.required_permission,
        }
