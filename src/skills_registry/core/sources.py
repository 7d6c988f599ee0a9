"""
Capability Sources

Interfaces of the collaborators the registry pulls tools from, and the
per-load report of what each source contributed.

Collaborators:
- ToolProvider: builtin and custom (script) tools, flagged per offer
- McpServerManager: connected remote tool servers and their tool lists

Both may answer synchronously or with an awaitable.
"""

import inspect
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from .capability import Provenance

# Server identifiers the tool provider uses for its own offers
BUILTIN_SERVER = "builtin"
CUSTOM_SERVER = "custom-tools"
RESERVED_SERVERS = (BUILTIN_SERVER, CUSTOM_SERVER)

CONNECTED = "connected"


@runtime_checkable
class ToolProvider(Protocol):
    """Local provider of builtin and custom tool offers"""

    def get_tools(self, apply_config: bool = True) -> Any:
        """List of offers: {name, description, inputSchema, category?, isBuiltin?, isJsTool?, isCustom?, serverName?}"""
        ...

    def refresh_builtin_tools(self) -> Any:
        ...


@runtime_checkable
class McpServerManager(Protocol):
    """Remote tool-server connections"""

    def get_servers(self) -> Any:
        """List of {name, status, type}"""
        ...

    def get_server(self, name: str) -> Any:
        """{tools: [{name, description, inputSchema}]} or None"""
        ...


async def resolve(value: Any) -> Any:
    """Await `value` if the collaborator returned an awaitable"""
    if inspect.isawaitable(value):
        return await value
    return value


def classify_offer(offer: Dict[str, Any]) -> Optional[Provenance]:
    """
    Decide whether a local offer is a builtin or a custom tool.

    Returns None for offers that are neither (e.g. remote tools the provider
    also lists), which the builtin and custom pulls ignore.
    """
    server = offer.get("serverName")
    if offer.get("isBuiltin") or server == BUILTIN_SERVER:
        return Provenance.BUILTIN
    if offer.get("isJsTool") or offer.get("isCustom") or server == CUSTOM_SERVER:
        return Provenance.CUSTOM
    return None


@dataclass
class SourceResult:
    """Outcome of pulling one source (or one remote server) during a load"""
    source: str
    accepted: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "accepted": list(self.accepted),
            "skipped": list(self.skipped),
            "error": str(self.error) if self.error is not None else None,
        }


@dataclass
class LoadReport:
    """What a single `load_all()` pass did, source by source"""
    results: Dict[str, SourceResult] = field(default_factory=dict)
    shadowed: Dict[str, Tuple[Provenance, Provenance]] = field(default_factory=dict)
    tool_count: int = 0

    def result_for(self, source: str) -> SourceResult:
        if source not in self.results:
            self.results[source] = SourceResult(source=source)
        return self.results[source]

    @property
    def ok(self) -> bool:
        return all(r.ok for r in self.results.values())

    def failed_sources(self) -> List[str]:
        return [name for name, r in self.results.items() if not r.ok]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "toolCount": self.tool_count,
            "results": {name: r.to_dict() for name, r in self.results.items()},
            "shadowed": {
                name: {"previous": prev.value, "current": cur.value}
                for name, (prev, cur) in self.shadowed.items()
            },
        }
