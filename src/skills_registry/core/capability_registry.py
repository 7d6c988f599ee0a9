"""
Capability Registry

Aggregates tools from every enabled source into one name-indexed table:
- builtin: native tools from the tool provider
- custom: user script tools from the tool provider
- mcp: tools of connected remote servers

Every `load_all()` rebuilds the table and its indexes (category, remote
server) from scratch and swaps them in at the end. Sources are pulled in a
fixed order (builtin → custom → mcp); a later tool with an existing name
replaces the earlier one (logged and recorded in the load report).

Configured groups never remove anything from the table. They are resolved
on demand, dropping names that are not currently loaded.
"""

import logging
from typing import Any, Dict, Iterable, List, Optional, TypeVar

from ..config.schema import GroupConfig, Mode
from ..config.store import SkillsConfigStore
from .capability import (
    CapabilityDescriptor,
    GroupSummary,
    McpServerTools,
    Provenance,
    ResolvedGroup,
)
from .permission import Level, PermissionGate, tool_name_of
from .sources import (
    CONNECTED,
    RESERVED_SERVERS,
    LoadReport,
    McpServerManager,
    SourceResult,
    ToolProvider,
    classify_offer,
    resolve,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

ToolTable = Dict[str, CapabilityDescriptor]


class CapabilityRegistry:
    """
    Live catalogue of capabilities offered to the language model.

    Not reentrant: callers must not start a second `load_all()`/`reload()`
    while one is in flight.
    """

    def __init__(
        self,
        config: SkillsConfigStore,
        tool_provider: ToolProvider,
        server_manager: Optional[McpServerManager] = None,
    ):
        self.config = config
        self.tool_provider = tool_provider
        self.server_manager = server_manager
        self.permissions = PermissionGate(config)

        self._tools: ToolTable = {}
        self._categories: Dict[str, List[str]] = {}
        self._mcp_servers: Dict[str, McpServerTools] = {}
        self.last_report: Optional[LoadReport] = None
        self._initialized = False

    @property
    def initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> "CapabilityRegistry":
        """Initialize config and collaborators, then load once. Idempotent"""
        if self._initialized:
            return self

        await self.config.init()

        seen = set()
        for collaborator in (self.tool_provider, self.server_manager):
            if collaborator is None or id(collaborator) in seen:
                continue
            seen.add(id(collaborator))
            init = getattr(collaborator, "init", None)
            if callable(init):
                await resolve(init())

        await self.load_all()
        self._initialized = True

        logger.info(f"Capability registry initialized: {len(self._tools)} tools, mode={self.config.get_mode().value}")
        return self

    async def load_all(self) -> LoadReport:
        """Rebuild the capability table and indexes from all enabled sources"""
        report = LoadReport()
        tools: ToolTable = {}
        servers: Dict[str, McpServerTools] = {}

        mode = self.config.get_mode()

        if mode in (Mode.HYBRID, Mode.SKILLS_ONLY):
            if self.config.is_builtin_enabled():
                await self._load_local(Provenance.BUILTIN, tools, report)
            if self.config.is_custom_enabled():
                await self._load_local(Provenance.CUSTOM, tools, report)

        if mode in (Mode.HYBRID, Mode.MCP_ONLY):
            if self.config.is_mcp_enabled():
                await self._load_mcp(tools, servers, report)

        categories: Dict[str, List[str]] = {}
        for tool in tools.values():
            categories.setdefault(tool.category, []).append(tool.name)

        self._tools = tools
        self._categories = categories
        self._mcp_servers = servers

        report.tool_count = len(tools)
        self.last_report = report

        logger.debug(
            f"Loaded {len(tools)} tools: builtin={self.config.is_builtin_enabled()}, "
            f"custom={self.config.is_custom_enabled()}, mcp={self.config.is_mcp_enabled()}"
        )
        if not report.ok:
            logger.warning(f"Tool sources failed during load: {', '.join(report.failed_sources())}")
        return report

    async def reload(self) -> LoadReport:
        """Reload config, refresh builtin tools, rebuild the table"""
        await self.config.reload()

        try:
            await resolve(self.tool_provider.refresh_builtin_tools())
        except Exception as e:
            logger.error(f"Failed to refresh builtin tools: {e}")

        report = await self.load_all()
        logger.info(f"Capability registry reloaded: {len(self._tools)} tools")
        return report

    # =========================================================================
    # Source pulls
    # =========================================================================

    async def _load_local(self, provenance: Provenance, tools: ToolTable, report: LoadReport) -> None:
        """Pull builtin or custom offers from the tool provider"""
        result = report.result_for(provenance.value)
        disabled = set(self.config.get_disabled_tools())
        categories = set(self.config.get_enabled_categories()) if provenance == Provenance.BUILTIN else set()

        try:
            offers = await resolve(self.tool_provider.get_tools(apply_config=True))
            accepted: List[CapabilityDescriptor] = []

            for offer in offers or []:
                if classify_offer(offer) != provenance:
                    continue
                name = offer.get("name")
                if not name:
                    continue

                if name in disabled:
                    result.skipped.append(name)
                    continue
                # Uncategorised tools are not subject to the category allow-list
                category = offer.get("category")
                if categories and category and category not in categories:
                    result.skipped.append(name)
                    continue

                accepted.append(CapabilityDescriptor.from_offer(offer, provenance))
        except Exception as e:
            result.error = e
            logger.error(f"Failed to load {provenance.value} tools: {e}")
            return

        for descriptor in accepted:
            self._add_tool(descriptor, tools, report, result)

        logger.debug(f"Loaded {len(result.accepted)} {provenance.value} tools ({len(result.skipped)} filtered)")

    async def _load_mcp(
        self,
        tools: ToolTable,
        servers: Dict[str, McpServerTools],
        report: LoadReport,
    ) -> None:
        """Pull tools from each connected, allowed remote server"""
        result = report.result_for(Provenance.MCP.value)
        if self.server_manager is None:
            return

        allowed = set(self.config.get_enabled_mcp_servers())
        excluded = set(self.config.get_disabled_mcp_servers())
        disabled = set(self.config.get_disabled_tools())

        try:
            server_list = await resolve(self.server_manager.get_servers()) or []
        except Exception as e:
            result.error = e
            logger.error(f"Failed to list MCP servers: {e}")
            return

        for server in server_list:
            name = server.get("name")
            if not name or name in RESERVED_SERVERS:
                continue
            status = server.get("status")
            if status != CONNECTED:
                continue
            if name in excluded:
                continue
            if allowed and name not in allowed:
                continue

            server_result = report.result_for(f"{Provenance.MCP.value}:{name}")
            try:
                info = await resolve(self.server_manager.get_server(name))
                offers = (info or {}).get("tools") or []
                accepted: List[CapabilityDescriptor] = []

                for offer in offers:
                    tool_name = offer.get("name")
                    if not tool_name:
                        continue
                    if tool_name in disabled:
                        server_result.skipped.append(tool_name)
                        continue
                    accepted.append(CapabilityDescriptor.from_offer(offer, Provenance.MCP, server_name=name))
            except Exception as e:
                server_result.error = e
                logger.error(f"Failed to load tools from MCP server '{name}': {e}")
                continue

            for descriptor in accepted:
                self._add_tool(descriptor, tools, report, server_result)
            result.accepted.extend(server_result.accepted)
            result.skipped.extend(server_result.skipped)

            servers[name] = McpServerTools(
                name=name,
                status=status,
                type=server.get("type"),
                tools=tuple(server_result.accepted),
            )

        logger.debug(f"Loaded {len(servers)} MCP servers")

    def _add_tool(
        self,
        descriptor: CapabilityDescriptor,
        tools: ToolTable,
        report: LoadReport,
        result: SourceResult,
    ) -> None:
        previous = tools.pop(descriptor.name, None)
        if previous is not None:
            report.shadowed[descriptor.name] = (previous.provenance, descriptor.provenance)
            logger.warning(
                f"Tool '{descriptor.name}' from {descriptor.provenance.value} replaces "
                f"the {previous.provenance.value} tool of the same name"
            )
        tools[descriptor.name] = descriptor
        result.accepted.append(descriptor.name)

    # =========================================================================
    # Queries
    # =========================================================================

    def get_tools(self) -> List[CapabilityDescriptor]:
        return list(self._tools.values())

    def get_tool(self, name: str) -> Optional[CapabilityDescriptor]:
        return self._tools.get(name)

    def has_tool(self, name: str) -> bool:
        return name in self._tools

    def count(self) -> int:
        return len(self._tools)

    def get_tools_by_source(self) -> Dict[str, Any]:
        """{"builtin": [...], "custom": [...], "mcp": {server: [...]}}"""
        result: Dict[str, Any] = {"builtin": [], "custom": [], "mcp": {}}

        for tool in self._tools.values():
            if tool.provenance == Provenance.BUILTIN:
                result["builtin"].append(tool)
            elif tool.provenance == Provenance.CUSTOM:
                result["custom"].append(tool)
            else:
                result["mcp"].setdefault(tool.server_name or "unknown", []).append(tool)

        return result

    def get_tools_by_category(self, category: str) -> List[CapabilityDescriptor]:
        names = self._categories.get(category, [])
        return [self._tools[n] for n in names if n in self._tools]

    def get_categories(self) -> List[str]:
        return list(self._categories.keys())

    def get_category_stats(self) -> Dict[str, int]:
        return {category: len(names) for category, names in self._categories.items()}

    def get_mcp_server_tools(self) -> Dict[str, McpServerTools]:
        return dict(self._mcp_servers)

    # =========================================================================
    # Groups
    # =========================================================================

    def _resolve_names(self, names: Iterable[str]) -> List[CapabilityDescriptor]:
        return [self._tools[n] for n in names if n in self._tools]

    def _resolve_group(self, group: GroupConfig) -> ResolvedGroup:
        return ResolvedGroup(
            index=group.index,
            name=group.name,
            description=group.description,
            tools=self._resolve_names(group.tools),
            required_permission=group.required_permission,
            enabled=group.enabled,
        )

    def get_tools_by_group(self, group_name: str) -> List[CapabilityDescriptor]:
        """Loaded tools of a group; unknown group → []"""
        group = self.config.get_group_by_name(group_name)
        if group is None:
            return []
        return self._resolve_names(group.tools)

    def get_enabled_groups_with_tools(self) -> List[ResolvedGroup]:
        return [self._resolve_group(g) for g in self.config.get_enabled_groups()]

    def get_group_summary(self) -> List[GroupSummary]:
        """Enabled groups with tool counts only, for a dispatch heuristic"""
        return [
            GroupSummary(
                index=g.index,
                name=g.name,
                description=g.description,
                tool_count=sum(1 for n in g.tools if n in self._tools),
                required_permission=g.required_permission,
            )
            for g in self.config.get_enabled_groups()
        ]

    def get_tools_by_group_indexes(self, indexes: Iterable[int]) -> List[CapabilityDescriptor]:
        """
        Union of the tools of several groups.

        Keeps the order of `indexes`, then the order within each group; the
        first occurrence of a name wins.
        """
        tools: List[CapabilityDescriptor] = []
        seen = set()

        for index in indexes:
            group = self.config.get_group_by_index(index)
            if group is None:
                continue
            for name in group.tools:
                if name in seen:
                    continue
                seen.add(name)
                tool = self._tools.get(name)
                if tool is not None:
                    tools.append(tool)

        return tools

    def filter_by_groups(self, tools: List[T], indexes: Optional[Iterable[int]]) -> List[T]:
        """
        Keep only tools named by the given groups.

        No indexes means no restriction: the input comes back as-is.
        """
        indexes = list(indexes or [])
        if not indexes:
            return list(tools)

        allowed = set()
        for index in indexes:
            group = self.config.get_group_by_index(index)
            if group is not None:
                allowed.update(group.tools)

        return [t for t in tools if tool_name_of(t) in allowed]

    # =========================================================================
    # Security
    # =========================================================================

    def is_dangerous_tool(self, tool_name: str) -> bool:
        return self.permissions.is_dangerous_tool(tool_name)

    def can_execute_dangerous(self, caller_level: Level) -> bool:
        return self.permissions.can_execute_dangerous(caller_level)

    def check_group_permission(self, group_name: str, caller_level: Level) -> bool:
        return self.permissions.check_group_permission(group_name, caller_level)

    def filter_by_permission(self, tools: List[T], caller_level: Level) -> List[T]:
        return self.permissions.filter_by_permission(tools, caller_level)

    # =========================================================================
    # Debug utilities
    # =========================================================================

    def dump_registry(self) -> str:
        """Dump registry contents for debugging"""
        lines = [
            "Capability Registry Summary",
            "===========================",
            f"Mode: {self.config.get_mode().value}",
            f"Total tools: {self.count()}",
            "",
            "By Category:",
        ]

        for category, count in sorted(self.get_category_stats().items()):
            lines.append(f"  {category}: {count}")

        if self._mcp_servers:
            lines.append("")
            lines.append("MCP Servers:")
            for server in self._mcp_servers.values():
                lines.append(f"  {server.name} ({server.status}): {server.tool_count} tools")

        lines.append("")
        lines.append("All Tools:")

        for tool in sorted(self._tools.values(), key=lambda t: t.name):
            danger = " [dangerous]" if self.is_dangerous_tool(tool.name) else ""
            origin = tool.server_name if tool.is_mcp else tool.provenance.value
            lines.append(f"  {tool.name} ({origin}/{tool.category}){danger}")

        return "\n".join(lines)
