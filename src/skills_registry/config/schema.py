"""
Skills Configuration Schema

Defines the structure of the skills.yaml document and its typed, read-only view.

The persisted document looks like:
```yaml
skills:
  enabled: true
  mode: hybrid            # hybrid | skills-only | mcp-only
  sources:
    builtin: {enabled: true, categories: [], disabledTools: []}
    custom:  {enabled: true, path: data/tools, autoReload: true}
    mcp:     {enabled: true, servers: [], disabledServers: []}
  groups:
    - index: 0
      name: admin
      description: Group management
      tools: [kick_member, mute_member]
      requiredPermission: admin
      enabled: true
  execution: {timeout: 30000, maxParallel: 5, ...}
  dispatch: {enabled: true, useSummary: true, maxGroups: 3}
  security:
    dangerousTools: [kick_member]
    allowDangerous: false
    dangerousRequiredPermission: admin
```
"""

import copy
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple


class Mode(str, Enum):
    """Which capability sources are eligible for aggregation"""
    HYBRID = "hybrid"              # All sources
    SKILLS_ONLY = "skills-only"    # Builtin + custom, no remote servers
    MCP_ONLY = "mcp-only"          # Remote servers only


class PermissionLevel(str, Enum):
    """Caller permission levels, lowest first"""
    MEMBER = "member"
    ADMIN = "admin"
    OWNER = "owner"


VALID_MODES = tuple(m.value for m in Mode)

MIN_TIMEOUT_MS = 1000
MIN_PARALLEL = 1
MAX_PARALLEL = 20

_DEFAULT_DOCUMENT: Dict[str, Any] = {
    "skills": {
        "enabled": True,
        "mode": Mode.HYBRID.value,
        "sources": {
            "builtin": {
                "enabled": True,
                "categories": [],
                "disabledTools": [],
            },
            "custom": {
                "enabled": True,
                "path": "data/tools",
                "autoReload": True,
            },
            "mcp": {
                "enabled": True,
                "servers": [],
                "disabledServers": [],
            },
        },
        "groups": [],
        "execution": {
            "timeout": 30000,
            "maxParallel": 5,
            "retryOnError": False,
            "maxRetries": 2,
            "cacheResults": True,
            "cacheTTL": 60000,
        },
        "dispatch": {
            "enabled": True,
            "useSummary": True,
            "maxGroups": 3,
        },
        "security": {
            "dangerousTools": [],
            "allowDangerous": False,
            "dangerousRequiredPermission": PermissionLevel.ADMIN.value,
        },
    }
}


def default_document() -> Dict[str, Any]:
    """Fresh deep copy of the default skills document"""
    return copy.deepcopy(_DEFAULT_DOCUMENT)


SETTINGS_KEYS = tuple(_DEFAULT_DOCUMENT["skills"])


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(v) for v in value)


@dataclass(frozen=True)
class BuiltinSourceConfig:
    """Native tools shipped with the host"""
    enabled: bool = True
    categories: Tuple[str, ...] = ()      # Empty = all categories
    disabled_tools: Tuple[str, ...] = ()  # Shared by every source

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BuiltinSourceConfig":
        return cls(
            enabled=data.get("enabled") is not False,
            categories=_str_tuple(data.get("categories")),
            disabled_tools=_str_tuple(data.get("disabledTools")),
        )


@dataclass(frozen=True)
class CustomSourceConfig:
    """User-authored script tools"""
    enabled: bool = True
    path: str = "data/tools"
    auto_reload: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CustomSourceConfig":
        return cls(
            enabled=data.get("enabled") is not False,
            path=str(data.get("path") or "data/tools"),
            auto_reload=data.get("autoReload") is not False,
        )


@dataclass(frozen=True)
class McpSourceConfig:
    """Externally connected tool servers"""
    enabled: bool = True
    servers: Tuple[str, ...] = ()           # Allow-list, empty = all
    disabled_servers: Tuple[str, ...] = ()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "McpSourceConfig":
        return cls(
            enabled=data.get("enabled") is not False,
            servers=_str_tuple(data.get("servers")),
            disabled_servers=_str_tuple(data.get("disabledServers")),
        )


@dataclass(frozen=True)
class SourcesConfig:
    builtin: BuiltinSourceConfig = field(default_factory=BuiltinSourceConfig)
    custom: CustomSourceConfig = field(default_factory=CustomSourceConfig)
    mcp: McpSourceConfig = field(default_factory=McpSourceConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SourcesConfig":
        return cls(
            builtin=BuiltinSourceConfig.from_dict(_mapping(data.get("builtin"))),
            custom=CustomSourceConfig.from_dict(_mapping(data.get("custom"))),
            mcp=McpSourceConfig.from_dict(_mapping(data.get("mcp"))),
        )


@dataclass(frozen=True)
class GroupConfig:
    """
    A named, indexed subset of capabilities.

    Tool names are not checked against the live catalogue here; names that
    do not resolve are dropped when the group is resolved by the registry.
    """
    index: Optional[int] = None
    name: Optional[str] = None
    description: str = ""
    tools: Tuple[str, ...] = ()
    required_permission: Optional[str] = None
    enabled: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "GroupConfig":
        index = data.get("index")
        if not isinstance(index, int) or isinstance(index, bool):
            try:
                index = int(index) if index is not None else None
            except (TypeError, ValueError, OverflowError):
                index = None
        name = data.get("name")
        required = data.get("requiredPermission")
        return cls(
            index=index,
            name=str(name) if name else None,
            description=str(data.get("description") or ""),
            tools=_str_tuple(data.get("tools")),
            required_permission=str(required) if required else None,
            enabled=data.get("enabled") is not False,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "name": self.name,
            "description": self.description,
            "tools": list(self.tools),
            "requiredPermission": self.required_permission,
            "enabled": self.enabled,
        }


@dataclass(frozen=True)
class ExecutionConfig:
    timeout: int = 30000          # ms, >= MIN_TIMEOUT_MS
    max_parallel: int = 5         # MIN_PARALLEL..MAX_PARALLEL
    retry_on_error: bool = False
    max_retries: int = 2
    cache_results: bool = True
    cache_ttl: int = 60000        # ms

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExecutionConfig":
        defaults = cls()
        return cls(
            timeout=_as_int(data.get("timeout"), defaults.timeout),
            max_parallel=_as_int(data.get("maxParallel"), defaults.max_parallel),
            retry_on_error=bool(data.get("retryOnError", defaults.retry_on_error)),
            max_retries=_as_int(data.get("maxRetries"), defaults.max_retries),
            cache_results=bool(data.get("cacheResults", defaults.cache_results)),
            cache_ttl=_as_int(data.get("cacheTTL"), defaults.cache_ttl),
        )


@dataclass(frozen=True)
class DispatchConfig:
    """Hints for whatever heuristic picks groups for a conversation"""
    enabled: bool = True
    use_summary: bool = True
    max_groups: int = 3

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DispatchConfig":
        return cls(
            enabled=data.get("enabled") is not False,
            use_summary=data.get("useSummary") is not False,
            max_groups=_as_int(data.get("maxGroups"), 3),
        )


@dataclass(frozen=True)
class SecurityConfig:
    dangerous_tools: Tuple[str, ...] = ()
    allow_dangerous: bool = False
    dangerous_required_permission: str = PermissionLevel.ADMIN.value

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SecurityConfig":
        return cls(
            dangerous_tools=_str_tuple(data.get("dangerousTools")),
            # Only an explicit true enables dangerous execution
            allow_dangerous=data.get("allowDangerous") is True,
            dangerous_required_permission=str(
                data.get("dangerousRequiredPermission") or PermissionLevel.ADMIN.value
            ),
        )


@dataclass(frozen=True)
class SkillsSettings:
    """
    Immutable view of the `skills` section of the configuration document.

    Rebuilt from the raw document after every load and update, so a reader
    holding a reference never sees a half-applied change.
    """
    enabled: bool = True
    mode: Mode = Mode.HYBRID
    sources: SourcesConfig = field(default_factory=SourcesConfig)
    groups: Tuple[GroupConfig, ...] = ()
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    dispatch: DispatchConfig = field(default_factory=DispatchConfig)
    security: SecurityConfig = field(default_factory=SecurityConfig)
    # `skills` keys outside the schema, kept as written
    extras: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SkillsSettings":
        """Build from a validated `skills` mapping"""
        try:
            mode = Mode(data.get("mode"))
        except ValueError:
            mode = Mode.HYBRID

        groups = tuple(
            GroupConfig.from_dict(g) for g in (data.get("groups") or []) if isinstance(g, dict)
        )

        return cls(
            enabled=data.get("enabled") is not False,
            mode=mode,
            sources=SourcesConfig.from_dict(_mapping(data.get("sources"))),
            groups=groups,
            execution=ExecutionConfig.from_dict(_mapping(data.get("execution"))),
            dispatch=DispatchConfig.from_dict(_mapping(data.get("dispatch"))),
            security=SecurityConfig.from_dict(_mapping(data.get("security"))),
            extras=MappingProxyType(
                {k: copy.deepcopy(v) for k, v in data.items() if k not in SETTINGS_KEYS}
            ),
        )

    @classmethod
    def defaults(cls) -> "SkillsSettings":
        return cls.from_dict(default_document()["skills"])


def _mapping(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_int(value: Any, default: int) -> int:
    if isinstance(value, bool):
        return default
    try:
        return int(value)
    except (TypeError, ValueError, OverflowError):
        return default
