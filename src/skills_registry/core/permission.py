"""
Permission Gate

Decides whether a caller may invoke a capability, using the security policy
from the configuration store:
- security.dangerousTools: tools that need an explicit policy decision
- security.allowDangerous: master switch for dangerous tools
- security.dangerousRequiredPermission: minimum caller level when allowed

Caller levels are ordered member < admin < owner. Unknown levels rank as
member, never higher.

Pure in-memory checks; safe to call on every tool invocation.
"""

from dataclasses import dataclass
from typing import Any, List, Optional, TypeVar, Union, TYPE_CHECKING

from ..config.schema import PermissionLevel

if TYPE_CHECKING:
    from ..config.store import SkillsConfigStore

T = TypeVar("T")

Level = Union[PermissionLevel, str, None]

PERMISSION_RANKS = {
    PermissionLevel.MEMBER.value: 0,
    PermissionLevel.ADMIN.value: 1,
    PermissionLevel.OWNER.value: 2,
}


def permission_rank(level: Level) -> int:
    """Numeric rank for a permission level (unknown → member)"""
    if isinstance(level, PermissionLevel):
        level = level.value
    if not isinstance(level, str):
        return 0
    return PERMISSION_RANKS.get(level, 0)


def has_permission(caller_level: Level, required_level: Level) -> bool:
    return permission_rank(caller_level) >= permission_rank(required_level)


@dataclass(frozen=True)
class PermissionDecision:
    """Result of a per-invocation check"""
    allowed: bool
    tool: str
    reason: str = ""
    dangerous: bool = False


class PermissionGate:
    """Dangerous-tool and group permission checks"""

    def __init__(self, config: "SkillsConfigStore"):
        self.config = config

    def is_dangerous_tool(self, tool_name: str) -> bool:
        return self.config.is_dangerous_tool(tool_name)

    def can_execute_dangerous(self, caller_level: Level) -> bool:
        """Whether a caller at `caller_level` may run dangerous tools at all"""
        if not self.config.allow_dangerous():
            return False
        return has_permission(caller_level, self.config.get_dangerous_required_permission())

    def check_group_permission(self, group_name: str, caller_level: Level) -> bool:
        """
        Whether a caller may use a group.

        Groups without a required permission (or unknown groups) are open.
        """
        group = self.config.get_group_by_name(group_name)
        if group is None or not group.required_permission:
            return True
        return has_permission(caller_level, group.required_permission)

    def check_tool(self, tool_name: str, caller_level: Level) -> PermissionDecision:
        """Per-invocation decision for a single tool"""
        if not self.is_dangerous_tool(tool_name):
            return PermissionDecision(allowed=True, tool=tool_name)

        if not self.config.allow_dangerous():
            return PermissionDecision(
                allowed=False,
                tool=tool_name,
                reason="Dangerous tools are disabled",
                dangerous=True,
            )

        required = self.config.get_dangerous_required_permission()
        if not has_permission(caller_level, required):
            return PermissionDecision(
                allowed=False,
                tool=tool_name,
                reason=f"Requires {required} permission",
                dangerous=True,
            )

        return PermissionDecision(allowed=True, tool=tool_name, dangerous=True)

    def filter_by_permission(self, tools: List[T], caller_level: Level) -> List[T]:
        """Drop dangerous tools the caller may not run; others always pass"""
        allowed_dangerous: Optional[bool] = None
        result = []
        for tool in tools:
            if self.is_dangerous_tool(tool_name_of(tool)):
                if allowed_dangerous is None:
                    allowed_dangerous = self.can_execute_dangerous(caller_level)
                if not allowed_dangerous:
                    continue
            result.append(tool)
        return result


def tool_name_of(tool: Any) -> str:
    if isinstance(tool, dict):
        return str(tool.get("name", ""))
    return str(getattr(tool, "name", ""))
