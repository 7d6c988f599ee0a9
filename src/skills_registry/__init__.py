"""
Skills Registry

Tool capability registry for a chat agent: aggregates builtin, custom and
MCP tools under a hot-reloadable skills.yaml, exposes them by group and
category, and gates dangerous tools by caller permission.
"""

from .config import Mode, PermissionLevel, SkillsConfigStore, SkillsSettings
from .core import (
    CapabilityDescriptor,
    CapabilityRegistry,
    LoadReport,
    PermissionGate,
    Provenance,
)
from .bootstrap import SkillsModule, init_skills_module

__version__ = "0.1.0"

__all__ = [
    "Mode",
    "PermissionLevel",
    "SkillsConfigStore",
    "SkillsSettings",
    "CapabilityDescriptor",
    "CapabilityRegistry",
    "LoadReport",
    "PermissionGate",
    "Provenance",
    "SkillsModule",
    "init_skills_module",
]
