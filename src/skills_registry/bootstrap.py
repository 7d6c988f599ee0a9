"""
Bootstrap for the Skills Module

Wires the configuration store and the capability registry for a plugin root
and runs their first load:

    module = await init_skills_module(plugin_root, tool_provider, mcp_manager)
    module.registry.get_group_summary()

The returned instances are meant to be passed to whatever needs them; there
is no module-level singleton.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

from .config.store import SkillsConfigStore
from .core.capability_registry import CapabilityRegistry
from .core.sources import McpServerManager, ToolProvider

logger = logging.getLogger(__name__)


@dataclass
class SkillsModule:
    config: SkillsConfigStore
    registry: CapabilityRegistry


async def init_skills_module(
    plugin_root: Union[str, Path],
    tool_provider: ToolProvider,
    server_manager: Optional[McpServerManager] = None,
    config_path: Optional[Union[str, Path]] = None,
) -> SkillsModule:
    """
    Create and initialize the skills module.

    Args:
        plugin_root: Directory the custom tools path is resolved against
        tool_provider: Source of builtin and custom tool offers
        server_manager: Remote tool-server manager (None = no MCP tools)
        config_path: Override for <plugin_root>/data/skills.yaml

    Returns:
        SkillsModule with an initialized store and registry
    """
    if config_path is not None:
        config = SkillsConfigStore(config_path, plugin_root=plugin_root)
    else:
        config = SkillsConfigStore.for_plugin_root(plugin_root)

    registry = CapabilityRegistry(config, tool_provider, server_manager)
    await registry.init()

    logger.info(f"Skills module ready: {registry.count()} tools from {config.config_path}")
    return SkillsModule(config=config, registry=registry)
