"""
Skills Configuration Store

Single source of truth for skills.yaml:
- Loads and merges the document onto defaults (missing file → defaults written)
- Validates and clamps on every load and update
- Persists every mutation and notifies watchers

Readers always get immutable snapshots (`SkillsSettings`). Mutations build a
new document on the side and swap it in only once it is merged and validated.

Persistence failures are raised after the in-memory swap: a failed save
means "applied, but not guaranteed to survive a restart".
"""

import copy
import logging
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Union

from .loader import (
    ConfigFileError,
    ConfigPersistenceError,
    deep_merge,
    merge_with_defaults,
    read_document,
    to_plain,
    validate_document,
    write_default_document,
    write_document,
)
from .schema import (
    DispatchConfig,
    ExecutionConfig,
    GroupConfig,
    Mode,
    SecurityConfig,
    SkillsSettings,
    SourcesConfig,
    default_document,
)

logger = logging.getLogger(__name__)

ConfigWatcher = Callable[[SkillsSettings], Any]

DEFAULT_CONFIG_RELPATH = Path("data") / "skills.yaml"


class SkillsConfigStore:
    """
    Layered, hot-reloadable configuration for the capability registry.

    Usage:
        store = SkillsConfigStore.for_plugin_root(root)
        await store.init()
        store.get_mode()
        await store.update({"security": {"allowDangerous": True}})
    """

    def __init__(self, config_path: Union[str, Path], plugin_root: Optional[Union[str, Path]] = None):
        self.config_path = Path(config_path)
        self.plugin_root = Path(plugin_root) if plugin_root else None

        self._document: Dict[str, Any] = default_document()
        self._settings: SkillsSettings = SkillsSettings.defaults()
        self._last_modified: Optional[float] = None
        self._watchers: List[ConfigWatcher] = []
        self._initialized = False

    @classmethod
    def for_plugin_root(cls, plugin_root: Union[str, Path]) -> "SkillsConfigStore":
        """Store backed by <plugin_root>/data/skills.yaml"""
        plugin_root = Path(plugin_root)
        return cls(plugin_root / DEFAULT_CONFIG_RELPATH, plugin_root=plugin_root)

    @property
    def initialized(self) -> bool:
        return self._initialized

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def init(self) -> "SkillsConfigStore":
        """Load once; later calls are no-ops"""
        if self._initialized:
            return self

        await self.load()
        self._initialized = True

        logger.info(f"Skills configuration initialized from {self.config_path}")
        return self

    async def load(self) -> SkillsSettings:
        """Read the backing file (or defaults) and notify watchers"""
        self._load_from_disk()
        self._notify_watchers()
        return self._settings

    async def reload(self) -> SkillsSettings:
        """Re-read the backing file and notify watchers"""
        self._load_from_disk()
        self._notify_watchers()
        logger.info(f"Skills configuration reloaded: mode={self._settings.mode.value}")
        return self._settings

    def _load_from_disk(self) -> None:
        if self.config_path.exists():
            try:
                raw = read_document(self.config_path)
            except ConfigFileError as e:
                logger.error(f"Failed to load skills configuration, using defaults: {e}")
                document = default_document()
            else:
                document = merge_with_defaults(raw)
                self._last_modified = self._mtime()
        else:
            document = default_document()
            try:
                write_default_document(self.config_path)
                self._last_modified = self._mtime()
            except ConfigPersistenceError as e:
                logger.error(f"Failed to create default skills configuration: {e}")

        validate_document(document)
        self._swap(document)
        logger.debug(f"Loaded skills configuration: mode={self._settings.mode.value}")

    def has_changed(self) -> bool:
        """True if the backing file was modified since the last load or save"""
        if not self.config_path.exists():
            return False
        if self._last_modified is None:
            return True
        return self._mtime() > self._last_modified

    def _mtime(self) -> Optional[float]:
        try:
            return self.config_path.stat().st_mtime
        except OSError:
            return None

    # =========================================================================
    # Watchers
    # =========================================================================

    def add_watcher(self, callback: ConfigWatcher) -> Callable[[], None]:
        """
        Register a change callback.

        The callback receives the current `SkillsSettings` after every load,
        reload and successful update. The snapshot covers the whole `skills`
        section: keys outside the schema are in `settings.extras`, and
        `get_document()` returns the raw mapping. Returns an unsubscribe
        function.
        """
        self._watchers.append(callback)

        def unsubscribe() -> None:
            if callback in self._watchers:
                self._watchers.remove(callback)

        return unsubscribe

    def _notify_watchers(self) -> None:
        settings = self._settings
        for watcher in list(self._watchers):
            try:
                watcher(settings)
            except Exception:
                logger.exception(f"Configuration watcher {watcher!r} failed")

    # =========================================================================
    # Mutations
    # =========================================================================

    async def update(self, patch: Dict[str, Any]) -> None:
        """
        Deep-merge `patch` into the `skills` section, persist and notify.

        Raises:
            ConfigPersistenceError: The new document is live in memory but
                could not be written to disk
        """
        if not isinstance(patch, dict):
            return

        document = deep_merge(self._document, {"skills": to_plain(patch)})
        await self._commit(document)
        logger.info("Skills configuration updated")

    async def toggle_group(self, name: str, enabled: bool) -> bool:
        """Enable or disable a group by name. Returns False if no such group"""
        document = copy.deepcopy(self._document)
        groups = document["skills"]["groups"]

        target = next((g for g in groups if g.get("name") == name), None)
        if target is None:
            return False

        target["enabled"] = bool(enabled)
        await self._commit(document)
        logger.info(f"Tool group '{name}' {'enabled' if enabled else 'disabled'}")
        return True

    async def disable_tool(self, tool_name: str) -> bool:
        """Add a tool to the shared disabled list. Returns False if already there"""
        disabled = self.get_disabled_tools()
        if tool_name in disabled:
            return False

        await self.update({"sources": {"builtin": {"disabledTools": disabled + [tool_name]}}})
        return True

    async def enable_tool(self, tool_name: str) -> bool:
        """Remove a tool from the disabled list. Returns False if it was not disabled"""
        disabled = self.get_disabled_tools()
        if tool_name not in disabled:
            return False

        remaining = [t for t in disabled if t != tool_name]
        await self.update({"sources": {"builtin": {"disabledTools": remaining}}})
        return True

    async def _commit(self, document: Dict[str, Any]) -> None:
        validate_document(document)
        self._swap(document)
        await self._save()
        self._notify_watchers()

    async def _save(self) -> None:
        try:
            write_document(self.config_path, self._document)
        except ConfigPersistenceError as e:
            logger.error(f"Failed to save skills configuration: {e}")
            raise
        self._last_modified = self._mtime()

    def _swap(self, document: Dict[str, Any]) -> None:
        settings = SkillsSettings.from_dict(document["skills"])
        self._document = document
        self._settings = settings

    # =========================================================================
    # Accessors
    # =========================================================================

    def get_config(self) -> SkillsSettings:
        """Immutable snapshot of the whole `skills` section"""
        return self._settings

    def get_document(self) -> Dict[str, Any]:
        """Deep copy of the raw document, as it would be persisted"""
        return copy.deepcopy(self._document)

    def is_enabled(self) -> bool:
        return self._settings.enabled

    def get_mode(self) -> Mode:
        return self._settings.mode

    def get_sources(self) -> SourcesConfig:
        return self._settings.sources

    def is_builtin_enabled(self) -> bool:
        if self._settings.mode == Mode.MCP_ONLY:
            return False
        return self._settings.sources.builtin.enabled

    def is_custom_enabled(self) -> bool:
        if self._settings.mode == Mode.MCP_ONLY:
            return False
        return self._settings.sources.custom.enabled

    def is_mcp_enabled(self) -> bool:
        if self._settings.mode == Mode.SKILLS_ONLY:
            return False
        return self._settings.sources.mcp.enabled

    def get_enabled_categories(self) -> List[str]:
        return list(self._settings.sources.builtin.categories)

    def get_disabled_tools(self) -> List[str]:
        return list(self._settings.sources.builtin.disabled_tools)

    def get_custom_tools_path(self) -> Path:
        root = self.plugin_root or Path.cwd()
        return root / self._settings.sources.custom.path

    def get_enabled_mcp_servers(self) -> List[str]:
        return list(self._settings.sources.mcp.servers)

    def get_disabled_mcp_servers(self) -> List[str]:
        return list(self._settings.sources.mcp.disabled_servers)

    def get_groups(self) -> List[GroupConfig]:
        return list(self._settings.groups)

    def get_enabled_groups(self) -> List[GroupConfig]:
        return [g for g in self._settings.groups if g.enabled]

    def get_group_by_index(self, index: int) -> Optional[GroupConfig]:
        return next((g for g in self._settings.groups if g.index == index), None)

    def get_group_by_name(self, name: str) -> Optional[GroupConfig]:
        return next((g for g in self._settings.groups if g.name == name), None)

    def get_execution_config(self) -> ExecutionConfig:
        return self._settings.execution

    def get_dispatch_config(self) -> DispatchConfig:
        return self._settings.dispatch

    def get_security_config(self) -> SecurityConfig:
        return self._settings.security

    def is_dangerous_tool(self, tool_name: str) -> bool:
        return tool_name in self._settings.security.dangerous_tools

    def allow_dangerous(self) -> bool:
        return self._settings.security.allow_dangerous

    def get_dangerous_required_permission(self) -> str:
        return self._settings.security.dangerous_required_permission
