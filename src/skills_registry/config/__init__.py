"""
Skills Configuration

Loading, validation and persistence of skills.yaml.
"""

from .schema import (
    Mode,
    PermissionLevel,
    SkillsSettings,
    SourcesConfig,
    BuiltinSourceConfig,
    CustomSourceConfig,
    McpSourceConfig,
    GroupConfig,
    ExecutionConfig,
    DispatchConfig,
    SecurityConfig,
    default_document,
)
from .loader import (
    DEFAULT_CONFIG_TEMPLATE,
    ConfigError,
    ConfigFileError,
    ConfigPersistenceError,
    deep_merge,
    merge_with_defaults,
    validate_document,
)
from .store import SkillsConfigStore

__all__ = [
    # Schema
    "Mode",
    "PermissionLevel",
    "SkillsSettings",
    "SourcesConfig",
    "BuiltinSourceConfig",
    "CustomSourceConfig",
    "McpSourceConfig",
    "GroupConfig",
    "ExecutionConfig",
    "DispatchConfig",
    "SecurityConfig",
    "default_document",
    # Loader
    "DEFAULT_CONFIG_TEMPLATE",
    "ConfigError",
    "ConfigFileError",
    "ConfigPersistenceError",
    "deep_merge",
    "merge_with_defaults",
    "validate_document",
    # Store
    "SkillsConfigStore",
]
