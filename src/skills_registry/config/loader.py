"""
Skills Configuration Loader

Reads and writes skills.yaml, merges user documents onto the default
skeleton and clamps out-of-range values.

Merge rules:
- Mappings merge recursively
- Lists (groups, tool lists, allow-lists) and scalars replace wholesale
- Keys unknown to the schema are kept as-is

Validation never rejects a document; bad values are coerced and logged.
"""

import copy
import logging
import math
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Union

import yaml

from .schema import (
    MAX_PARALLEL,
    MIN_PARALLEL,
    MIN_TIMEOUT_MS,
    VALID_MODES,
    Mode,
    default_document,
)

logger = logging.getLogger(__name__)

CONFIG_HEADER = """# Skills module configuration
# Capability sources, tool groups and the dangerous-tool policy.
# Independent from the MCP server connection settings.
"""

DEFAULT_CONFIG_TEMPLATE = """# Skills module configuration
# Capability sources, tool groups and the dangerous-tool policy.
# Independent from the MCP server connection settings.
# This file was generated with defaults; edit and reload to apply.

skills:
  # Global switch for the skills module
  enabled: true

  # hybrid: all sources | skills-only: no MCP servers | mcp-only: MCP servers only
  mode: hybrid

  sources:
    # Native tools shipped with the bot
    builtin:
      enabled: true
      # Category allow-list, empty = all categories
      categories: []
      # Tools hidden from every source
      disabledTools: []

    # User-authored script tools
    custom:
      enabled: true
      path: data/tools
      autoReload: true

    # Connected MCP servers
    mcp:
      enabled: true
      # Server allow-list, empty = all connected servers
      servers: []
      disabledServers: []

  # Tool groups for selective exposure, e.g.
  # - index: 0
  #   name: admin
  #   description: Group management
  #   tools: [kick_member, mute_member]
  #   requiredPermission: admin
  #   enabled: true
  groups: []

  execution:
    # Per-call timeout in ms (minimum 1000)
    timeout: 30000
    # Concurrent tool calls (1-20)
    maxParallel: 5
    retryOnError: false
    maxRetries: 2
    cacheResults: true
    cacheTTL: 60000

  dispatch:
    enabled: true
    useSummary: true
    maxGroups: 3

  security:
    # Tools that need an explicit policy decision before they run, e.g.
    # [kick_member, mute_member, recall_message, set_group_admin, write_file]
    dangerousTools: []
    allowDangerous: false
    # member | admin | owner
    dangerousRequiredPermission: admin
"""


class ConfigError(Exception):
    """Base exception for configuration errors."""

    pass


class ConfigFileError(ConfigError):
    """Raised when the configuration file cannot be read or parsed."""

    pass


class ConfigPersistenceError(ConfigError):
    """Raised when the configuration cannot be written to disk."""

    pass


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge `patch` onto `base` and return a new mapping.

    Neither argument is modified. Mappings merge recursively; every other
    value (lists included) in `patch` replaces the value in `base`.
    """
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict):
            current = merged.get(key)
            merged[key] = deep_merge(current if isinstance(current, dict) else {}, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def to_plain(value: Any) -> Any:
    """Convert enums and tuples in a patch to plain YAML-safe values"""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {str(k): to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [to_plain(v) for v in value]
    return value


def merge_with_defaults(user_document: Any) -> Dict[str, Any]:
    """Overlay a parsed user document on the default skeleton"""
    merged = default_document()

    if not isinstance(user_document, dict):
        return merged

    skills = user_document.get("skills")
    if not isinstance(skills, dict):
        if skills is not None:
            logger.warning("Ignoring 'skills' section: expected a mapping")
        return merged

    return deep_merge(merged, user_document)


def validate_document(document: Dict[str, Any]) -> List[str]:
    """
    Clamp and coerce the `skills` section in place.

    Returns the list of warnings that were logged.
    """
    warnings: List[str] = []

    def warn(message: str) -> None:
        logger.warning(message)
        warnings.append(message)

    defaults = default_document()["skills"]
    skills = document.get("skills")
    if not isinstance(skills, dict):
        warn("Missing 'skills' section, using defaults")
        document["skills"] = skills = defaults

    # Mode
    mode = skills.get("mode")
    if mode not in VALID_MODES:
        warn(f"Invalid mode: {mode!r}, using '{Mode.HYBRID.value}'")
        skills["mode"] = Mode.HYBRID.value

    # Sections that must stay mappings
    for section in ("sources", "execution", "dispatch", "security"):
        if not isinstance(skills.get(section), dict):
            warn(f"Invalid '{section}' section, using defaults")
            skills[section] = copy.deepcopy(defaults[section])
    for source in ("builtin", "custom", "mcp"):
        if not isinstance(skills["sources"].get(source), dict):
            warn(f"Invalid '{source}' source section, using defaults")
            skills["sources"][source] = copy.deepcopy(defaults["sources"][source])

    # Execution limits
    execution = skills["execution"]

    timeout = _coerce_int(execution.get("timeout"))
    if timeout is None:
        warn(f"Invalid execution.timeout: {execution.get('timeout')!r}, using default")
        timeout = defaults["execution"]["timeout"]
    if timeout < MIN_TIMEOUT_MS:
        warn(f"execution.timeout too small ({timeout}), clamped to {MIN_TIMEOUT_MS}ms")
        timeout = MIN_TIMEOUT_MS
    execution["timeout"] = timeout

    max_parallel = _coerce_int(execution.get("maxParallel"))
    if max_parallel is None:
        warn(f"Invalid execution.maxParallel: {execution.get('maxParallel')!r}, using default")
        max_parallel = defaults["execution"]["maxParallel"]
    if max_parallel < MIN_PARALLEL:
        warn(f"execution.maxParallel too small ({max_parallel}), clamped to {MIN_PARALLEL}")
        max_parallel = MIN_PARALLEL
    if max_parallel > MAX_PARALLEL:
        warn(f"execution.maxParallel too large ({max_parallel}), clamped to {MAX_PARALLEL}")
        max_parallel = MAX_PARALLEL
    execution["maxParallel"] = max_parallel

    # Groups
    groups = skills.get("groups")
    if not isinstance(groups, list):
        if groups is not None:
            warn("'groups' must be a list, ignoring")
        groups = []

    kept = []
    for position, group in enumerate(groups):
        if not isinstance(group, dict):
            warn(f"Group #{position} is not a mapping, dropped")
            continue
        if not group.get("name"):
            warn(f"Group #{position} has no name")
        if not isinstance(group.get("tools"), list):
            group["tools"] = []
        kept.append(group)
    skills["groups"] = kept

    return warnings


def read_document(path: Union[str, Path]) -> Dict[str, Any]:
    """
    Parse a YAML configuration file.

    Raises:
        ConfigFileError: If the file cannot be read, is not YAML, or is not a mapping
    """
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except OSError as e:
        raise ConfigFileError(f"Cannot read {path}: {e}") from e
    except UnicodeDecodeError as e:
        raise ConfigFileError(f"{path} is not valid UTF-8: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigFileError(f"Malformed YAML in {path}: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigFileError(f"Expected a mapping at the top of {path}, got {type(raw).__name__}")
    return raw


def dump_document(document: Dict[str, Any]) -> str:
    """Serialize a document with the standard comment header"""
    body = yaml.safe_dump(
        document,
        allow_unicode=True,
        sort_keys=False,
        default_flow_style=False,
        indent=2,
    )
    return f"{CONFIG_HEADER}\n{body}"


def _write_text(path: Path, content: str) -> None:
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(content)
    except OSError as e:
        raise ConfigPersistenceError(f"Failed to write {path}: {e}") from e


def write_document(path: Union[str, Path], document: Dict[str, Any]) -> None:
    """
    Persist a document, creating parent directories as needed.

    Raises:
        ConfigPersistenceError: If the file cannot be written
    """
    _write_text(Path(path), dump_document(document))


def write_default_document(path: Union[str, Path]) -> None:
    """
    Write the commented default configuration.

    Raises:
        ConfigPersistenceError: If the file cannot be written
    """
    path = Path(path)
    _write_text(path, DEFAULT_CONFIG_TEMPLATE)
    logger.info(f"Created default skills configuration at {path}")


def _coerce_int(value: Any):
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        # .inf / .nan
        if not math.isfinite(value):
            return None
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None
