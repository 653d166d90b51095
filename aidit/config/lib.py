"""Centralized environment configuration management for aidit.

Provides a unified interface for all environment variables with:
- Single `get_environment()` function for all configuration
- Type-safe enum with metadata (default, type, description)
- Consistent resolution: override > environment > default

Example:
    >>> from aidit.config import EnvVar, get_environment
    >>>
    >>> # Get values with automatic type conversion
    >>> max_mb = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB)  # Returns int
    >>> cache_dir = get_cache_dir()  # Returns Path
    >>>
    >>> # Override at runtime
    >>> max_mb = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB, override=50)
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, overload

# =============================================================================
# Environment Variable Configuration
# =============================================================================


@dataclass(frozen=True)
class EnvConfig:
    """Metadata for an environment variable.

    Attributes:
        name: Environment variable name (e.g., "AIDIT_CACHE_DIR").
        default: Default value if not set in environment.
        var_type: Python type for value conversion (str, int, bool, Path).
        description: Human-readable description.
        category: Grouping category for documentation.
    """

    name: str
    default: Any
    var_type: type
    description: str = ""
    category: str = "general"


class EnvVar(Enum):
    """All environment variables used by aidit.

    Each member contains an EnvConfig with name, default, type, and description.
    Use with `get_environment()` for type-safe access.

    Categories:
        - paths: Storage locations on disk
        - cache: Artifact store limits
        - history: Edit history limits
        - general: Logging and miscellaneous
    """

    # -------------------------------------------------------------------------
    # Storage Paths
    # -------------------------------------------------------------------------
    AIDIT_HOME = EnvConfig(
        name="AIDIT_HOME",
        default=None,  # Computed from the user's home directory
        var_type=Path,
        description="Root directory for all aidit data",
        category="paths",
    )
    AIDIT_CACHE_DIR = EnvConfig(
        name="AIDIT_CACHE_DIR",
        default=None,  # Computed from AIDIT_HOME
        var_type=Path,
        description="Managed cache directory (evicted by size and age)",
        category="paths",
    )
    AIDIT_EDITS_DIR = EnvConfig(
        name="AIDIT_EDITS_DIR",
        default=None,  # Computed from AIDIT_HOME
        var_type=Path,
        description="Permanent directory for saved edits (never evicted)",
        category="paths",
    )
    AIDIT_WORK_DIR = EnvConfig(
        name="AIDIT_WORK_DIR",
        default=None,  # Computed from AIDIT_HOME
        var_type=Path,
        description="Scratch directory for preprocessed images",
        category="paths",
    )

    # -------------------------------------------------------------------------
    # Cache Limits
    # -------------------------------------------------------------------------
    AIDIT_CACHE_MAX_SIZE_MB = EnvConfig(
        name="AIDIT_CACHE_MAX_SIZE_MB",
        default=100,
        var_type=int,
        description="Maximum total size of the cache in MiB",
        category="cache",
    )
    AIDIT_CACHE_MAX_AGE_DAYS = EnvConfig(
        name="AIDIT_CACHE_MAX_AGE_DAYS",
        default=7,
        var_type=int,
        description="Maximum age of a cache entry in days",
        category="cache",
    )
    AIDIT_CACHE_EXPIRY_BASIS = EnvConfig(
        name="AIDIT_CACHE_EXPIRY_BASIS",
        default="accessed",
        var_type=str,
        description="Timestamp used for expiry: 'accessed' or 'created'",
        category="cache",
    )

    # -------------------------------------------------------------------------
    # History Limits
    # -------------------------------------------------------------------------
    AIDIT_RECENT_SESSIONS_LIMIT = EnvConfig(
        name="AIDIT_RECENT_SESSIONS_LIMIT",
        default=20,
        var_type=int,
        description="Number of finished sessions kept in the recent list",
        category="history",
    )

    AIDIT_PREPROCESS_ON_OPEN = EnvConfig(
        name="AIDIT_PREPROCESS_ON_OPEN",
        default=True,
        var_type=bool,
        description="Normalize images before starting an editing session",
        category="history",
    )

    # -------------------------------------------------------------------------
    # General
    # -------------------------------------------------------------------------
    AIDIT_LOG_LEVEL = EnvConfig(
        name="AIDIT_LOG_LEVEL",
        default="INFO",
        var_type=str,
        description="Log level for the command line tools",
        category="general",
    )


# =============================================================================
# Type Conversion Helpers
# =============================================================================


def _parse_bool(value: str) -> bool | None:
    """Parse string to boolean.

    Recognizes: true/false, 1/0, yes/no (case-insensitive).
    Returns None for unrecognized values.
    """
    normalized = value.lower().strip()
    if normalized in ("true", "1", "yes"):
        return True
    if normalized in ("false", "0", "no"):
        return False
    return None


def _convert_value(value: str | None, var_type: type, default: Any) -> Any:
    """Convert string value to target type.

    Args:
        value: Raw string value from environment (or None).
        var_type: Target Python type.
        default: Default value if conversion fails or value is None.

    Returns:
        Converted value or default.
    """
    if value is None:
        return default

    if var_type is str:
        return value

    if var_type is int:
        try:
            return int(value)
        except ValueError:
            return default

    if var_type is bool:
        result = _parse_bool(value)
        return result if result is not None else default

    if var_type is Path:
        return Path(value).expanduser()

    # Unknown type, return as-is
    return value


# =============================================================================
# Main Interface
# =============================================================================


@overload
def get_environment(env_var: EnvVar, override: int) -> int: ...
@overload
def get_environment(env_var: EnvVar, override: str) -> str: ...
@overload
def get_environment(env_var: EnvVar, override: bool) -> bool: ...
@overload
def get_environment(env_var: EnvVar, override: Path) -> Path: ...
@overload
def get_environment(env_var: EnvVar, override: None = None) -> Any: ...


def get_environment(env_var: EnvVar, override: Any = None) -> Any:
    """Get environment variable value with type conversion.

    Resolution priority:
        1. Explicit override parameter (highest)
        2. Environment variable value
        3. Default from EnvConfig (lowest)

    Args:
        env_var: Environment variable enum member.
        override: Optional override value (bypasses env lookup).

    Returns:
        Value converted to the appropriate type (str, int, bool, or Path).

    Example:
        >>> get_environment(EnvVar.AIDIT_CACHE_MAX_AGE_DAYS)
        7
        >>> get_environment(EnvVar.AIDIT_CACHE_MAX_AGE_DAYS, override=1)
        1
    """
    config: EnvConfig = env_var.value

    if override is not None:
        return override

    raw_value = os.environ.get(config.name)
    return _convert_value(raw_value, config.var_type, config.default)


def get_environment_info(env_var: EnvVar) -> EnvConfig:
    """Get metadata for an environment variable.

    Args:
        env_var: Environment variable enum member.

    Returns:
        EnvConfig with name, default, type, and description.
    """
    return env_var.value


# =============================================================================
# Directory Helpers
# =============================================================================


def get_home_dir(override: Path | str | None = None) -> Path:
    """Get the aidit data root.

    Resolution: override > AIDIT_HOME > ~/.aidit
    """
    if override is not None:
        return Path(override)

    env_path = get_environment(EnvVar.AIDIT_HOME)
    if env_path:
        return env_path

    return Path.home() / ".aidit"


def get_data_path(
    env_var: EnvVar,
    subdir: str,
    override: Path | str | None = None,
    home: Path | str | None = None,
) -> Path:
    """Get a data directory path with fallback to the aidit home.

    Resolution: override > env_var > {home}/{subdir}

    Args:
        env_var: Environment variable for this path.
        subdir: Subdirectory name under the aidit home.
        override: Optional path override.
        home: Optional home directory override.

    Returns:
        Resolved Path to the directory.
    """
    if override is not None:
        return Path(override)

    env_path = get_environment(env_var)
    if env_path:
        return env_path

    return get_home_dir(home) / subdir


def get_cache_dir(
    override: Path | str | None = None, home: Path | str | None = None
) -> Path:
    """Get the managed cache directory."""
    return get_data_path(EnvVar.AIDIT_CACHE_DIR, "cache", override, home)


def get_edits_dir(
    override: Path | str | None = None, home: Path | str | None = None
) -> Path:
    """Get the permanent saved-edits directory."""
    return get_data_path(EnvVar.AIDIT_EDITS_DIR, "edits", override, home)


def get_work_dir(
    override: Path | str | None = None, home: Path | str | None = None
) -> Path:
    """Get the scratch directory for preprocessed images."""
    return get_data_path(EnvVar.AIDIT_WORK_DIR, "work", override, home)


def list_environment_variables(category: str | None = None) -> list[EnvVar]:
    """List all environment variables, optionally filtered by category.

    Args:
        category: Filter by category (paths, cache, history, general).
                 None returns all variables.

    Returns:
        List of EnvVar enum members.
    """
    if category is None:
        return list(EnvVar)

    return [var for var in EnvVar if var.value.category == category]


__all__ = [
    # Core types
    "EnvConfig",
    "EnvVar",
    # Main interface
    "get_environment",
    "get_environment_info",
    # Directory helpers
    "get_home_dir",
    "get_data_path",
    "get_cache_dir",
    "get_edits_dir",
    "get_work_dir",
    # Introspection
    "list_environment_variables",
]
