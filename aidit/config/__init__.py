"""Centralized configuration management for aidit.

Provides unified access to all configuration via the `get_environment()` function.

Example:
    >>> from aidit.config import EnvVar, get_environment
    >>>
    >>> # Get any environment variable with automatic type conversion
    >>> max_mb = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB)  # Returns int: 100
    >>>
    >>> # Override at runtime
    >>> max_mb = get_environment(EnvVar.AIDIT_CACHE_MAX_SIZE_MB, override=50)
    >>>
    >>> # List available variables by category
    >>> for var in list_environment_variables("cache"):
    ...     info = get_environment_info(var)
    ...     print(f"{info.name}: {info.description}")

Environment Variable Categories:
    paths: Cache, saved-edit and scratch directories
    cache: Artifact store size and age limits
    history: Edit history limits and session behaviour
    general: Logging
"""

from .lib import (
    # Core types
    EnvConfig,
    EnvVar,
    # Directory helpers
    get_cache_dir,
    get_data_path,
    get_edits_dir,
    # Main interface
    get_environment,
    get_environment_info,
    get_home_dir,
    get_work_dir,
    # Introspection
    list_environment_variables,
)

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
