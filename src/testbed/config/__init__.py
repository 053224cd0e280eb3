"""Settings and per-dialect connection configuration.

Architecture::

    settings.py   TestbedSettings (pydantic-settings) + get_settings() cache
    models.py     DialectConfig / PoolConfig (frozen) + built-in defaults
    loader.py     project root + TOML discovery + env overrides

Quick start::

    from testbed.config import get_settings, load_dialect_configs

    settings = get_settings()
    configs = load_dialect_configs(settings.config_file, project_root=settings.project_root)
    configs[settings.resolved_dialect].host
"""

from .loader import (
    discover_config_file,
    env_overrides,
    find_project_root,
    load_dialect_configs,
    read_config_file,
)
from .models import DialectConfig, PoolConfig, default_dialect_configs
from .settings import (
    ResetPolicy,
    TestbedSettings,
    clear_settings_cache,
    get_settings,
)

__all__ = [
    # Settings
    "ResetPolicy",
    "TestbedSettings",
    "get_settings",
    "clear_settings_cache",
    # Models
    "DialectConfig",
    "PoolConfig",
    "default_dialect_configs",
    # Loader
    "find_project_root",
    "discover_config_file",
    "read_config_file",
    "env_overrides",
    "load_dialect_configs",
]
