"""
kiln.config - Configuration loading and defaults
"""

from kiln.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG
from kiln.config.loader import (
    _try_parse_env_value,
    apply_env_overrides,
    find_config_file,
    get_config,
    load_config,
    merge_configs,
    parse_toml,
    parse_toml_document,
)
from kiln.config.models import BundlerConfig, DevServerConfig

__all__ = [
    "CONFIG_FILENAME",
    "DEFAULT_CONFIG",
    "BundlerConfig",
    "DevServerConfig",
    "_try_parse_env_value",
    "apply_env_overrides",
    "find_config_file",
    "get_config",
    "load_config",
    "merge_configs",
    "parse_toml",
    "parse_toml_document",
]
