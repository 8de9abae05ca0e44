"""
kiln.commands - CLI command implementations
"""

from __future__ import annotations

import argparse
import dataclasses
from typing import Any

from kiln.config import BundlerConfig, get_config

__all__ = [
    "build",
    "config_cmd",
    "graph",
    "load_bundler_config",
    "serve",
]


def load_bundler_config(args: argparse.Namespace, **overrides: Any) -> BundlerConfig:
    """Resolve the typed configuration for a command.

    Args:
        args: Parsed CLI arguments (``--config`` is honored).
        **overrides: BundlerConfig fields to replace; None values are skipped.
    """
    data = get_config(config_path=getattr(args, "config", None))
    config = BundlerConfig.from_dict(data)
    changes = {key: value for key, value in overrides.items() if value is not None}
    if changes:
        config = dataclasses.replace(config, **changes)
    return config
