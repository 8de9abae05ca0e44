"""
kiln.commands.config_cmd - Inspect the resolved configuration.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

import tomlkit

from kiln.commands import load_bundler_config
from kiln.config import CONFIG_FILENAME, find_config_file


def run(args: argparse.Namespace) -> int:
    """Run the config command.

    Subcommands:
    - show: Print the effective settings (TOML, or JSON with --json)
    - path: Print the location of the config file in use
    """
    action = getattr(args, "config_action", None)

    if action == "show":
        return _show(args)
    elif action == "path":
        return _path(args)
    else:
        print("Usage: kiln config <show|path>", file=sys.stderr)
        return 1


def _show(args: argparse.Namespace) -> int:
    data = load_bundler_config(args).to_dict()
    if getattr(args, "json", False):
        print(json.dumps(data, indent=2))
    else:
        print(tomlkit.dumps(data), end="")
    return 0


def _path(args: argparse.Namespace) -> int:
    config_path = getattr(args, "config", None)
    if config_path is None:
        config_path = find_config_file(Path.cwd())
    if config_path is None:
        print(f"No {CONFIG_FILENAME} found; using defaults", file=sys.stderr)
        return 1
    print(Path(config_path).resolve())
    return 0
