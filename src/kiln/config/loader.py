"""
kiln.config.loader - Locate, parse and merge configuration files

Configuration is read from ``.kiln.toml`` with tomlkit, merged over
``DEFAULT_CONFIG`` and finally patched from ``KILN_<SECTION>_<KEY>``
environment variables.
"""

from __future__ import annotations

import copy
import json
import os
from pathlib import Path
from typing import Any, Mapping

import tomlkit
from tomlkit.exceptions import TOMLKitError

from kiln.config.defaults import CONFIG_FILENAME, DEFAULT_CONFIG, ENV_PREFIX
from kiln.errors import ConfigError


def parse_toml_document(content: str) -> tomlkit.TOMLDocument:
    """Parse TOML text, keeping formatting for round trips."""
    try:
        return tomlkit.parse(content)
    except TOMLKitError as e:
        raise ConfigError(f"Invalid TOML: {e}") from e


def parse_toml(content: str) -> dict[str, Any]:
    """Parse TOML text into plain Python containers."""
    return parse_toml_document(content).unwrap()


def find_config_file(start: Path) -> Path | None:
    """Find ``.kiln.toml`` in ``start`` or any of its parents.

    Args:
        start: Directory to begin the search from.

    Returns:
        Path to the config file, or None if no directory has one.
    """
    current = start.resolve()
    while True:
        candidate = current / CONFIG_FILENAME
        if candidate.is_file():
            return candidate
        if current == current.parent:
            return None
        current = current.parent


def merge_configs(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``.

    Nested tables are merged key by key; any other value in ``override``
    replaces the base value outright.
    """
    merged = copy.deepcopy(dict(base))
    for key, value in override.items():
        if isinstance(value, Mapping) and isinstance(merged.get(key), Mapping):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def _try_parse_env_value(raw: str) -> Any:
    """Interpret an environment override string.

    JSON arrays/objects, booleans and integers are converted; malformed JSON
    and everything else stay plain strings.
    """
    stripped = raw.strip()
    if stripped.startswith(("[", "{")):
        try:
            return json.loads(stripped)
        except json.JSONDecodeError:
            return raw
    lowered = stripped.lower()
    if lowered == "true":
        return True
    if lowered == "false":
        return False
    try:
        return int(stripped)
    except ValueError:
        pass
    try:
        return float(stripped)
    except ValueError:
        return raw


def apply_env_overrides(
    config: dict[str, Any],
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Apply ``KILN_*`` environment variables to a config dict.

    ``KILN_MODE`` sets a top-level key; ``KILN_DEV_SERVER_PORT`` sets
    ``dev_server.port``. The section is the longest existing table name
    that prefixes the variable; unknown sections are ignored.
    """
    env = os.environ if environ is None else environ
    result = copy.deepcopy(config)
    sections = sorted(
        (k for k, v in result.items() if isinstance(v, dict)), key=len, reverse=True
    )

    for name, raw in env.items():
        if not name.startswith(ENV_PREFIX):
            continue
        key = name[len(ENV_PREFIX):].lower()
        if not key:
            continue
        value = _try_parse_env_value(raw)

        for section in sections:
            prefix = section + "_"
            if key.startswith(prefix) and len(key) > len(prefix):
                result[section][key[len(prefix):]] = value
                break
        else:
            if key in result and not isinstance(result[key], dict):
                result[key] = value

    return result


def load_config(
    config_path: Path,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load a config file merged over the defaults.

    Args:
        config_path: Path to a ``.kiln.toml`` file.
        environ: Environment to read overrides from (defaults to os.environ).

    Returns:
        Config dict with a ``_base_dir`` key naming the file's directory.

    Raises:
        ConfigError: If the file cannot be read or parsed.
    """
    try:
        content = config_path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read config file {config_path}: {e}") from e

    data = parse_toml(content)
    merged = merge_configs(DEFAULT_CONFIG, data)
    merged = apply_env_overrides(merged, environ)
    merged["_base_dir"] = str(config_path.resolve().parent)
    return merged


def get_config(
    config_path: Path | None = None,
    start_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Return the effective config dict.

    Uses ``config_path`` when given, otherwise searches upward from
    ``start_dir`` (default: cwd). Without any file the defaults apply,
    relative to ``start_dir``.
    """
    start = start_dir or Path.cwd()
    if config_path is None:
        config_path = find_config_file(start)
    elif not config_path.is_file():
        raise ConfigError(f"Config file not found: {config_path}")

    if config_path is not None:
        return load_config(config_path, environ)

    config = apply_env_overrides(copy.deepcopy(DEFAULT_CONFIG), environ)
    config["_base_dir"] = str(start.resolve())
    return config
