"""Resolver - Map import specifiers to canonical module paths.

Resolution order:

1. Alias substitution. The longest configured alias that equals the
   specifier, or prefixes it followed by ``/``, is replaced by its directory.
2. Relative (``./``, ``../``) and absolute specifiers are joined to the
   importing directory.
3. Any other bare specifier is looked up in package directories
   (``node_modules``) of the importing directory and each of its parents.

Each base path is probed as a file, then with every configured extension
appended, then as a directory (``package.json`` ``module``/``main`` field,
then ``index`` plus extension).
"""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Mapping

from kiln.config.models import BundlerConfig
from kiln.errors import ParseError, ResolutionError

_PACKAGE_ENTRY_FIELDS = ("module", "main")


def _is_path_specifier(specifier: str) -> bool:
    return (
        specifier in (".", "..")
        or specifier.startswith(("./", "../"))
        or os.path.isabs(specifier)
    )


class Resolver:
    """Resolve specifiers against aliases, extensions and package directories.

    Resolution depends only on the arguments, the configured rules and the
    file system; the resolver holds no cache.
    """

    def __init__(
        self,
        aliases: Mapping[str, Path] | None = None,
        extensions: tuple[str, ...] = (".js", ".mjs"),
        module_dirs: tuple[str, ...] = ("node_modules",),
    ) -> None:
        # Longest key first so "app/ui" wins over "app".
        self.aliases = sorted(
            ((key.rstrip("/"), Path(target)) for key, target in (aliases or {}).items()),
            key=lambda item: len(item[0]),
            reverse=True,
        )
        self.extensions = tuple(extensions)
        self.module_dirs = tuple(module_dirs)

    @classmethod
    def from_config(cls, config: BundlerConfig) -> Resolver:
        return cls(
            aliases=config.aliases,
            extensions=config.extensions,
            module_dirs=config.module_dirs,
        )

    def resolve(self, specifier: str, from_dir: Path, importer: Path | None = None) -> Path:
        """Resolve ``specifier`` as imported from a file in ``from_dir``.

        Args:
            specifier: Import specifier as written.
            from_dir: Directory of the importing module.
            importer: Importing module, for error messages.

        Returns:
            Canonical absolute path of the target file.

        Raises:
            ResolutionError: If no candidate file exists.
        """
        tried: list[Path] = []
        for base in self._candidate_bases(specifier, Path(from_dir)):
            found = self._probe(base, tried)
            if found is not None:
                return found.resolve()
        raise ResolutionError(specifier, from_dir, tried, importer)

    def _apply_alias(self, specifier: str) -> Path | None:
        for key, target in self.aliases:
            if specifier == key:
                return target
            if specifier.startswith(key + "/"):
                return target / specifier[len(key) + 1 :]
        return None

    def _candidate_bases(self, specifier: str, from_dir: Path) -> list[Path]:
        if not specifier:
            return []

        aliased = self._apply_alias(specifier)
        if aliased is not None:
            return [aliased]

        if _is_path_specifier(specifier):
            return [from_dir / specifier]

        bases: list[Path] = []
        for directory in (from_dir, *from_dir.parents):
            if directory.name in self.module_dirs:
                continue
            for module_dir in self.module_dirs:
                bases.append(directory / module_dir / specifier)
        return bases

    def _probe_file(self, base: Path, tried: list[Path]) -> Path | None:
        tried.append(base)
        if base.is_file():
            return base
        for ext in self.extensions:
            candidate = base.with_name(base.name + ext)
            tried.append(candidate)
            if candidate.is_file():
                return candidate
        return None

    def _probe_index(self, directory: Path, tried: list[Path]) -> Path | None:
        for ext in self.extensions:
            candidate = directory / f"index{ext}"
            tried.append(candidate)
            if candidate.is_file():
                return candidate
        return None

    def _probe(self, base: Path, tried: list[Path]) -> Path | None:
        found = self._probe_file(base, tried)
        if found is not None:
            return found
        if not base.is_dir():
            return None

        package_json = base / "package.json"
        if package_json.is_file():
            entry = self._package_entry(package_json)
            if entry is not None:
                target = base / entry
                found = self._probe_file(target, tried)
                if found is None and target.is_dir():
                    found = self._probe_index(target, tried)
                if found is not None:
                    return found

        return self._probe_index(base, tried)

    @staticmethod
    def _package_entry(package_json: Path) -> str | None:
        try:
            data = json.loads(package_json.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise ParseError(f"invalid package.json: {e.msg}", e.lineno, package_json) from e
        if not isinstance(data, dict):
            return None
        for field_name in _PACKAGE_ENTRY_FIELDS:
            value = data.get(field_name)
            if isinstance(value, str) and value:
                return value
        return None
