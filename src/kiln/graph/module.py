"""Module - Graph node and edge types.

- Module: one source file, identified by its canonical absolute path
- Dependency: a directed import edge between two modules
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from kiln.errors import ParseError, ResolutionError
from kiln.graph.scanner import ModuleStatement, scan_module
from kiln.utilities.hasher import calculate_hash


@dataclass(frozen=True)
class Module:
    """A parsed source file.

    Attributes:
        path: Canonical absolute path; the module's identity.
        source: Raw source text.
        statements: Top-level import/export statements in source order.
        specifiers: Distinct import specifiers in first-appearance order.
        digest: Content hash of the file bytes.
        mtime_ns: Modification time when the file was read.
        size: File size in bytes when the file was read.
    """

    path: Path
    source: str
    statements: tuple[ModuleStatement, ...]
    specifiers: tuple[str, ...]
    digest: str
    mtime_ns: int
    size: int

    def is_current(self) -> bool:
        """True if the file on disk still has the recorded mtime and size."""
        try:
            stat = self.path.stat()
        except OSError:
            return False
        return stat.st_mtime_ns == self.mtime_ns and stat.st_size == self.size


@dataclass(frozen=True)
class Dependency:
    """A directed import edge.

    Attributes:
        importer: Identity of the importing module.
        imported: Identity of the imported module.
        specifier: Specifier as written in the importer.
    """

    importer: Path
    imported: Path
    specifier: str

    def __str__(self) -> str:
        return f"{self.importer} --[{self.specifier}]--> {self.imported}"


def read_module(path: Path) -> Module:
    """Read and scan one module file.

    Args:
        path: Canonical path of the module.

    Returns:
        The parsed Module.

    Raises:
        ResolutionError: If the file cannot be read.
        ParseError: If the file is not UTF-8 or does not scan.
    """
    try:
        stat = path.stat()
        raw = path.read_bytes()
    except OSError as e:
        raise ResolutionError(str(path), path.parent, tried=[path]) from e

    try:
        source = raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise ParseError(f"not valid UTF-8 ({e.reason})", 1, path) from e

    scan = scan_module(source, path)
    return Module(
        path=path,
        source=source,
        statements=scan.statements,
        specifiers=scan.specifiers,
        digest=calculate_hash(raw),
        mtime_ns=stat.st_mtime_ns,
        size=stat.st_size,
    )
