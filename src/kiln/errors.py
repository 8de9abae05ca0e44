"""Error hierarchy for bundling and serving.

Initial-build errors abort startup. During a dev session the resolution,
parse and cycle errors are reported to connected clients while the previous
bundle keeps serving; ``EmitError`` always means an internal bug.
"""

from __future__ import annotations

from pathlib import Path


class KilnError(Exception):
    """Base for all kiln errors."""


class ConfigError(KilnError):
    """Configuration is missing or invalid."""


class ResolutionError(KilnError):
    """A module specifier could not be mapped to a file.

    Attributes:
        specifier: The specifier as written in the importing module.
        from_dir: Directory the specifier was resolved against.
        tried: Candidate paths probed, in order.
        importer: Module containing the import, when known.
    """

    def __init__(
        self,
        specifier: str,
        from_dir: Path,
        tried: list[Path] | None = None,
        importer: Path | None = None,
    ) -> None:
        self.specifier = specifier
        self.from_dir = Path(from_dir)
        self.tried = list(tried or [])
        self.importer = importer
        where = importer if importer is not None else self.from_dir
        super().__init__(f"Cannot resolve '{specifier}' from {where}")


class ParseError(KilnError):
    """Module source could not be scanned.

    Attributes:
        path: File being parsed (None for in-memory sources).
        line: 1-based line where the problem was detected.
        reason: Short description without location.
    """

    def __init__(self, reason: str, line: int, path: Path | None = None) -> None:
        self.reason = reason
        self.line = line
        self.path = path
        location = f"{path}:{line}" if path is not None else f"line {line}"
        super().__init__(f"{location}: {reason}")

    def with_path(self, path: Path) -> ParseError:
        """Return a copy of this error attributed to ``path``."""
        return ParseError(self.reason, self.line, path)


class CycleError(KilnError):
    """The import graph contains a cycle.

    Attributes:
        cycle: Full cycle path, first and last element identical
            (e.g. ``[a, b, a]``).
    """

    def __init__(self, cycle: list[Path]) -> None:
        self.cycle = list(cycle)
        chain = " -> ".join(str(p) for p in self.cycle)
        super().__init__(f"Circular dependency: {chain}")


class EmitError(KilnError):
    """The module graph handed to the emitter violates its invariants."""
