"""Bundle Emitter - Serialize a ModuleGraph into one JavaScript artifact.

The emitter orders modules dependency-first, wraps each in a factory
closure keyed by its bundle id and frames them with the runtime. Output
depends only on the graph and the emitter settings: no timestamps, no
versions, so an unchanged graph always yields byte-identical text.
"""

from __future__ import annotations

import json
import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path

from kiln.bundle.runtime import RUNTIME_PROLOGUE, livereload_client, runtime_epilogue
from kiln.bundle.transform import transform_module
from kiln.errors import EmitError
from kiln.graph.builder import ModuleGraph
from kiln.utilities.hasher import calculate_hash

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Artifact:
    """An emitted bundle.

    Attributes:
        entry: Identity of the entry module.
        entries: (identity, serialized factory) pairs in topological order.
        header: Generated text preceding the module table.
        text: Complete bundle text.
    """

    entry: Path
    entries: tuple[tuple[Path, str], ...]
    header: str
    text: str

    @property
    def order(self) -> list[Path]:
        """Module identities in bundle order."""
        return [path for path, _ in self.entries]

    @property
    def digest(self) -> str:
        return calculate_hash(self.text)

    def __len__(self) -> int:
        return len(self.entries)


def bundle_id(path: Path, root: Path) -> str:
    """Render a module identity as a stable id inside the bundle.

    Paths under ``root`` become ``./relative/posix``; others keep their
    absolute posix form.
    """
    try:
        return "./" + path.relative_to(root).as_posix()
    except ValueError:
        return path.as_posix()


def topological_order(graph: ModuleGraph) -> list[Path]:
    """Order modules so every module follows all of its dependencies.

    Depth-first post-order from the entry, following edges in discovery
    order; ties are therefore broken by first-discovery order.

    Raises:
        EmitError: If an edge points outside the module table or the graph
            is cyclic.
    """
    order: list[Path] = []
    visited: set[Path] = set()
    active: set[Path] = set()

    def visit(path: Path) -> None:
        if path in visited:
            return
        if path in active:
            raise EmitError(f"Module graph is cyclic at {path}")
        if path not in graph:
            raise EmitError(f"Edge target missing from module table: {path}")
        active.add(path)
        for edge in graph.dependencies_of(path):
            if edge.imported not in graph:
                raise EmitError(f"Edge target missing from module table: {edge}")
            visit(edge.imported)
        active.discard(path)
        visited.add(path)
        order.append(path)

    visit(graph.entry)
    for module in graph.iter_modules():
        visit(module.path)
    return order


class BundleEmitter:
    """Produces Artifact instances from module graphs.

    Args:
        root: Project root used to render bundle ids.
        mode: "development" adds per-module labels; "production" omits them.
        hot_client: Inject the live-reload client (development only).
    """

    def __init__(self, root: Path, mode: str = "development", hot_client: bool = False) -> None:
        self.root = Path(root).resolve()
        self.mode = mode
        self.hot_client = hot_client and mode == "development"

    def emit(self, graph: ModuleGraph) -> Artifact:
        """Serialize ``graph`` into an Artifact.

        Raises:
            EmitError: If the graph violates its invariants.
        """
        order = topological_order(graph)
        ids = {path: bundle_id(path, self.root) for path in order}
        development = self.mode == "development"

        entries: list[tuple[Path, str]] = []
        for path in order:
            module = graph.find(path)
            specifier_ids = {
                edge.specifier: ids[edge.imported] for edge in graph.dependencies_of(path)
            }
            missing = [s for s in module.specifiers if s not in specifier_ids]
            if missing:
                raise EmitError(f"{path}: unresolved specifiers {missing}")

            body = transform_module(module, specifier_ids)
            label = f"// {ids[path]}\n" if development else ""
            key = json.dumps(ids[path])
            factory = f"{label}{key}: function (module, exports, __kiln_require__) {{\n{body}}}"
            entries.append((path, factory))

        header_parts = [f"/* kiln {self.mode} bundle, entry {ids[graph.entry]} */\n"]
        if self.hot_client:
            header_parts.append(livereload_client())
        header = "".join(header_parts)

        text = (
            header
            + RUNTIME_PROLOGUE
            + ",\n".join(factory for _, factory in entries)
            + "\n"
            + runtime_epilogue([ids[p] for p in order], ids[graph.entry])
        )
        logger.debug("Emitted %d modules (%d bytes)", len(entries), len(text))
        return Artifact(entry=graph.entry, entries=tuple(entries), header=header, text=text)


def write_artifact(artifact: Artifact, output_dir: Path, filename: str) -> Path:
    """Atomically write the bundle to ``output_dir/filename``.

    The text goes to a temporary file in the same directory which then
    replaces the target, so readers see either the old or the new bundle.

    Returns:
        Path of the written bundle.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    target = output_dir / filename
    fd, temp_path = tempfile.mkstemp(suffix=".tmp", prefix=f".{filename}.", dir=output_dir)
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="\n") as f:
            f.write(artifact.text)
        os.chmod(temp_path, 0o644)
        os.replace(temp_path, target)
    except BaseException:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
    return target


def clean_output_dir(output_dir: Path) -> int:
    """Remove everything inside ``output_dir``.

    Returns:
        Number of top-level entries removed.
    """
    if not output_dir.is_dir():
        return 0
    removed = 0
    for child in sorted(output_dir.iterdir()):
        if child.is_dir() and not child.is_symlink():
            shutil.rmtree(child)
        else:
            child.unlink()
        removed += 1
    logger.info("Cleaned %d entries from %s", removed, output_dir)
    return removed
