"""Graph Builder - Constructs ModuleGraph from an entry module.

The builder walks static imports depth-first from the entry, resolving each
specifier and recursing into modules it has not seen. A module reached again
while it is still on the traversal stack is a cycle and fails the build.

Rebuilds always reconstruct the whole graph from the entry. Modules that did
not change are reused from the previous graph together with their resolved
edges, so only changed files are read and re-resolved.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator

from kiln.errors import CycleError, ResolutionError
from kiln.graph.module import Dependency, Module, read_module
from kiln.graph.resolver import Resolver

logger = logging.getLogger(__name__)


@dataclass
class ModuleGraph:
    """Container for a complete dependency graph.

    Modules and edges keep their first-discovery order, which the emitter
    relies on for a stable bundle layout. Every edge endpoint is a key of
    the module table.

    Attributes:
        entry: Canonical path of the entry module.
    """

    entry: Path

    # Internal storage (prefixed) - populated by GraphBuilder
    _modules: dict[Path, Module] = field(default_factory=dict, init=False, repr=False)
    _edges: list[Dependency] = field(default_factory=list, init=False, repr=False)
    _outgoing: dict[Path, list[Dependency]] = field(default_factory=dict, init=False, repr=False)

    def find(self, path: Path) -> Module | None:
        """Return the module with this identity, or None."""
        return self._modules.get(path)

    def __contains__(self, path: object) -> bool:
        return path in self._modules

    def iter_modules(self) -> Iterator[Module]:
        """Iterate modules in first-discovery order."""
        yield from self._modules.values()

    def iter_edges(self) -> Iterator[Dependency]:
        """Iterate edges in discovery order."""
        yield from self._edges

    def paths(self) -> frozenset[Path]:
        """Identities of all modules in the graph."""
        return frozenset(self._modules)

    def module_count(self) -> int:
        return len(self._modules)

    def edge_count(self) -> int:
        return len(self._edges)

    def dependencies_of(self, path: Path) -> list[Dependency]:
        """Outgoing edges of a module, in specifier order."""
        return list(self._outgoing.get(path, ()))

    def dependents_of(self, path: Path) -> list[Path]:
        """Modules that import ``path`` directly."""
        seen: dict[Path, None] = {}
        for edge in self._edges:
            if edge.imported == path:
                seen.setdefault(edge.importer, None)
        return list(seen)

    def _add_module(self, module: Module) -> None:
        self._modules[module.path] = module
        self._outgoing.setdefault(module.path, [])

    def _add_edge(self, edge: Dependency) -> None:
        self._edges.append(edge)
        self._outgoing.setdefault(edge.importer, []).append(edge)


class GraphBuilder:
    """Builds ModuleGraph instances with a Resolver.

    Usage:
        builder = GraphBuilder(Resolver(aliases={"app": root}))
        graph = builder.build(root / "src/main.js")
        graph = builder.rebuild(graph, changed={root / "src/a.js"})
    """

    def __init__(self, resolver: Resolver) -> None:
        self.resolver = resolver

    def build(self, entry: Path) -> ModuleGraph:
        """Build a graph from scratch.

        Raises:
            ResolutionError: If the entry or any import cannot be resolved.
            ParseError: If a module cannot be scanned.
            CycleError: If the imports form a cycle.
        """
        return self._construct(entry, previous=None, changed=frozenset())

    def rebuild(self, previous: ModuleGraph, changed: Iterable[Path]) -> ModuleGraph:
        """Build a new graph, reusing unchanged modules of ``previous``.

        A module is re-read when its path is in ``changed`` or when its mtime
        or size no longer match. Every reachable module has its specifiers
        resolved again. Modules no longer reachable from the entry are dropped.
        """
        changed_set = frozenset(Path(p) for p in changed)
        return self._construct(previous.entry, previous=previous, changed=changed_set)

    def _construct(
        self,
        entry: Path,
        previous: ModuleGraph | None,
        changed: frozenset[Path],
    ) -> ModuleGraph:
        entry = Path(entry).resolve()
        if not entry.is_file():
            raise ResolutionError(str(entry), entry.parent, tried=[entry])

        graph = ModuleGraph(entry=entry)
        stack: list[Path] = []
        on_stack: set[Path] = set()
        done: set[Path] = set()
        reused = 0

        def visit(path: Path) -> None:
            nonlocal reused
            if path in on_stack:
                raise CycleError(stack[stack.index(path) :] + [path])
            if path in done:
                return

            stack.append(path)
            on_stack.add(path)

            module, targets, was_reused = self._load(path, previous, changed)
            reused += was_reused
            graph._add_module(module)
            for specifier, target in targets:
                visit(target)
                graph._add_edge(Dependency(importer=path, imported=target, specifier=specifier))

            stack.pop()
            on_stack.discard(path)
            done.add(path)

        visit(entry)
        logger.debug(
            "Built graph for %s: %d modules (%d reused), %d edges",
            entry,
            graph.module_count(),
            reused,
            graph.edge_count(),
        )
        return graph

    def _load(
        self,
        path: Path,
        previous: ModuleGraph | None,
        changed: frozenset[Path],
    ) -> tuple[Module, list[tuple[str, Path]], bool]:
        """Return (module, [(specifier, target)], reused) for ``path``.

        Only the parsed module is reused. Specifiers are always resolved
        again, since new or deleted files can change where they point.
        """
        module = None
        if previous is not None and path not in changed:
            prior = previous.find(path)
            if prior is not None and prior.is_current():
                module = prior
        was_reused = module is not None
        if module is None:
            module = read_module(path)

        targets = [
            (specifier, self.resolver.resolve(specifier, path.parent, importer=path))
            for specifier in module.specifiers
        ]
        return module, targets, was_reused
