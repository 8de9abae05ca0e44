"""
kiln.commands.graph - Show the module graph in bundle order.
"""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from kiln.bundle import bundle_id, topological_order
from kiln.commands import load_bundler_config
from kiln.graph import GraphBuilder, ModuleGraph, Resolver


def run(args: argparse.Namespace) -> int:
    """Run the graph command."""
    config = load_bundler_config(args)
    module_graph = GraphBuilder(Resolver.from_config(config)).build(config.entry_path)

    if getattr(args, "json", False):
        print(json.dumps(_graph_data(module_graph, config.root), indent=2))
        return 0

    for entry in _graph_data(module_graph, config.root)["modules"]:
        marker = "*" if entry["entry"] else " "
        print(f"{marker} {entry['id']}")
        for dep in entry["dependencies"]:
            print(f"    -> {dep['id']}  ('{dep['specifier']}')")
    print(f"\n{module_graph.module_count()} modules, {module_graph.edge_count()} imports")
    return 0


def _graph_data(module_graph: ModuleGraph, root: Path) -> dict:
    """Modules in bundle order with their resolved imports."""
    modules = []
    for path in topological_order(module_graph):
        modules.append(
            {
                "id": bundle_id(path, root),
                "path": str(path),
                "entry": path == module_graph.entry,
                "dependencies": [
                    {"id": bundle_id(edge.imported, root), "specifier": edge.specifier}
                    for edge in module_graph.dependencies_of(path)
                ],
            }
        )
    return {"entry": bundle_id(module_graph.entry, root), "modules": modules}
