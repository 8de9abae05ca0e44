"""
kiln.commands.build - One-shot bundle build.
"""

from __future__ import annotations

import argparse

from kiln.bundle import BundleEmitter, clean_output_dir, write_artifact
from kiln.commands import load_bundler_config
from kiln.graph import GraphBuilder, Resolver


def run(args: argparse.Namespace) -> int:
    """Run the build command.

    Builds the graph from the configured entry, emits the bundle without
    the live-reload client and writes it. Errors propagate to ``main``,
    which reports them and exits with 1; nothing is written in that case.
    """
    config = load_bundler_config(args, mode=getattr(args, "mode", None))

    builder = GraphBuilder(Resolver.from_config(config))
    module_graph = builder.build(config.entry_path)
    artifact = BundleEmitter(config.root, mode=config.mode).emit(module_graph)

    if config.has_feature("clean"):
        clean_output_dir(config.output_path)
    target = write_artifact(artifact, config.output_path, config.output_filename)

    if not getattr(args, "quiet", False):
        print(
            f"Built {len(artifact)} modules ({config.mode}) -> {target} "
            f"[{artifact.digest}, {len(artifact.text.encode('utf-8'))} bytes]"
        )
    return 0
