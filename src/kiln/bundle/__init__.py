"""kiln.bundle - Turn a module graph into a single runnable bundle.

Exports:
- BundleEmitter, Artifact: emission and its result
- topological_order: dependency-first module order
- write_artifact, clean_output_dir: output directory handling
"""

from kiln.bundle.emitter import (
    Artifact,
    BundleEmitter,
    bundle_id,
    clean_output_dir,
    topological_order,
    write_artifact,
)
from kiln.bundle.transform import transform_module

__all__ = [
    "Artifact",
    "BundleEmitter",
    "bundle_id",
    "clean_output_dir",
    "topological_order",
    "transform_module",
    "write_artifact",
]
