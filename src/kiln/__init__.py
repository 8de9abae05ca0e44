"""
kiln - Minimal JavaScript module bundler with a live-reload dev server

kiln walks the static imports of an entry module, orders every module it
finds dependency-first, and writes one self-contained bundle. In serve mode
it watches the bundled files, rebuilds on change, and tells connected
browsers to reload.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("kiln")
except PackageNotFoundError:
    __version__ = "0.0.0+unknown"  # Not installed
__author__ = "kiln contributors"
__license__ = "MIT"

from kiln.errors import (
    ConfigError,
    CycleError,
    EmitError,
    KilnError,
    ParseError,
    ResolutionError,
)

__all__ = [
    "__version__",
    "ConfigError",
    "CycleError",
    "EmitError",
    "KilnError",
    "ParseError",
    "ResolutionError",
]
