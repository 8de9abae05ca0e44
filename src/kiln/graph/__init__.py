"""kiln.graph - Module dependency graph.

Exports:
- Module, Dependency: graph node and edge
- ModuleGraph, GraphBuilder: graph container and its builder
- Resolver: specifier resolution
- scan_module, tokenize: JavaScript import/export scanning
"""

from kiln.graph.builder import GraphBuilder, ModuleGraph
from kiln.graph.module import Dependency, Module, read_module
from kiln.graph.resolver import Resolver
from kiln.graph.scanner import (
    ModuleStatement,
    ScanResult,
    StatementKind,
    Token,
    scan_module,
    tokenize,
)

__all__ = [
    "Dependency",
    "GraphBuilder",
    "Module",
    "ModuleGraph",
    "ModuleStatement",
    "Resolver",
    "ScanResult",
    "StatementKind",
    "Token",
    "read_module",
    "scan_module",
    "tokenize",
]
