"""Transform - Rewrite a module's import/export statements for the runtime.

Imports become ``const`` bindings read from ``__kiln_require__(id)``.
Exports become getters registered on the module's ``exports`` object at the
top of the factory, so they exist before any importer runs. Every rewritten
statement keeps its line count, so line numbers in the bundle match the
source file (offset by the factory header).
"""

from __future__ import annotations

import json

from kiln.bundle.runtime import DEFAULT_LOCAL, REQUIRE
from kiln.errors import EmitError
from kiln.graph.module import Module
from kiln.graph.scanner import ModuleStatement, StatementKind


def _key(name: str) -> str:
    return json.dumps(name)


def _getter(exported: str, expression: str) -> str:
    return f"{REQUIRE}.d(exports, {_key(exported)}, function () {{ return {expression}; }});"


class _Rewriter:
    """Collects replacements and export getters for one module."""

    def __init__(self, module: Module, ids: dict[str, str]) -> None:
        self.module = module
        self.ids = ids
        self.getters: list[str] = []
        self.counter = 0

    def _require(self, stmt: ModuleStatement) -> str:
        bundle_id = self.ids.get(stmt.specifier or "")
        if bundle_id is None:
            raise EmitError(
                f"{self.module.path}: no resolved module for specifier '{stmt.specifier}'"
            )
        return f"{REQUIRE}({_key(bundle_id)})"

    def _temp(self) -> str:
        name = f"__kiln_import_{self.counter}__"
        self.counter += 1
        return name

    def rewrite(self, stmt: ModuleStatement) -> str:
        kind = stmt.kind

        if kind is StatementKind.IMPORT:
            call = self._require(stmt)
            if not stmt.bindings:
                return f"{call};"
            if len(stmt.bindings) == 1 and stmt.bindings[0][0] == "*":
                return f"const {stmt.bindings[0][1]} = {call};"
            temp = self._temp()
            parts = [f"const {temp} = {call};"]
            for imported, local in stmt.bindings:
                if imported == "*":
                    parts.append(f"const {local} = {temp};")
                else:
                    parts.append(f"const {local} = {temp}[{_key(imported)}];")
            return " ".join(parts)

        if kind is StatementKind.REEXPORT:
            temp = self._temp()
            text = f"const {temp} = {self._require(stmt)};"
            if stmt.star:
                text += f" {REQUIRE}.s(exports, {temp});"
            for imported, exported in stmt.bindings:
                if imported == "*":
                    self.getters.append(_getter(exported, temp))
                else:
                    self.getters.append(_getter(exported, f"{temp}[{_key(imported)}]"))
            return text

        if kind in (StatementKind.EXPORT_NAMES, StatementKind.EXPORT_DECLARATION):
            for local, exported in stmt.bindings:
                self.getters.append(_getter(exported, local))
            return ""

        if kind is StatementKind.EXPORT_DEFAULT:
            local = stmt.bindings[0][0]
            if local is not None:
                self.getters.append(_getter("default", local))
                return ""
            self.getters.append(_getter("default", DEFAULT_LOCAL))
            return f"const {DEFAULT_LOCAL} ="

        raise EmitError(f"{self.module.path}: unknown statement kind {kind}")


def transform_module(module: Module, ids: dict[str, str]) -> str:
    """Return the factory body for ``module``.

    Args:
        module: Parsed module.
        ids: Specifier -> bundle id for every specifier the module uses.

    Returns:
        Body text: one prologue line followed by the rewritten source.

    Raises:
        EmitError: If a specifier has no bundle id.
    """
    rewriter = _Rewriter(module, ids)
    source = module.source
    pieces: list[str] = []
    cursor = 0

    for stmt in module.statements:
        replacement = rewriter.rewrite(stmt)
        original = source[stmt.start : stmt.end]
        pieces.append(source[cursor : stmt.start])
        pieces.append(replacement + "\n" * original.count("\n"))
        cursor = stmt.end
    pieces.append(source[cursor:])

    prologue = " ".join(['"use strict";', f"{REQUIRE}.r(exports);", *rewriter.getters])
    body = "".join(pieces).lstrip("\ufeff")
    if body.startswith("#!"):
        # Shebang lines are only legal at the very start of a script.
        newline = body.find("\n")
        body = "" if newline == -1 else body[newline:]
    if not body.endswith("\n"):
        body += "\n"
    return prologue + "\n" + body
