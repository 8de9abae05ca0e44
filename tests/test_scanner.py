"""Tests for the JavaScript tokenizer and import/export scanner."""

from pathlib import Path

import pytest

from kiln.errors import ParseError
from kiln.graph.scanner import (
    NAME,
    REGEX,
    STRING,
    TEMPLATE,
    StatementKind,
    scan_module,
    tokenize,
)


def _kinds(source):
    return [(tok.kind, tok.value) for tok in tokenize(source)]


class TestTokenize:
    """Lexing of literals, comments and brackets."""

    def test_strings_hide_brackets_and_keywords(self):
        tokens = tokenize('const s = "import { x } from \'y\'";')
        strings = [tok for tok in tokens if tok.kind == STRING]
        assert len(strings) == 1
        assert strings[0].value == '"import { x } from \'y\'"'

    def test_comments_are_skipped(self):
        source = '// import a from "a"\n/* export { b } */\nlet x = 1;\n'
        names = [tok.value for tok in tokenize(source) if tok.kind == NAME]
        assert names == ["let", "x"]

    def test_line_numbers_follow_newlines(self):
        tokens = tokenize("a\n/* one\ntwo */\nb\n`x\ny`\nc")
        lines = {tok.value: tok.line for tok in tokens if tok.kind == NAME}
        assert lines == {"a": 1, "b": 4, "c": 7}

    def test_regex_after_operator(self):
        tokens = tokenize("const r = /[/]{2}\\/x/g;")
        regexes = [tok.value for tok in tokens if tok.kind == REGEX]
        assert regexes == ["/[/]{2}\\/x/g"]

    def test_division_after_value(self):
        kinds = _kinds("const d = (x) / y / 2;")
        assert (REGEX, "/ y /") not in kinds
        assert [v for k, v in kinds if v == "/"] == ["/", "/"]

    def test_template_substitution_nesting(self):
        tokens = tokenize("const t = `a ${ {k: 1}.k } b ${`inner ${x}`} c`;")
        templates = [tok.value for tok in tokens if tok.kind == TEMPLATE]
        assert templates[0] == "`a ${"
        assert templates[-1] == "} c`"

    def test_bracket_depth(self):
        tokens = tokenize("f(a, [b]) { c }")
        depth = {tok.value: tok.depth for tok in tokens if tok.kind == NAME}
        assert depth == {"f": 0, "a": 1, "b": 2, "c": 1}

    def test_shebang_is_ignored(self):
        tokens = tokenize("#!/usr/bin/env node\nlet x;\n")
        assert tokens[0].value == "let"
        assert tokens[0].line == 2

    @pytest.mark.parametrize(
        "source,reason,line",
        [
            ("let s = 'abc\n", "unterminated string literal", 1),
            ("let t = `abc", "unterminated template literal", 1),
            ("x = 1;\nlet r = /abc\n", "unterminated regular expression", 2),
            ("/* never closed", "unterminated block comment", 1),
            ("function f() {\n  return (1;\n}\n", "mismatched '}'", 3),
            ("let a = [1, 2;\n", "unclosed '['", 1),
            ("}\n", "unexpected '}'", 1),
        ],
    )
    def test_errors(self, source, reason, line):
        with pytest.raises(ParseError) as exc:
            tokenize(source)
        assert exc.value.reason.startswith(reason)
        assert exc.value.line == line


class TestScanImports:
    """Import statement extraction."""

    def test_default_and_named(self):
        result = scan_module('import React, { useState as s, useEffect } from "react";')
        (stmt,) = result.statements
        assert stmt.kind is StatementKind.IMPORT
        assert stmt.specifier == "react"
        assert stmt.bindings == (
            ("default", "React"),
            ("useState", "s"),
            ("useEffect", "useEffect"),
        )

    def test_namespace(self):
        (stmt,) = scan_module("import * as utils from './utils.js'").statements
        assert stmt.bindings == (("*", "utils"),)
        assert stmt.specifier == "./utils.js"

    def test_side_effect_only(self):
        (stmt,) = scan_module('import "./polyfill";\n').statements
        assert (stmt.start, stmt.end) == (0, 20)
        assert stmt.bindings == ()
        assert stmt.specifier == "./polyfill"

    def test_span_covers_statement(self):
        source = 'let x;\nimport {\n  a,\n  b,\n} from "./ab";\nx = a;\n'
        (stmt,) = scan_module(source).statements
        assert source[stmt.start : stmt.end] == 'import {\n  a,\n  b,\n} from "./ab";'
        assert stmt.line == 2

    def test_dynamic_import_and_meta_are_ignored(self):
        source = 'const m = import("./lazy.js");\nconsole.log(import.meta.url);\n'
        assert scan_module(source).statements == ()

    def test_nested_import_keyword_is_ignored(self):
        source = "function f() { const o = { import: 1 }; return o.import; }\n"
        assert scan_module(source).statements == ()

    def test_specifiers_are_distinct_in_order(self):
        source = (
            'import a from "./a";\n'
            'import { b } from "./b";\n'
            'import { a2 } from "./a";\n'
            'export { c } from "./c";\n'
        )
        assert scan_module(source).specifiers == ("./a", "./b", "./c")

    def test_import_attributes(self):
        source = 'import data from "./data.js" with { type: "json" };\nlet x;\n'
        (stmt,) = scan_module(source).statements
        assert source[stmt.end - 1] == ";"

    def test_malformed_import(self):
        with pytest.raises(ParseError) as exc:
            scan_module('let x;\nimport { a } "./a";\n')
        assert exc.value.reason == "malformed import statement"
        assert exc.value.line == 2


class TestScanExports:
    """Export statement extraction."""

    def test_export_declarations(self):
        source = (
            "export const a = 1, b = f(1, 2);\n"
            "export function go() {}\n"
            "export async function load() {}\n"
            "export class Widget {}\n"
        )
        statements = scan_module(source).statements
        assert [s.kind for s in statements] == [StatementKind.EXPORT_DECLARATION] * 4
        assert [s.bindings for s in statements] == [
            (("a", "a"), ("b", "b")),
            (("go", "go"),),
            (("load", "load"),),
            (("Widget", "Widget"),),
        ]
        # Only the keyword is replaced
        assert all(source[s.start : s.end] == "export" for s in statements)

    def test_export_list(self):
        (stmt,) = scan_module("const x = 1;\nexport { x, x as y };\n").statements
        assert stmt.kind is StatementKind.EXPORT_NAMES
        assert stmt.bindings == (("x", "x"), ("x", "y"))

    def test_reexports(self):
        source = (
            'export * from "./all";\n'
            'export * as ns from "./ns";\n'
            'export { a as b, default as c } from "./some";\n'
        )
        star, namespace, named = scan_module(source).statements
        assert star.kind is StatementKind.REEXPORT and star.star
        assert namespace.bindings == (("*", "ns"),) and not namespace.star
        assert named.bindings == (("a", "b"), ("default", "c"))

    def test_export_default_expression(self):
        (stmt,) = scan_module("export default 40 + 2;\n").statements
        assert stmt.kind is StatementKind.EXPORT_DEFAULT
        assert stmt.bindings == ((None, "default"),)
        # The rewrite replaces "export default" with a binding
        assert "export default 40 + 2;\n"[stmt.start : stmt.end] == "export default"

    def test_trailing_keyword_is_malformed(self):
        with pytest.raises(ParseError, match="malformed import statement"):
            scan_module("let x;\nimport")

    def test_export_default_named_function(self):
        (stmt,) = scan_module("export default function main() {}\n").statements
        assert stmt.bindings == (("main", "default"),)

    def test_export_default_anonymous_class(self):
        (stmt,) = scan_module("export default class extends Base {}\n").statements
        assert stmt.bindings == ((None, "default"),)

    def test_destructuring_export_rejected(self):
        with pytest.raises(ParseError, match="destructuring exports are not supported"):
            scan_module("export const { a, b } = obj;\n")

    def test_error_carries_path(self):
        path = Path("/project/src/broken.js")
        with pytest.raises(ParseError) as exc:
            scan_module("export const c = (1;\n", path)
        assert exc.value.path == path
        assert str(exc.value).startswith("/project/src/broken.js:1:")
