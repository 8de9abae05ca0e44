"""Scanner - Tokenize JavaScript modules and extract static imports/exports.

The scanner is not a full JavaScript parser. It tokenizes enough of the
language to skip comments, strings, template literals and regular
expressions correctly, checks that brackets balance, and recognises the
top-level ``import`` and ``export`` statements the bundler has to rewrite.
Dynamic ``import()``, ``import.meta`` and ``require()`` calls are left alone.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from kiln.errors import ParseError

# Token kinds
NAME = "name"
STRING = "string"
TEMPLATE = "template"
NUMBER = "number"
PUNCT = "punct"
REGEX = "regex"

_OPENERS = {"(": ")", "[": "]", "{": "}"}
_CLOSERS = {")": "(", "]": "[", "}": "{"}

_WHITESPACE = " \t\r\f\v\ufeff\u00a0\u2028\u2029"

# Keywords after which a "/" starts a regular expression, not a division.
_REGEX_PREFIX_KEYWORDS = frozenset(
    {
        "await",
        "case",
        "delete",
        "do",
        "else",
        "in",
        "instanceof",
        "new",
        "of",
        "return",
        "throw",
        "typeof",
        "void",
        "yield",
    }
)

# Keywords that begin a new statement; used to stop scanning a declaration.
_STATEMENT_KEYWORDS = frozenset(
    {
        "class",
        "const",
        "do",
        "export",
        "for",
        "function",
        "if",
        "import",
        "let",
        "return",
        "switch",
        "throw",
        "try",
        "var",
        "while",
    }
)

_ESCAPE = re.compile(r"\\(.)", re.DOTALL)


@dataclass(frozen=True)
class Token:
    """A lexical token.

    Attributes:
        kind: One of NAME, STRING, TEMPLATE, NUMBER, PUNCT, REGEX.
        value: Raw source text of the token.
        start: Offset of the first character.
        end: Offset one past the last character.
        line: 1-based line of the first character.
        depth: Bracket nesting depth; 0 is module top level. An opening
            bracket and its matching closer share the same depth.
    """

    kind: str
    value: str
    start: int
    end: int
    line: int
    depth: int


class StatementKind(Enum):
    """Kinds of module-level import/export statements."""

    IMPORT = "import"  # import x, {a as b} from "s" / import "s"
    REEXPORT = "reexport"  # export {a as b} from "s" / export * (as ns) from "s"
    EXPORT_NAMES = "export_names"  # export {a, b as c}
    EXPORT_DECLARATION = "export_declaration"  # export const/let/var/function/class
    EXPORT_DEFAULT = "export_default"  # export default ...


@dataclass(frozen=True)
class ModuleStatement:
    """One import or export statement found at module top level.

    ``bindings`` pairs depend on ``kind``:

    - IMPORT: ``(imported, local)``; imported is ``"default"``, ``"*"`` or a name.
    - REEXPORT: ``(imported, exported)``; imported ``"*"`` for ``* as ns``.
    - EXPORT_NAMES / EXPORT_DECLARATION: ``(local, exported)``.
    - EXPORT_DEFAULT: ``(local, "default")``; local is ``None`` when the
      default export is an expression rather than a named declaration.

    ``start``/``end`` delimit the source text the bundler replaces: the whole
    statement for imports, re-exports and export lists, only the ``export``
    (``export default``) keywords for declarations.
    """

    kind: StatementKind
    start: int
    end: int
    line: int
    specifier: str | None = None
    bindings: tuple[tuple[str | None, str], ...] = ()
    star: bool = False


@dataclass(frozen=True)
class ScanResult:
    """Statements found in a module, in source order."""

    statements: tuple[ModuleStatement, ...]

    @property
    def specifiers(self) -> tuple[str, ...]:
        """Distinct specifiers in first-appearance order."""
        seen: dict[str, None] = {}
        for stmt in self.statements:
            if stmt.specifier is not None:
                seen.setdefault(stmt.specifier, None)
        return tuple(seen)


# ─────────────────────────────────────────────────────────────────────────────
# Lexer
# ─────────────────────────────────────────────────────────────────────────────


def _is_name_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$#\\" or ord(ch) > 127


def _is_name_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$\\" or ord(ch) > 127


def _regex_allowed(prev: Token | None) -> bool:
    """Decide whether a "/" after ``prev`` opens a regular expression."""
    if prev is None:
        return True
    if prev.kind == NAME:
        return prev.value in _REGEX_PREFIX_KEYWORDS
    if prev.kind == TEMPLATE:
        return prev.value.endswith("${")
    if prev.kind == PUNCT:
        return prev.value not in (")", "]")
    return False


def _scan_string(source: str, i: int, line: int) -> int:
    """Return the offset just past the string literal starting at ``i``."""
    quote = source[i]
    j = i + 1
    n = len(source)
    while j < n:
        ch = source[j]
        if ch == "\\":
            j += 2
            continue
        if ch == quote:
            return j + 1
        if ch == "\n":
            break
        j += 1
    raise ParseError("unterminated string literal", line)


def _scan_template_chunk(source: str, i: int, line: int) -> tuple[int, bool]:
    """Scan template text from ``i`` up to a closing backtick or ``${``.

    Returns:
        (offset past the terminator, True if the literal ended).
    """
    j = i
    n = len(source)
    while j < n:
        ch = source[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "`":
            return j + 1, True
        if ch == "$" and j + 1 < n and source[j + 1] == "{":
            return j + 2, False
        j += 1
    raise ParseError("unterminated template literal", line)


def _scan_regex(source: str, i: int, line: int) -> int:
    """Return the offset just past the regex literal (flags included) at ``i``."""
    j = i + 1
    n = len(source)
    in_class = False
    while True:
        if j >= n or source[j] == "\n":
            raise ParseError("unterminated regular expression", line)
        ch = source[j]
        if ch == "\\":
            j += 2
            continue
        if ch == "[":
            in_class = True
        elif ch == "]":
            in_class = False
        elif ch == "/" and not in_class:
            break
        j += 1
    j += 1
    while j < n and _is_name_part(source[j]):
        j += 1
    return j


def _scan_number(source: str, i: int) -> int:
    j = i + 1
    n = len(source)
    is_hex = source[i] == "0" and j < n and source[j] in "xXbBoO"
    while j < n:
        ch = source[j]
        if ch.isalnum() or ch in "._":
            j += 1
        elif ch in "+-" and not is_hex and source[j - 1] in "eE":
            j += 1
        else:
            break
    return j


def tokenize(source: str) -> list[Token]:
    """Split JavaScript source into tokens, skipping whitespace and comments.

    Args:
        source: Module source text.

    Returns:
        Tokens in source order, each annotated with its bracket depth.

    Raises:
        ParseError: On unterminated literals or comments and on unbalanced
            or mismatched brackets.
    """
    tokens: list[Token] = []
    # Open brackets as (opener, line); "${" marks a template substitution.
    stack: list[tuple[str, int]] = []
    n = len(source)
    i = 0
    line = 1

    if source.startswith("#!"):
        i = source.find("\n")
        if i == -1:
            return tokens

    def emit(kind: str, start: int, end: int, token_line: int, depth: int) -> None:
        tokens.append(Token(kind, source[start:end], start, end, token_line, depth))

    while i < n:
        ch = source[i]

        if ch == "\n":
            line += 1
            i += 1
            continue
        if ch in _WHITESPACE:
            i += 1
            continue

        nxt = source[i + 1] if i + 1 < n else ""
        if ch == "/" and nxt == "/":
            end = source.find("\n", i)
            i = n if end == -1 else end
            continue
        if ch == "/" and nxt == "*":
            end = source.find("*/", i + 2)
            if end == -1:
                raise ParseError("unterminated block comment", line)
            line += source.count("\n", i, end)
            i = end + 2
            continue

        start = i
        start_line = line
        depth = len(stack)
        prev = tokens[-1] if tokens else None

        if ch in "'\"":
            i = _scan_string(source, i, line)
            line += source.count("\n", start, i)
            emit(STRING, start, i, start_line, depth)
        elif ch == "`":
            i, ended = _scan_template_chunk(source, i + 1, line)
            line += source.count("\n", start, i)
            emit(TEMPLATE, start, i, start_line, depth)
            if not ended:
                stack.append(("${", start_line))
        elif ch.isdigit() or (ch == "." and nxt.isdigit()):
            i = _scan_number(source, i)
            emit(NUMBER, start, i, start_line, depth)
        elif _is_name_start(ch):
            i += 1
            while i < n and _is_name_part(source[i]):
                i += 1
            emit(NAME, start, i, start_line, depth)
        elif ch == "/" and _regex_allowed(prev):
            i = _scan_regex(source, i, line)
            emit(REGEX, start, i, start_line, depth)
        elif ch in _OPENERS:
            emit(PUNCT, start, i + 1, start_line, depth)
            stack.append((ch, line))
            i += 1
        elif ch in _CLOSERS:
            if not stack:
                raise ParseError(f"unexpected '{ch}'", line)
            opener, opened_at = stack[-1]
            if ch == "}" and opener == "${":
                stack.pop()
                i, ended = _scan_template_chunk(source, i + 1, line)
                line += source.count("\n", start, i)
                emit(TEMPLATE, start, i, start_line, len(stack))
                if not ended:
                    stack.append(("${", start_line))
                continue
            if _CLOSERS[ch] != opener:
                raise ParseError(
                    f"mismatched '{ch}' (expected '{_OPENERS.get(opener, '}')}' "
                    f"for '{opener}' opened on line {opened_at})",
                    line,
                )
            stack.pop()
            emit(PUNCT, start, i + 1, start_line, len(stack))
            i += 1
        else:
            emit(PUNCT, start, i + 1, start_line, depth)
            i += 1

    if stack:
        opener, opened_at = stack[-1]
        if opener == "${":
            raise ParseError("unterminated template literal", opened_at)
        raise ParseError(f"unclosed '{opener}'", opened_at)

    return tokens


# ─────────────────────────────────────────────────────────────────────────────
# Statement parser
# ─────────────────────────────────────────────────────────────────────────────


class _Cursor:
    """Sequential reader over a token list for one statement."""

    def __init__(self, tokens: list[Token], keyword: int, what: str) -> None:
        self.tokens = tokens
        self.index = keyword + 1
        self.what = what
        # The "import"/"export" keyword; statement spans start here.
        self.first = tokens[keyword]

    def peek(self, offset: int = 0) -> Token | None:
        k = self.index + offset
        return self.tokens[k] if k < len(self.tokens) else None

    def fail(self, token: Token | None = None) -> ParseError:
        line = (token or self.peek() or self.first).line
        return ParseError(f"malformed {self.what} statement", line)

    def next(self) -> Token:
        tok = self.peek()
        if tok is None:
            raise self.fail(self.first)
        self.index += 1
        return tok

    def is_punct(self, value: str) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind == PUNCT and tok.value == value

    def is_name(self, value: str | None = None) -> bool:
        tok = self.peek()
        return tok is not None and tok.kind == NAME and (value is None or tok.value == value)

    def expect_punct(self, value: str) -> Token:
        tok = self.next()
        if tok.kind != PUNCT or tok.value != value:
            raise self.fail(tok)
        return tok

    def expect_name(self, value: str | None = None) -> Token:
        tok = self.next()
        if tok.kind != NAME or (value is not None and tok.value != value):
            raise self.fail(tok)
        return tok

    def expect_string(self) -> str:
        tok = self.next()
        if tok.kind != STRING:
            raise self.fail(tok)
        return string_value(tok)

    def skip_attributes(self) -> None:
        """Skip ``with { ... }`` / ``assert { ... }`` import attributes."""
        tok = self.peek()
        after = self.peek(1)
        if (
            tok is not None
            and tok.kind == NAME
            and tok.value in ("with", "assert")
            and after is not None
            and after.kind == PUNCT
            and after.value == "{"
        ):
            self.index += 2
            while True:
                inner = self.next()
                if inner.kind == PUNCT and inner.value == "}" and inner.depth == after.depth:
                    return

    def end_offset(self) -> int:
        """Consume an optional ";" and return the statement's end offset."""
        if self.is_punct(";"):
            self.index += 1
        return self.tokens[self.index - 1].end


def string_value(token: Token) -> str:
    """Return the contents of a string literal token without quotes."""
    body = token.value[1:-1]
    if "\\" in body:
        body = _ESCAPE.sub(r"\1", body)
    return body


def _module_export_name(cur: _Cursor) -> str:
    tok = cur.next()
    if tok.kind == NAME:
        return tok.value
    if tok.kind == STRING:
        return string_value(tok)
    raise cur.fail(tok)


def _parse_specifier_list(cur: _Cursor) -> list[tuple[str, str]]:
    """Parse ``{ a, b as c, "x-y" as d }``; returns (name, alias) pairs."""
    pairs: list[tuple[str, str]] = []
    cur.expect_punct("{")
    while not cur.is_punct("}"):
        name = _module_export_name(cur)
        alias = name
        if cur.is_name("as"):
            cur.next()
            alias = _module_export_name(cur)
        pairs.append((name, alias))
        if cur.is_punct(","):
            cur.next()
        elif not cur.is_punct("}"):
            raise cur.fail()
    cur.next()
    return pairs


def _parse_import(tokens: list[Token], index: int) -> tuple[ModuleStatement, int]:
    cur = _Cursor(tokens, index, "import")
    first = cur.first
    bindings: list[tuple[str | None, str]] = []

    tok = cur.peek()
    if tok is not None and tok.kind == STRING:
        specifier = cur.expect_string()
    else:
        if cur.is_name() and not cur.is_name("from"):
            bindings.append(("default", cur.next().value))
            if cur.is_punct(","):
                cur.next()
                if not (cur.is_punct("*") or cur.is_punct("{")):
                    raise cur.fail()
        elif cur.is_name("from") and cur.peek(1) is not None and cur.peek(1).value == "from":
            # import from from "x"
            bindings.append(("default", cur.next().value))

        if cur.is_punct("*"):
            cur.next()
            cur.expect_name("as")
            bindings.append(("*", cur.expect_name().value))
        elif cur.is_punct("{"):
            bindings.extend(_parse_specifier_list(cur))

        if not bindings:
            raise cur.fail()
        cur.expect_name("from")
        specifier = cur.expect_string()

    cur.skip_attributes()
    end = cur.end_offset()
    stmt = ModuleStatement(
        kind=StatementKind.IMPORT,
        start=first.start,
        end=end,
        line=first.line,
        specifier=specifier,
        bindings=tuple(bindings),
    )
    return stmt, cur.index


def _default_declaration_name(cur: _Cursor) -> str | None:
    """Name of a ``function``/``class`` declaration after ``export default``."""
    k = 0
    tok = cur.peek(k)
    if tok is None:
        raise cur.fail(cur.first)
    after = cur.peek(k + 1)
    if tok.kind == NAME and tok.value == "async" and after is not None and after.value == "function":
        k += 1
        tok = after
    if tok.kind == NAME and tok.value == "function":
        k += 1
        if cur.peek(k) is not None and cur.peek(k).value == "*":
            k += 1
        name = cur.peek(k)
        return name.value if name is not None and name.kind == NAME else None
    if tok.kind == NAME and tok.value == "class":
        name = cur.peek(k + 1)
        if name is not None and name.kind == NAME and name.value != "extends":
            return name.value
    return None


def _declarator_names(tokens: list[Token], index: int) -> list[str]:
    """Binding names of a ``var``/``let``/``const`` declaration list."""
    names: list[str] = []
    expect_binding = True
    prev: Token | None = None
    for tok in tokens[index:]:
        if tok.depth != 0:
            prev = tok
            continue
        if expect_binding:
            if tok.kind == NAME:
                names.append(tok.value)
                expect_binding = False
            elif tok.kind == PUNCT and tok.value in ("{", "["):
                raise ParseError("destructuring exports are not supported", tok.line)
            else:
                raise ParseError("malformed export statement", tok.line)
        elif tok.kind == PUNCT and tok.value == ",":
            expect_binding = True
        elif tok.kind == PUNCT and tok.value == ";":
            break
        elif tok.kind == NAME and tok.value in _STATEMENT_KEYWORDS:
            break
        elif (
            prev is not None
            and tok.line > prev.line
            and tok.kind != PUNCT
            and (prev.kind != PUNCT or prev.value in (")", "]", "}"))
        ):
            # A new line after a complete expression starts a new statement.
            break
        prev = tok
    if expect_binding:
        line = tokens[index - 1].line if index > 0 else 1
        raise ParseError("malformed export statement", line)
    return names


def _parse_export(tokens: list[Token], index: int) -> tuple[ModuleStatement, int]:
    cur = _Cursor(tokens, index, "export")
    first = cur.first

    if cur.is_name("default"):
        default_tok = cur.next()
        local = _default_declaration_name(cur)
        stmt = ModuleStatement(
            kind=StatementKind.EXPORT_DEFAULT,
            start=first.start,
            end=default_tok.end,
            line=first.line,
            bindings=((local, "default"),),
        )
        return stmt, cur.index

    if cur.is_punct("*"):
        cur.next()
        bindings: tuple[tuple[str | None, str], ...] = ()
        star = True
        if cur.is_name("as"):
            cur.next()
            bindings = (("*", _module_export_name(cur)),)
            star = False
        cur.expect_name("from")
        specifier = cur.expect_string()
        cur.skip_attributes()
        end = cur.end_offset()
        stmt = ModuleStatement(
            kind=StatementKind.REEXPORT,
            start=first.start,
            end=end,
            line=first.line,
            specifier=specifier,
            bindings=bindings,
            star=star,
        )
        return stmt, cur.index

    if cur.is_punct("{"):
        pairs = _parse_specifier_list(cur)
        if cur.is_name("from"):
            cur.next()
            specifier = cur.expect_string()
            cur.skip_attributes()
            end = cur.end_offset()
            stmt = ModuleStatement(
                kind=StatementKind.REEXPORT,
                start=first.start,
                end=end,
                line=first.line,
                specifier=specifier,
                bindings=tuple(pairs),
            )
            return stmt, cur.index
        end = cur.end_offset()
        stmt = ModuleStatement(
            kind=StatementKind.EXPORT_NAMES,
            start=first.start,
            end=end,
            line=first.line,
            bindings=tuple(pairs),
        )
        return stmt, cur.index

    tok = cur.peek()
    if tok is None or tok.kind != NAME:
        raise cur.fail()

    if tok.value in ("var", "let", "const"):
        names = _declarator_names(tokens, cur.index + 1)
    else:
        k = 0
        if tok.value == "async" and cur.peek(1) is not None and cur.peek(1).value == "function":
            k = 1
        keyword = cur.peek(k)
        if keyword is None or keyword.value not in ("function", "class"):
            raise cur.fail()
        k += 1
        if keyword.value == "function" and cur.peek(k) is not None and cur.peek(k).value == "*":
            k += 1
        name = cur.peek(k)
        if name is None or name.kind != NAME:
            raise cur.fail(name)
        names = [name.value]

    stmt = ModuleStatement(
        kind=StatementKind.EXPORT_DECLARATION,
        start=first.start,
        end=first.end,
        line=first.line,
        bindings=tuple((name, name) for name in names),
    )
    return stmt, cur.index


def _is_member_access(tokens: list[Token], index: int) -> bool:
    return index > 0 and tokens[index - 1].kind == PUNCT and tokens[index - 1].value == "."


def scan_module(source: str, path: Path | None = None) -> ScanResult:
    """Find the top-level import and export statements of a module.

    Args:
        source: Module source text.
        path: File the source came from, used in error messages.

    Returns:
        ScanResult with statements in source order.

    Raises:
        ParseError: If the source does not tokenize or a statement is malformed.
    """
    try:
        tokens = tokenize(source)
        statements: list[ModuleStatement] = []
        i = 0
        while i < len(tokens):
            tok = tokens[i]
            if (
                tok.kind == NAME
                and tok.depth == 0
                and tok.value in ("import", "export")
                and not _is_member_access(tokens, i)
            ):
                if tok.value == "import":
                    nxt = tokens[i + 1] if i + 1 < len(tokens) else None
                    if nxt is not None and nxt.kind == PUNCT and nxt.value in ("(", "."):
                        i += 1
                        continue
                    stmt, i = _parse_import(tokens, i)
                else:
                    stmt, i = _parse_export(tokens, i)
                statements.append(stmt)
                continue
            i += 1
    except ParseError as e:
        if path is not None and e.path is None:
            raise e.with_path(path) from None
        raise

    return ScanResult(tuple(statements))
