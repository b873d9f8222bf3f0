"""Shared utilities for backend code emitters."""

from __future__ import annotations

import re

from hybrid.ir import ClassDecl, Function, Parameter
from hybrid.scan import mask

# Go reserved words that need renaming
GO_RESERVED = frozenset(
    {
        "break",
        "case",
        "chan",
        "const",
        "continue",
        "default",
        "defer",
        "else",
        "fallthrough",
        "for",
        "func",
        "go",
        "goto",
        "if",
        "import",
        "interface",
        "map",
        "package",
        "range",
        "return",
        "select",
        "struct",
        "switch",
        "type",
        "var",
    }
)

# Rust keywords, strict and reserved, that need raw-escaping
RUST_RESERVED = frozenset(
    {
        "as",
        "async",
        "await",
        "break",
        "const",
        "continue",
        "crate",
        "dyn",
        "else",
        "enum",
        "extern",
        "false",
        "fn",
        "for",
        "if",
        "impl",
        "in",
        "let",
        "loop",
        "match",
        "mod",
        "move",
        "mut",
        "pub",
        "ref",
        "return",
        "self",
        "Self",
        "static",
        "struct",
        "super",
        "trait",
        "true",
        "type",
        "union",
        "unsafe",
        "use",
        "where",
        "while",
        "abstract",
        "become",
        "box",
        "do",
        "final",
        "macro",
        "override",
        "priv",
        "try",
        "typeof",
        "unsized",
        "virtual",
        "yield",
    }
)

# Trivial accessor and constructor bodies rewritten to target idioms
GETTER = re.compile(r"^\s*return\s+(?:this\s*->\s*)?(\w+)\s*;\s*$")
SETTER = re.compile(r"^\s*(?:this\s*->\s*)?(\w+)\s*=\s*(\w+)\s*;\s*$")
ASSIGNMENT = re.compile(r"^(?:this\s*->\s*)?(\w+)\s*=\s*(\w+)$")

# std::ref(x), std::cref(x), std::move(x) around a thread argument
STD_WRAPPER = re.compile(r"^std::(?:ref|cref|move)\((.*)\)$")


def _upper_first(s: str) -> str:
    """Uppercase the first character of a string."""
    return (s[0].upper() + s[1:]) if s else ""


def _lower_first(s: str) -> str:
    return (s[0].lower() + s[1:]) if s else ""


def member_base(name: str) -> str:
    """Drop C++ member decorations: m_count, count_ -> count."""
    if name.startswith("m_") and len(name) > 2:
        name = name[2:]
    stripped = name.rstrip("_")
    return stripped or name


def constructor_bindings(fn: Function, owner: ClassDecl) -> dict[str, Parameter] | None:
    """Field name -> parameter when every parameter initializes a field.

    Parameters pair with fields by decorated-free name (m_x, x_ and x all
    match x); body statements must be plain field = parameter assignments.
    None means the constructor does more than bind fields.
    """
    fields = {member_base(f.name): f for f in owner.fields if not f.is_static}
    bindings: dict[str, Parameter] = {}
    for p in fn.params:
        fld = fields.get(member_base(p.name))
        if fld is None:
            return None
        bindings[fld.name] = p
    for stmt in mask(fn.body).split(";"):
        stmt = stmt.strip()
        if not stmt:
            continue
        m = ASSIGNMENT.match(stmt)
        if m is None or owner.field_named(m.group(1)) is None:
            return None
        params = [p for p in fn.params if p.name == m.group(2)]
        if not params:
            return None
        bindings[m.group(1)] = params[0]
    return bindings


def to_snake(name: str) -> str:
    """Convert camelCase/PascalCase to snake_case."""
    if name.startswith("_"):
        name = name[1:]
    if "_" in name or name.islower():
        return name.lower()
    s1 = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s1).lower()


def to_camel(name: str) -> str:
    """Convert snake_case to camelCase, preserving leading underscores."""
    prefix = ""
    if name.startswith("_"):
        prefix = "_"
        name = name[1:]
    if "_" not in name:
        return prefix + (name[0].lower() + name[1:] if name else name)
    parts = name.split("_")
    return prefix + parts[0].lower() + "".join(p.capitalize() for p in parts[1:])


def to_pascal(name: str) -> str:
    """Convert snake_case or camelCase to PascalCase."""
    if name.startswith("_"):
        name = name[1:]
    if "_" not in name:
        return _upper_first(name)
    parts = name.split("_")
    return "".join(_upper_first(p) for p in parts)


def to_screaming_snake(name: str) -> str:
    """Convert to SCREAMING_SNAKE_CASE."""
    return to_snake(name).upper()


def rust_ident(name: str) -> str:
    """snake_case Rust identifier, raw-escaped when reserved."""
    snake = to_snake(member_base(name))
    if snake in RUST_RESERVED:
        return "r#" + snake
    return snake


def go_exported(name: str) -> str:
    """Exported Go identifier: getX -> GetX, m_count -> Count."""
    return to_pascal(member_base(name))


def go_unexported(name: str) -> str:
    """Unexported Go identifier, renamed when it collides with a keyword."""
    result = _lower_first(to_pascal(member_base(name)))
    if result in GO_RESERVED:
        return result + "_"
    return result


def escape_string(value: str) -> str:
    """Escape a string for use in a string literal (without quotes)."""
    return (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
        .replace("\r", "\\r")
    )


class Emitter:
    """Base class for code emitters with indentation tracking."""

    def __init__(self, indent_str: str = "    ") -> None:
        self.indent: int = 0
        self.lines: list[str] = []
        self._indent_str = indent_str

    def line(self, text: str = "") -> None:
        """Emit a line with current indentation."""
        if text:
            self.lines.append(self._indent_str * self.indent + text)
        else:
            self.lines.append("")

    def comment_block(self, prefix: str, text: str) -> None:
        """Emit each line of text behind a comment prefix."""
        for raw in text.strip("\n").split("\n"):
            stripped = raw.rstrip()
            self.line(prefix + (" " + stripped if stripped else ""))

    def output(self) -> str:
        """Return the accumulated output as a string."""
        return "\n".join(self.lines)
