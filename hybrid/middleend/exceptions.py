"""Exception pattern analysis and error-strategy selection.

Finds try/catch regions (nested ones included), throw sites and the
declared exception specification, then picks how each target reports
failure.

Strategy decision (per target):

| may_fail | noexcept | has try/catch | Rust        | Go           | Handled internally |
|----------|----------|---------------|-------------|--------------|--------------------|
| no       | -        | no            | ignore      | ignore       | no                 |
| -        | yes      | yes           | result_type | error_return | yes                |
| yes      | -        | -             | result_type | error_return | no                 |

panic is part of the strategy vocabulary and the generators lower it, but
the table never selects it.

Annotations added:
    Function.try_catch_blocks: in source order of the try keyword
    Function.thrown_types: thrown exception types, first occurrence order
    Function.exception_spec.is_noexcept / .can_throw
    Function.may_fail: can_throw, or any try/catch, or any throw
    Function.error_strategy: {"rust": Strategy, "go": Strategy}
"""

from __future__ import annotations

import logging
import re

from hybrid.ir import (
    TARGETS,
    CatchClause,
    Function,
    Program,
    Strategy,
    TryCatchBlock,
)
from hybrid.mappings import MappingConfig
from hybrid.scan import mask, match_delimited, skip_space, split_top_level

logger = logging.getLogger(__name__)

CATCH_ALL = "*"

_TRY = re.compile(r"\btry\s*\{")
_CATCH = re.compile(r"catch\s*\(")
_THROW = re.compile(r"\bthrow\b")
_THROW_TYPE = re.compile(r"\bthrow\s+((?:::)?[A-Za-z_][\w:]*)\s*(?:<[^;]*?>\s*)?[({]")
_RETHROW = re.compile(r"\bthrow\s*;")
_NOEXCEPT_EXPR = re.compile(r"^noexcept\s*\((.*)\)$")
_THROW_LIST = re.compile(r"^throw\s*\((.*)\)$")
_CV_QUALIFIERS = re.compile(r"\b(?:const|volatile)\b")

_DEFAULT_STRATEGIES: dict[str, dict[str, Strategy]] = {
    "rust": {"propagate": "result_type", "absorb": "result_type", "none": "ignore"},
    "go": {"propagate": "error_return", "absorb": "error_return", "none": "ignore"},
}


def parse_catch_parameter(text: str) -> tuple[str, str | None]:
    """Split a catch parameter into (exception type, bound name).

    "..." is the catch-all and yields ("*", None). Qualifiers and
    reference markers are dropped; a lone type has no bound name.
    """
    t = " ".join(text.split())
    if t == "...":
        return (CATCH_ALL, None)
    t = _CV_QUALIFIERS.sub(" ", t)
    t = t.replace("&", " ")
    t = re.sub(r"\s*\*\s*", "* ", t)
    tokens = [tok for tok in split_top_level(t, sep=" ", angle=True) if tok]
    if not tokens:
        return (CATCH_ALL, None)
    if len(tokens) == 1:
        return (tokens[0], None)
    return (" ".join(tokens[:-1]), tokens[-1])


def find_try_blocks(body: str) -> list[TryCatchBlock]:
    """Every try/catch region in body, outer before inner."""
    masked = mask(body)
    blocks: list[TryCatchBlock] = []
    for m in _TRY.finditer(masked):
        open_index = m.end() - 1
        close_index = match_delimited(masked, open_index)
        if close_index < 0:
            logger.debug("unbalanced try block at offset %d", m.start())
            continue
        block = TryCatchBlock(body[open_index + 1 : close_index].strip())
        pos = close_index + 1
        while True:
            pos = skip_space(masked, pos)
            catch = _CATCH.match(masked, pos)
            if catch is None:
                break
            paren_open = catch.end() - 1
            paren_close = match_delimited(masked, paren_open)
            if paren_close < 0:
                break
            brace_open = skip_space(masked, paren_close + 1)
            if brace_open >= len(masked) or masked[brace_open] != "{":
                break
            brace_close = match_delimited(masked, brace_open)
            if brace_close < 0:
                break
            raw = body[paren_open + 1 : paren_close].strip()
            exc_type, bound = parse_catch_parameter(raw)
            handler = body[brace_open + 1 : brace_close]
            block.catch_clauses.append(
                CatchClause(
                    exc_type,
                    bound,
                    handler.strip(),
                    raw_parameter=raw,
                    rethrows=_RETHROW.search(masked, brace_open, brace_close) is not None,
                )
            )
            pos = brace_close + 1
        blocks.append(block)
    return blocks


def find_thrown_types(body: str) -> list[str]:
    result: list[str] = []
    for m in _THROW_TYPE.finditer(mask(body)):
        name = m.group(1)
        if name not in result:
            result.append(name)
    return result


def has_throw(body: str) -> bool:
    return _THROW.search(mask(body)) is not None


def parse_exception_spec(declared: str) -> tuple[bool, bool]:
    """(is_noexcept, can_throw) for a declared specification."""
    d = "".join(declared.split())
    if not d:
        return (False, False)
    if d in ("noexcept", "throw()"):
        return (True, False)
    m = _NOEXCEPT_EXPR.match(d)
    if m is not None:
        if m.group(1) == "true":
            return (True, False)
        if m.group(1) == "false":
            return (False, True)
        # dependent on a constant expression
        return (False, False)
    m = _THROW_LIST.match(d)
    if m is not None:
        return (False, bool(m.group(1)))
    return (False, False)


def handles_internally(fn: Function) -> bool:
    """Cannot let errors escape but catches some itself."""
    return fn.exception_spec.is_noexcept and bool(fn.try_catch_blocks)


def select_strategy(fn: Function, target: str, mappings: MappingConfig | None = None) -> Strategy:
    table = _DEFAULT_STRATEGIES[target]
    if mappings is not None and target in mappings.error_strategies:
        table = {**table, **mappings.error_strategies[target]}
    has_handling = bool(fn.try_catch_blocks)
    if not fn.may_fail and not has_handling:
        return table["none"]
    if fn.exception_spec.is_noexcept and has_handling:
        return table["absorb"]
    if fn.may_fail:
        return table["propagate"]
    return table["none"]


def analyze_function_exceptions(fn: Function, mappings: MappingConfig | None = None) -> None:
    spec = fn.exception_spec
    is_noexcept, declared_throw = parse_exception_spec(spec.declared)
    spec.is_noexcept = spec.is_noexcept or is_noexcept
    fn.try_catch_blocks = find_try_blocks(fn.body)
    fn.thrown_types = find_thrown_types(fn.body)
    throws = has_throw(fn.body)
    spec.can_throw = spec.can_throw or declared_throw or throws
    fn.may_fail = spec.can_throw or bool(fn.try_catch_blocks) or throws
    fn.error_strategy = {target: select_strategy(fn, target, mappings) for target in TARGETS}


def analyze_exceptions(program: Program, mappings: MappingConfig | None = None) -> None:
    """Annotate every method and free function."""
    failing = 0
    for fn in program.all_functions():
        analyze_function_exceptions(fn, mappings)
        if fn.may_fail:
            failing += 1
    logger.debug("exceptions: %d of %d functions may fail", failing, len(program.all_functions()))


# ============================================================
# TARGET MAPPING
# ============================================================


class ExceptionTypes:
    """Descriptions and error types for C++ exception classes."""

    def __init__(self, mappings: MappingConfig) -> None:
        self.mappings = mappings

    def _entry(self, name: str) -> dict | None:
        key = name.strip()
        if key == "...":
            key = CATCH_ALL
        if key.startswith("std::"):
            key = key[len("std::") :]
        return self.mappings.exceptions.get(key)

    def description(self, name: str) -> str:
        entry = self._entry(name)
        if entry is None or "description" not in entry:
            return "Error: " + name
        return entry["description"]

    def rust_error(self, name: str) -> str:
        entry = self._entry(name)
        if entry is not None and entry.get("rust"):
            return entry["rust"]
        return self.mappings.rust["error_default"]

    def go_error(self, name: str) -> str:
        return self.mappings.go["error_type"]

    def rust_error_for(self, fn: Function) -> str:
        """Error type of a Result-returning function: a shared specific type, else the default."""
        errors = {self.rust_error(t) for t in fn.thrown_types}
        if len(errors) == 1:
            return errors.pop()
        return self.mappings.rust["error_default"]
