"""Ownership classification of pointers, references and values.

Annotates IR nodes with ownership patterns:
- unique: sole owner (unique_ptr)
- shared: reference-counted owner (shared_ptr)
- borrowed: read-only view (const T&)
- mutable_borrow: writable view (T&)
- raw: unmanaged pointer (T*, and smart pointers with no owning marker)
- value: plain value, copied or moved

Parameters are passed "borrowed" when their pattern is a view or a raw
pointer, "moved" otherwise.

Thread-shared promotion: when enabled, fields of thread-safe classes and
parameters of functions that spawn or synchronize threads are marked
thread_shared, which lowers shared ownership to the atomically counted
cell (Arc instead of Rc).

Annotations added:
    Parameter.ownership, .passing, .thread_shared
    Variable.ownership, .thread_shared (fields and globals)
    Function.moved_params, .borrowed_params
"""

from __future__ import annotations

import logging

from hybrid.ir import (
    Function,
    OwnershipPattern,
    Passing,
    Program,
    Type,
)
from hybrid.mappings import MappingConfig, fill
from hybrid.options import TranspilerOptions

logger = logging.getLogger(__name__)

_BORROWING: frozenset[str] = frozenset({"borrowed", "mutable_borrow", "raw"})


def classify(typ: Type | None, mappings: MappingConfig) -> OwnershipPattern:
    """Ownership pattern of a type. Total: every input yields a pattern."""
    if typ is None:
        return "value"
    if typ.kind == "pointer":
        for marker, pattern in mappings.smart_pointers.items():
            if marker in typ.name:
                return pattern
        return "raw"
    if typ.kind == "reference":
        return "borrowed" if typ.is_const else "mutable_borrow"
    return "value"


def passing_of(pattern: OwnershipPattern) -> Passing:
    return "borrowed" if pattern in _BORROWING else "moved"


def requires_unsafe(pattern: OwnershipPattern) -> bool:
    return pattern == "raw"


def rust_equivalent(
    pattern: OwnershipPattern,
    inner: str,
    mappings: MappingConfig,
    thread_safe: bool = False,
    is_const: bool = True,
) -> str:
    """Rust spelling of a pattern wrapped around an already-lowered type.

    is_const only matters for raw pointers (*const T vs *mut T).
    """
    table = mappings.rust["ownership"]
    key: str = pattern
    if pattern == "shared" and thread_safe:
        key = "shared_thread_safe"
    elif pattern == "raw" and not is_const:
        key = "raw_mut"
    return fill(table[key], [inner])


def go_equivalent(pattern: OwnershipPattern, inner: str, mappings: MappingConfig) -> str:
    return fill(mappings.go["ownership"][pattern], [inner])


def _analyze_function(fn: Function, mappings: MappingConfig, promote: bool) -> None:
    fn.moved_params = []
    fn.borrowed_params = []
    for param in fn.params:
        param.ownership = classify(param.typ, mappings)
        param.passing = passing_of(param.ownership)
        param.thread_shared = promote and fn.uses_threading
        if param.passing == "borrowed":
            fn.borrowed_params.append(param.name)
        else:
            fn.moved_params.append(param.name)


def analyze_ownership(
    program: Program,
    mappings: MappingConfig,
    options: TranspilerOptions | None = None,
) -> None:
    """Classify every parameter, field and global of program."""
    promote = True if options is None else options.promote_shared_ownership
    for cls in program.classes:
        for fld in cls.fields:
            fld.ownership = classify(fld.typ, mappings)
            fld.thread_shared = promote and cls.thread_safe
        for method in cls.methods:
            _analyze_function(method, mappings, promote)
    for fn in program.functions:
        _analyze_function(fn, mappings, promote)
    for var in program.globals:
        var.ownership = classify(var.typ, mappings)
    logger.debug("ownership: classified %d functions", len(program.all_functions()))
