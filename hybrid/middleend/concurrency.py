"""Concurrency pattern analysis.

Scans function bodies for thread spawns, lock guards, atomics and condition
variables, and inventories mutex/atomic fields of classes.

Recognized thread spawns (std:: optional, jthread accepted):
    thread t(f, args...);
    thread t{f, args...};
    auto t = thread(f, args...);   / thread t = thread(f, args...);

A later t.detach() marks the closest preceding spawn named t as detached.

Annotations added:
    Function.threads, .locks, .atomics, .condition_variables: inventories
        in source order
    Function.uses_threading: True if any inventory is non-empty
    ClassDecl.mutexes, .atomic_fields: mutex-kind and atomic-kind fields
    ClassDecl.thread_safe: True iff either class inventory is non-empty
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from hybrid.frontend.types import TypeMapper
from hybrid.ir import (
    MUTEX_KINDS,
    AtomicInfo,
    ClassDecl,
    ConditionVariableInfo,
    Function,
    LockInfo,
    MutexInfo,
    Program,
    ThreadInfo,
    Type,
)
from hybrid.mappings import MappingConfig, fill
from hybrid.scan import mask, match_delimited, split_arguments

logger = logging.getLogger(__name__)

_THREAD_TYPE = r"(?:std::)?j?thread"
_THREAD_PAREN = re.compile(r"\b" + _THREAD_TYPE + r"\s+(\w+)\s*\(")
_THREAD_BRACE = re.compile(r"\b" + _THREAD_TYPE + r"\s+(\w+)\s*\{")
_THREAD_ASSIGN = re.compile(
    r"\b(?:auto|" + _THREAD_TYPE + r")\s+(\w+)\s*=\s*" + _THREAD_TYPE + r"\s*\("
)
_DETACH = re.compile(r"\b(\w+)\s*\.\s*detach\s*\(\s*\)")
_ATOMIC_DECL = re.compile(r"\b(?:std::)?atomic\s*<")
_ALIAS_DECL = re.compile(r"\b(?:std::)?(atomic_\w+)\s+(\w+)\s*[;{(=]")
_CV_DECL = re.compile(r"\b(?:std::)?condition_variable(?:_any)?\s+(\w+)\s*[;{(]")
_MEMBER_PATH = re.compile(r"^(?:\*?\s*)?(?:\w+\s*(?:->|\.|::)\s*)*(\w+)$")
_IDENT = re.compile(r"^[\w:]+$")

LAMBDA_CALLABLE = "<lambda>"

# Operations that unambiguously address a condition variable even when it
# was declared somewhere the scan cannot see.
_CV_NOTIFY_OPS = frozenset({"notify_one", "notify_all"})


@dataclass
class ConcurrencyContext:
    """Scan state for one function body."""

    body: str
    masked: str
    owner: ClassDecl | None = None
    atomics: dict[str, AtomicInfo] = field(default_factory=dict)
    cvs: dict[str, ConditionVariableInfo] = field(default_factory=dict)


class ConcurrencyAnalyzer:
    """Pattern tables compiled once per mapping config."""

    def __init__(self, mappings: MappingConfig) -> None:
        self.mappings = mappings
        self.types = TypeMapper(mappings)
        guards = "|".join(sorted(map(re.escape, mappings.lock_guards), key=len, reverse=True))
        self._lock_re = re.compile(
            r"\b(?:std::)?(" + guards + r")\s*(?:<[^;>]*>)?\s+(\w+)\s*[({]"
        )
        atomic_ops = "|".join(mappings.atomic_operations)
        self._atomic_op_re = re.compile(
            r"(?:\bthis\s*->\s*)?\b(\w+)\s*(?:\.|->)\s*(" + atomic_ops + r")\s*\("
        )
        cv_ops = "|".join(mappings.condition_variable_operations)
        self._cv_op_re = re.compile(
            r"(?:\bthis\s*->\s*)?\b(\w+)\s*(?:\.|->)\s*(" + cv_ops + r")\s*\("
        )

    # ── functions ────────────────────────────────────────────

    def analyze_function(self, fn: Function, owner: ClassDecl | None = None) -> None:
        ctx = ConcurrencyContext(body=fn.body, masked=mask(fn.body), owner=owner)
        fn.threads = self._find_threads(ctx)
        fn.locks = self._find_locks(ctx)
        fn.atomics = self._find_atomics(ctx)
        fn.condition_variables = self._find_condition_variables(ctx)
        fn.uses_threading = bool(fn.threads or fn.locks or fn.atomics or fn.condition_variables)
        if fn.uses_threading:
            logger.debug(
                "%s: %d threads, %d locks, %d atomics, %d condition variables",
                fn.name,
                len(fn.threads),
                len(fn.locks),
                len(fn.atomics),
                len(fn.condition_variables),
            )

    def _find_threads(self, ctx: ConcurrencyContext) -> list[ThreadInfo]:
        found: list[tuple[int, ThreadInfo]] = []
        for pattern in (_THREAD_PAREN, _THREAD_BRACE, _THREAD_ASSIGN):
            for m in pattern.finditer(ctx.masked):
                open_index = m.end() - 1
                close_index = match_delimited(ctx.masked, open_index)
                if close_index < 0:
                    continue
                args = split_arguments(ctx.body, ctx.masked, open_index, close_index)
                if not args:
                    # default-constructed thread object, nothing spawned
                    continue
                callee = args[0].lstrip("&").strip()
                if callee.startswith("["):
                    callee = LAMBDA_CALLABLE
                elif not _IDENT.match(callee):
                    callee = callee.split("(")[0].strip() or LAMBDA_CALLABLE
                found.append((m.start(), ThreadInfo(m.group(1), callee, args[1:])))
        found.sort(key=lambda item: item[0])
        for m in _DETACH.finditer(ctx.masked):
            target: ThreadInfo | None = None
            for pos, info in found:
                if pos < m.start() and info.var_name == m.group(1):
                    target = info
            if target is None:
                logger.debug("detach of unknown thread '%s'", m.group(1))
                continue
            target.detached = True
            target.joinable = False
        return [info for _, info in found]

    def _find_locks(self, ctx: ConcurrencyContext) -> list[LockInfo]:
        locks: list[LockInfo] = []
        for m in self._lock_re.finditer(ctx.masked):
            kind = self.mappings.lock_guards[m.group(1)]
            open_index = m.end() - 1
            close_index = match_delimited(ctx.masked, open_index)
            if close_index < 0:
                continue
            args = split_arguments(ctx.body, ctx.masked, open_index, close_index)
            if m.group(1) != "scoped_lock":
                args = args[:1]
            for arg in args:
                path = _MEMBER_PATH.match(arg)
                if path is None:
                    continue
                locks.append(LockInfo(kind, m.group(2), path.group(1)))
        return locks

    def _find_atomics(self, ctx: ConcurrencyContext) -> list[AtomicInfo]:
        events: list[tuple[int, str, str, Type | None]] = []
        for m in _ATOMIC_DECL.finditer(ctx.masked):
            open_index = m.end() - 1
            close_index = match_delimited(ctx.masked, open_index, angle=True)
            if close_index < 0:
                continue
            rest = re.match(r"\s*(\w+)\s*[;{(=]", ctx.masked[close_index + 1 :])
            if rest is None:
                continue
            value_text = ctx.body[open_index + 1 : close_index]
            events.append((m.start(), "decl", rest.group(1), self.types.map_type(value_text)))
        for m in _ALIAS_DECL.finditer(ctx.masked):
            alias = self.mappings.atomic_aliases.get(m.group(1))
            if alias is None:
                continue
            events.append((m.start(), "decl", m.group(2), self.types.map_type(alias)))
        for m in self._atomic_op_re.finditer(ctx.masked):
            events.append((m.start(), m.group(2), m.group(1), None))
        events.sort(key=lambda e: e[0])
        for _, what, name, value_type in events:
            if what == "decl":
                ctx.atomics.setdefault(name, AtomicInfo(name, value_type))
                continue
            info = ctx.atomics.get(name)
            if info is None:
                info = AtomicInfo(name, self._owner_atomic_type(ctx.owner, name))
                ctx.atomics[name] = info
            info.operations.append(what)
        return list(ctx.atomics.values())

    def _owner_atomic_type(self, owner: ClassDecl | None, name: str) -> Type | None:
        if owner is None:
            return None
        fld = owner.field_named(name)
        if fld is None or fld.typ.kind != "atomic":
            return None
        return fld.typ.element_type

    def _find_condition_variables(self, ctx: ConcurrencyContext) -> list[ConditionVariableInfo]:
        events: list[tuple[int, str, str]] = []
        for m in _CV_DECL.finditer(ctx.masked):
            events.append((m.start(), "decl", m.group(1)))
        for m in self._cv_op_re.finditer(ctx.masked):
            events.append((m.start(), m.group(2), m.group(1)))
        events.sort(key=lambda e: e[0])
        for _, what, name in events:
            if what == "decl":
                ctx.cvs.setdefault(name, ConditionVariableInfo(name))
                continue
            info = ctx.cvs.get(name)
            if info is None:
                if not (what in _CV_NOTIFY_OPS or self._owner_has_cv(ctx.owner, name)):
                    continue
                info = ConditionVariableInfo(name)
                ctx.cvs[name] = info
            info.operations.append(what)
        return list(ctx.cvs.values())

    def _owner_has_cv(self, owner: ClassDecl | None, name: str) -> bool:
        if owner is None:
            return False
        fld = owner.field_named(name)
        return fld is not None and fld.typ.kind == "condition_variable"

    # ── classes ──────────────────────────────────────────────

    def analyze_class(self, cls: ClassDecl) -> None:
        cls.mutexes = []
        cls.atomic_fields = []
        for fld in cls.fields:
            if fld.typ.kind in MUTEX_KINDS:
                cls.mutexes.append(MutexInfo(fld.typ.kind, fld.name))
            elif fld.typ.kind == "atomic":
                cls.atomic_fields.append(AtomicInfo(fld.name, fld.typ.element_type))
        cls.thread_safe = bool(cls.mutexes or cls.atomic_fields)


def analyze_function_concurrency(
    fn: Function, mappings: MappingConfig, owner: ClassDecl | None = None
) -> None:
    ConcurrencyAnalyzer(mappings).analyze_function(fn, owner)


def analyze_class_concurrency(cls: ClassDecl, mappings: MappingConfig) -> None:
    ConcurrencyAnalyzer(mappings).analyze_class(cls)


def analyze_concurrency(program: Program, mappings: MappingConfig) -> None:
    """Annotate every class, method and free function in declaration order."""
    analyzer = ConcurrencyAnalyzer(mappings)
    for cls in program.classes:
        analyzer.analyze_class(cls)
        for method in cls.methods:
            analyzer.analyze_function(method, cls)
    for fn in program.functions:
        analyzer.analyze_function(fn)


# ============================================================
# TARGET MAPPING
# ============================================================


class SyncLowering:
    """Synchronization primitives in Rust and Go vocabulary.

    | C++                  | Rust                          | Go            |
    |----------------------|-------------------------------|---------------|
    | thread               | JoinHandle<()>                | (goroutine)   |
    | mutex                | Mutex<T>                      | sync.Mutex    |
    | recursive_mutex      | parking_lot::ReentrantMutex   | sync.Mutex    |
    | shared_mutex         | RwLock<T>                     | sync.RWMutex  |
    | condition_variable   | Condvar                       | *sync.Cond    |
    | atomic<int>          | AtomicI32                     | atomic.Int32  |
    | atomic<T*>           | AtomicPtr<T>                  | atomic.Pointer[T] |
    """

    def __init__(self, mappings: MappingConfig) -> None:
        self.mappings = mappings

    def rust_primitive(self, kind: str, inner: str = "()") -> str:
        return fill(self.mappings.rust["sync"][kind], [inner])

    def go_primitive(self, kind: str) -> str:
        lowered = self.mappings.go["sync"].get(kind, "")
        return lowered or self.mappings.go["placeholder"]

    def rust_atomic(self, value_type: Type | None, pointee: str = "()") -> str:
        table = self.mappings.rust
        if value_type is not None and value_type.kind == "pointer":
            return fill(table["atomic_pointer"], [pointee])
        if value_type is None:
            return table["atomic_default"]
        return table["atomics"].get(value_type.name, table["atomic_default"])

    def go_atomic(self, value_type: Type | None, pointee: str = "any") -> str:
        table = self.mappings.go
        if value_type is not None and value_type.kind == "pointer":
            return fill(table["atomic_pointer"], [pointee])
        if value_type is None:
            return table["atomic_default"]
        return table["atomics"].get(value_type.name, table["atomic_default"])

    def rust_guard(self, lock_kind: str) -> str:
        return self.mappings.rust["guards"][lock_kind]

    def go_unlock_idiom(self, lock_kind: str) -> str:
        return self.mappings.go["guards"][lock_kind]
