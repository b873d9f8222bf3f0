"""Hybrid IR - Language-neutral representation of C++ programs.

This module defines the IR consumed by the analyzers and generators. Each
node's docstring documents its semantics and invariants.

Architecture:
    C++ declarations -> [IR] -> Middleend (concurrency, exceptions, ownership) -> Backend -> Rust | Go

The front-end produces IR with declared types resolved and function bodies
kept as raw text. Middleend passes annotate IR in place, strictly additively.
Backends only read.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal, get_args


# ============================================================
# TYPES
#
# Types are value objects: hashable, with owned subtrees and no cycles.
# The front-end resolves every declared type to one of these.
# ============================================================

TypeKind = Literal[
    "void",
    "bool",
    "integer",
    "float",
    "pointer",
    "reference",
    "array",
    "struct",
    "class",
    "enum",
    "function",
    "template",
    # containers
    "sequence",
    "linked_list",
    "deque",
    "ordered_map",
    "hash_map",
    "ordered_set",
    "hash_set",
    "string",
    "pair",
    "optional",
    # synchronization
    "thread",
    "mutex",
    "recursive_mutex",
    "shared_mutex",
    "condition_variable",
    "atomic",
]
"""Closed set of type kinds.

| Kind        | C++                     | Rust             | Go                 |
|-------------|-------------------------|------------------|--------------------|
| integer     | int, int64_t, size_t    | i32, i64, usize  | int32, int64       |
| pointer     | T*, unique_ptr<T>       | *const T, Box<T> | *T                 |
| reference   | T&, const T&            | &mut T, &T       | *T                 |
| sequence    | std::vector<T>          | Vec<T>           | []T                |
| ordered_map | std::map<K, V>          | BTreeMap<K, V>   | map[K]V            |
| hash_set    | std::unordered_set<T>   | HashSet<T>       | map[T]bool         |
| optional    | std::optional<T>        | Option<T>        | *T                 |
| mutex       | std::mutex              | Mutex<()>        | sync.Mutex         |
| atomic      | std::atomic<T>          | AtomicI32, ...   | atomic.Int32, ...  |
"""

TYPE_KINDS: tuple[str, ...] = get_args(TypeKind)

CONTAINER_KINDS: frozenset[str] = frozenset(
    {
        "sequence",
        "linked_list",
        "deque",
        "ordered_map",
        "hash_map",
        "ordered_set",
        "hash_set",
        "string",
        "pair",
        "optional",
    }
)

SYNC_KINDS: frozenset[str] = frozenset(
    {"thread", "mutex", "recursive_mutex", "shared_mutex", "condition_variable", "atomic"}
)

MUTEX_KINDS: frozenset[str] = frozenset({"mutex", "recursive_mutex", "shared_mutex"})


@dataclass(unsafe_hash=True)
class Type:
    """A resolved C++ type.

    Invariants:
    - pointer/reference/array/optional/atomic carry element_type
    - containers carry their arguments in template_args, in declaration order
    - size_bytes/alignment are 0 when unknown (classes, containers)
    - name is the C++ spelling without the std:: prefix
    """

    kind: TypeKind
    name: str
    is_const: bool = False
    element_type: Type | None = None
    template_args: tuple[Type, ...] = ()
    size_bytes: int = 0
    alignment: int = 0

    def is_container(self) -> bool:
        return self.kind in CONTAINER_KINDS

    def is_sync(self) -> bool:
        return self.kind in SYNC_KINDS


class TypeArena:
    """Append-only store of types addressed by integer handles.

    Handles are indices and never move, so they stay valid for the lifetime
    of the program.
    """

    def __init__(self) -> None:
        self._types: list[Type] = []

    def add(self, typ: Type) -> int:
        self._types.append(typ)
        return len(self._types) - 1

    def get(self, handle: int) -> Type:
        return self._types[handle]

    def __len__(self) -> int:
        return len(self._types)

    def __iter__(self):
        return iter(self._types)


# ============================================================
# ANNOTATION VOCABULARY
#
# Closed sets filled in by the middleend passes.
# ============================================================

OwnershipPattern = Literal["unique", "shared", "borrowed", "mutable_borrow", "raw", "value"]
"""Ownership classification of a pointer, reference or value.

| Pattern        | C++                | Rust            | Go  |
|----------------|--------------------|-----------------|-----|
| unique         | unique_ptr<T>      | Box<T>          | *T  |
| shared         | shared_ptr<T>      | Rc<T> / Arc<T>  | *T  |
| borrowed       | const T&           | &T              | *T  |
| mutable_borrow | T&                 | &mut T          | *T  |
| raw            | T*                 | *const T        | *T  |
| value          | T                  | T               | T   |
"""

OWNERSHIP_PATTERNS: tuple[str, ...] = get_args(OwnershipPattern)

Passing = Literal["moved", "borrowed"]

LockKind = Literal["exclusive_scoped", "exclusive_deferred", "shared_read"]
"""Lock guard flavour.

| Kind               | C++                       | Rust             | Go                   |
|--------------------|---------------------------|------------------|----------------------|
| exclusive_scoped   | lock_guard, scoped_lock   | MutexGuard       | Lock / defer Unlock  |
| exclusive_deferred | unique_lock               | MutexGuard       | Lock / defer Unlock  |
| shared_read        | shared_lock               | RwLockReadGuard  | RLock / defer RUnlock|
"""

MutexKind = Literal["mutex", "recursive_mutex", "shared_mutex"]

Strategy = Literal["result_type", "error_return", "panic", "ignore"]
"""Error-propagation strategy chosen per function and target.

| Strategy     | Rust                 | Go              |
|--------------|----------------------|-----------------|
| result_type  | -> Result<T, E>      | (n/a)           |
| error_return | (n/a)                | -> (T, error)   |
| panic        | panic!(...)          | panic(...)      |
| ignore       | signature unchanged  | unchanged       |
"""

STRATEGIES: tuple[str, ...] = get_args(Strategy)

Target = Literal["rust", "go"]

TARGETS: tuple[str, ...] = get_args(Target)

AccessLevel = Literal["public", "protected", "private"]


# ============================================================
# CONCURRENCY RECORDS
# ============================================================


@dataclass
class ThreadInfo:
    """A thread spawn found in a function body.

    Invariants:
    - detached implies not joinable
    - arguments are the spawn arguments after the callable, in order
    """

    var_name: str
    function_name: str
    arguments: list[str] = field(default_factory=list)
    detached: bool = False
    joinable: bool = True


@dataclass
class LockInfo:
    """A scoped lock guard over a named mutex."""

    kind: LockKind
    lock_variable: str
    mutex_name: str


@dataclass
class AtomicInfo:
    """An atomic variable and the operations applied to it, in source order."""

    var_name: str
    value_type: Type | None = None
    operations: list[str] = field(default_factory=list)


@dataclass
class ConditionVariableInfo:
    """A condition variable and its wait/notify operations, in source order."""

    var_name: str
    operations: list[str] = field(default_factory=list)


@dataclass
class MutexInfo:
    """A mutex-kind class field."""

    kind: MutexKind
    var_name: str


# ============================================================
# EXCEPTION RECORDS
# ============================================================


@dataclass
class ExceptionSpec:
    """Exception specification of a function.

    declared holds the raw text as written (noexcept, noexcept(false),
    throw(), throw(std::bad_alloc)); empty when none was written.
    """

    declared: str = ""
    is_noexcept: bool = False
    can_throw: bool = False


@dataclass
class CatchClause:
    """One handler of a try/catch block.

    exception_type is "*" for catch-all; bound_name is None when the
    handler does not name the exception.
    """

    exception_type: str
    bound_name: str | None
    handler_body: str
    raw_parameter: str = ""
    rethrows: bool = False


@dataclass
class TryCatchBlock:
    """A try region and its handlers in declaration order."""

    try_body: str
    catch_clauses: list[CatchClause] = field(default_factory=list)


# ============================================================
# DECLARATIONS
# ============================================================


@dataclass
class Variable:
    """A field, local or global variable.

    Middleend annotations (set by ownership.py):
        ownership: OwnershipPattern of the declared type
        thread_shared: True if reachable from more than one thread
    """

    name: str
    typ: Type
    is_static: bool = False
    is_const: bool = False
    initializer: str | None = None
    doc: str = ""
    ownership: OwnershipPattern | None = None
    thread_shared: bool = False


@dataclass
class Parameter:
    """A function parameter.

    Middleend annotations (set by ownership.py):
        ownership: OwnershipPattern of the declared type
        passing: "moved" or "borrowed"
        thread_shared: True when the owning function spawns threads
    """

    name: str
    typ: Type
    default: str | None = None
    ownership: OwnershipPattern | None = None
    passing: Passing | None = None
    thread_shared: bool = False


@dataclass
class Function:
    """A free function or method.

    body is the raw C++ text between the outer braces, or empty for
    declarations without a body.

    Middleend annotations:
        moved_params, borrowed_params: set by ownership.py
        threads, locks, atomics, condition_variables, uses_threading:
            set by concurrency.py
        try_catch_blocks, thrown_types, may_fail, error_strategy:
            set by exceptions.py (error_strategy maps target -> Strategy)
    """

    name: str
    ret: Type
    params: list[Parameter] = field(default_factory=list)
    body: str = ""
    doc: str = ""
    is_const: bool = False
    is_static: bool = False
    is_virtual: bool = False
    is_pure_virtual: bool = False
    is_constructor: bool = False
    is_destructor: bool = False
    exception_spec: ExceptionSpec = field(default_factory=ExceptionSpec)
    # ownership
    moved_params: list[str] = field(default_factory=list)
    borrowed_params: list[str] = field(default_factory=list)
    # concurrency
    threads: list[ThreadInfo] = field(default_factory=list)
    locks: list[LockInfo] = field(default_factory=list)
    atomics: list[AtomicInfo] = field(default_factory=list)
    condition_variables: list[ConditionVariableInfo] = field(default_factory=list)
    uses_threading: bool = False
    # exceptions
    try_catch_blocks: list[TryCatchBlock] = field(default_factory=list)
    thrown_types: list[str] = field(default_factory=list)
    may_fail: bool = False
    error_strategy: dict[str, Strategy] = field(default_factory=dict)


@dataclass
class AccessSection:
    """A run of members under one access specifier."""

    level: AccessLevel
    members: list[str] = field(default_factory=list)


@dataclass
class ClassDecl:
    """A class or struct declaration.

    Middleend annotations (set by concurrency.py):
        mutexes: mutex-kind fields
        atomic_fields: atomic-kind fields
        thread_safe: True iff either inventory is non-empty
    """

    name: str
    is_struct: bool = False
    fields: list[Variable] = field(default_factory=list)
    methods: list[Function] = field(default_factory=list)
    bases: list[str] = field(default_factory=list)
    template_params: list[str] = field(default_factory=list)
    access_sections: list[AccessSection] = field(default_factory=list)
    doc: str = ""
    mutexes: list[MutexInfo] = field(default_factory=list)
    atomic_fields: list[AtomicInfo] = field(default_factory=list)
    thread_safe: bool = False

    def access_of(self, member: str) -> AccessLevel:
        """Access level of a member; C++ defaults apply when unlisted."""
        for section in self.access_sections:
            if member in section.members:
                return section.level
        return "public" if self.is_struct else "private"

    def constructors(self) -> list[Function]:
        return [m for m in self.methods if m.is_constructor]

    def destructor(self) -> Function | None:
        for m in self.methods:
            if m.is_destructor:
                return m
        return None

    def virtual_methods(self) -> list[Function]:
        return [m for m in self.methods if m.is_virtual or m.is_pure_virtual]

    def overridable_methods(self) -> list[Function]:
        """Virtual methods other than the destructor."""
        return [m for m in self.virtual_methods() if not m.is_destructor]

    def field_named(self, name: str) -> Variable | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


@dataclass
class Program:
    """Root of the IR: one translation unit.

    Invariants:
    - every class in classes has a registry entry under its name
    - registry values are valid handles into types
    """

    name: str = "main"
    classes: list[ClassDecl] = field(default_factory=list)
    functions: list[Function] = field(default_factory=list)
    globals: list[Variable] = field(default_factory=list)
    types: TypeArena = field(default_factory=TypeArena)
    registry: dict[str, int] = field(default_factory=dict)

    def add_class(self, cls: ClassDecl) -> None:
        self.classes.append(cls)
        kind: TypeKind = "struct" if cls.is_struct else "class"
        self.register_type(cls.name, Type(kind, cls.name))

    def add_function(self, fn: Function) -> None:
        self.functions.append(fn)

    def add_global_variable(self, var: Variable) -> None:
        self.globals.append(var)

    def register_type(self, name: str, typ: Type) -> int:
        """Store typ and point name at it. Re-registering a name overwrites."""
        handle = self.types.add(typ)
        self.registry[name] = handle
        return handle

    def find_type(self, name: str) -> Type | None:
        handle = self.registry.get(name)
        if handle is None:
            return None
        return self.types.get(handle)

    def handle_of(self, name: str) -> int | None:
        return self.registry.get(name)

    def type_at(self, handle: int) -> Type:
        return self.types.get(handle)

    def all_functions(self) -> list[Function]:
        """Methods in class declaration order, then free functions."""
        result: list[Function] = []
        for cls in self.classes:
            result.extend(cls.methods)
        result.extend(self.functions)
        return result

    def class_named(self, name: str) -> ClassDecl | None:
        for cls in self.classes:
            if cls.name == name:
                return cls
        return None
