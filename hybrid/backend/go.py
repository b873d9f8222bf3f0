"""GoBackend: annotated IR -> Go code.

Pure syntax emission - no analysis. All ownership, concurrency and error
information comes from middleend annotations.

| C++                   | Go                                        |
|-----------------------|-------------------------------------------|
| class / struct        | type Name struct                          |
| public member         | Exported name                             |
| private member        | unexported name                           |
| base class            | embedded struct                           |
| constructor(s)        | NewName, NewName1, ... returning *Name    |
| method                | pointer receiver named by type initial    |
| static method         | package func NameMethod                   |
| destructor            | Close()                                   |
| virtual methods       | interface (interface-only class -> interface) |
| template<class T>     | type parameters [T any]                   |
| may throw             | (T, error) / error                        |
| std::thread           | goroutine (+ sync.WaitGroup when joined)  |

Two-pass emission: the body is emitted first, then the package clause and
an import block covering exactly what the body used.
"""

from __future__ import annotations

import re
import textwrap

from hybrid.backend.types import TypeLowering
from hybrid.backend.util import (
    GETTER,
    GO_RESERVED,
    SETTER,
    STD_WRAPPER,
    Emitter,
    constructor_bindings,
    escape_string,
    go_exported,
    go_unexported,
)
from hybrid.ir import ClassDecl, Function, Program, ThreadInfo, Variable
from hybrid.mappings import MappingConfig, default_mappings
from hybrid.middleend.concurrency import LAMBDA_CALLABLE
from hybrid.middleend.exceptions import ExceptionTypes, handles_internally
from hybrid.options import TranspilerOptions
from hybrid.scan import mask

_CONST_KINDS = frozenset({"bool", "integer", "float", "string"})


class GoBackend(Emitter):
    """Emit Go code from an annotated Program."""

    def __init__(
        self,
        options: TranspilerOptions | None = None,
        mappings: MappingConfig | None = None,
    ) -> None:
        super().__init__("\t")
        self.options = options if options is not None else TranspilerOptions(target="go")
        self.mappings = mappings if mappings is not None else default_mappings()
        self.errors = ExceptionTypes(self.mappings)
        self.types = TypeLowering(self.mappings, self.options.opt_level)
        self._program = Program()
        self._interfaces: dict[str, str] = {}
        self._imports: set[str] = set()

    def emit(self, program: Program) -> str:
        self.lines = []
        self.indent = 0
        self.types = TypeLowering(self.mappings, self.options.opt_level)
        self._imports = set()
        self._program = program
        self._interfaces = {
            cls.name: self._interface_name(cls) for cls in program.classes if cls.overridable_methods()
        }
        self._emit_globals(program.globals)
        for cls in program.classes:
            self._emit_class(cls)
        for fn in program.functions:
            self._emit_function(fn, None, self._func_name(fn.name))
            self.line("")
        body = self.lines
        self.lines = []
        self._emit_header(program)
        self.lines.extend(body)
        return self.output().rstrip("\n") + "\n"

    generate = emit

    def _emit_header(self, program: Program) -> None:
        package = re.sub(r"\W", "", program.name.lower()) or "main"
        self.line(f"package {package}")
        self.line("")
        imports = sorted(self.types.go_imports | self._imports)
        if len(imports) == 1:
            self.line(f'import "{imports[0]}"')
            self.line("")
        elif imports:
            self.line("import (")
            self.indent += 1
            for path in imports:
                self.line(f'"{path}"')
            self.indent -= 1
            self.line(")")
            self.line("")

    # ── helpers ──────────────────────────────────────────────

    def _doc(self, text: str) -> None:
        if text and self.options.preserve_comments:
            self.comment_block("//", textwrap.dedent(text))

    def _is_interface(self, cls: ClassDecl) -> bool:
        """No state and nothing but pure virtual methods."""
        methods = [m for m in cls.methods if not (m.is_constructor or m.is_destructor)]
        return not cls.fields and bool(methods) and all(m.is_pure_virtual for m in methods)

    def _interface_name(self, cls: ClassDecl) -> str:
        if self._is_interface(cls):
            return cls.name
        return cls.name + "Interface"

    def _type_params(self, cls: ClassDecl) -> str:
        if not cls.template_params:
            return ""
        return "[" + ", ".join(p + " any" for p in cls.template_params) + "]"

    def _type_args(self, cls: ClassDecl) -> str:
        if not cls.template_params:
            return ""
        return "[" + ", ".join(cls.template_params) + "]"

    def _receiver(self, cls: ClassDecl) -> str:
        name = cls.name[:1].lower() or "x"
        if name in GO_RESERVED:
            name += "_"
        return name

    def _func_name(self, name: str) -> str:
        if name == "main":
            return name
        return go_exported(name)

    def _member_name(self, cls: ClassDecl, name: str) -> str:
        if cls.access_of(name) == "public":
            return go_exported(name)
        return go_unexported(name)

    def _strategy(self, fn: Function) -> str:
        return fn.error_strategy.get("go", "ignore")

    def _returns_error(self, fn: Function) -> bool:
        return self._strategy(fn) == "error_return" and not handles_internally(fn)

    def _return_type(self, fn: Function, owner: ClassDecl | None) -> str | None:
        if fn.is_constructor and owner is not None:
            base: str | None = "*" + owner.name + self._type_args(owner)
        elif fn.ret.kind == "void":
            base = None
        else:
            base = self.types.go(fn.ret)
        if self._returns_error(fn):
            return f"({base}, error)" if base else "error"
        return base

    def _params(self, fn: Function) -> str:
        return ", ".join(f"{go_unexported(p.name)} {self.types.go(p.typ, param=True)}" for p in fn.params)

    def _member(self, name: str, owner: ClassDecl | None) -> str:
        if owner is not None and owner.field_named(name) is not None:
            return self._receiver(owner) + "." + self._member_name(owner, name)
        return go_unexported(name)

    # ── globals ──────────────────────────────────────────────

    def _emit_globals(self, globals_: list[Variable]) -> None:
        for var in globals_:
            self._emit_global(var, None)
        if globals_:
            self.line("")

    def _emit_global(self, var: Variable, owner: ClassDecl | None) -> None:
        self._doc(var.doc)
        typ = self.types.go(var.typ)
        is_const = var.is_const or var.typ.is_const
        prefix = owner.name if owner is not None else ""
        if is_const and var.initializer is not None and var.typ.kind in _CONST_KINDS:
            self.line(f"const {prefix}{go_exported(var.name)} {typ} = {var.initializer}")
            return
        name = prefix + go_exported(var.name) if owner is not None else go_unexported(var.name)
        if var.initializer is not None and var.typ.kind in _CONST_KINDS:
            self.line(f"var {name} {typ} = {var.initializer}")
            return
        if var.initializer is not None:
            self.line(f"// initial value: {var.initializer}")
        self.line(f"var {name} {typ}")

    # ── classes ──────────────────────────────────────────────

    def _emit_class(self, cls: ClassDecl) -> None:
        if self._is_interface(cls):
            self._doc(cls.doc)
            self._emit_interface(cls, cls.methods)
            return
        self._emit_struct(cls)
        own_virtuals = cls.overridable_methods()
        if own_virtuals:
            self._emit_interface(cls, own_virtuals)
        used: dict[str, int] = {}
        for m in cls.methods:
            if m.is_constructor:
                base = "New" + cls.name
            elif m.is_destructor:
                base = "Close"
            elif m.is_static:
                base = cls.name + go_exported(m.name)
            elif m.is_virtual or m.is_pure_virtual:
                # must match the exported interface method
                base = go_exported(m.name)
            else:
                base = self._member_name(cls, m.name)
            count = used.get(base, 0)
            used[base] = count + 1
            name = base if count == 0 else f"{base}{count}"
            self._emit_function(m, cls, name)
            self.line("")
        for fld in cls.fields:
            if fld.is_static:
                self._emit_global(fld, cls)
                self.line("")

    def _emit_struct(self, cls: ClassDecl) -> None:
        self._doc(cls.doc)
        self.line(f"type {cls.name}{self._type_params(cls)} struct {{")
        self.indent += 1
        for base_name in cls.bases:
            base = self._program.class_named(base_name)
            if base is None:
                self.line(f"// base: {base_name}")
            elif not self._is_interface(base):
                self.line(base_name)
        for fld in cls.fields:
            if fld.is_static:
                continue
            self._doc(fld.doc)
            self.line(f"{self._member_name(cls, fld.name)} {self.types.go(fld.typ)}")
        self.indent -= 1
        self.line("}")
        self.line("")

    def _emit_interface(self, cls: ClassDecl, methods: list[Function]) -> None:
        self.line(f"type {self._interfaces[cls.name]}{self._type_params(cls)} interface {{")
        self.indent += 1
        for m in methods:
            if m.is_constructor or m.is_destructor:
                continue
            self._doc(m.doc)
            ret = self._return_type(m, cls)
            sig = f"{go_exported(m.name)}({self._params(m)})"
            self.line(sig + (f" {ret}" if ret else ""))
        self.indent -= 1
        self.line("}")
        self.line("")

    # ── functions ────────────────────────────────────────────

    def _emit_function(self, fn: Function, owner: ClassDecl | None, name: str) -> None:
        self._doc(fn.doc)
        ret = self._return_type(fn, owner)
        head = "func "
        if owner is not None and not (fn.is_static or fn.is_constructor):
            head += f"({self._receiver(owner)} *{owner.name}{self._type_args(owner)}) "
        type_params = self._type_params(owner) if owner is not None and (fn.is_static or fn.is_constructor) else ""
        head += f"{name}{type_params}({self._params(fn)})"
        if ret:
            head += " " + ret
        self.line(head + " {")
        self.indent += 1
        self._emit_body(fn, owner, name)
        self.indent -= 1
        self.line("}")

    def _emit_body(self, fn: Function, owner: ClassDecl | None, name: str) -> None:
        level = self.options.opt_level
        if level >= 3 and owner is not None and self._emit_accessor(fn, owner):
            return
        if level >= 1 and fn.is_constructor and owner is not None and self._emit_constructor(fn, owner):
            return
        if level >= 1:
            self._emit_concurrency(fn, owner)
        for t in fn.thrown_types:
            self.line(f"// throws {t}: {self.errors.description(t)}")
        if handles_internally(fn) and self._strategy(fn) != "ignore":
            self._emit_recover(fn)
        if self.options.preserve_comments and fn.body.strip():
            self.comment_block("//", textwrap.dedent(fn.body))
        self._emit_placeholder(fn, owner, name)

    def _emit_placeholder(self, fn: Function, owner: ClassDecl | None, name: str) -> None:
        if self._strategy(fn) == "panic":
            first = fn.thrown_types[0] if fn.thrown_types else "*"
            self.line(f'panic("{escape_string(self.errors.description(first))}")')
            return
        if fn.is_destructor:
            return
        if not fn.body.strip() and not fn.is_constructor:
            if fn.ret.kind == "void":
                if self._returns_error(fn):
                    self.line("return nil")
                return
            if self._returns_error(fn):
                self.line(f"return {self.types.go_zero_value(fn.ret)}, nil")
                return
        self.line(f'panic("unimplemented: {name}")')

    def _emit_recover(self, fn: Function) -> None:
        self.line("defer func() {")
        self.indent += 1
        self.line("if r := recover(); r != nil {")
        self.indent += 1
        for block in fn.try_catch_blocks:
            for clause in block.catch_clauses:
                desc = self.errors.description(clause.exception_type)
                label = "..." if clause.exception_type == "*" else clause.exception_type
                self.line(f"// catch {label}: {desc}")
                if clause.rethrows:
                    self.line("panic(r)")
        self.indent -= 1
        self.line("}")
        self.indent -= 1
        self.line("}()")

    # ── idiom rewrites ───────────────────────────────────────

    def _emit_accessor(self, fn: Function, owner: ClassDecl) -> bool:
        if self._strategy(fn) != "ignore" or fn.is_static:
            return False
        recv = self._receiver(owner)
        m = GETTER.match(mask(fn.body))
        if m is not None and not fn.params:
            fld = owner.field_named(m.group(1))
            if fld is None or fld.is_static:
                return False
            target = f"{recv}.{self._member_name(owner, fld.name)}"
            if fn.ret.kind == "reference" and fld.typ.kind not in ("reference", "pointer"):
                target = "&" + target
            self.line(f"return {target}")
            return True
        m = SETTER.match(mask(fn.body))
        if m is not None and len(fn.params) == 1 and fn.ret.kind == "void":
            fld = owner.field_named(m.group(1))
            param = fn.params[0]
            if fld is None or fld.is_static or param.name != m.group(2):
                return False
            value = go_unexported(param.name)
            lowered = self.types.go(param.typ, param=True)
            if lowered.startswith("*") and fld.typ.kind not in ("reference", "pointer"):
                value = "*" + value
            self.line(f"{recv}.{self._member_name(owner, fld.name)} = {value}")
            return True
        return False

    def _emit_constructor(self, fn: Function, owner: ClassDecl) -> bool:
        bindings = constructor_bindings(fn, owner)
        if bindings is None or self._strategy(fn) != "ignore":
            return False
        inits: list[str] = []
        for fld in owner.fields:
            p = bindings.get(fld.name)
            if p is None or fld.is_static:
                continue
            value = go_unexported(p.name)
            lowered = self.types.go(p.typ, param=True)
            if lowered.startswith("*") and fld.typ.kind not in ("reference", "pointer"):
                value = "*" + value
            inits.append(f"{self._member_name(owner, fld.name)}: {value}")
        self.line(f"return &{owner.name}{self._type_args(owner)}{{{', '.join(inits)}}}")
        return True

    # ── concurrency scaffolding ──────────────────────────────

    def _emit_concurrency(self, fn: Function, owner: ClassDecl | None) -> None:
        for lock in fn.locks:
            target = self._member(lock.mutex_name, owner)
            fld = owner.field_named(lock.mutex_name) if owner is not None else None
            shared = lock.kind == "shared_read" and (fld is None or fld.typ.kind == "shared_mutex")
            if shared:
                self.line(f"{target}.RLock()")
                self.line(f"defer {target}.RUnlock()")
            else:
                self.line(f"{target}.Lock()")
                self.line(f"defer {target}.Unlock()")
        for atomic in fn.atomics:
            if owner is not None and owner.field_named(atomic.var_name) is not None:
                continue
            lowered = self.types.note_go(self.types.sync.go_atomic(atomic.value_type))
            self.line(f"var {go_unexported(atomic.var_name)} {lowered}")
            if atomic.operations:
                self.line(f"// {atomic.var_name}: {', '.join(atomic.operations)}")
        for cv in fn.condition_variables:
            if owner is not None and owner.field_named(cv.var_name) is not None:
                continue
            self._imports.add("sync")
            self.line(f"{go_unexported(cv.var_name)} := sync.NewCond(&sync.Mutex{{}})")
        joinable = [t for t in fn.threads if t.joinable]
        if joinable:
            self._imports.add("sync")
            self.line("var wg sync.WaitGroup")
        for thread in fn.threads:
            call = self._thread_call(thread, owner)
            if thread.joinable:
                self.line("wg.Add(1)")
                self.line("go func() {")
                self.indent += 1
                self.line("defer wg.Done()")
                self.line(call)
                self.indent -= 1
                self.line("}()")
            else:
                self.line(f"// {thread.var_name} is detached")
                if thread.function_name == LAMBDA_CALLABLE:
                    self.line("go func() {")
                    self.indent += 1
                    self.line(call)
                    self.indent -= 1
                    self.line("}()")
                else:
                    self.line(f"go {call}")
        if joinable:
            self.line("wg.Wait()")

    def _thread_call(self, thread: ThreadInfo, owner: ClassDecl | None) -> str:
        if thread.function_name == LAMBDA_CALLABLE:
            return f'panic("unimplemented: {thread.var_name} body")'
        args = [self._thread_arg(a, owner) for a in thread.arguments]
        parts = thread.function_name.split("::")
        if len(parts) > 1 and owner is not None and args and args[0] == self._receiver(owner):
            return f"{args[0]}.{self._member_name(owner, parts[-1])}({', '.join(args[1:])})"
        known = {f.name for f in self._program.functions}
        if len(parts) == 1 and parts[0] in known:
            return f"{self._func_name(parts[0])}({', '.join(args)})"
        return f"{'.'.join(parts)}({', '.join(args)})"

    def _thread_arg(self, arg: str, owner: ClassDecl | None) -> str:
        m = STD_WRAPPER.match(arg)
        if m is not None:
            arg = m.group(1).strip()
        if arg == "this" and owner is not None:
            return self._receiver(owner)
        return arg


def emit_go(
    program: Program,
    options: TranspilerOptions | None = None,
    mappings: MappingConfig | None = None,
) -> str:
    return GoBackend(options, mappings).emit(program)
