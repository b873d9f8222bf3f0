"""RustBackend: annotated IR -> Rust code.

Pure syntax emission. Ownership, concurrency and error-handling decisions
come from middleend annotations; bodies are opaque C++ text, so method
bodies become scaffolds (echoed source plus todo!()) except where the
idiom level allows a direct rewrite.

| C++                         | Rust                                   |
|-----------------------------|----------------------------------------|
| class / struct              | pub struct + impl                      |
| constructor(s)              | new, new_1, ...                        |
| const method                | &self receiver                         |
| non-const method            | &mut self receiver                     |
| static method               | associated fn                          |
| destructor                  | impl Drop                              |
| virtual methods             | trait (interface-only class -> trait)  |
| template<class T>           | generics                               |
| may throw                   | Result<T, E>                           |
| raw pointer parameter       | unsafe fn (safety checks on)           |
"""

from __future__ import annotations

import textwrap

from hybrid.backend.types import TypeLowering
from hybrid.backend.util import (
    GETTER,
    SETTER,
    STD_WRAPPER,
    Emitter,
    constructor_bindings,
    escape_string,
    member_base,
    rust_ident,
    to_screaming_snake,
    to_snake,
)
from hybrid.ir import ClassDecl, Function, Parameter, Program, ThreadInfo, Variable
from hybrid.mappings import MappingConfig, default_mappings
from hybrid.middleend.concurrency import LAMBDA_CALLABLE
from hybrid.middleend.exceptions import ExceptionTypes, handles_internally
from hybrid.middleend.ownership import classify, requires_unsafe
from hybrid.options import TranspilerOptions
from hybrid.scan import mask


class RustBackend(Emitter):
    """Emit Rust code from an annotated Program."""

    def __init__(
        self,
        options: TranspilerOptions | None = None,
        mappings: MappingConfig | None = None,
    ) -> None:
        super().__init__()
        self.options = options if options is not None else TranspilerOptions(target="rust")
        self.mappings = mappings if mappings is not None else default_mappings()
        self.errors = ExceptionTypes(self.mappings)
        self.types = TypeLowering(self.mappings, self.options.opt_level)
        self._program = Program()
        self._traits: dict[str, str] = {}

    def emit(self, program: Program) -> str:
        self.lines = []
        self.indent = 0
        self.types = TypeLowering(self.mappings, self.options.opt_level)
        self._program = program
        self._traits = {
            cls.name: self._trait_name(cls) for cls in program.classes if cls.overridable_methods()
        }
        for var in program.globals:
            self._emit_global(var, to_screaming_snake(member_base(var.name)))
        if program.globals:
            self.line("")
        for cls in program.classes:
            self._emit_class(cls)
        for fn in program.functions:
            vis = "" if fn.name == "main" else "pub "
            self._emit_function(fn, None, rust_ident(fn.name), vis)
            self.line("")
        body = self.lines
        self.lines = []
        for path in sorted(self.types.rust_uses):
            self.line(f"use {path};")
        if self.types.rust_uses:
            self.line("")
        self.lines.extend(body)
        return self.output().rstrip("\n") + "\n"

    generate = emit

    # ── helpers ──────────────────────────────────────────────

    def _doc(self, text: str) -> None:
        if text and self.options.preserve_comments:
            self.comment_block("///", textwrap.dedent(text))

    def _is_interface(self, cls: ClassDecl) -> bool:
        """No state and nothing but pure virtual methods."""
        methods = [m for m in cls.methods if not (m.is_constructor or m.is_destructor)]
        return not cls.fields and bool(methods) and all(m.is_pure_virtual for m in methods)

    def _trait_name(self, cls: ClassDecl) -> str:
        if self._is_interface(cls):
            return cls.name
        return cls.name + "Trait"

    def _generics(self, cls: ClassDecl) -> str:
        if not cls.template_params:
            return ""
        return "<" + ", ".join(cls.template_params) + ">"

    def _base_virtuals(self, cls: ClassDecl) -> dict[str, set[str]]:
        """Trait name -> overridable method names, for each direct base with a trait."""
        result: dict[str, set[str]] = {}
        for base_name in cls.bases:
            base = self._program.class_named(base_name)
            if base is None or base_name not in self._traits:
                continue
            result[self._traits[base_name]] = {m.name for m in base.overridable_methods()}
        return result

    def _param_type(self, p: Parameter) -> str:
        return self.types.rust(p.typ, thread_safe=p.thread_shared, param=True)

    def _raw_params(self, fn: Function) -> list[str]:
        """Parameters still lowered to raw pointers after idiom substitution."""
        names: list[str] = []
        for p in fn.params:
            pattern = p.ownership if p.ownership is not None else classify(p.typ, self.mappings)
            if requires_unsafe(pattern) and self._param_type(p).startswith("*"):
                names.append(p.name)
        return names

    def _needs_unsafe(self, fn: Function) -> bool:
        if not self.options.enable_safety_checks:
            return False
        if self._raw_params(fn):
            return True
        return fn.ret.kind == "pointer" and requires_unsafe(classify(fn.ret, self.mappings))

    def _strategy(self, fn: Function) -> str:
        return fn.error_strategy.get("rust", "ignore")

    def _returns_result(self, fn: Function) -> bool:
        return self._strategy(fn) == "result_type" and not handles_internally(fn)

    def _return_type(self, fn: Function) -> str | None:
        if fn.is_constructor:
            base: str | None = "Self"
        elif fn.ret.kind == "void":
            base = None
        else:
            base = self.types.rust(fn.ret)
        if self._returns_result(fn):
            err = self.types.note_rust(self.errors.rust_error_for(fn))
            return f"Result<{base or '()'}, {err}>"
        return base

    def _member(self, name: str, owner: ClassDecl | None) -> str:
        if owner is not None and owner.field_named(name) is not None:
            return "self." + rust_ident(name)
        return rust_ident(name)

    # ── globals ──────────────────────────────────────────────

    def _emit_global(self, var: Variable, name: str) -> None:
        self._doc(var.doc)
        if var.typ.kind == "string":
            typ = "&'static str"
        else:
            typ = self.types.rust(var.typ, thread_safe=var.thread_shared)
        if (var.is_const or var.typ.is_const) and var.initializer is not None:
            self.line(f"pub const {name}: {typ} = {var.initializer};")
            return
        self.types.note_rust("OnceLock")
        if var.initializer is not None:
            self.line(f"// initial value: {var.initializer}")
        self.line(f"pub static {name}: OnceLock<{typ}> = OnceLock::new();")

    # ── classes ──────────────────────────────────────────────

    def _emit_class(self, cls: ClassDecl) -> None:
        if self._is_interface(cls):
            self._doc(cls.doc)
            self._emit_trait(cls, cls.methods)
            return
        overriding: set[str] = set()
        for names in self._base_virtuals(cls).values():
            overriding |= names
        self._emit_struct(cls)
        own_virtuals = [m for m in cls.overridable_methods() if m.name not in overriding]
        own_ids = {id(m) for m in own_virtuals}
        inherent = [
            m
            for m in cls.methods
            if not m.is_destructor and m.name not in overriding and id(m) not in own_ids
        ]
        self._emit_impl(cls, inherent)
        if own_virtuals:
            self._emit_trait(cls, own_virtuals)
            if not any(m.is_pure_virtual for m in own_virtuals):
                generics = self._generics(cls)
                self.line(
                    f"impl{generics} {self._traits[cls.name]}{generics} for {cls.name}{generics} {{}}"
                )
                self.line("")
        for trait, names in self._base_virtuals(cls).items():
            methods = [m for m in cls.methods if m.name in names and not m.is_destructor]
            self._emit_trait_impl(cls, trait, methods)
        dtor = cls.destructor()
        if dtor is not None:
            self._emit_drop(cls, dtor)
        statics = [f for f in cls.fields if f.is_static]
        for fld in statics:
            name = to_screaming_snake(cls.name) + "_" + to_screaming_snake(member_base(fld.name))
            self._emit_global(fld, name)
        if statics:
            self.line("")

    def _emit_struct(self, cls: ClassDecl) -> None:
        self._doc(cls.doc)
        generics = self._generics(cls)
        members: list[tuple[str, str, str]] = []
        for base_name in cls.bases:
            base = self._program.class_named(base_name)
            if base is not None and not self._is_interface(base):
                members.append(("", "base_" + to_snake(base_name), base_name))
        fields = [f for f in cls.fields if not f.is_static]
        if not members and not fields and not generics:
            self.line(f"pub struct {cls.name};")
            self.line("")
            return
        self.line(f"pub struct {cls.name}{generics} {{")
        self.indent += 1
        for base_name in cls.bases:
            if self._program.class_named(base_name) is None:
                self.line(f"// base: {base_name}")
        for vis, name, typ in members:
            self.line(f"{vis}{name}: {typ},")
        for fld in fields:
            self._doc(fld.doc)
            vis = "pub " if cls.access_of(fld.name) == "public" else ""
            typ = self.types.rust(fld.typ, thread_safe=fld.thread_shared)
            self.line(f"{vis}{rust_ident(fld.name)}: {typ},")
        if generics and not fields and not members:
            self.line(f"_marker: std::marker::PhantomData{generics},")
        self.indent -= 1
        self.line("}")
        self.line("")

    def _emit_impl(self, cls: ClassDecl, methods: list[Function]) -> None:
        if not methods:
            return
        generics = self._generics(cls)
        self.line(f"impl{generics} {cls.name}{generics} {{")
        self.indent += 1
        used: dict[str, int] = {}
        first = True
        for m in methods:
            base = "new" if m.is_constructor else rust_ident(m.name)
            count = used.get(base, 0)
            used[base] = count + 1
            name = base if count == 0 else f"{base}_{count}"
            vis = "pub " if m.is_constructor or cls.access_of(m.name) == "public" else ""
            if not first:
                self.line("")
            first = False
            self._emit_function(m, cls, name, vis)
        self.indent -= 1
        self.line("}")
        self.line("")

    def _emit_trait(self, cls: ClassDecl, methods: list[Function]) -> None:
        generics = self._generics(cls)
        self.line(f"pub trait {self._traits[cls.name]}{generics} {{")
        self.indent += 1
        for i, m in enumerate(methods):
            if m.is_constructor or m.is_destructor:
                continue
            if i > 0:
                self.line("")
            if m.is_pure_virtual:
                self._doc(m.doc)
                self.line(self._signature(m, cls, rust_ident(m.name), "") + ";")
            else:
                self._emit_function(m, cls, rust_ident(m.name), "")
        self.indent -= 1
        self.line("}")
        self.line("")

    def _emit_trait_impl(self, cls: ClassDecl, trait: str, methods: list[Function]) -> None:
        generics = self._generics(cls)
        if not methods:
            self.line(f"impl{generics} {trait} for {cls.name}{generics} {{}}")
            self.line("")
            return
        self.line(f"impl{generics} {trait} for {cls.name}{generics} {{")
        self.indent += 1
        for i, m in enumerate(methods):
            if i > 0:
                self.line("")
            self._emit_function(m, cls, rust_ident(m.name), "")
        self.indent -= 1
        self.line("}")
        self.line("")

    def _emit_drop(self, cls: ClassDecl, dtor: Function) -> None:
        generics = self._generics(cls)
        self.line(f"impl{generics} Drop for {cls.name}{generics} {{")
        self.indent += 1
        self._doc(dtor.doc)
        self.line("fn drop(&mut self) {")
        self.indent += 1
        if self.options.opt_level >= 1:
            self._emit_concurrency(dtor, cls)
        self._emit_original(dtor)
        self.indent -= 1
        self.line("}")
        self.indent -= 1
        self.line("}")
        self.line("")

    # ── functions ────────────────────────────────────────────

    def _signature(self, fn: Function, owner: ClassDecl | None, name: str, vis: str) -> str:
        params: list[str] = []
        if owner is not None and not fn.is_static and not fn.is_constructor:
            params.append("&self" if fn.is_const else "&mut self")
        for p in fn.params:
            params.append(f"{rust_ident(p.name)}: {self._param_type(p)}")
        unsafe = "unsafe " if self._needs_unsafe(fn) else ""
        head = f"{vis}{unsafe}fn {name}({', '.join(params)})"
        ret = self._return_type(fn)
        if ret is not None:
            head += f" -> {ret}"
        return head

    def _emit_function(self, fn: Function, owner: ClassDecl | None, name: str, vis: str) -> None:
        self._doc(fn.doc)
        if self._needs_unsafe(fn):
            raw = self._raw_params(fn)
            self.line("/// # Safety")
            self.line("///")
            if raw:
                self.line(f"/// Callers must pass valid, live pointers for: {', '.join(raw)}.")
            else:
                self.line("/// The returned pointer is unmanaged.")
        self.line(self._signature(fn, owner, name, vis) + " {")
        self.indent += 1
        self._emit_body(fn, owner)
        self.indent -= 1
        self.line("}")

    def _emit_body(self, fn: Function, owner: ClassDecl | None) -> None:
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
            self._emit_handled(fn)
            return
        self._emit_original(fn)
        self._emit_placeholder(fn)

    def _emit_original(self, fn: Function) -> None:
        if self.options.preserve_comments and fn.body.strip():
            self.comment_block("//", textwrap.dedent(fn.body))

    def _emit_placeholder(self, fn: Function) -> None:
        strategy = self._strategy(fn)
        if strategy == "panic":
            first = fn.thrown_types[0] if fn.thrown_types else "*"
            self.line(f'panic!("{escape_string(self.errors.description(first))}");')
            return
        if not fn.body.strip() and not fn.is_constructor:
            if self._returns_result(fn) and fn.ret.kind == "void":
                self.line("Ok(())")
            elif fn.ret.kind != "void":
                self.line("todo!()")
            return
        self.line("todo!()")

    def _emit_handled(self, fn: Function) -> None:
        """noexcept function that catches internally: run the body in a
        fallible closure and dispatch on the error."""
        err = self.types.note_rust(self.errors.rust_error_for(fn))
        self.line(f"let result: Result<(), {err}> = (|| {{")
        self.indent += 1
        self._emit_original(fn)
        self.line("todo!()")
        self.indent -= 1
        self.line("})();")
        self.line("if let Err(e) = result {")
        self.indent += 1
        for block in fn.try_catch_blocks:
            for clause in block.catch_clauses:
                desc = self.errors.description(clause.exception_type)
                label = "..." if clause.exception_type == "*" else clause.exception_type
                self.line(f"// catch {label}: {desc}")
                if clause.rethrows:
                    self.line('panic!("{}", e);')
        if not any(c.rethrows for b in fn.try_catch_blocks for c in b.catch_clauses):
            self.line("let _ = e;")
        self.indent -= 1
        self.line("}")
        if fn.is_constructor or fn.ret.kind != "void":
            self.line("todo!()")

    # ── idiom rewrites ───────────────────────────────────────

    def _emit_accessor(self, fn: Function, owner: ClassDecl) -> bool:
        if self._strategy(fn) != "ignore" or fn.is_static:
            return False
        m = GETTER.match(mask(fn.body))
        if m is not None and not fn.params:
            fld = owner.field_named(m.group(1))
            if fld is None or fld.is_static:
                return False
            target = "self." + rust_ident(fld.name)
            if fn.ret.kind == "reference":
                prefix = "&" if fn.ret.is_const else "&mut "
                self.line(prefix + target)
            elif self.types.rust_is_copy(fld.typ):
                self.line(target)
            else:
                self.line(target + ".clone()")
            return True
        m = SETTER.match(mask(fn.body))
        if m is not None and len(fn.params) == 1 and fn.ret.kind == "void":
            fld = owner.field_named(m.group(1))
            param = fn.params[0]
            if fld is None or fld.is_static or param.name != m.group(2):
                return False
            value = rust_ident(param.name)
            if param.typ.kind == "reference":
                value = ("*" + value) if self.types.rust_is_copy(fld.typ) else (value + ".clone()")
            self.line(f"self.{rust_ident(fld.name)} = {value};")
            return True
        return False

    def _emit_constructor(self, fn: Function, owner: ClassDecl) -> bool:
        bindings = constructor_bindings(fn, owner)
        if bindings is None or self._strategy(fn) != "ignore":
            return False
        inits: list[str] = []
        for base_name in owner.bases:
            base = self._program.class_named(base_name)
            if base is not None and not self._is_interface(base):
                inits.append(f"base_{to_snake(base_name)}: Default::default()")
        for fld in owner.fields:
            if fld.is_static:
                continue
            ident = rust_ident(fld.name)
            p = bindings.get(fld.name)
            if p is None:
                inits.append(f"{ident}: {self._initial_value(fld)}")
                continue
            value = rust_ident(p.name)
            lowered = self._param_type(p)
            if lowered == "&str":
                value += ".to_string()"
            elif lowered.startswith("&["):
                value += ".to_vec()"
            elif lowered.startswith("&"):
                value = ("*" + value) if self.types.rust_is_copy(fld.typ) else (value + ".clone()")
            inits.append(ident if value == ident else f"{ident}: {value}")
        if not owner.template_params and not inits:
            self.line("Self")
            return True
        if owner.template_params and not inits:
            inits.append("_marker: std::marker::PhantomData")
        self.line("Self { " + ", ".join(inits) + " }")
        return True

    def _initial_value(self, fld: Variable) -> str:
        kind = fld.typ.kind
        if kind in ("mutex", "shared_mutex"):
            return self.types.rust(fld.typ).split("<")[0] + "::new(())"
        if kind == "recursive_mutex":
            return "parking_lot::ReentrantMutex::new(())"
        if kind == "condition_variable":
            return "Condvar::new()"
        if kind == "atomic":
            lowered = self.types.rust(fld.typ).split("<")[0]
            return f"{lowered}::new({self.types.rust_default_value(fld.typ.element_type)})"
        if kind == "thread":
            return "std::thread::spawn(|| {})"
        return "Default::default()"

    # ── concurrency scaffolding ──────────────────────────────

    def _emit_concurrency(self, fn: Function, owner: ClassDecl | None) -> None:
        for lock in fn.locks:
            target = self._member(lock.mutex_name, owner)
            fld = owner.field_named(lock.mutex_name) if owner is not None else None
            mutex_kind = fld.typ.kind if fld is not None else "mutex"
            var = "_" + rust_ident(lock.lock_variable)
            if mutex_kind == "recursive_mutex":
                self.line(f"let {var} = {target}.lock();")
            elif mutex_kind == "shared_mutex":
                if lock.kind == "shared_read":
                    guard = self.types.note_rust(self.types.sync.rust_guard(lock.kind))
                    self.line(f"let {var}: {guard}<'_, ()> = {target}.read().unwrap();")
                else:
                    self.line(f"let {var} = {target}.write().unwrap();")
            else:
                guard = self.types.note_rust(self.types.sync.rust_guard(lock.kind))
                self.line(f"let {var}: {guard}<'_, ()> = {target}.lock().unwrap();")
        for atomic in fn.atomics:
            if owner is not None and owner.field_named(atomic.var_name) is not None:
                continue
            lowered = self.types.note_rust(self.types.sync.rust_atomic(atomic.value_type))
            ctor = lowered.split("<")[0]
            init = self.types.rust_default_value(atomic.value_type)
            self.line(f"let {rust_ident(atomic.var_name)} = {ctor}::new({init});")
            if atomic.operations:
                self.line(f"// {atomic.var_name}: {', '.join(atomic.operations)}")
        for cv in fn.condition_variables:
            if owner is not None and owner.field_named(cv.var_name) is not None:
                continue
            self.types.note_rust("Condvar")
            self.line(f"let {rust_ident(cv.var_name)} = Condvar::new();")
        for thread in fn.threads:
            call = self._thread_call(thread)
            var = rust_ident(thread.var_name)
            if thread.detached:
                self.line(f"// {thread.var_name} is detached")
                self.line(f"let _{var} = std::thread::spawn(move || {call});")
            else:
                self.line(f"let {var} = std::thread::spawn(move || {call});")
        for thread in fn.threads:
            if thread.joinable:
                self.line(f"{rust_ident(thread.var_name)}.join().unwrap();")

    def _thread_call(self, thread: ThreadInfo) -> str:
        if thread.function_name == LAMBDA_CALLABLE:
            return "{ todo!() }"
        args = [self._thread_arg(a) for a in thread.arguments]
        parts = thread.function_name.split("::")
        if len(parts) > 1 and args and args[0] == "self":
            return f"self.{rust_ident(parts[-1])}({', '.join(args[1:])})"
        path = "::".join(parts[:-1] + [rust_ident(parts[-1])])
        return f"{path}({', '.join(args)})"

    def _thread_arg(self, arg: str) -> str:
        m = STD_WRAPPER.match(arg)
        if m is not None:
            arg = m.group(1).strip()
        if arg == "this":
            return "self"
        return arg


def emit_rust(
    program: Program,
    options: TranspilerOptions | None = None,
    mappings: MappingConfig | None = None,
) -> str:
    return RustBackend(options, mappings).emit(program)

