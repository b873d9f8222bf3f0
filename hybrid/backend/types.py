"""Type lowering shared by the Rust and Go backends.

Every TypeKind lowers to a non-empty string in both targets. Lowering
records the Rust `use` paths and Go imports the produced text needs, so
backends can emit their header after the body.
"""

from __future__ import annotations

import re
from dataclasses import replace

from hybrid.frontend.containers import ContainerLowering
from hybrid.ir import Type
from hybrid.mappings import MappingConfig
from hybrid.middleend.concurrency import SyncLowering
from hybrid.middleend.ownership import classify, go_equivalent, rust_equivalent

_TYPE_NAME = re.compile(r"\b[A-Z]\w*")
_ARRAY_COUNT = re.compile(r"\[(\d+)\]$")

# Parameter-position substitutions applied at idiom level 2 and above.
_RUST_BORROWED_VIEWS = {"string": "&str"}


class TypeLowering:
    """Lower IR types, remembering which imports the result needs."""

    def __init__(self, mappings: MappingConfig, opt_level: int = 1) -> None:
        self.mappings = mappings
        self.opt_level = opt_level
        self.containers = ContainerLowering(mappings)
        self.sync = SyncLowering(mappings)
        self.rust_uses: set[str] = set()
        self.go_imports: set[str] = set()

    # ── bookkeeping ──────────────────────────────────────────

    def note_rust(self, text: str) -> str:
        """Record use paths for type names appearing in text."""
        uses = self.mappings.rust.get("uses") or {}
        for name in _TYPE_NAME.findall(text):
            path = uses.get(name)
            if path is not None:
                self.rust_uses.add(path)
        return text

    def note_go(self, text: str) -> str:
        """Record imports for package qualifiers appearing in text."""
        imports = self.mappings.go.get("imports") or {}
        for prefix, path in imports.items():
            if re.search(r"(?<![\w/])" + re.escape(prefix), text):
                self.go_imports.add(path)
        return text

    def _builtin(self, target: str, typ: Type) -> str:
        table = self.mappings.target(target)["builtins"]
        lowered = table.get(self.mappings.builtin_name(typ.name))
        if lowered is not None:
            return lowered
        if typ.kind == "float":
            return table["double"]
        if typ.kind == "bool":
            return table["bool"]
        return table["long"]

    # ── Rust ─────────────────────────────────────────────────

    def rust(self, typ: Type, thread_safe: bool = False, param: bool = False) -> str:
        return self.note_rust(self._rust(typ, thread_safe, param))

    def _rust(self, typ: Type, thread_safe: bool, param: bool) -> str:
        kind = typ.kind
        if kind in ("void", "bool", "integer", "float"):
            return self._builtin("rust", typ)
        if kind == "pointer":
            elem = typ.element_type or Type("void", "void")
            pattern = classify(typ, self.mappings)
            if param and self.opt_level >= 2 and pattern == "raw" and elem.name == "char" and elem.is_const:
                return "&str"
            inner = self._rust(elem, thread_safe, False)
            return rust_equivalent(pattern, inner, self.mappings, thread_safe, elem.is_const)
        if kind == "reference":
            elem = typ.element_type or Type("void", "void")
            pattern = classify(typ, self.mappings)
            if param and self.opt_level >= 2 and pattern == "borrowed":
                view = _RUST_BORROWED_VIEWS.get(elem.kind)
                if view is not None:
                    return view
                if elem.kind == "sequence" and elem.element_type is not None:
                    return "&[" + self._rust(elem.element_type, thread_safe, False) + "]"
            return rust_equivalent(pattern, self._rust(elem, thread_safe, False), self.mappings)
        if kind == "array":
            elem = typ.element_type or Type("void", "void")
            m = _ARRAY_COUNT.search(typ.name)
            count = m.group(1) if m else "0"
            return "[" + self._rust(elem, thread_safe, False) + "; " + count + "]"
        if kind in ("struct", "class", "enum"):
            return typ.name
        if kind == "template":
            if not typ.template_args:
                return typ.name
            args = ", ".join(self._rust(a, thread_safe, False) for a in typ.template_args)
            return typ.name + "<" + args + ">"
        if kind == "function":
            if not typ.template_args:
                return "Box<dyn Fn()>"
            ret, *params = typ.template_args
            sig = "Fn(" + ", ".join(self._rust(p, thread_safe, False) for p in params) + ")"
            if ret.kind != "void":
                sig += " -> " + self._rust(ret, thread_safe, False)
            return "Box<dyn " + sig + ">"
        if typ.is_container():
            if kind == "linked_list" and self.opt_level >= 2:
                typ = replace(typ, kind="deque")
            return self.containers.rust(typ, lambda a: self._rust(a, thread_safe, False))
        if kind == "atomic":
            elem = typ.element_type
            pointee = "()"
            if elem is not None and elem.kind == "pointer" and elem.element_type is not None:
                pointee = self._rust(elem.element_type, thread_safe, False)
            return self.sync.rust_atomic(elem, pointee)
        if kind in ("thread", "mutex", "recursive_mutex", "shared_mutex", "condition_variable"):
            return self.sync.rust_primitive(kind)
        return self.mappings.rust["placeholder"]

    def rust_is_copy(self, typ: Type) -> bool:
        """Fields of these kinds are returned by value without clone()."""
        if typ.kind in ("bool", "integer", "float", "enum"):
            return True
        return typ.kind in ("pointer", "reference") and classify(typ, self.mappings) in (
            "raw",
            "borrowed",
        )

    def rust_default_value(self, typ: Type | None) -> str:
        if typ is None:
            return "0"
        if typ.kind == "bool":
            return "false"
        if typ.kind == "float":
            return "0.0"
        if typ.kind == "pointer":
            return "std::ptr::null_mut()"
        if typ.kind == "integer":
            return "0"
        return "Default::default()"

    # ── Go ───────────────────────────────────────────────────

    def go(self, typ: Type, param: bool = False) -> str:
        return self.note_go(self._go(typ, param))

    def _go(self, typ: Type, param: bool) -> str:
        kind = typ.kind
        if kind in ("void", "bool", "integer", "float"):
            return self._builtin("go", typ)
        if kind == "pointer":
            elem = typ.element_type or Type("void", "void")
            pattern = classify(typ, self.mappings)
            if param and self.opt_level >= 2 and pattern == "raw" and elem.name == "char" and elem.is_const:
                return "string"
            return go_equivalent(pattern, self._go(elem, False), self.mappings)
        if kind == "reference":
            elem = typ.element_type or Type("void", "void")
            if param and self.opt_level >= 2 and (elem.is_container() or elem.kind == "string"):
                # strings, slices and maps already share their backing store
                return self._go(elem, False)
            return go_equivalent(classify(typ, self.mappings), self._go(elem, False), self.mappings)
        if kind == "array":
            elem = typ.element_type or Type("void", "void")
            m = _ARRAY_COUNT.search(typ.name)
            count = m.group(1) if m else "0"
            return "[" + count + "]" + self._go(elem, False)
        if kind in ("struct", "class", "enum"):
            return typ.name
        if kind == "template":
            if not typ.template_args:
                return typ.name
            return typ.name + "[" + ", ".join(self._go(a, False) for a in typ.template_args) + "]"
        if kind == "function":
            if not typ.template_args:
                return "func()"
            ret, *params = typ.template_args
            sig = "func(" + ", ".join(self._go(p, False) for p in params) + ")"
            if ret.kind != "void":
                sig += " " + self._go(ret, False)
            return sig
        if typ.is_container():
            return self.containers.go(typ, lambda a: self._go(a, False))
        if kind == "atomic":
            elem = typ.element_type
            pointee = "any"
            if elem is not None and elem.kind == "pointer" and elem.element_type is not None:
                pointee = self._go(elem.element_type, False)
            return self.sync.go_atomic(elem, pointee)
        if kind in ("thread", "mutex", "recursive_mutex", "shared_mutex", "condition_variable"):
            return self.sync.go_primitive(kind)
        return self.mappings.go["placeholder"]

    def go_zero_value(self, typ: Type) -> str:
        if typ.kind == "bool":
            return "false"
        if typ.kind in ("integer", "float"):
            return "0"
        if typ.kind == "string":
            return '""'
        if typ.kind in ("struct", "class", "template", "array", "pair"):
            return "*new(" + self.go(typ) + ")"
        if typ.kind in ("atomic", "mutex", "recursive_mutex", "shared_mutex"):
            return "*new(" + self.go(typ) + ")"
        return "nil"
