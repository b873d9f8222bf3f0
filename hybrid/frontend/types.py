"""Type & container mapper: C++ type spellings to IR types.

Resolution never fails. Spellings that match nothing known become an
opaque class reference so later stages can still name them.
"""

from __future__ import annotations

import logging
import re
from dataclasses import replace
from typing import Protocol

from hybrid.frontend.containers import (
    extract_container_name,
    split_template_args,
    strip_std,
)
from hybrid.ir import Type
from hybrid.mappings import MappingConfig
from hybrid.scan import split_top_level

logger = logging.getLogger(__name__)

_ARRAY_SUFFIX = re.compile(r"^(.*?)\s*\[\s*(\d*)\s*\]$")
_FUNCTION_SIG = re.compile(r"^(.*?)\s*\((.*)\)$")
_QUALIFIER_PREFIXES = ("const ", "volatile ", "typename ", "struct ", "class ", "enum ")


class TypeRegistry(Protocol):
    def find_type(self, name: str) -> Type | None: ...


def _normalize(text: str) -> str:
    t = " ".join(strip_std(text).split())
    t = re.sub(r"\s*([*&])", r"\1", t)
    return t.strip()


class TypeMapper:
    """Resolve declared C++ types using the builtin and container tables."""

    def __init__(self, mappings: MappingConfig) -> None:
        self.mappings = mappings

    # ── scalar and derived types ─────────────────────────────

    def map_builtin_type(self, name: str) -> Type | None:
        canon = self.mappings.builtin_name(" ".join(name.split()))
        entry = self.mappings.builtins.get(canon)
        if entry is None:
            return None
        size = int(entry["size"])
        return Type(entry["kind"], canon, size_bytes=size, alignment=size)

    def map_pointer_type(self, pointee: Type) -> Type:
        width = self.mappings.pointer_width
        return Type(
            "pointer",
            pointee.name + "*",
            element_type=pointee,
            size_bytes=width,
            alignment=width,
        )

    def map_reference_type(self, referred: Type, is_const: bool = False) -> Type:
        width = self.mappings.pointer_width
        return Type(
            "reference",
            referred.name + "&",
            is_const=is_const,
            element_type=referred,
            size_bytes=width,
            alignment=width,
        )

    def map_array_type(self, element: Type, count: int) -> Type:
        return Type(
            "array",
            f"{element.name}[{count}]",
            element_type=element,
            size_bytes=element.size_bytes * count,
            alignment=element.alignment,
        )

    def map_smart_pointer(self, name: str, element: Type) -> Type:
        """Pointer kind carrying the smart pointer spelling as its name."""
        width = self.mappings.pointer_width
        return Type("pointer", name, element_type=element, size_bytes=width, alignment=width)

    # ── templates ────────────────────────────────────────────

    def map_container_type(self, text: str, registry: TypeRegistry | None = None) -> Type | None:
        name = extract_container_name(text)
        kind = self.mappings.containers.get(name)
        if kind is None:
            return None
        raw_args = split_template_args(strip_std(text))
        if name == "array" and len(raw_args) == 2 and raw_args[1].isdigit():
            return self.map_array_type(self.map_type(raw_args[0], registry), int(raw_args[1]))
        if kind == "string":
            return Type("string", "string")
        args = tuple(self.map_type(a, registry) for a in raw_args)
        element = args[0] if args and kind not in ("ordered_map", "hash_map", "pair") else None
        return Type(kind, name, element_type=element, template_args=args)

    def _map_template(self, text: str, registry: TypeRegistry | None) -> Type:
        name = extract_container_name(text)
        raw_args = split_template_args(text)
        if name in self.mappings.smart_pointers:
            element = self.map_type(raw_args[0], registry) if raw_args else self._void()
            return self.map_smart_pointer(f"{name}<{element.name}>", element)
        if name == "atomic":
            element = self.map_type(raw_args[0], registry) if raw_args else self._void()
            return Type(
                "atomic",
                f"atomic<{element.name}>",
                element_type=element,
                size_bytes=element.size_bytes,
                alignment=element.alignment,
            )
        if name == "function" and raw_args:
            return self._map_function(raw_args[0], registry)
        container = self.map_container_type(text, registry)
        if container is not None:
            return container
        args = tuple(self.map_type(a, registry) for a in raw_args)
        return Type("template", name, template_args=args)

    def _map_function(self, signature: str, registry: TypeRegistry | None) -> Type:
        m = _FUNCTION_SIG.match(signature)
        if m is None:
            return Type("function", "function")
        ret = self.map_type(m.group(1), registry)
        params = [self.map_type(p, registry) for p in split_top_level(m.group(2)) if p != "void"]
        return Type("function", "function", template_args=(ret, *params))

    # ── full resolution ──────────────────────────────────────

    def map_type(self, text: str, registry: TypeRegistry | None = None) -> Type:
        """Resolve a declared type spelling.

        Declarator suffixes are peeled from the right (T* const, T&, T*,
        T[N]); a leading const applies to the innermost type. An rvalue
        reference T&& resolves to T, since the callee owns the moved value.
        """
        t = _normalize(text)
        if t.endswith(" const") or t.endswith("*const") or t.endswith("&const"):
            return replace(self.map_type(t[:-5], registry), is_const=True)
        if t.endswith("&&"):
            return self.map_type(t[:-2], registry)
        if t.endswith("&"):
            inner = self.map_type(t[:-1], registry)
            return self.map_reference_type(inner, inner.is_const)
        if t.endswith("*"):
            return self.map_pointer_type(self.map_type(t[:-1], registry))
        m = _ARRAY_SUFFIX.match(t)
        if m is not None:
            element = self.map_type(m.group(1), registry)
            if m.group(2):
                return self.map_array_type(element, int(m.group(2)))
            return self.map_pointer_type(element)
        is_const = False
        stripped = True
        while stripped:
            stripped = False
            for prefix in _QUALIFIER_PREFIXES:
                if t.startswith(prefix):
                    is_const = is_const or prefix == "const "
                    t = t[len(prefix) :]
                    stripped = True
        typ = self._map_base(t, registry)
        if is_const:
            typ = replace(typ, is_const=True)
        return typ

    def _map_base(self, t: str, registry: TypeRegistry | None) -> Type:
        if "<" in t:
            return self._map_template(t, registry)
        alias = self.mappings.atomic_aliases.get(t)
        if alias is not None:
            element = self.map_type(alias, registry)
            return Type(
                "atomic",
                f"atomic<{element.name}>",
                element_type=element,
                size_bytes=element.size_bytes,
                alignment=element.alignment,
            )
        sync_kind = self.mappings.sync_types.get(t)
        if sync_kind is not None:
            return Type(sync_kind, t)
        builtin = self.map_builtin_type(t)
        if builtin is not None:
            return builtin
        container = self.map_container_type(t, registry)
        if container is not None:
            return container
        if registry is not None:
            found = registry.find_type(t)
            if found is not None:
                return found
        logger.debug("unresolved type '%s', treating as opaque class", t)
        return Type("class", t)

    def _void(self) -> Type:
        builtin = self.map_builtin_type("void")
        return builtin if builtin is not None else Type("void", "void")
