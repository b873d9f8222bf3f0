"""IR document reading and writing.

An IR document is a YAML or JSON mapping describing one translation unit:

    name: demo
    globals:
      - {name: kMax, type: const int, initializer: "100"}
    classes:
      - name: Point
        access: {public: [Point, getX], private: [x, y]}
        fields:
          - {name: x, type: int}
        methods:
          - {name: Point, params: [{name: x, type: int}]}
          - {name: getX, returns: int, const: true, body: "return x;"}
    functions:
      - name: worker
        params: [{name: n, type: int}]
        exception_spec: noexcept
        body: |
          ...

Types are either C++ spellings (resolved by TypeMapper against the
document's own classes) or nested dicts as written by program_to_dict.
A method named like its class is a constructor, ~Name a destructor.

program_to_dict also records middleend annotations under "analysis";
program_from_dict ignores them, since analysis is rerun on load.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

import yaml

from hybrid.frontend.types import TypeMapper
from hybrid.ir import (
    TYPE_KINDS,
    AccessSection,
    AtomicInfo,
    ClassDecl,
    ExceptionSpec,
    Function,
    Parameter,
    Program,
    Type,
    Variable,
)
from hybrid.mappings import MappingConfig, default_mappings

logger = logging.getLogger(__name__)

_ACCESS_LEVELS = ("public", "protected", "private")


class LoadError(Exception):
    """IR document could not be read or is malformed."""

    def __init__(self, msg: str, path: str | None = None):
        self.msg: str = msg
        self.path: str | None = path
        super().__init__(msg if path is None else path + ": " + msg)


# ============================================================
# WRITING
# ============================================================


def type_to_dict(typ: Type) -> dict[str, object]:
    d: dict[str, object] = {"kind": typ.kind, "name": typ.name}
    if typ.is_const:
        d["is_const"] = True
    if typ.element_type is not None:
        d["element_type"] = type_to_dict(typ.element_type)
    if typ.template_args:
        d["template_args"] = [type_to_dict(a) for a in typ.template_args]
    if typ.size_bytes:
        d["size_bytes"] = typ.size_bytes
    if typ.alignment:
        d["alignment"] = typ.alignment
    return d


def _atomic_to_dict(info: AtomicInfo) -> dict[str, object]:
    return {
        "var_name": info.var_name,
        "value_type": type_to_dict(info.value_type) if info.value_type is not None else None,
        "operations": list(info.operations),
    }


def _variable_to_dict(var: Variable) -> dict[str, object]:
    d: dict[str, object] = {"name": var.name, "type": type_to_dict(var.typ)}
    if var.is_static:
        d["static"] = True
    if var.is_const:
        d["const"] = True
    if var.initializer is not None:
        d["initializer"] = var.initializer
    if var.doc:
        d["doc"] = var.doc
    if var.ownership is not None:
        d["analysis"] = {"ownership": var.ownership, "thread_shared": var.thread_shared}
    return d


def _param_to_dict(p: Parameter) -> dict[str, object]:
    d: dict[str, object] = {"name": p.name, "type": type_to_dict(p.typ)}
    if p.default is not None:
        d["default"] = p.default
    if p.ownership is not None:
        d["analysis"] = {
            "ownership": p.ownership,
            "passing": p.passing,
            "thread_shared": p.thread_shared,
        }
    return d


def _function_analysis(fn: Function) -> dict[str, object]:
    return {
        "moved_params": list(fn.moved_params),
        "borrowed_params": list(fn.borrowed_params),
        "threads": [
            {
                "var_name": t.var_name,
                "function_name": t.function_name,
                "arguments": list(t.arguments),
                "detached": t.detached,
                "joinable": t.joinable,
            }
            for t in fn.threads
        ],
        "locks": [
            {"kind": lk.kind, "lock_variable": lk.lock_variable, "mutex_name": lk.mutex_name}
            for lk in fn.locks
        ],
        "atomics": [_atomic_to_dict(a) for a in fn.atomics],
        "condition_variables": [
            {"var_name": cv.var_name, "operations": list(cv.operations)}
            for cv in fn.condition_variables
        ],
        "uses_threading": fn.uses_threading,
        "try_catch_blocks": [
            {
                "try_body": b.try_body,
                "catch_clauses": [
                    {
                        "exception_type": c.exception_type,
                        "bound_name": c.bound_name,
                        "rethrows": c.rethrows,
                    }
                    for c in b.catch_clauses
                ],
            }
            for b in fn.try_catch_blocks
        ],
        "thrown_types": list(fn.thrown_types),
        "is_noexcept": fn.exception_spec.is_noexcept,
        "can_throw": fn.exception_spec.can_throw,
        "may_fail": fn.may_fail,
        "error_strategy": dict(fn.error_strategy),
    }


def _function_to_dict(fn: Function) -> dict[str, object]:
    d: dict[str, object] = {"name": fn.name, "returns": type_to_dict(fn.ret)}
    if fn.params:
        d["params"] = [_param_to_dict(p) for p in fn.params]
    for key, flag in (
        ("const", fn.is_const),
        ("static", fn.is_static),
        ("virtual", fn.is_virtual),
        ("pure_virtual", fn.is_pure_virtual),
        ("constructor", fn.is_constructor),
        ("destructor", fn.is_destructor),
    ):
        if flag:
            d[key] = True
    if fn.exception_spec.declared:
        d["exception_spec"] = fn.exception_spec.declared
    if fn.doc:
        d["doc"] = fn.doc
    if fn.body:
        d["body"] = fn.body
    if fn.error_strategy:
        d["analysis"] = _function_analysis(fn)
    return d


def _class_to_dict(cls: ClassDecl) -> dict[str, object]:
    d: dict[str, object] = {"name": cls.name}
    if cls.is_struct:
        d["struct"] = True
    if cls.bases:
        d["bases"] = list(cls.bases)
    if cls.template_params:
        d["template_params"] = list(cls.template_params)
    if cls.access_sections:
        d["access"] = [{"level": s.level, "members": list(s.members)} for s in cls.access_sections]
    if cls.doc:
        d["doc"] = cls.doc
    d["fields"] = [_variable_to_dict(f) for f in cls.fields]
    d["methods"] = [_function_to_dict(m) for m in cls.methods]
    if cls.thread_safe or cls.mutexes or cls.atomic_fields:
        d["analysis"] = {
            "mutexes": [{"kind": m.kind, "var_name": m.var_name} for m in cls.mutexes],
            "atomic_fields": [_atomic_to_dict(a) for a in cls.atomic_fields],
            "thread_safe": cls.thread_safe,
        }
    return d


def program_to_dict(program: Program) -> dict[str, object]:
    return {
        "name": program.name,
        "globals": [_variable_to_dict(v) for v in program.globals],
        "classes": [_class_to_dict(c) for c in program.classes],
        "functions": [_function_to_dict(f) for f in program.functions],
    }


def to_json(obj: object) -> str:
    """Serialize object to pretty-printed JSON."""
    return json.dumps(obj, indent=2)


# ============================================================
# READING
# ============================================================


class _Reader:
    def __init__(self, program: Program, mappings: MappingConfig) -> None:
        self.program = program
        self.types = TypeMapper(mappings)

    def type_of(self, value: object, where: str) -> Type:
        if isinstance(value, str):
            return self.types.map_type(value, self.program)
        if isinstance(value, dict):
            return self._type_from_dict(value, where)
        raise LoadError(f"{where}: type must be a string or mapping, got {type(value).__name__}")

    def _type_from_dict(self, d: dict, where: str) -> Type:
        kind = d.get("kind")
        name = d.get("name")
        if kind not in TYPE_KINDS or not isinstance(name, str):
            raise LoadError(f"{where}: type needs a known 'kind' and a 'name'")
        element = d.get("element_type")
        args = d.get("template_args") or []
        if not isinstance(args, list):
            raise LoadError(f"{where}: template_args must be a list")
        return Type(
            kind,
            name,
            is_const=bool(d.get("is_const", False)),
            element_type=self.type_of(element, where) if element is not None else None,
            template_args=tuple(self.type_of(a, where) for a in args),
            size_bytes=_int(d, "size_bytes", where),
            alignment=_int(d, "alignment", where),
        )

    def variable(self, d: object, where: str) -> Variable:
        d = _mapping(d, where)
        name = _name(d, where)
        return Variable(
            name,
            self.type_of(d.get("type", "int"), where + "." + name),
            is_static=bool(d.get("static", False)),
            is_const=bool(d.get("const", False)),
            initializer=_optional_str(d.get("initializer")),
            doc=str(d.get("doc", "")),
        )

    def parameter(self, d: object, where: str) -> Parameter:
        d = _mapping(d, where)
        name = _name(d, where)
        return Parameter(
            name,
            self.type_of(d.get("type", "int"), where + "." + name),
            default=_optional_str(d.get("default")),
        )

    def function(self, d: object, where: str, owner: str | None = None) -> Function:
        d = _mapping(d, where)
        name = _name(d, where)
        where = where + "." + name
        params = d.get("params") or []
        if not isinstance(params, list):
            raise LoadError(f"{where}: params must be a list")
        is_ctor = bool(d.get("constructor", owner is not None and name == owner))
        is_dtor = bool(d.get("destructor", owner is not None and name == "~" + owner))
        return Function(
            name,
            self.type_of(d.get("returns", "void"), where),
            params=[self.parameter(p, where) for p in params],
            body=str(d.get("body", "")),
            doc=str(d.get("doc", "")),
            is_const=bool(d.get("const", False)),
            is_static=bool(d.get("static", False)),
            is_virtual=bool(d.get("virtual", False)),
            is_pure_virtual=bool(d.get("pure_virtual", False)),
            is_constructor=is_ctor,
            is_destructor=is_dtor,
            exception_spec=ExceptionSpec(declared=str(d.get("exception_spec", ""))),
        )

    def access(self, value: object, where: str) -> list[AccessSection]:
        if value is None:
            return []
        if isinstance(value, dict):
            items = [{"level": k, "members": v} for k, v in value.items()]
        elif isinstance(value, list):
            items = value
        else:
            raise LoadError(f"{where}: access must be a mapping or a list")
        sections: list[AccessSection] = []
        for item in items:
            item = _mapping(item, where)
            level = item.get("level")
            if level not in _ACCESS_LEVELS:
                raise LoadError(f"{where}: unknown access level '{level}'")
            sections.append(AccessSection(level, [str(m) for m in item.get("members") or []]))
        return sections


def _mapping(value: object, where: str) -> dict:
    if not isinstance(value, dict):
        raise LoadError(f"{where}: expected a mapping")
    return value


def _name(d: dict, where: str) -> str:
    name = d.get("name")
    if not isinstance(name, str) or not name:
        raise LoadError(f"{where}: missing 'name'")
    return name


def _optional_str(value: object) -> str | None:
    return None if value is None else str(value)


def _int(d: dict, key: str, where: str) -> int:
    value = d.get(key, 0)
    if isinstance(value, bool) or not isinstance(value, (int, str)):
        raise LoadError(f"{where}: '{key}' must be an integer")
    try:
        return int(value)
    except ValueError as e:
        raise LoadError(f"{where}: '{key}' must be an integer, got '{value}'") from e


def _list(data: dict, key: str) -> list:
    value = data.get(key) or []
    if not isinstance(value, list):
        raise LoadError(f"'{key}' must be a list")
    return value


def program_from_dict(data: object, mappings: MappingConfig | None = None) -> Program:
    """Build a Program from an IR document. Classes are registered before
    any member type is resolved, so members may refer to any class."""
    if mappings is None:
        mappings = default_mappings()
    data = _mapping(data, "document")
    program = Program(name=str(data.get("name", "main")))
    reader = _Reader(program, mappings)
    class_docs = _list(data, "classes")
    shells: list[tuple[ClassDecl, dict]] = []
    for i, raw in enumerate(class_docs):
        d = _mapping(raw, f"classes[{i}]")
        cls = ClassDecl(
            _name(d, f"classes[{i}]"),
            is_struct=bool(d.get("struct", False)),
            bases=[str(b) for b in _list(d, "bases")],
            template_params=[str(t) for t in _list(d, "template_params")],
            doc=str(d.get("doc", "")),
        )
        program.add_class(cls)
        shells.append((cls, d))
    for cls, d in shells:
        where = "classes." + cls.name
        # template parameters resolve to themselves inside the class and
        # shadow any class of the same name until it is done
        shadowed = {param: program.handle_of(param) for param in cls.template_params}
        for param in cls.template_params:
            program.register_type(param, Type("template", param))
        cls.access_sections = reader.access(d.get("access"), where)
        cls.fields = [reader.variable(f, where) for f in _list(d, "fields")]
        cls.methods = [reader.function(m, where, cls.name) for m in _list(d, "methods")]
        for param, handle in shadowed.items():
            if handle is None:
                program.registry.pop(param, None)
            else:
                program.registry[param] = handle
    for raw in _list(data, "globals"):
        program.add_global_variable(reader.variable(raw, "globals"))
    for raw in _list(data, "functions"):
        program.add_function(reader.function(raw, "functions"))
    logger.debug(
        "loaded %s: %d classes, %d functions, %d globals",
        program.name,
        len(program.classes),
        len(program.functions),
        len(program.globals),
    )
    return program


def load_program(path: str | Path, mappings: MappingConfig | None = None) -> Program:
    """Read an IR document from a .json, .yaml or .yml file."""
    p = Path(path)
    try:
        text = p.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise LoadError("cannot read: " + str(e), str(path)) from e
    try:
        if p.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as e:
        raise LoadError("malformed document: " + str(e), str(path)) from e
    try:
        return program_from_dict(data, mappings)
    except LoadError as e:
        raise LoadError(e.msg, str(path)) from e
