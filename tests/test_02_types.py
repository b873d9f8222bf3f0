"""Type mapper tests: builtins, derived types, templates and the registry."""

import pytest

from hybrid.frontend.types import TypeMapper
from hybrid.ir import Program, Type


@pytest.fixture
def mapper(mappings) -> TypeMapper:
    return TypeMapper(mappings)


# ============================================================
# BUILTINS
# ============================================================


@pytest.mark.parametrize(
    "name,kind,size",
    [
        ("bool", "bool", 1),
        ("char", "integer", 1),
        ("short", "integer", 2),
        ("int", "integer", 4),
        ("long", "integer", 8),
        ("long long", "integer", 8),
        ("size_t", "integer", 8),
        ("int8_t", "integer", 1),
        ("uint64_t", "integer", 8),
        ("float", "float", 4),
        ("double", "float", 8),
        ("long double", "float", 16),
        ("void", "void", 0),
    ],
)
def test_builtin_sizes(mapper, name, kind, size):
    typ = mapper.map_builtin_type(name)
    assert typ is not None
    assert typ.kind == kind
    assert typ.size_bytes == size
    assert typ.alignment == size


@pytest.mark.parametrize(
    "spelling,canonical",
    [
        ("long int", "long"),
        ("unsigned long long int", "unsigned long long"),
        ("signed", "int"),
        ("short  int", "short"),
    ],
)
def test_builtin_aliases(mapper, spelling, canonical):
    assert mapper.map_type(spelling).name == canonical


def test_unknown_builtin(mapper):
    assert mapper.map_builtin_type("Widget") is None


def test_mapping_is_idempotent(mapper):
    for text in ["int", "const std::string&", "std::map<int, std::vector<double>>", "Foo*"]:
        assert mapper.map_type(text) == mapper.map_type(text)


# ============================================================
# DERIVED TYPES
# ============================================================


def test_pointer(mapper):
    typ = mapper.map_type("int*")
    assert typ.kind == "pointer"
    assert typ.name == "int*"
    assert typ.element_type == mapper.map_type("int")
    assert typ.size_bytes == 8


def test_pointer_to_const(mapper):
    typ = mapper.map_type("const char*")
    assert typ.kind == "pointer"
    assert not typ.is_const
    assert typ.element_type.name == "char"
    assert typ.element_type.is_const


def test_const_pointer(mapper):
    typ = mapper.map_type("char* const")
    assert typ.kind == "pointer"
    assert typ.is_const
    assert not typ.element_type.is_const


def test_references(mapper):
    mutable = mapper.map_type("int&")
    assert mutable.kind == "reference"
    assert not mutable.is_const
    view = mapper.map_type("const std::string&")
    assert view.kind == "reference"
    assert view.is_const
    assert view.element_type.kind == "string"


def test_rvalue_reference_is_the_value(mapper):
    assert mapper.map_type("std::vector<int>&&") == mapper.map_type("std::vector<int>")


def test_arrays(mapper):
    typ = mapper.map_type("int[10]")
    assert typ.kind == "array"
    assert typ.name == "int[10]"
    assert typ.size_bytes == 40
    assert typ.alignment == 4
    assert mapper.map_type("double[]").kind == "pointer"


def test_std_array_is_an_array(mapper):
    typ = mapper.map_type("std::array<int, 4>")
    assert typ.kind == "array"
    assert typ.size_bytes == 16
    assert typ.element_type.name == "int"


def test_qualifiers(mapper):
    assert mapper.map_type("const int").is_const
    assert mapper.map_type("volatile int") == mapper.map_type("int")
    assert mapper.map_type("struct Foo") == Type("class", "Foo")


# ============================================================
# TEMPLATES
# ============================================================


def test_sequence(mapper):
    typ = mapper.map_type("std::vector<int>")
    assert typ.kind == "sequence"
    assert typ.name == "vector"
    assert typ.element_type.name == "int"
    assert [a.name for a in typ.template_args] == ["int"]


def test_nested_map(mapper):
    typ = mapper.map_type("std::map<std::string, std::vector<std::pair<int, int>>>")
    assert typ.kind == "ordered_map"
    assert typ.element_type is None
    key, value = typ.template_args
    assert key.kind == "string"
    assert value.kind == "sequence"
    assert value.element_type.kind == "pair"
    assert len(value.element_type.template_args) == 2


@pytest.mark.parametrize(
    "text,kind",
    [
        ("std::list<int>", "linked_list"),
        ("std::deque<int>", "deque"),
        ("std::unordered_map<int, int>", "hash_map"),
        ("std::set<int>", "ordered_set"),
        ("std::unordered_set<int>", "hash_set"),
        ("std::optional<int>", "optional"),
        ("std::pair<int, double>", "pair"),
        ("std::string", "string"),
        ("std::mutex", "mutex"),
        ("std::recursive_mutex", "recursive_mutex"),
        ("std::shared_mutex", "shared_mutex"),
        ("std::condition_variable", "condition_variable"),
        ("std::thread", "thread"),
    ],
)
def test_template_kinds(mapper, text, kind):
    assert mapper.map_type(text).kind == kind


def test_smart_pointers(mapper):
    typ = mapper.map_type("std::unique_ptr<Widget>")
    assert typ.kind == "pointer"
    assert typ.name == "unique_ptr<Widget>"
    assert typ.element_type == Type("class", "Widget")
    assert mapper.map_type("std::shared_ptr<int>").name == "shared_ptr<int>"


def test_atomics(mapper):
    typ = mapper.map_type("std::atomic<int>")
    assert typ.kind == "atomic"
    assert typ.element_type.name == "int"
    assert typ.size_bytes == 4
    alias = mapper.map_type("std::atomic_bool")
    assert alias.kind == "atomic"
    assert alias.element_type.name == "bool"


def test_function_types(mapper):
    typ = mapper.map_type("std::function<int(double, bool)>")
    assert typ.kind == "function"
    assert [a.name for a in typ.template_args] == ["int", "double", "bool"]
    nullary = mapper.map_type("std::function<void()>")
    assert [a.name for a in nullary.template_args] == ["void"]


def test_unknown_template(mapper):
    typ = mapper.map_type("Cache<int>")
    assert typ.kind == "template"
    assert typ.name == "Cache"
    assert [a.name for a in typ.template_args] == ["int"]


# ============================================================
# REGISTRY
# ============================================================


def test_unknown_names_are_opaque_classes(mapper):
    assert mapper.map_type("Widget") == Type("class", "Widget")


def test_registry_lookup(mapper):
    program = Program()
    program.register_type("Meters", Type("float", "double", size_bytes=8, alignment=8))
    assert mapper.map_type("Meters", program).name == "double"
    assert mapper.map_type("std::vector<Meters>", program).element_type.kind == "float"


def test_builtins_shadow_registry(mapper):
    program = Program()
    program.register_type("int", Type("class", "int"))
    assert mapper.map_type("int", program).kind == "integer"
