"""Exception analysis unit tests: parsing helpers and strategy selection."""

import itertools

import pytest

from hybrid.ir import ExceptionSpec, Function, TryCatchBlock, Type
from hybrid.middleend.exceptions import (
    CATCH_ALL,
    ExceptionTypes,
    analyze_function_exceptions,
    find_thrown_types,
    find_try_blocks,
    handles_internally,
    has_throw,
    parse_catch_parameter,
    parse_exception_spec,
    select_strategy,
)


@pytest.mark.parametrize(
    "text,expected",
    [
        ("...", (CATCH_ALL, None)),
        ("const std::exception& e", ("std::exception", "e")),
        ("std::runtime_error &err", ("std::runtime_error", "err")),
        ("std::bad_alloc&", ("std::bad_alloc", None)),
        ("int", ("int", None)),
        ("const char* msg", ("char*", "msg")),
        ("const MyError<int>& e", ("MyError<int>", "e")),
        ("  ", (CATCH_ALL, None)),
    ],
)
def test_parse_catch_parameter(text, expected):
    assert parse_catch_parameter(text) == expected


@pytest.mark.parametrize(
    "declared,expected",
    [
        ("", (False, False)),
        ("noexcept", (True, False)),
        ("noexcept(true)", (True, False)),
        ("noexcept ( false )", (False, True)),
        ("noexcept(sizeof(T) > 4)", (False, False)),
        ("throw()", (True, False)),
        ("throw(std::bad_alloc)", (False, True)),
        ("override", (False, False)),
    ],
)
def test_parse_exception_spec(declared, expected):
    assert parse_exception_spec(declared) == expected


def test_try_block_without_handlers():
    blocks = find_try_blocks("try { a(); }")
    assert len(blocks) == 1
    assert blocks[0].try_body == "a();"
    assert blocks[0].catch_clauses == []


def test_unbalanced_try_is_skipped():
    assert find_try_blocks("try { a(); ") == []


def test_handler_body_and_raw_parameter():
    blocks = find_try_blocks('try { a(); } catch (const std::exception& e) { log("}"); }')
    clause = blocks[0].catch_clauses[0]
    assert clause.raw_parameter == "const std::exception& e"
    assert clause.handler_body == 'log("}");'


def test_thrown_types():
    body = "throw Error<int>(1); throw ::ns::Fatal{}; throw; throw std::move(e);"
    assert find_thrown_types(body) == ["Error", "::ns::Fatal", "std::move"]
    assert has_throw("throw;")
    assert not has_throw("int thrown = 0;")


# ============================================================
# STRATEGY
# ============================================================


def make_function(body: str = "", declared: str = "") -> Function:
    return Function("f", Type("void", "void"), body=body, exception_spec=ExceptionSpec(declared))


@pytest.mark.parametrize(
    "may_fail,noexcept,has_try", list(itertools.product([False, True], repeat=3))
)
def test_panic_is_never_selected(may_fail, noexcept, has_try):
    fn = make_function()
    fn.may_fail = may_fail
    fn.exception_spec.is_noexcept = noexcept
    fn.try_catch_blocks = [TryCatchBlock("x();")] if has_try else []
    for target in ("rust", "go"):
        assert select_strategy(fn, target) != "panic"


def test_decision_table():
    quiet = make_function("return 1;")
    analyze_function_exceptions(quiet)
    assert quiet.error_strategy == {"rust": "ignore", "go": "ignore"}

    throwing = make_function('throw std::runtime_error("x");')
    analyze_function_exceptions(throwing)
    assert throwing.error_strategy == {"rust": "result_type", "go": "error_return"}
    assert not handles_internally(throwing)

    absorbing = make_function("try { x(); } catch (...) {}", "noexcept")
    analyze_function_exceptions(absorbing)
    assert absorbing.error_strategy == {"rust": "result_type", "go": "error_return"}
    assert handles_internally(absorbing)


def test_strategy_table_from_mappings(mappings):
    overridden = mappings.merged({"error_strategies": {"go": {"propagate": "panic"}}})
    fn = make_function('throw std::runtime_error("x");')
    analyze_function_exceptions(fn, overridden)
    assert fn.error_strategy["go"] == "panic"
    assert fn.error_strategy["rust"] == "result_type"


def test_analysis_is_repeatable():
    fn = make_function("try { x(); } catch (...) { throw; }")
    analyze_function_exceptions(fn)
    first = (list(fn.thrown_types), len(fn.try_catch_blocks), dict(fn.error_strategy))
    analyze_function_exceptions(fn)
    assert (list(fn.thrown_types), len(fn.try_catch_blocks), dict(fn.error_strategy)) == first


# ============================================================
# ERROR TYPES
# ============================================================


def test_descriptions(mappings):
    types = ExceptionTypes(mappings)
    assert types.description("std::runtime_error") == "Runtime error"
    assert types.description("out_of_range") == "Out of range"
    assert types.description("...") == "Unknown error"
    assert types.description(CATCH_ALL) == "Unknown error"
    assert types.description("ParseFailure") == "Error: ParseFailure"


def test_error_types(mappings):
    types = ExceptionTypes(mappings)
    assert types.rust_error("std::invalid_argument") == "std::io::Error"
    assert types.rust_error("std::runtime_error") == "Box<dyn std::error::Error>"
    assert types.go_error("std::runtime_error") == "error"


def test_rust_error_for_function(mappings):
    types = ExceptionTypes(mappings)
    fn = make_function()
    fn.thrown_types = ["std::invalid_argument", "std::system_error"]
    assert types.rust_error_for(fn) == "std::io::Error"
    fn.thrown_types = ["std::invalid_argument", "std::logic_error"]
    assert types.rust_error_for(fn) == "Box<dyn std::error::Error>"
    fn.thrown_types = []
    assert types.rust_error_for(fn) == "Box<dyn std::error::Error>"
