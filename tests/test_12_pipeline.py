"""Transpiler pipeline: options, single programs and batches."""

import pytest

from hybrid.options import OptionsError, TranspilerOptions
from hybrid.pipeline import Transpiler
from hybrid.serialize import load_program, program_from_dict


def test_default_options():
    options = TranspilerOptions()
    assert options.target == "rust"
    assert options.opt_level == 1
    assert options.enable_safety_checks
    assert options.preserve_comments
    assert options.promote_shared_ownership
    assert options.extension == ".rs"
    assert TranspilerOptions(target="go").extension == ".go"


@pytest.mark.parametrize("kwargs", [{"target": "java"}, {"opt_level": 4}, {"opt_level": -1}])
def test_invalid_options(kwargs):
    with pytest.raises(OptionsError):
        TranspilerOptions(**kwargs)


def test_options_error_is_value_error():
    assert issubclass(OptionsError, ValueError)


@pytest.mark.parametrize("name", ["point.yaml", "worker.yaml", "parser.yaml"])
@pytest.mark.parametrize("target", ["rust", "go"])
def test_examples_transpile(examples_dir, mappings, name, target):
    transpiler = Transpiler(TranspilerOptions(target=target), mappings)
    out = transpiler.transpile_file(examples_dir / name)
    assert out.strip()
    assert out.endswith("\n")


def test_transpile_annotates_program(examples_dir, mappings):
    program = load_program(examples_dir / "worker.yaml", mappings)
    Transpiler(TranspilerOptions(), mappings).transpile(program)
    run = program.functions[1]
    assert run.uses_threading
    assert [t.var_name for t in run.threads] == ["t", "bg"]
    assert program.classes[0].thread_safe


def test_safety_checks_off_skips_ownership(examples_dir, mappings):
    program = load_program(examples_dir / "parser.yaml", mappings)
    Transpiler(TranspilerOptions(enable_safety_checks=False), mappings).analyze(program)
    assert all(p.ownership is None for fn in program.functions for p in fn.params)
    assert program.functions[0].error_strategy["rust"] == "result_type"


def test_targets_share_analysis(examples_dir, mappings):
    program = load_program(examples_dir / "point.yaml", mappings)
    rust = Transpiler(TranspilerOptions(target="rust"), mappings)
    go = Transpiler(TranspilerOptions(target="go"), mappings)
    rust.analyze(program)
    assert "pub struct Point {" in rust.generate(program)
    assert "type Point struct {" in go.generate(program)


def test_raw_pointer_code_is_unsafe_only_with_checks(mappings):
    doc = {"functions": [{"name": "touch", "params": [{"name": "n", "type": "Node*"}]}]}
    checked = Transpiler(TranspilerOptions(), mappings).transpile(program_from_dict(doc, mappings))
    unchecked = Transpiler(TranspilerOptions(enable_safety_checks=False), mappings).transpile(
        program_from_dict(doc, mappings)
    )
    assert "pub unsafe fn touch(n: *mut Node) {" in checked
    assert "/// Callers must pass valid, live pointers for: n." in checked
    assert "pub fn touch(n: *mut Node) {" in unchecked
    assert "unsafe" not in unchecked


# ============================================================
# BATCH
# ============================================================


def test_batch_writes_beside_inputs(tmp_path, examples_dir, mappings):
    src = tmp_path / "point.yaml"
    src.write_text((examples_dir / "point.yaml").read_text())
    result = Transpiler(TranspilerOptions(target="go"), mappings).transpile_batch([src])
    assert result.ok()
    assert result.written == [tmp_path / "point.go"]
    assert "type Point struct {" in (tmp_path / "point.go").read_text()


def test_batch_records_failures(tmp_path, examples_dir, mappings):
    missing = tmp_path / "missing.yaml"
    out = tmp_path / "out"
    result = Transpiler(TranspilerOptions(), mappings).transpile_batch(
        [missing, examples_dir / "parser.yaml"], out
    )
    assert not result.ok()
    assert list(result.failed) == [str(missing)]
    assert "cannot read" in result.failed[str(missing)]
    assert result.written == [out / "parser.rs"]


def test_batch_survives_malformed_nested_types(tmp_path, examples_dir, mappings):
    bad = tmp_path / "bad.json"
    bad.write_text(
        '{"globals": [{"name": "p", "type": {"kind": "pointer", "name": "p", "element_type": 3}}]}'
    )
    result = Transpiler(TranspilerOptions(), mappings).transpile_batch(
        [bad, examples_dir / "point.yaml"], tmp_path / "out"
    )
    assert list(result.failed) == [str(bad)]
    assert result.written == [tmp_path / "out" / "point.rs"]


def test_batch_is_deterministic(tmp_path, examples_dir, mappings):
    transpiler = Transpiler(TranspilerOptions(target="go", opt_level=3), mappings)
    transpiler.transpile_batch([examples_dir / "worker.yaml"], tmp_path / "a")
    transpiler.transpile_batch([examples_dir / "worker.yaml"], tmp_path / "b")
    assert (tmp_path / "a" / "worker.go").read_text() == (tmp_path / "b" / "worker.go").read_text()
