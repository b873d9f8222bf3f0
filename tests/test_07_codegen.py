"""Pytest-based codegen tests for the Rust and Go backends.

Test cases live in 07_codegen/*.tests files. Format:

    === test name
    args: --target go -O3
    name: demo
    classes:
      ...
    ---
    expected output fragment
    ---

The first input line holds CLI flags; the rest is an IR document. The
expected fragment must appear in the output, compared line by line with
surrounding whitespace ignored. A fragment starting with "not:" must not
appear.
"""

import shlex
from pathlib import Path

import pytest
import yaml

from hybrid.cli import parse_args
from hybrid.mappings import default_mappings
from hybrid.options import TranspilerOptions
from hybrid.pipeline import Transpiler
from hybrid.serialize import program_from_dict

CODEGEN_DIR = Path(__file__).parent / "07_codegen"


def parse_codegen_file(path: Path) -> list[tuple[str, str, str]]:
    """Parse .tests file into (name, input, expected) tuples."""
    lines = path.read_text().split("\n")
    result: list[tuple[str, str, str]] = []
    i = 0
    while i < len(lines):
        line = lines[i]
        if line.startswith("=== "):
            test_name = line[4:].strip()
            i += 1
            input_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                input_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            expected_lines: list[str] = []
            while i < len(lines) and not lines[i].startswith("---"):
                expected_lines.append(lines[i])
                i += 1
            if i < len(lines) and lines[i] == "---":
                i += 1
            test_input = "\n".join(input_lines)
            expected = "\n".join(expected_lines).strip()
            result.append((test_name, test_input, expected))
        else:
            i += 1
    return result


def discover_codegen_tests() -> list[tuple[str, str, str, str]]:
    """Find all codegen tests, returns (test_id, input, expected, file_stem)."""
    results = []
    for test_file in sorted(CODEGEN_DIR.glob("*.tests")):
        for name, input_doc, expected in parse_codegen_file(test_file):
            test_id = f"{test_file.stem}/{name}"
            results.append((test_id, input_doc, expected, test_file.stem))
    return results


def options_from_args(line: str, default_target: str) -> TranspilerOptions:
    """Build options from an 'args:' line the way the CLI would."""
    argv = shlex.split(line[len("args:") :])
    if "--target" not in argv:
        argv = ["--target", default_target] + argv
    args = parse_args(argv)
    return TranspilerOptions(
        target=args.target,
        opt_level=args.opt_level,
        enable_safety_checks=args.safety_checks,
        preserve_comments=args.comments,
        promote_shared_ownership=args.promote_shared,
    )


def transpile(source: str, default_target: str) -> str:
    lines = source.split("\n")
    if not lines[0].startswith("args:"):
        raise ValueError("codegen input must start with an 'args:' line")
    options = options_from_args(lines[0], default_target)
    mappings = default_mappings()
    program = program_from_dict(yaml.safe_load("\n".join(lines[1:])), mappings)
    return Transpiler(options, mappings).transpile(program)


def contains_normalized(haystack: str, needle: str) -> bool:
    """Check if needle appears in haystack, normalizing line-by-line whitespace."""
    needle_lines = [line.strip() for line in needle.strip().split("\n") if line.strip()]
    haystack_lines = [line.strip() for line in haystack.split("\n") if line.strip()]
    if not needle_lines:
        return True
    for i in range(len(haystack_lines)):
        if haystack_lines[i] == needle_lines[0]:
            match = True
            for j in range(1, len(needle_lines)):
                if i + j >= len(haystack_lines) or haystack_lines[i + j] != needle_lines[j]:
                    match = False
                    break
            if match:
                return True
    return False


def pytest_generate_tests(metafunc):
    """Parametrize tests over codegen test files."""
    if "codegen_input" in metafunc.fixturenames:
        tests = discover_codegen_tests()
        params = [
            pytest.param(input_doc, expected, stem, id=test_id)
            for test_id, input_doc, expected, stem in tests
        ]
        metafunc.parametrize("codegen_input,codegen_expected,codegen_lang", params)


def test_codegen(codegen_input: str, codegen_expected: str, codegen_lang: str):
    """Verify backend output contains (or lacks) the expected fragment."""
    output = transpile(codegen_input, codegen_lang)
    if codegen_expected.startswith("not:"):
        fragment = codegen_expected[4:].strip()
        if contains_normalized(output, fragment):
            pytest.fail(f"Unexpected fragment in output:\n--- fragment ---\n{fragment}\n--- got ---\n{output}")
        return
    if not contains_normalized(output, codegen_expected):
        pytest.fail(
            f"Expected not found in output:\n--- expected ---\n{codegen_expected}\n--- got ---\n{output}"
        )
