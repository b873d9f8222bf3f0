"""Pytest-based middleend analysis tests.

Test cases live in 05_analysis/*.tests files. Format:

    === test name
    name: demo
    functions:
      - name: run
        body: |
          std::thread t(worker, 10);
    ---
    functions.0.analysis.threads.0.function_name = worker
    functions.0.analysis.threads.length = 1
    ---

The input is an IR document. Each expected line is a dotpath into the
analyzed program as written by program_to_dict, and the value it must hold.
"""

from pathlib import Path

import pytest
import yaml

from hybrid.mappings import default_mappings
from hybrid.middleend import analyze
from hybrid.serialize import program_from_dict, program_to_dict

ANALYSIS_DIR = Path(__file__).parent / "05_analysis"


def parse_analysis_file(path: Path) -> list[tuple[str, str, str]]:
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


def discover_analysis_tests() -> list[tuple[str, str, str, str]]:
    """Find all analysis tests, returns (test_id, input, expected, file_stem)."""
    results = []
    for test_file in sorted(ANALYSIS_DIR.glob("*.tests")):
        for name, input_doc, expected in parse_analysis_file(test_file):
            test_id = f"{test_file.stem}/{name}"
            results.append((test_id, input_doc, expected, test_file.stem))
    return results


def resolve_dotpath(obj: object, path: str) -> object:
    """Resolve a dot-separated path against a nested dict/list structure."""
    current = obj
    for part in path.split("."):
        if part == "length":
            return len(current)
        if isinstance(current, list):
            current = current[int(part)]
        elif isinstance(current, dict):
            current = current[part]
        else:
            raise KeyError(f"cannot traverse {type(current).__name__} with key {part!r}")
    return current


def run_analysis(source: str) -> dict[str, object]:
    """Load the document, run every middleend pass, and dump the result."""
    mappings = default_mappings()
    program = program_from_dict(yaml.safe_load(source), mappings)
    analyze(program, mappings=mappings)
    return program_to_dict(program)


def pytest_generate_tests(metafunc):
    """Parametrize tests over analysis test files."""
    if "analysis_input" in metafunc.fixturenames:
        tests = discover_analysis_tests()
        params = [
            pytest.param(input_doc, expected, id=test_id)
            for test_id, input_doc, expected, _ in tests
        ]
        metafunc.parametrize("analysis_input,analysis_expected", params)


def test_analysis(analysis_input: str, analysis_expected: str):
    """Verify the analyzers annotate the program as expected."""
    result = run_analysis(analysis_input)
    for line in analysis_expected.split("\n"):
        line = line.strip()
        if not line:
            continue
        if "=" not in line:
            pytest.fail(f"Bad assertion (no '='): {line}")
        path, expected_val = line.split("=", 1)
        path = path.strip()
        expected_val = expected_val.strip()
        try:
            actual = resolve_dotpath(result, path)
        except (KeyError, IndexError, TypeError, ValueError) as e:
            pytest.fail(f"Path '{path}' not found in result: {e}")
        actual_str = _to_comparable(actual)
        if actual_str != expected_val:
            pytest.fail(
                f"Assertion failed: {path}\n"
                f"  expected: {expected_val!r}\n"
                f"  actual:   {actual_str!r}"
            )


def _to_comparable(value: object) -> str:
    """Convert a value to its string form for comparison."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, list):
        return "[" + ", ".join(_to_comparable(v) for v in value) + "]"
    return str(value)
