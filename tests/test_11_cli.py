"""CLI tests for the hybridc entry point.

Test cases live in 11_cli/*.tests files. Format:

    === test name
    args: --target go --stop-at analyze
    IR document here
    (stdin for the transpiler)
    ---
    exit: 0
    stderr: error: some message
    stdout-contains: "keyword"
    stdout-empty: true
    stderr-empty: true
    ---

Assertion directives in the expected section:
    exit:             exact exit code
    stderr:           exact stderr content (trailing newline added)
    stderr-contains:  stderr must contain substring
    stderr-empty:     stderr must be empty
    stdout-contains:  stdout must contain substring
    stdout-empty:     stdout must be empty

Relative paths in args resolve against the repository root.
"""

import subprocess
import sys
from pathlib import Path

import pytest

from hybrid.cli import main

CLI_DIR = Path(__file__).parent / "11_cli"
ROOT_DIR = Path(__file__).parent.parent


def parse_cli_test_file(path: Path) -> list[tuple[str, dict]]:
    """Parse a .tests file into (name, spec) tuples.

    Each spec dict has keys: args, stdin, assertions.
    """
    lines = path.read_text().split("\n")
    result: list[tuple[str, dict]] = []
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
            spec = _parse_spec(input_lines, expected_lines)
            result.append((test_name, spec))
        else:
            i += 1
    return result


def _parse_spec(input_lines: list[str], expected_lines: list[str]) -> dict:
    """Parse input + expected lines into a test spec dict."""
    spec: dict = {"args": [], "stdin": "", "assertions": []}
    body_start = 0
    if input_lines and input_lines[0].startswith("args:"):
        args_str = input_lines[0][5:].strip()
        spec["args"] = args_str.split() if args_str else []
        body_start = 1
    spec["stdin"] = "\n".join(input_lines[body_start:])
    for line in expected_lines:
        line = line.strip()
        if not line:
            continue
        if line.startswith("exit:"):
            spec["assertions"].append(("exit", int(line[5:].strip())))
        elif line.startswith("stderr:"):
            spec["assertions"].append(("stderr", line[7:].strip()))
        elif line.startswith("stderr-contains:"):
            spec["assertions"].append(("stderr-contains", line[16:].strip()))
        elif line.startswith("stderr-empty:"):
            spec["assertions"].append(("stderr-empty", None))
        elif line.startswith("stdout-contains:"):
            spec["assertions"].append(("stdout-contains", line[16:].strip()))
        elif line.startswith("stdout-empty:"):
            spec["assertions"].append(("stdout-empty", None))
    return spec


def discover_cli_tests() -> list[tuple[str, dict]]:
    """Find all CLI tests across .tests files."""
    results = []
    for test_file in sorted(CLI_DIR.glob("*.tests")):
        for name, spec in parse_cli_test_file(test_file):
            results.append((f"{test_file.stem}/{name}", spec))
    return results


def run_cli(spec: dict) -> subprocess.CompletedProcess[bytes]:
    """Run hybridc from a test spec."""
    cmd = [sys.executable, "-m", "hybrid.cli", *spec["args"]]
    return subprocess.run(cmd, input=spec["stdin"].encode(), capture_output=True, cwd=ROOT_DIR)


def check_assertions(result: subprocess.CompletedProcess[bytes], assertions: list[tuple]) -> None:
    """Check all assertions against a CLI result."""
    for kind, value in assertions:
        if kind == "exit":
            assert result.returncode == value, (
                f"expected exit {value}, got {result.returncode}"
                f"\nstderr: {result.stderr.decode(errors='replace')}"
            )
        elif kind == "stderr":
            actual = result.stderr.decode(errors="replace").rstrip("\n")
            assert actual == value, f"expected stderr {value!r}, got {actual!r}"
        elif kind == "stderr-contains":
            actual = result.stderr.decode(errors="replace")
            assert value in actual, f"expected stderr to contain {value!r}, got {actual!r}"
        elif kind == "stderr-empty":
            assert result.stderr == b"", f"expected empty stderr, got {result.stderr!r}"
        elif kind == "stdout-contains":
            actual = result.stdout.decode(errors="replace")
            assert value in actual, f"expected stdout to contain {value!r}, got {actual!r}"
        elif kind == "stdout-empty":
            assert result.stdout == b"", f"expected empty stdout, got {result.stdout[:200]!r}"


def pytest_generate_tests(metafunc):
    """Parametrize test_cli over all .tests files."""
    if "cli_spec" in metafunc.fixturenames:
        tests = discover_cli_tests()
        params = [pytest.param(spec, id=test_id) for test_id, spec in tests]
        metafunc.parametrize("cli_spec", params)


def test_cli(cli_spec: dict) -> None:
    """Run a single CLI test case from .tests file."""
    result = run_cli(cli_spec)
    check_assertions(result, cli_spec["assertions"])


# ============================================================
# FILES
# ============================================================


def test_output_file(tmp_path, examples_dir):
    out = tmp_path / "point.go"
    assert main(["--target", "go", str(examples_dir / "point.yaml"), "-o", str(out)]) == 0
    assert out.read_text().startswith("package geometry\n")


def test_batch_writes_one_file_per_input(tmp_path, examples_dir):
    inputs = [str(examples_dir / "point.yaml"), str(examples_dir / "parser.yaml")]
    assert main([*inputs, "-o", str(tmp_path / "out")]) == 0
    assert sorted(p.name for p in (tmp_path / "out").iterdir()) == ["parser.rs", "point.rs"]


def test_batch_continues_past_failures(tmp_path, examples_dir):
    bad = tmp_path / "bad.yaml"
    bad.write_text("functions: 3\n")
    inputs = [str(bad), str(examples_dir / "worker.yaml")]
    assert main(["--target", "go", *inputs, "-o", str(tmp_path)]) == 1
    assert (tmp_path / "worker.go").exists()
    assert not (tmp_path / "bad.go").exists()


def test_malformed_type_fields_exit_with_one(tmp_path, capsys):
    bad = tmp_path / "bad.json"
    bad.write_text('{"globals": [{"name": "n", "type": {"kind": "integer", "name": "int", "size_bytes": "big"}}]}')
    assert main([str(bad)]) == 1
    assert "'size_bytes' must be an integer" in capsys.readouterr().err


def test_misuse_exits_with_two():
    with pytest.raises(SystemExit) as exc:
        main(["--target", "cobol"])
    assert exc.value.code == 2
