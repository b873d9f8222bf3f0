"""Command-line entry point."""

from __future__ import annotations

import logging
import sys
from dataclasses import dataclass, field

import yaml

from hybrid import __version__
from hybrid.ir import TARGETS, Program
from hybrid.mappings import MappingConfig, MappingError, load_mappings
from hybrid.options import OPT_LEVELS, TranspilerOptions
from hybrid.pipeline import Transpiler
from hybrid.serialize import LoadError, load_program, program_from_dict, program_to_dict, to_json

PHASES: list[str] = ["load", "analyze"]

USAGE: str = """\
hybridc [OPTIONS] [INPUT...] [-o OUTPUT]

Reads IR documents (YAML or JSON) and writes Rust or Go source.
With no INPUT the document is read from stdin.

Options:
  --target TARGET         Output language: rust, go (default: rust)
  -O, --opt-level N       Idiom level 0-3 (default: 1)
  --no-safety-checks      Skip ownership analysis and unsafe markers
  --no-comments           Drop doc comments and echoed source
  --no-promote-shared     Keep Rc for shared ownership in threaded code
  --mappings FILE         YAML file merged over the builtin mapping tables
  --stop-at PHASE         Stop after phase and dump the IR as JSON: load, analyze
  -o, --output PATH       Output file (one input) or directory (several inputs)
  -v, --verbose           Log analysis details
  -q, --quiet             Only log errors
  --version               Show version
  -h, --help              Show this help message
"""


@dataclass
class CliArgs:
    target: str = "rust"
    opt_level: int = 1
    safety_checks: bool = True
    comments: bool = True
    promote_shared: bool = True
    mappings: str | None = None
    stop_at: str | None = None
    output: str | None = None
    verbose: bool = False
    quiet: bool = False
    inputs: list[str] = field(default_factory=list)


def _usage_error(msg: str) -> None:
    print("error: " + msg, file=sys.stderr)
    sys.exit(2)


def parse_args(argv: list[str] | None = None) -> CliArgs:
    """Parse command-line arguments. Exits with status 2 on misuse."""
    args = sys.argv[1:] if argv is None else argv
    result = CliArgs()
    i = 0
    while i < len(args):
        arg = args[i]
        if arg == "--help" or arg == "-h":
            print(USAGE, end="")
            sys.exit(0)
        elif arg == "--version":
            print("hybridc " + __version__)
            sys.exit(0)
        elif arg in ("--target", "-O", "--opt-level", "--mappings", "--stop-at", "-o", "--output"):
            if i + 1 >= len(args):
                _usage_error(arg + " requires an argument")
            value = args[i + 1]
            if arg == "--target":
                result.target = value
            elif arg in ("-O", "--opt-level"):
                if not value.isdigit():
                    _usage_error("optimization level must be a number, got '" + value + "'")
                result.opt_level = int(value)
            elif arg == "--mappings":
                result.mappings = value
            elif arg == "--stop-at":
                result.stop_at = value
            else:
                result.output = value
            i += 2
        elif len(arg) > 2 and arg.startswith("-O") and arg[2:].isdigit():
            result.opt_level = int(arg[2:])
            i += 1
        elif arg == "--no-safety-checks":
            result.safety_checks = False
            i += 1
        elif arg == "--no-comments":
            result.comments = False
            i += 1
        elif arg == "--no-promote-shared":
            result.promote_shared = False
            i += 1
        elif arg == "-v" or arg == "--verbose":
            result.verbose = True
            i += 1
        elif arg == "-q" or arg == "--quiet":
            result.quiet = True
            i += 1
        elif arg.startswith("-"):
            _usage_error("unknown flag '" + arg + "'")
        else:
            result.inputs.append(arg)
            i += 1
    if result.target not in TARGETS:
        _usage_error("unknown target '" + result.target + "'")
    if result.opt_level not in OPT_LEVELS:
        _usage_error("optimization level must be 0-3, got " + str(result.opt_level))
    if result.stop_at is not None and result.stop_at not in PHASES:
        _usage_error("unknown phase '" + result.stop_at + "'")
    if result.verbose and result.quiet:
        _usage_error("--verbose and --quiet are mutually exclusive")
    if result.stop_at is not None and len(result.inputs) > 1:
        _usage_error("--stop-at takes a single input")
    return result


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.WARNING
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.ERROR
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def read_program(input_file: str | None, mappings: MappingConfig) -> tuple[Program | None, int]:
    """Load the IR document from a file or stdin. Returns (program, exit_code)."""
    try:
        if input_file is not None:
            return (load_program(input_file, mappings), 0)
        text = sys.stdin.read()
        if not text.strip():
            print("error: no input provided", file=sys.stderr)
            return (None, 2)
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise LoadError("malformed document: " + str(e), "<stdin>") from e
        return (program_from_dict(data, mappings), 0)
    except LoadError as e:
        print("error: " + str(e), file=sys.stderr)
        return (None, 1)


def write_output(output: str, output_file: str | None) -> int:
    """Write output to file or stdout. Returns 0 on success, 1 on error."""
    if output_file is not None:
        try:
            with open(output_file, "w", encoding="utf-8") as f:
                f.write(output)
        except OSError:
            print("error: cannot write '" + output_file + "'", file=sys.stderr)
            return 1
        return 0
    sys.stdout.write(output)
    return 0


def run_pipeline(program: Program, transpiler: Transpiler, stop_at: str | None) -> str:
    """Run the remaining phases on a loaded program and return the output."""
    if stop_at == "load":
        return to_json(program_to_dict(program)) + "\n"
    transpiler.analyze(program)
    if stop_at == "analyze":
        return to_json(program_to_dict(program)) + "\n"
    return transpiler.generate(program)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    configure_logging(args.verbose, args.quiet)
    try:
        mappings = load_mappings(args.mappings)
    except MappingError as e:
        print("error: " + str(e), file=sys.stderr)
        return 1
    options = TranspilerOptions(
        target=args.target,
        opt_level=args.opt_level,
        enable_safety_checks=args.safety_checks,
        preserve_comments=args.comments,
        promote_shared_ownership=args.promote_shared,
        verbose=args.verbose,
        quiet=args.quiet,
        output_path=args.output,
    )
    transpiler = Transpiler(options, mappings)
    if len(args.inputs) > 1:
        result = transpiler.transpile_batch(args.inputs, args.output)
        return 0 if result.ok() else 1
    program, err = read_program(args.inputs[0] if args.inputs else None, mappings)
    if program is None:
        return err
    return write_output(run_pipeline(program, transpiler, args.stop_at), args.output)


if __name__ == "__main__":
    sys.exit(main())
