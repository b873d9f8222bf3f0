"""Transpiler options."""

from __future__ import annotations

from dataclasses import dataclass

from hybrid.ir import TARGETS, Target

OPT_LEVELS: tuple[int, ...] = (0, 1, 2, 3)


class OptionsError(ValueError):
    """Invalid option value."""


@dataclass
class TranspilerOptions:
    """Knobs for one transpiler run.

    | Option                   | Effect                                                   |
    |--------------------------|----------------------------------------------------------|
    | target                   | rust or go                                               |
    | opt_level                | 0 direct, 1 concurrency scaffolds, 2 idiomatic containers, 3 accessor rewrites |
    | enable_safety_checks     | run ownership analysis, mark raw-pointer code unsafe     |
    | preserve_comments        | keep doc comments and echo original bodies               |
    | promote_shared_ownership | shared_ptr in threaded code lowers to Arc                |
    """

    target: Target = "rust"
    opt_level: int = 1
    enable_safety_checks: bool = True
    preserve_comments: bool = True
    promote_shared_ownership: bool = True
    verbose: bool = False
    quiet: bool = False
    output_path: str | None = None

    def __post_init__(self) -> None:
        if self.target not in TARGETS:
            raise OptionsError("unknown target '" + str(self.target) + "'")
        if self.opt_level not in OPT_LEVELS:
            raise OptionsError("optimization level must be 0-3, got " + str(self.opt_level))

    @property
    def extension(self) -> str:
        return ".rs" if self.target == "rust" else ".go"
