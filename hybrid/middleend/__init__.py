"""IR analysis passes (annotate in place, never transform)."""

from __future__ import annotations

from ..ir import Program
from ..mappings import MappingConfig, default_mappings
from ..options import TranspilerOptions

from .concurrency import analyze_concurrency
from .exceptions import analyze_exceptions
from .ownership import analyze_ownership


def analyze(
    program: Program,
    options: TranspilerOptions | None = None,
    mappings: MappingConfig | None = None,
) -> None:
    """Run all analysis passes, annotating IR nodes in place.

    Ownership runs last: thread-shared promotion reads the concurrency
    inventory. With safety checks off the ownership pass is skipped.
    """
    if options is None:
        options = TranspilerOptions()
    if mappings is None:
        mappings = default_mappings()
    analyze_concurrency(program, mappings)
    analyze_exceptions(program, mappings)
    if options.enable_safety_checks:
        analyze_ownership(program, mappings, options)
