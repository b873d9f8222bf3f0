"""Transpiler: analysis followed by generation for one target."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

from hybrid.backend.go import GoBackend
from hybrid.backend.rust import RustBackend
from hybrid.ir import Program
from hybrid.mappings import MappingConfig, default_mappings
from hybrid.middleend import analyze
from hybrid.options import TranspilerOptions
from hybrid.serialize import LoadError, load_program

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of transpile_batch: written files and per-input failures."""

    written: list[Path] = field(default_factory=list)
    failed: dict[str, str] = field(default_factory=dict)

    def ok(self) -> bool:
        return not self.failed


class Transpiler:
    """Run the middleend passes and one backend over IR programs.

    Each call builds a fresh backend, so runs share no mutable state.
    """

    def __init__(
        self,
        options: TranspilerOptions | None = None,
        mappings: MappingConfig | None = None,
    ) -> None:
        self.options = options if options is not None else TranspilerOptions()
        self.mappings = mappings if mappings is not None else default_mappings()

    def analyze(self, program: Program) -> Program:
        analyze(program, self.options, self.mappings)
        return program

    def generate(self, program: Program) -> str:
        if self.options.target == "go":
            return GoBackend(self.options, self.mappings).emit(program)
        return RustBackend(self.options, self.mappings).emit(program)

    def transpile(self, program: Program) -> str:
        self.analyze(program)
        return self.generate(program)

    def transpile_file(self, path: str | Path) -> str:
        program = load_program(path, self.mappings)
        logger.info("transpiling %s to %s", path, self.options.target)
        return self.transpile(program)

    def transpile_batch(
        self, inputs: list[str | Path], output_dir: str | Path | None = None
    ) -> BatchResult:
        """Transpile each input, writing <stem>.rs / <stem>.go beside it
        or into output_dir. A failing input does not stop the batch."""
        result = BatchResult()
        for item in inputs:
            src = Path(item)
            dest_dir = Path(output_dir) if output_dir is not None else src.parent
            dest = dest_dir / (src.stem + self.options.extension)
            try:
                text = self.transpile_file(src)
                dest_dir.mkdir(parents=True, exist_ok=True)
                dest.write_text(text, encoding="utf-8")
            except LoadError as e:
                logger.error("%s", e)
                result.failed[str(src)] = str(e)
                continue
            except OSError as e:
                logger.error("cannot write '%s': %s", dest, e)
                result.failed[str(src)] = str(e)
                continue
            logger.info("wrote %s", dest)
            result.written.append(dest)
        return result
