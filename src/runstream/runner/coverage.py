# src/runstream/runner/coverage.py

"""
Per-run statement coverage counters.

An aggregator is created for one runner invocation, filled by whatever
instrumentation the test executable carries, and finished exactly once to
produce the run's single CoverageSummary.
"""

from collections.abc import Iterable
from pathlib import Path

import structlog
from attrs import define, field

from runstream.exceptions import CoverageError
from runstream.records import COVERAGE_MODES, CoverageSummary

log = structlog.get_logger("runner.coverage")


@define(slots=True)
class CoverageBlock:
    """A contiguous run of statements sharing one counter."""

    package: str = field()
    file: str = field()
    start_line: int = field()
    end_line: int = field()
    statements: int = field()
    count: int = field(default=0)


class CoverageAggregator:
    """Collects coverage counters for a single runner invocation."""

    def __init__(self, mode: str):
        if mode not in COVERAGE_MODES:
            raise CoverageError(f"Unknown coverage mode {mode!r}. Must be one of {list(COVERAGE_MODES)}.")
        self.mode = mode
        self._blocks: dict[tuple[str, int, int], CoverageBlock] = {}
        self._packages: dict[str, None] = {}
        self._finished = False

    @property
    def finished(self) -> bool:
        return self._finished

    def add_block(
        self,
        package: str,
        file: str,
        start_line: int,
        end_line: int,
        statements: int,
        count: int = 0,
    ) -> CoverageBlock:
        """Registers a block. Registering the same block again merges its count."""
        self._check_open()
        if statements < 0 or count < 0:
            raise CoverageError("Statement and hit counts must be non-negative")
        self._packages.setdefault(package, None)
        key = (file, start_line, end_line)
        block = self._blocks.get(key)
        if block is None:
            block = CoverageBlock(package, file, start_line, end_line, statements)
            self._blocks[key] = block
        self._bump(block, count)
        return block

    def register(self, package: str, file: str, blocks: Iterable[tuple[int, int, int]]) -> None:
        """Registers ``(start_line, end_line, statements)`` blocks for one file."""
        for start_line, end_line, statements in blocks:
            self.add_block(package, file, start_line, end_line, statements)

    def hit(self, file: str, start_line: int, end_line: int, times: int = 1) -> None:
        self._check_open()
        block = self._blocks.get((file, start_line, end_line))
        if block is None:
            raise CoverageError(f"No coverage block registered at {file}:{start_line}-{end_line}")
        self._bump(block, times)

    def summary(self) -> CoverageSummary:
        total = sum(block.statements for block in self._blocks.values())
        active = sum(block.statements for block in self._blocks.values() if block.count > 0)
        return CoverageSummary(
            mode=self.mode,
            total_statements=total,
            active_statements=active,
            covered_packages=tuple(self._packages),
        )

    def finish(self) -> CoverageSummary:
        """Returns the run's summary. Only one summary is ever produced."""
        self._check_open()
        self._finished = True
        summary = self.summary()
        log.debug(
            "Coverage aggregated",
            mode=self.mode,
            total=summary.total_statements,
            active=summary.active_statements,
            packages=len(summary.covered_packages),
        )
        return summary

    def write_profile(self, path: Path) -> None:
        """Writes a text profile: a mode header and one line per block."""
        lines = [f"mode: {self.mode}"]
        for block in self._blocks.values():
            lines.append(
                f"{block.file}:{block.start_line}.0,{block.end_line}.0 {block.statements} {block.count}"
            )
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        log.info("Coverage profile written", path=str(path), blocks=len(self._blocks))

    def _bump(self, block: CoverageBlock, times: int) -> None:
        if self.mode == "set":
            block.count = 1 if (block.count or times) else 0
        else:
            block.count += times

    def _check_open(self) -> None:
        if self._finished:
            raise CoverageError("Coverage summary already produced for this run")


# 🔼⚙️
