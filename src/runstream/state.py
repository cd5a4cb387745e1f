# src/runstream/state.py
#
"""
Per-runner state tracked by the driver while relaying a package's output.
"""

from enum import Enum, auto

from attrs import define, field, mutable

from runstream.exceptions import UpstreamTermination
from runstream.records import BenchmarkOutcome, CoverageSummary, TestOutcome, TestState


class RelayState(Enum):
    """Lifecycle of one runner's relay."""

    STREAMING = auto()  # Runner alive, lines being classified.
    TERMINATED = auto()  # Process exited or stream ended; no more lines accepted.


@mutable(slots=True)
class RelayTally:
    """Running counts of what a relay has forwarded for one package."""

    passed: int = field(default=0)
    failed: int = field(default=0)
    skipped: int = field(default=0)
    benchmarks: int = field(default=0)
    passthrough: int = field(default=0)
    coverage: CoverageSummary | None = field(default=None)

    def count(self, outcome: TestOutcome | BenchmarkOutcome | CoverageSummary | None) -> None:
        if outcome is None:
            self.passthrough += 1
        elif isinstance(outcome, CoverageSummary):
            self.coverage = outcome
        else:
            if isinstance(outcome, BenchmarkOutcome):
                self.benchmarks += 1
            if outcome.state is TestState.FAIL:
                self.failed += 1
            elif outcome.state is TestState.SKIP:
                self.skipped += 1
            elif isinstance(outcome, TestOutcome):
                self.passed += 1

    @property
    def any_failed(self) -> bool:
        return self.failed > 0


@define(frozen=True, slots=True)
class PackageResult:
    """Final outcome of one runner invocation."""

    package: str
    exit_code: int | None
    elapsed: float  # seconds, wall clock
    tally: RelayTally
    termination: UpstreamTermination | None = None

    @property
    def crashed(self) -> bool:
        return self.termination is not None

    @property
    def ok(self) -> bool:
        return not self.crashed and not self.tally.any_failed


@define(frozen=True, slots=True)
class DriverSummary:
    """Everything one driver invocation produced."""

    results: tuple[PackageResult, ...] = field(factory=tuple)

    @property
    def exit_code(self) -> int:
        return 0 if all(result.ok for result in self.results) else 1

    @property
    def failed_packages(self) -> list[str]:
        return [result.package for result in self.results if not result.ok]


# 🔼⚙️
