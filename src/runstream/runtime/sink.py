# src/runstream/runtime/sink.py

"""
Downstream consumers of driver records.

A sink is shared by every runner of a driver invocation. Each ``write``
emits one complete record in a single call under a lock, so records from
different runners never interleave mid-line.
"""

import shlex
import sys
import threading
from typing import Protocol, TextIO, runtime_checkable

import structlog
from rich.console import Console
from rich.markup import escape

from runstream.records import BenchmarkOutcome, CoverageSummary, DriverRecord, TestOutcome, TestState
from runstream.state import PackageResult
from runstream.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.sink")


@runtime_checkable
class RecordSink(Protocol):
    """Protocol for anything the driver can forward records to."""

    def write_record(self, record: DriverRecord) -> None: ...

    def write_result(self, result: PackageResult) -> None: ...

    def write_command(self, package: str, command: list[str]) -> None: ...


class JsonRecordSink:
    """Writes one compact JSON DriverRecord per line."""

    def __init__(self, stream: TextIO | None = None):
        self._stream = stream if stream is not None else sys.stdout
        self._lock = threading.Lock()
        self.written = 0

    def write_record(self, record: DriverRecord) -> None:
        line = record.to_json() + "\n"
        with self._lock:
            self._stream.write(line)
            self._stream.flush()
            self.written += 1

    def write_result(self, result: PackageResult) -> None:
        # Structured output carries records only; results go to the log.
        log.info(
            "Package finished",
            package=result.package,
            ok=result.ok,
            exit_code=result.exit_code,
            elapsed=round(result.elapsed, 3),
        )

    def write_command(self, package: str, command: list[str]) -> None:
        log.info("Runner command", package=package, command=shlex.join(command))


class HumanRecordSink:
    """
    Renders records for people: test output verbatim (minus empty lines),
    failures (or every outcome when verbose), benchmark lines, coverage and
    per-package ``ok``/``FAIL`` lines.
    """

    def __init__(
        self,
        console: Console | None = None,
        err_console: Console | None = None,
        verbose: bool = False,
    ):
        self._console = console if console is not None else Console(highlight=False, soft_wrap=True)
        self._err_console = (
            err_console if err_console is not None else Console(stderr=True, highlight=False, soft_wrap=True)
        )
        self.verbose = verbose
        self._lock = threading.Lock()

    def write_record(self, record: DriverRecord) -> None:
        with self._lock:
            if record.stdout is not None:
                # Every record is preceded by a terminator, which arrives as an empty line.
                if record.stdout:
                    self._console.out(record.stdout, highlight=False)
            elif record.stderr is not None:
                self._err_console.out(record.stderr, highlight=False)
            elif record.test is not None:
                self._render_test(record.test)
            elif record.benchmark is not None:
                self._render_benchmark(record.benchmark)
            elif record.coverage is not None:
                self._render_coverage(record.coverage)

    def write_result(self, result: PackageResult) -> None:
        package = escape(result.package)
        with self._lock:
            if result.ok:
                self._console.print(f"[green]ok[/]  \t{package}\t{result.elapsed:.3f}s")
            else:
                status = f" ({escape(str(result.termination.reason))})" if result.termination else ""
                self._console.print(f"[bold red]FAIL[/]\t{package}\t{result.elapsed:.3f}s{status}")

    def write_command(self, package: str, command: list[str]) -> None:
        with self._lock:
            self._console.out(shlex.join(command), highlight=False)

    def _render_test(self, outcome: TestOutcome) -> None:
        if outcome.state is not TestState.FAIL and not self.verbose:
            return
        style = {TestState.PASS: "green", TestState.FAIL: "bold red", TestState.SKIP: "yellow"}[outcome.state]
        self._console.print(
            f"[{style}]--- {outcome.state.value}[/]: {escape(outcome.name)} ({outcome.elapsed / 1e9:.2f}s)"
        )
        if outcome.log:
            for line in outcome.log.rstrip("\n").split("\n"):
                self._console.out(f"    {line}", highlight=False)

    def _render_benchmark(self, outcome: BenchmarkOutcome) -> None:
        if outcome.failed:
            self._console.print(f"[bold red]--- FAIL[/]: {escape(outcome.name)}")
            if outcome.log:
                self._console.out(outcome.log.rstrip("\n"), highlight=False)
            return
        columns = [outcome.name, str(outcome.iterations), f"{outcome.ns_per_op} ns/op"]
        if outcome.bytes and outcome.elapsed:
            mb_per_s = outcome.bytes * outcome.iterations / (outcome.elapsed / 1e9) / 1e6
            columns.append(f"{mb_per_s:.2f} MB/s")
        if outcome.allocs or outcome.alloc_bytes:
            iterations = max(outcome.iterations, 1)
            columns.append(f"{outcome.alloc_bytes // iterations} B/op")
            columns.append(f"{outcome.allocs // iterations} allocs/op")
        self._console.out("\t".join(columns), highlight=False)

    def _render_coverage(self, summary: CoverageSummary) -> None:
        packages = ", ".join(summary.covered_packages)
        suffix = f" in {packages}" if packages else ""
        self._console.out(f"coverage: {summary.percent:.1f}% of statements{suffix}", highlight=False)


# 🔼⚙️
