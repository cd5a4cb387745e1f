# src/runstream/runner/harness.py

"""
A small test harness that turns a Python script into a runstream runner.

    runner = Runner()

    @runner.test
    def test_parse(t):
        if parse("1") != 1:
            t.error("parse('1') did not return 1")

    if __name__ == "__main__":
        runner.main()

Options are read from ``RUNSTREAM_*`` environment variables set by the driver.
"""

import os
import re
import sys
import time
import tracemalloc
import traceback
from collections.abc import Callable
from pathlib import Path
from typing import Any, TextIO

import structlog
from attrs import define, field

from runstream.exceptions import ConfigurationError
from runstream.records import COMPLETION_MARKER, BenchmarkOutcome, CoverageSummary, TestOutcome, TestState
from runstream.runner.coverage import CoverageAggregator
from runstream.runner.encoder import ResultEncoder
from runstream.runner.router import VerboseRouter
from runstream.telemetry import configure_runner_logging

log = structlog.get_logger("runner.harness")

MAX_BENCH_ITERATIONS = 1_000_000_000
_TRUE_VALUES = {"1", "true", "yes", "on"}


def _env_flag(env: dict[str, str], name: str) -> bool:
    return env.get(name, "").strip().lower() in _TRUE_VALUES


def _env_seconds(env: dict[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number of seconds, got {raw!r}", details=e) from e


def _validate_pattern(inst: Any, attr: Any, value: str | None) -> None:
    if value is None:
        return
    try:
        re.compile(value)
    except re.error as e:
        raise ConfigurationError(f"Invalid regular expression for '{attr.name}': {value!r} ({e})") from e


def _validate_bench_time(inst: Any, attr: Any, value: float) -> None:
    if not value > 0:
        raise ConfigurationError(f"bench_time must be positive, got {value}")


@define(frozen=True, slots=True)
class RunnerOptions:
    """Runner settings, normally handed down by the driver via the environment."""

    json: bool = field(default=False)
    verbose: bool = field(default=False)
    run_pattern: str | None = field(default=None, validator=_validate_pattern)
    bench_pattern: str | None = field(default=None, validator=_validate_pattern)
    bench_time: float = field(default=1.0, validator=_validate_bench_time)
    cover_mode: str | None = field(default=None)
    cover_profile: Path | None = field(default=None)
    procs: int = field(factory=lambda: os.cpu_count() or 1)

    @classmethod
    def from_env(cls, env: dict[str, str] | None = None) -> "RunnerOptions":
        env = dict(os.environ if env is None else env)
        profile = env.get("RUNSTREAM_COVER_PROFILE")
        return cls(
            json=_env_flag(env, "RUNSTREAM_JSON"),
            verbose=_env_flag(env, "RUNSTREAM_VERBOSE"),
            run_pattern=env.get("RUNSTREAM_RUN") or None,
            bench_pattern=env.get("RUNSTREAM_BENCH") or None,
            bench_time=_env_seconds(env, "RUNSTREAM_BENCHTIME", 1.0),
            cover_mode=env.get("RUNSTREAM_COVER_MODE") or None,
            cover_profile=Path(profile) if profile else None,
        )


class _Abort(BaseException):
    """Unwinds a test or benchmark body. BaseException so broad handlers in test code miss it."""


class _FailNow(_Abort):
    pass


class _SkipNow(_Abort):
    pass


class T:
    """Handle passed to each test function."""

    def __init__(self, name: str, router: VerboseRouter):
        self.name = name
        self._router = router
        self._log_lines: list[str] = []
        self._failed = False
        self._skipped = False

    @property
    def failed(self) -> bool:
        return self._failed

    @property
    def skipped(self) -> bool:
        return self._skipped

    @property
    def captured_log(self) -> str | None:
        return "".join(self._log_lines) or None

    def log(self, *args: Any) -> None:
        self._record(" ".join(str(arg) for arg in args))

    def logf(self, fmt: str, *args: Any) -> None:
        self._record(fmt % args if args else fmt)

    def error(self, *args: Any) -> None:
        self.log(*args)
        self.fail()

    def errorf(self, fmt: str, *args: Any) -> None:
        self.logf(fmt, *args)
        self.fail()

    def fatal(self, *args: Any) -> None:
        self.log(*args)
        self.fail_now()

    def fail(self) -> None:
        self._failed = True

    def fail_now(self) -> None:
        self._failed = True
        raise _FailNow()

    def skip(self, *args: Any) -> None:
        if args:
            self.log(*args)
        self._skipped = True
        raise _SkipNow()

    def _record(self, message: str) -> None:
        text = message if message.endswith("\n") else message + "\n"
        self._log_lines.append(text)
        self._router.detail(f"{self.name}: {text}", indent=1)

    def _run(self, fn: Callable[..., Any], *args: Any) -> None:
        try:
            fn(*args)
        except _Abort:
            pass
        except SystemExit as e:
            self._record(f"test called sys.exit({e.code!r}) before finishing")
            self._failed = True
        except Exception:
            self._record(traceback.format_exc())
            self._failed = True


class B(T):
    """Handle passed to each benchmark function. ``b.n`` is the iteration count."""

    def __init__(self, name: str, router: VerboseRouter, n: int = 1):
        super().__init__(name, router)
        self.n = n
        self.bytes = 0
        self.measure_allocs = False
        self._timer_on = False
        self._start = 0
        self._elapsed = 0

    def set_bytes(self, n: int) -> None:
        self.bytes = n

    def report_allocs(self) -> None:
        self.measure_allocs = True

    def start_timer(self) -> None:
        if not self._timer_on:
            self._start = time.perf_counter_ns()
            self._timer_on = True

    def stop_timer(self) -> None:
        if self._timer_on:
            self._elapsed += time.perf_counter_ns() - self._start
            self._timer_on = False

    def reset_timer(self) -> None:
        if self._timer_on:
            self._start = time.perf_counter_ns()
        self._elapsed = 0

    def _round(self, fn: Callable[["B"], Any], n: int) -> int:
        self.n = n
        self._elapsed = 0
        self.start_timer()
        self._run(fn, self)
        self.stop_timer()
        return self._elapsed


def _predict_iterations(goal_ns: int, prev_n: int, prev_ns: int) -> int:
    prev_ns = max(prev_ns, 1)
    n = goal_ns * prev_n // prev_ns
    # Grow by at most 100x per round, at least by one.
    n = max(min(n + n // 5, 100 * prev_n), prev_n + 1)
    return min(n, MAX_BENCH_ITERATIONS)


class Runner:
    """
    Registers tests and benchmarks and runs them in order.

    With ``json`` set (the driver always sets it) one record is emitted per
    completed test or benchmark, plus one coverage summary last, and human
    text becomes verbose-only detail on stderr, followed by the completion
    marker once the whole run finished. Without it the runner prints a plain
    text report to stdout, for running the script by hand.
    A test that calls ``sys.exit`` fails instead of ending the process.
    A Runner is good for a single invocation.
    """

    def __init__(
        self,
        options: RunnerOptions | None = None,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
    ):
        self.options = options if options is not None else RunnerOptions.from_env()
        self._stdout = stdout
        self._stderr = stderr
        self._tests: list[tuple[str, Callable[[T], Any]]] = []
        self._benchmarks: list[tuple[str, Callable[[B], Any]]] = []
        self.coverage = CoverageAggregator(self.options.cover_mode) if self.options.cover_mode else None
        self._encoder: ResultEncoder | None = None
        self._router = VerboseRouter()
        self._ran = False

    def test(self, fn: Callable[[T], Any] | None = None, *, name: str | None = None):
        """Decorator registering a test. Usable bare or with ``name=``."""

        def register(func: Callable[[T], Any]) -> Callable[[T], Any]:
            self._tests.append((name or func.__name__, func))
            return func

        return register(fn) if fn is not None else register

    def benchmark(self, fn: Callable[[B], Any] | None = None, *, name: str | None = None):
        def register(func: Callable[[B], Any]) -> Callable[[B], Any]:
            self._benchmarks.append((name or func.__name__, func))
            return func

        return register(fn) if fn is not None else register

    def run(self) -> int:
        """Runs everything once. Returns 0 when nothing failed, 1 otherwise."""
        if self._ran:
            raise RuntimeError("A Runner can only be run once")
        self._ran = True
        configure_runner_logging()

        primary = self._stdout if self._stdout is not None else sys.stdout
        secondary = self._stderr if self._stderr is not None else sys.stderr
        if self.options.json:
            self._encoder = ResultEncoder(primary, secondary)
        self._router = VerboseRouter(self.options.verbose, self.options.json, primary, secondary)

        failed = self._run_all()
        self._report_line("FAIL" if failed else "PASS")
        if self.options.json:
            secondary.write(COMPLETION_MARKER + "\n")
            secondary.flush()
        log.debug("Runner finished", failed=failed, tests=len(self._tests))
        return 1 if failed else 0

    def main(self) -> None:
        sys.exit(self.run())

    def _emit(self, outcome: TestOutcome | BenchmarkOutcome | CoverageSummary) -> None:
        if self._encoder is not None:
            self._encoder.emit_outcome(outcome)

    def _report_line(self, text: str, indent: int = 0) -> None:
        # Records already carry everything in structured mode.
        if self.options.json:
            self._router.detail(text)
        else:
            self._router.summary(text, indent)

    def _run_all(self) -> bool:
        failed = False
        run_filter = re.compile(self.options.run_pattern) if self.options.run_pattern else None
        for name, fn in self._tests:
            if run_filter and not run_filter.search(name):
                continue
            outcome = self._run_test(name, fn)
            self._emit(outcome)
            failed = failed or outcome.failed

        if self.options.bench_pattern:
            bench_filter = re.compile(self.options.bench_pattern)
            for name, fn in self._benchmarks:
                if not bench_filter.search(name):
                    continue
                result = self._run_benchmark(name, fn)
                self._emit(result)
                failed = failed or result.failed

        if self.coverage is not None:
            summary = self.coverage.finish()
            if self.options.cover_profile:
                self.coverage.write_profile(self.options.cover_profile)
            self._emit(summary)
            self._report_line(f"coverage: {summary.percent:.1f}% of statements")
        return failed

    def _run_test(self, name: str, fn: Callable[[T], Any]) -> TestOutcome:
        self._router.detail(f"=== RUN   {name}")
        t = T(name, self._router)
        start = time.perf_counter_ns()
        t._run(fn, t)
        elapsed = time.perf_counter_ns() - start

        if t.failed:
            state = TestState.FAIL
        elif t.skipped:
            state = TestState.SKIP
        else:
            state = TestState.PASS
        self._report(t, state, elapsed)
        return TestOutcome(name=name, state=state, elapsed=elapsed, log=t.captured_log)

    def _run_benchmark(self, name: str, fn: Callable[[B], Any]) -> BenchmarkOutcome:
        goal_ns = int(self.options.bench_time * 1e9)
        b = B(name, self._router)
        n, elapsed = 1, b._round(fn, 1)
        allocs = alloc_bytes = 0
        while not (b.failed or b.skipped) and elapsed < goal_ns and n < MAX_BENCH_ITERATIONS:
            n = _predict_iterations(goal_ns, n, elapsed)
            if b.measure_allocs:
                elapsed, allocs, alloc_bytes = self._measured_round(b, fn, n)
            else:
                elapsed = b._round(fn, n)

        state = TestState.FAIL if b.failed else TestState.SKIP if b.skipped else TestState.PASS
        result = BenchmarkOutcome(
            name=name,
            procs=self.options.procs,
            elapsed=elapsed,
            iterations=n,
            bytes=b.bytes,
            allocs=allocs,
            alloc_bytes=alloc_bytes,
            state=state,
            log=b.captured_log,
        )
        if state is TestState.PASS:
            self._report_line(f"{name}\t{n}\t{result.ns_per_op} ns/op")
        else:
            self._report(b, state, elapsed)
        return result

    @staticmethod
    def _measured_round(b: B, fn: Callable[[B], Any], n: int) -> tuple[int, int, int]:
        started_here = not tracemalloc.is_tracing()
        if started_here:
            tracemalloc.start()
        try:
            before = tracemalloc.take_snapshot()
            elapsed = b._round(fn, n)
            after = tracemalloc.take_snapshot()
        finally:
            if started_here:
                tracemalloc.stop()
        stats = after.compare_to(before, "filename")
        allocs = sum(max(stat.count_diff, 0) for stat in stats)
        alloc_bytes = sum(max(stat.size_diff, 0) for stat in stats)
        return elapsed, allocs, alloc_bytes

    def _report(self, t: T, state: TestState, elapsed: int) -> None:
        line = f"--- {state.value}: {t.name} ({elapsed / 1e9:.2f}s)"
        if state is not TestState.FAIL:
            self._router.detail(line)
            return
        self._report_line(line)
        # Verbose mode already streamed the log as it was written.
        if t.captured_log and not self._router.verbose:
            self._report_line(t.captured_log, indent=1)


# 🔼⚙️
