#
# tests/unit/test_harness.py
#
"""
Tests for the runner harness running in-process against string buffers.
"""

import io
from pathlib import Path

import pytest

from runstream.exceptions import ConfigurationError
from runstream.records import COMPLETION_MARKER, TestState, WireRecord
from runstream.runner import Runner, RunnerOptions


def _records(output: str) -> list[WireRecord]:
    records = []
    for line in output.split("\n"):
        if line.startswith("{"):
            records.append(WireRecord.from_json(line))
    return records


def _runner(**options) -> tuple[Runner, io.StringIO, io.StringIO]:
    out, err = io.StringIO(), io.StringIO()
    return Runner(RunnerOptions(**options), stdout=out, stderr=err), out, err


class TestRunnerOptions:
    def test_from_env(self, tmp_path: Path) -> None:
        options = RunnerOptions.from_env(
            {
                "RUNSTREAM_JSON": "1",
                "RUNSTREAM_VERBOSE": "true",
                "RUNSTREAM_RUN": "Foo",
                "RUNSTREAM_BENCH": ".",
                "RUNSTREAM_BENCHTIME": "0.5",
                "RUNSTREAM_COVER_MODE": "count",
                "RUNSTREAM_COVER_PROFILE": str(tmp_path / "c.out"),
            }
        )
        assert options.json and options.verbose
        assert options.run_pattern == "Foo"
        assert options.bench_pattern == "."
        assert options.bench_time == 0.5
        assert options.cover_mode == "count"
        assert options.cover_profile == tmp_path / "c.out"

    def test_bad_benchtime_is_a_configuration_error(self) -> None:
        with pytest.raises(ConfigurationError, match="RUNSTREAM_BENCHTIME"):
            RunnerOptions.from_env({"RUNSTREAM_BENCHTIME": "fast"})

    @pytest.mark.parametrize("variable", ["RUNSTREAM_RUN", "RUNSTREAM_BENCH"])
    def test_bad_pattern_is_a_configuration_error(self, variable) -> None:
        with pytest.raises(ConfigurationError, match="regular expression"):
            RunnerOptions.from_env({variable: "(unclosed"})

    def test_defaults_from_empty_env(self) -> None:
        options = RunnerOptions.from_env({})
        assert not options.json and not options.verbose
        assert options.bench_pattern is None and options.cover_mode is None


class TestRunner:
    def test_outcomes_emitted_in_order_with_states(self) -> None:
        runner, out, _ = _runner(json=True)

        @runner.test
        def TestPass(t):
            t.log("hello")

        @runner.test
        def TestFail(t):
            t.errorf("got %d, want %d", 1, 2)

        @runner.test
        def TestSkip(t):
            t.skip("not today")

        @runner.test(name="TestRaises")
        def raises(t):
            raise RuntimeError("boom")

        assert runner.run() == 1
        records = _records(out.getvalue())

        assert [r.test.name for r in records] == ["TestPass", "TestFail", "TestSkip", "TestRaises"]
        assert [r.test.state for r in records] == [
            TestState.PASS,
            TestState.FAIL,
            TestState.SKIP,
            TestState.FAIL,
        ]
        assert records[0].test.log == "hello\n"
        assert records[1].test.log == "got 1, want 2\n"
        assert "RuntimeError: boom" in records[3].test.log

    def test_fail_now_stops_the_test(self) -> None:
        runner, out, _ = _runner(json=True)
        reached = []

        @runner.test
        def TestFatal(t):
            t.fatal("stop here")
            reached.append(True)

        runner.run()
        assert reached == []
        assert _records(out.getvalue())[0].test.failed

    def test_structured_primary_has_records_only(self) -> None:
        runner, out, err = _runner(json=True, verbose=True)

        @runner.test
        def TestFoo(t):
            t.log("some test output")

        assert runner.run() == 0

        lines = [line for line in out.getvalue().split("\n") if line]
        assert all(line.startswith('{"Test"') for line in lines)
        assert "=== RUN   TestFoo" in err.getvalue()
        assert "TestFoo: some test output" in err.getvalue()
        assert err.getvalue().endswith(f"PASS\n{COMPLETION_MARKER}\n")

    def test_text_mode_reports_failures(self) -> None:
        runner, out, _ = _runner()

        @runner.test
        def TestBad(t):
            t.error("mismatch")

        runner.run()
        text = out.getvalue()
        assert "--- FAIL: TestBad" in text
        assert "    mismatch" in text
        assert text.rstrip().endswith("FAIL")

    def test_run_filter(self) -> None:
        runner, out, _ = _runner(json=True, run_pattern="^TestKeep")

        @runner.test
        def TestKeep(t):
            pass

        @runner.test
        def TestDrop(t):
            pass

        runner.run()
        assert [r.test.name for r in _records(out.getvalue())] == ["TestKeep"]

    def test_benchmarks_only_run_when_requested(self) -> None:
        runner, out, _ = _runner(json=True)

        @runner.benchmark
        def BenchmarkNoop(b):
            pass

        runner.run()
        assert _records(out.getvalue()) == []

    def test_benchmark_scales_iterations(self) -> None:
        runner, out, _ = _runner(json=True, bench_pattern=".", bench_time=0.01, procs=4)
        seen = []

        @runner.benchmark
        def BenchmarkSum(b):
            b.set_bytes(8)
            seen.append(b.n)
            for _ in range(b.n):
                sum(range(10))

        assert runner.run() == 0
        (record,) = _records(out.getvalue())
        bench = record.benchmark

        assert bench.name == "BenchmarkSum"
        assert bench.procs == 4
        assert bench.bytes == 8
        assert bench.iterations == seen[-1]
        assert seen[0] == 1 and len(seen) > 1
        assert bench.state is TestState.PASS

    def test_coverage_summary_is_last(self, tmp_path: Path) -> None:
        profile = tmp_path / "pkg.cover"
        runner, out, _ = _runner(json=True, cover_mode="set", cover_profile=profile)
        runner.coverage.register("pkg", "pkg/a.py", [(1, 2, 3), (4, 5, 1)])

        @runner.test
        def TestCovers(t):
            runner.coverage.hit("pkg/a.py", 1, 2)

        runner.run()
        records = _records(out.getvalue())

        assert records[0].test is not None
        assert records[-1].coverage.total_statements == 4
        assert records[-1].coverage.active_statements == 3
        assert profile.read_text().startswith("mode: set\n")

    def test_runner_is_single_use(self) -> None:
        runner, _, _ = _runner(json=True)
        runner.run()
        with pytest.raises(RuntimeError):
            runner.run()

    def test_structured_quiet_mode_writes_no_human_text(self) -> None:
        runner, out, err = _runner(json=True)

        @runner.test
        def TestBad(t):
            t.error("mismatch")

        assert runner.run() == 1
        assert err.getvalue() == COMPLETION_MARKER + "\n"
        assert _records(out.getvalue())[0].test.log == "mismatch\n"

    def test_text_mode_emits_no_records(self) -> None:
        runner, out, _ = _runner()

        @runner.test
        def TestFine(t):
            pass

        assert runner.run() == 0
        assert _records(out.getvalue()) == []
        assert out.getvalue() == "PASS\n"

    def test_sys_exit_in_a_test_fails_it_and_the_run_continues(self) -> None:
        runner, out, err = _runner(json=True)

        @runner.test
        def TestFirst(t):
            pass

        @runner.test
        def TestExits(t):
            raise SystemExit(0)

        @runner.test
        def TestLast(t):
            pass

        assert runner.run() == 1
        records = _records(out.getvalue())

        assert [r.test.name for r in records] == ["TestFirst", "TestExits", "TestLast"]
        assert records[1].test.failed
        assert "sys.exit(0)" in records[1].test.log
        assert err.getvalue().endswith(COMPLETION_MARKER + "\n")

    def test_text_mode_writes_no_completion_marker(self) -> None:
        runner, _, err = _runner()

        @runner.test
        def TestFine(t):
            pass

        runner.run()
        assert COMPLETION_MARKER not in err.getvalue()
