#
# tests/unit/test_sink.py
#
"""
Tests for the JSON and human record sinks.
"""

import io
import threading

from rich.console import Console

from runstream.exceptions import UpstreamTermination
from runstream.records import BenchmarkOutcome, CoverageSummary, DriverRecord, TestOutcome, TestState
from runstream.runtime import HumanRecordSink, JsonRecordSink
from runstream.state import PackageResult, RelayTally


def _console(buffer: io.StringIO) -> Console:
    return Console(file=buffer, width=200, highlight=False, soft_wrap=True, color_system=None)


class TestJsonRecordSink:
    def test_one_json_object_per_line(self) -> None:
        out = io.StringIO()
        sink = JsonRecordSink(out)

        sink.write_record(DriverRecord("a", stdout="hello"))
        sink.write_record(DriverRecord("b", test=TestOutcome(name="TestX", state=TestState.PASS, elapsed=5)))

        assert out.getvalue() == (
            '{"Package":"a","Stdout":"hello"}\n'
            '{"Package":"b","Test":{"Name":"TestX","State":"PASS","T":5}}\n'
        )
        assert sink.written == 2

    def test_results_stay_off_the_data_stream(self) -> None:
        out = io.StringIO()
        JsonRecordSink(out).write_result(PackageResult("a", 0, 0.1, RelayTally()))
        assert out.getvalue() == ""

    def test_concurrent_writers_never_interleave(self) -> None:
        out = io.StringIO()
        sink = JsonRecordSink(out)

        def write_many(package: str) -> None:
            for i in range(200):
                sink.write_record(DriverRecord(package, stdout=f"line {i} " + "x" * 100))

        threads = [threading.Thread(target=write_many, args=(f"pkg{n}",)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        lines = out.getvalue().splitlines()
        assert len(lines) == 800
        for line in lines:
            assert DriverRecord.from_json(line).stdout.startswith("line ")


class TestHumanRecordSink:
    def _sink(self, verbose: bool = False) -> tuple[HumanRecordSink, io.StringIO, io.StringIO]:
        out, err = io.StringIO(), io.StringIO()
        return HumanRecordSink(_console(out), _console(err), verbose=verbose), out, err

    def test_passthrough_printed_verbatim(self) -> None:
        sink, out, err = self._sink()
        sink.write_record(DriverRecord("pkg", stdout="[bold]not markup[/bold]"))
        sink.write_record(DriverRecord("pkg", stderr="warning: x"))

        assert out.getvalue() == "[bold]not markup[/bold]\n"
        assert err.getvalue() == "warning: x\n"

    def test_empty_stdout_lines_not_rendered(self) -> None:
        sink, out, _ = self._sink()
        sink.write_record(DriverRecord("pkg", stdout=""))
        sink.write_record(DriverRecord("pkg", stdout="text"))

        assert out.getvalue() == "text\n"

    def test_only_failures_shown_when_quiet(self) -> None:
        sink, out, _ = self._sink()
        sink.write_record(DriverRecord("pkg", test=TestOutcome(name="TestOk", state=TestState.PASS, elapsed=1)))
        sink.write_record(
            DriverRecord("pkg", test=TestOutcome(name="TestBad", state=TestState.FAIL, elapsed=10**9, log="boom\n"))
        )

        text = out.getvalue()
        assert "TestOk" not in text
        assert "--- FAIL: TestBad (1.00s)" in text
        assert "    boom" in text

    def test_verbose_shows_every_outcome(self) -> None:
        sink, out, _ = self._sink(verbose=True)
        sink.write_record(DriverRecord("pkg", test=TestOutcome(name="TestOk", state=TestState.PASS, elapsed=1)))
        sink.write_record(DriverRecord("pkg", test=TestOutcome(name="TestMaybe", state=TestState.SKIP, elapsed=1)))

        assert "--- PASS: TestOk" in out.getvalue()
        assert "--- SKIP: TestMaybe" in out.getvalue()

    def test_benchmark_and_coverage_lines(self) -> None:
        sink, out, _ = self._sink()
        sink.write_record(
            DriverRecord(
                "pkg",
                benchmark=BenchmarkOutcome(name="BenchmarkX", procs=1, elapsed=2000, iterations=10),
            )
        )
        sink.write_record(
            DriverRecord(
                "pkg",
                coverage=CoverageSummary(
                    mode="set", total_statements=4, active_statements=3, covered_packages=["pkg"]
                ),
            )
        )

        assert out.getvalue().split()[:4] == ["BenchmarkX", "10", "200", "ns/op"]
        assert "coverage: 75.0% of statements in pkg" in out.getvalue()

    def test_package_results(self) -> None:
        sink, out, _ = self._sink()
        failing = RelayTally(failed=1)
        crash = UpstreamTermination("pkg/c", -9, "killed by signal 9")

        sink.write_result(PackageResult("pkg/a", 0, 0.5, RelayTally()))
        sink.write_result(PackageResult("pkg/b", 1, 0.25, failing))
        sink.write_result(PackageResult("pkg/c", -9, 1.0, RelayTally(), termination=crash))

        lines = out.getvalue().splitlines()
        assert lines[0].startswith("ok") and "pkg/a" in lines[0] and "0.500s" in lines[0]
        assert lines[1].startswith("FAIL") and "pkg/b" in lines[1]
        assert lines[2].startswith("FAIL") and "killed by signal 9" in lines[2]

    def test_dry_run_command(self) -> None:
        sink, out, _ = self._sink()
        sink.write_command("pkg", ["python", "my runner.py"])
        assert out.getvalue() == "python 'my runner.py'\n"
