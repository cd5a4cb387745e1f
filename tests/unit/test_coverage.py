#
# tests/unit/test_coverage.py
#
"""
Tests for the per-run CoverageAggregator.
"""

from pathlib import Path

import pytest

from runstream.exceptions import CoverageError
from runstream.runner import CoverageAggregator


class TestCoverageAggregator:
    def test_summary_counts_statements(self) -> None:
        coverage = CoverageAggregator("set")
        coverage.register("pkg/a", "a.py", [(1, 3, 2), (5, 9, 4)])
        coverage.register("pkg/b", "b.py", [(1, 2, 1)])
        coverage.hit("a.py", 5, 9)
        coverage.hit("b.py", 1, 2, times=3)

        summary = coverage.finish()

        assert summary.mode == "set"
        assert summary.total_statements == 7
        assert summary.active_statements == 5
        assert summary.covered_packages == ("pkg/a", "pkg/b")

    def test_set_mode_caps_counts(self) -> None:
        coverage = CoverageAggregator("set")
        block = coverage.add_block("pkg", "a.py", 1, 2, 1)
        coverage.hit("a.py", 1, 2, times=5)
        assert block.count == 1

    def test_count_mode_accumulates(self) -> None:
        coverage = CoverageAggregator("count")
        block = coverage.add_block("pkg", "a.py", 1, 2, 1, count=2)
        coverage.hit("a.py", 1, 2, times=3)
        assert block.count == 5

    def test_only_one_summary_per_run(self) -> None:
        coverage = CoverageAggregator("atomic")
        coverage.finish()
        assert coverage.finished
        with pytest.raises(CoverageError):
            coverage.finish()
        with pytest.raises(CoverageError):
            coverage.add_block("pkg", "a.py", 1, 1, 1)

    def test_unknown_mode(self) -> None:
        with pytest.raises(CoverageError):
            CoverageAggregator("often")

    def test_hit_unknown_block(self) -> None:
        coverage = CoverageAggregator("set")
        with pytest.raises(CoverageError):
            coverage.hit("missing.py", 1, 2)

    def test_empty_run_reports_zero(self) -> None:
        summary = CoverageAggregator("set").finish()
        assert summary.total_statements == 0
        assert summary.percent == 0.0

    def test_write_profile(self, tmp_path: Path) -> None:
        coverage = CoverageAggregator("count")
        coverage.add_block("pkg", "pkg/a.py", 3, 7, 2, count=4)
        profile = tmp_path / "out" / "pkg.cover"

        coverage.write_profile(profile)

        assert profile.read_text() == "mode: count\npkg/a.py:3.0,7.0 2 4\n"
