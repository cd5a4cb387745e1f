#
# src/runstream/__init__.py
#
"""
runstream: a line-oriented result protocol between test runners and the
driver that launches them.
"""
from runstream.records import (
    BenchmarkOutcome,
    CoverageSummary,
    DriverRecord,
    StreamSource,
    TestOutcome,
    TestState,
    WireRecord,
)

__all__ = [
    "BenchmarkOutcome",
    "CoverageSummary",
    "DriverRecord",
    "StreamSource",
    "TestOutcome",
    "TestState",
    "WireRecord",
]

# 🔼⚙️
