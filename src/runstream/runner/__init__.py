#
# src/runstream/runner/__init__.py
#
"""
Runner-side pieces: the record encoder, verbose routing, coverage counters
and a test harness that ties them together.
"""
from .coverage import CoverageAggregator
from .encoder import ResultEncoder
from .harness import B, Runner, RunnerOptions, T
from .router import VerboseRouter

__all__ = [
    "B",
    "CoverageAggregator",
    "ResultEncoder",
    "Runner",
    "RunnerOptions",
    "T",
    "VerboseRouter",
]

# 🔼⚙️
