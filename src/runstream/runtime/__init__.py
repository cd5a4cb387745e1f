#
# src/runstream/runtime/__init__.py
#
"""
Driver-side runtime: relays runner output and writes it to a shared sink.
"""
from .driver import TestDriver
from .relay import StreamRelay
from .sink import HumanRecordSink, JsonRecordSink, RecordSink

__all__ = [
    "HumanRecordSink",
    "JsonRecordSink",
    "RecordSink",
    "StreamRelay",
    "TestDriver",
]

# 🔼⚙️
