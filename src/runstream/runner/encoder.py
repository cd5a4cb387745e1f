# src/runstream/runner/encoder.py

"""
Runner-side writer for structured result records.
"""

import sys
from typing import TextIO

from runstream.exceptions import EncodingError, RecordError
from runstream.records import (
    BenchmarkOutcome,
    CoverageSummary,
    Outcome,
    TestOutcome,
    WireRecord,
)


class ResultEncoder:
    """
    Writes one WireRecord per completed event to the primary stream.

    Every record is framed by line terminators on both sides, written with a
    single ``write`` call and flushed immediately, so a crash after ``emit``
    returns never loses that record.
    """

    def __init__(self, primary: TextIO | None = None, secondary: TextIO | None = None):
        self._primary = primary if primary is not None else sys.stdout
        self._secondary = secondary if secondary is not None else sys.stderr
        self.emitted = 0
        self.dropped = 0

    def encode(self, record: WireRecord) -> str:
        """Returns the framed text for ``record`` without writing it."""
        try:
            if not isinstance(record, WireRecord):
                raise RecordError(f"Expected a WireRecord, got {type(record).__name__}")
            payload = record.to_json()
        except (RecordError, TypeError, ValueError) as e:
            raise EncodingError(f"Cannot encode record: {e}", details=e) from e
        if "\n" in payload or "\r" in payload:
            # json.dumps escapes control characters, so this means a broken record type.
            raise EncodingError("Encoded record spans more than one line")
        # The stream position is unknown: writes can bypass any wrapper.
        return "\n" + payload + "\n"

    def emit(self, record: WireRecord) -> bool:
        """
        Writes ``record`` to the primary stream.

        Returns False when the record could not be encoded; in that case the
        primary stream is left untouched and a diagnostic goes to the
        secondary stream.
        """
        try:
            framed = self.encode(record)
        except EncodingError as e:
            self._drop(e)
            return False

        self._primary.write(framed)
        self._primary.flush()
        self.emitted += 1
        return True

    def emit_outcome(self, outcome: Outcome) -> bool:
        try:
            record = WireRecord.wrap(outcome)
        except RecordError as e:
            self._drop(e)
            return False
        return self.emit(record)

    def _drop(self, error: Exception) -> None:
        self.dropped += 1
        self._secondary.write(f"runstream: dropping unencodable record: {error}\n")
        self._secondary.flush()

    def emit_test(self, outcome: TestOutcome) -> bool:
        return self.emit_outcome(outcome)

    def emit_benchmark(self, outcome: BenchmarkOutcome) -> bool:
        return self.emit_outcome(outcome)

    def emit_coverage(self, summary: CoverageSummary) -> bool:
        return self.emit_outcome(summary)


# 🔼⚙️
