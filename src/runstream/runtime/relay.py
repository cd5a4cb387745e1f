# src/runstream/runtime/relay.py

"""
Driver-side classification of one runner's output lines.

Every line a runner prints becomes exactly one DriverRecord, in order:
either the record the runner emitted, or the line itself as passthrough
text attributed to the stream it came from.
"""

import asyncio
from collections.abc import Callable

import structlog

from runstream.exceptions import RecordError, RelayClosedError, UpstreamTermination
from runstream.records import COMPLETION_MARKER, DriverRecord, StreamSource, WireRecord
from runstream.state import RelayState, RelayTally
from runstream.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.relay")

READ_CHUNK_SIZE = 64 * 1024
DIAGNOSTIC_PREFIX = "runstream: "


def decode_line(raw: bytes | str) -> str:
    """Strips the line terminator (and a preceding CR) and decodes to text."""
    text = raw.decode("utf-8", errors="replace") if isinstance(raw, bytes) else raw
    if text.endswith("\n"):
        text = text[:-1]
    if text.endswith("\r"):
        text = text[:-1]
    return text


class StreamRelay:
    """
    Relays the output of one runner. One instance per runner invocation;
    each of its streams must be fed by a single consumer, in arrival order.

    A runner that finishes its run writes ``COMPLETION_MARKER`` as the last
    line on its secondary stream. The marker is protocol framing, not output:
    it is consumed here and never relayed. An exit without it means the run
    was cut short.
    """

    def __init__(self, package: str, expect_completion: bool = True):
        self.package = package
        self.expect_completion = expect_completion
        self.completed = False
        self.state = RelayState.STREAMING
        self.tally = RelayTally()
        self.termination: UpstreamTermination | None = None
        self._log = log.bind(package=package)

    def process_line(self, raw_line: bytes | str, source: StreamSource) -> DriverRecord | None:
        """
        Classifies one line and returns exactly one DriverRecord for it, or
        None for the completion marker.
        """
        if self.state is RelayState.TERMINATED:
            raise RelayClosedError(self.package)

        text = decode_line(raw_line)
        if source is StreamSource.STDERR and text == COMPLETION_MARKER:
            self.completed = True
            return None
        record = self._classify(text, source)
        self.tally.count(record.outcome)
        return record

    def _classify(self, text: str, source: StreamSource) -> DriverRecord:
        # Records are only ever written to the primary stream.
        if source is StreamSource.STDOUT and text.startswith("{"):
            try:
                wire = WireRecord.from_json(text)
            except RecordError:
                # Structured but unrecognized and plain text take the same path.
                pass
            else:
                return DriverRecord.from_wire_record(self.package, wire)
        return DriverRecord.passthrough(self.package, text, source)

    async def pump(
        self,
        reader: asyncio.StreamReader,
        source: StreamSource,
        put: Callable[[DriverRecord], object],
    ) -> int:
        """
        Reads ``reader`` to EOF and hands one record per line to ``put``,
        awaiting it when it returns an awaitable. Returns the line count.
        """
        lines = 0
        buffer = bytearray()
        while True:
            chunk = await reader.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            # Only the new bytes can hold a terminator.
            search_from = len(buffer)
            buffer += chunk
            start = 0
            while True:
                end = buffer.find(b"\n", max(start, search_from))
                if end == -1:
                    break
                await self._deliver(put, bytes(buffer[start:end]), source)
                lines += 1
                start = end + 1
            if start:
                del buffer[:start]
        if buffer:
            # Unterminated tail, e.g. from a runner killed mid-write.
            await self._deliver(put, bytes(buffer), source)
            lines += 1
        self._log.debug("Stream drained", source=source.value, lines=lines)
        return lines

    async def _deliver(self, put: Callable[[DriverRecord], object], line: bytes, source: StreamSource) -> None:
        record = self.process_line(line, source)
        if record is None:
            return
        result = put(record)
        if asyncio.iscoroutine(result) or isinstance(result, asyncio.Future):
            await result

    def terminate(
        self,
        exit_code: int | None,
        timed_out: bool = False,
        reason: str | None = None,
    ) -> DriverRecord | None:
        """
        Moves the relay to TERMINATED. Returns a crash diagnostic record when
        the runner's exit was unexpected, None otherwise.
        """
        if self.state is RelayState.TERMINATED:
            raise RelayClosedError(self.package)
        self.state = RelayState.TERMINATED

        reason = reason or self._unexpected_exit_reason(exit_code, timed_out)
        if reason is None:
            self._log.debug("Runner finished", exit_code=exit_code, failed=self.tally.failed)
            return None

        self.termination = UpstreamTermination(self.package, exit_code, reason)
        self._log.warning("Runner terminated unexpectedly", exit_code=exit_code, reason=reason)
        return DriverRecord.passthrough(
            self.package, f"{DIAGNOSTIC_PREFIX}{self.termination}", StreamSource.STDERR
        )

    def _unexpected_exit_reason(self, exit_code: int | None, timed_out: bool) -> str | None:
        if timed_out:
            return "timed out and was killed"
        if exit_code is None:
            return "exit status unknown"
        if exit_code < 0:
            return f"killed by signal {-exit_code}"
        if exit_code not in (0, 1):
            return f"exit status {exit_code}"
        if self.expect_completion and not self.completed:
            return f"exit status {exit_code} before the run completed"
        if exit_code == 0 and self.tally.any_failed:
            return "exit status 0 after reporting failures"
        if exit_code == 1 and not self.tally.any_failed:
            return "exit status 1 without reporting a failure"
        return None


# 🔼⚙️
