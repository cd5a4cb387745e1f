# src/runstream/runtime/driver.py

"""
High-level coordinator for a test run.
Launches one runner per package, relays their output and collects results.
"""

import asyncio
import os
import signal
import sys
import time
from typing import TextIO, TypeAlias

import structlog

from runstream.config import DriverOptions, PackageSpec
from runstream.exceptions import SinkError
from runstream.records import DriverRecord, StreamSource
from runstream.runner.router import VerboseRouter
from runstream.state import DriverSummary, PackageResult
from runstream.telemetry import StructLogger

from .relay import StreamRelay
from .sink import RecordSink

log: StructLogger = structlog.get_logger("runtime.driver")

QueueItem: TypeAlias = DriverRecord | PackageResult | None
DEFAULT_QUEUE_SIZE = 1024
DEFAULT_DRAIN_TIMEOUT = 5.0

# Runners lead their own process group so a kill reaches their children too.
PROCESS_GROUPS = os.name == "posix"


class TestDriver:
    """
    Runs packages with bounded parallelism.

    Each runner gets its own StreamRelay and one reader task per stream.
    All relays feed a single bounded queue drained by one writer task, which
    is the only caller of the sink. If the sink fails, every runner is
    killed and ``run`` raises SinkError.
    """

    __test__ = False

    def __init__(
        self,
        packages: list[PackageSpec],
        options: DriverOptions,
        sink: RecordSink,
        router: VerboseRouter | None = None,
        trace_stream: TextIO | None = None,
        queue_size: int = DEFAULT_QUEUE_SIZE,
        drain_timeout: float = DEFAULT_DRAIN_TIMEOUT,
    ):
        self.packages = list(packages)
        self.options = options
        self.sink = sink
        self.router = router or VerboseRouter(verbose=options.verbose, structured=options.json_output)
        self.drain_timeout = drain_timeout
        self._trace_stream = trace_stream if trace_stream is not None else sys.stderr
        self._queue_size = queue_size
        self._sink_error: SinkError | None = None
        self.started = 0

    async def run(self) -> DriverSummary:
        """
        Validates the options, then runs every package.

        Raises:
            ConfigurationConflict: before any runner starts, when the
                requested modes cannot be combined.
            SinkError: when the sink failed; all runners are killed first.
        """
        self.options.validate()
        log.info("Driver run starting", packages=len(self.packages), jobs=self.options.jobs)

        if self.options.dry_run:
            for package in self.packages:
                self.sink.write_command(package.name, list(package.command))
            return DriverSummary()

        queue: asyncio.Queue[QueueItem] = asyncio.Queue(maxsize=self._queue_size)
        slots = asyncio.Semaphore(self.options.jobs)
        package_tasks = [
            asyncio.create_task(self._run_package(package, queue, slots)) for package in self.packages
        ]
        writer_task = asyncio.create_task(self._write_records(queue, package_tasks))

        try:
            results = await asyncio.gather(*package_tasks)
        except BaseException:
            for task in package_tasks:
                task.cancel()
            await asyncio.gather(*package_tasks, return_exceptions=True)
            if self._sink_error is None:
                raise
        finally:
            await queue.put(None)
            await writer_task

        if self._sink_error is not None:
            raise self._sink_error

        summary = DriverSummary(tuple(results))
        log.info(
            "Driver run complete",
            exit_code=summary.exit_code,
            failed_packages=summary.failed_packages,
        )
        return summary

    async def _write_records(self, queue: asyncio.Queue[QueueItem], package_tasks: list[asyncio.Task]) -> None:
        while True:
            item = await queue.get()
            if item is None:
                break
            if self._sink_error is not None:
                # Keep draining so no producer blocks on a full queue.
                continue
            try:
                if isinstance(item, PackageResult):
                    self.sink.write_result(item)
                else:
                    self.sink.write_record(item)
            except Exception as e:
                log.error("Record sink failed, stopping runners", error=str(e))
                self._sink_error = SinkError(f"Record sink failed: {e}", details=e)
                for task in package_tasks:
                    task.cancel()

    async def _run_package(
        self,
        package: PackageSpec,
        queue: asyncio.Queue[QueueItem],
        slots: asyncio.Semaphore,
    ) -> PackageResult:
        async with slots:
            pkg_log = log.bind(package=package.name)
            relay = StreamRelay(package.name)
            self.router.detail(f"=== PKG  {package.name}: {package.display_command}")
            if self.options.trace:
                self._trace_stream.write(package.display_command + "\n")
                self._trace_stream.flush()

            env = {**os.environ, **self.options.runner_env(package.name), **package.env}
            start = time.monotonic()
            try:
                process = await asyncio.create_subprocess_exec(
                    *package.command,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    cwd=package.cwd,
                    env=env,
                    start_new_session=PROCESS_GROUPS,
                )
            except OSError as e:
                pkg_log.error("Runner could not be started", command=package.display_command, error=str(e))
                crash = relay.terminate(None, reason=f"could not start runner: {e}")
                return await self._finish(queue, relay, crash, None, start)

            self.started += 1
            pkg_log.debug("Runner started", pid=process.pid)
            readers = [
                asyncio.create_task(relay.pump(process.stdout, StreamSource.STDOUT, queue.put)),
                asyncio.create_task(relay.pump(process.stderr, StreamSource.STDERR, queue.put)),
            ]

            timed_out = False
            try:
                try:
                    await asyncio.wait_for(process.wait(), timeout=self.options.timeout)
                except TimeoutError:
                    timed_out = True
                    pkg_log.warning("Runner timed out, killing it", timeout=self.options.timeout)
                    self._kill(process)
                    await process.wait()
                await self._drain(process, readers, pkg_log)
            except asyncio.CancelledError:
                self._kill(process)
                for reader in readers:
                    reader.cancel()
                await asyncio.gather(*readers, return_exceptions=True)
                raise

            crash = relay.terminate(process.returncode, timed_out=timed_out)
            return await self._finish(queue, relay, crash, process.returncode, start)

    async def _drain(
        self,
        process: asyncio.subprocess.Process,
        readers: list[asyncio.Task],
        pkg_log: StructLogger,
    ) -> None:
        """Waits for both streams to reach EOF after the runner exited."""
        done, pending = await asyncio.wait(readers, timeout=self.drain_timeout)
        if pending:
            # Processes the runner left behind still hold its pipes open.
            pkg_log.warning("Runner output still open after exit, killing its process group")
            self._kill(process)
            more, pending = await asyncio.wait(pending, timeout=None if PROCESS_GROUPS else self.drain_timeout)
            done |= more
            for reader in pending:
                reader.cancel()
            await asyncio.gather(*pending, return_exceptions=True)
        for reader in done:
            reader.result()

    async def _finish(
        self,
        queue: asyncio.Queue[QueueItem],
        relay: StreamRelay,
        crash: DriverRecord | None,
        exit_code: int | None,
        start: float,
    ) -> PackageResult:
        if crash is not None:
            await queue.put(crash)
        result = PackageResult(
            package=relay.package,
            exit_code=exit_code,
            elapsed=time.monotonic() - start,
            tally=relay.tally,
            termination=relay.termination,
        )
        await queue.put(result)
        return result

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        if PROCESS_GROUPS:
            try:
                os.killpg(process.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                pass
        elif process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass


# 🔼⚙️
