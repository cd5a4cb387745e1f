# src/runstream/exceptions.py

"""
Exception hierarchy for runstream.

Test failures are never raised: they travel as data on the records.
"""


class RunstreamError(Exception):
    """Base class for all runstream errors."""

    def __init__(self, message: str = "", details: Exception | None = None):
        self.details = details
        super().__init__(message)
        if details and hasattr(self, "add_note"):
            self.add_note(f"Original error: {type(details).__name__}: {details}")


class RecordError(RunstreamError, ValueError):
    """Raised when a record is constructed or decoded with an invalid shape."""

    pass


class EncodingError(RunstreamError):
    """A runner-side record could not be serialized. Only that record is dropped."""

    pass


class ConfigurationError(RunstreamError):
    """Invalid configuration file or option values."""

    pass


class ConfigurationConflict(ConfigurationError):
    """Raised before any runner starts when mutually exclusive modes are requested."""

    def __init__(self, options: list[str]):
        self.options = list(options)
        first, *rest = self.options
        super().__init__(f"{first} cannot be combined with {', '.join(rest)}")


class RelayClosedError(RunstreamError):
    """A line was offered to a relay whose runner already terminated."""

    def __init__(self, package: str):
        self.package = package
        super().__init__(f"Relay for package '{package}' is already terminated")


class UpstreamTermination(RunstreamError):
    """
    Describes a runner that exited unexpectedly mid-stream.

    Records relayed before the exit stay valid; this is reported once per
    runner and kept on the package result rather than propagated.
    """

    def __init__(
        self,
        package: str,
        exit_code: int | None,
        reason: str,
        details: Exception | None = None,
    ):
        self.package = package
        self.exit_code = exit_code
        self.reason = reason
        super().__init__(
            f"runner for {package} terminated unexpectedly: {reason}", details=details
        )


class SinkError(RunstreamError):
    """The record sink failed; the driver stops every runner and re-raises this."""

    pass


class CoverageError(RunstreamError):
    """Misuse of a coverage aggregator (unknown mode, second summary, ...)."""

    pass


# 🔼⚙️
