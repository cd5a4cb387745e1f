# src/runstream/records.py

"""
Attrs-based record types shared by the runner and the driver.

A runner writes one WireRecord per completed test, benchmark or coverage
computation. The driver wraps each one (or each opaque line of text) into a
DriverRecord tagged with the package it came from. Both are single-arm tagged
unions validated at construction time.
"""

import json
from enum import Enum
from typing import Any, TypeAlias

from attrs import define, field

from runstream.exceptions import RecordError

COVERAGE_MODES = ("set", "count", "atomic")

# Last line a runner writes on its secondary stream after a complete run.
COMPLETION_MARKER = "runstream: run complete"


class TestState(Enum):
    """Terminal state of a test or benchmark."""

    __test__ = False  # keep pytest from collecting this

    PASS = "PASS"
    FAIL = "FAIL"
    SKIP = "SKIP"


class StreamSource(Enum):
    """Which runner stream a line arrived on."""

    STDOUT = "Stdout"  # primary
    STDERR = "Stderr"  # secondary


# --- Validators ---
def _validate_count(inst: Any, attr: Any, value: int) -> None:
    """Integers on the wire are non-negative and never bools or floats."""
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise RecordError(f"Field '{attr.name}' must be a non-negative integer, got {value!r}")


def _validate_name(inst: Any, attr: Any, value: str) -> None:
    if not isinstance(value, str) or not value:
        raise RecordError(f"Field '{attr.name}' must be a non-empty string, got {value!r}")


def _validate_optional_text(inst: Any, attr: Any, value: str | None) -> None:
    if value is not None and not isinstance(value, str):
        raise RecordError(f"Field '{attr.name}' must be a string, got {type(value).__name__}")


def _validate_state(inst: Any, attr: Any, value: TestState) -> None:
    if not isinstance(value, TestState):
        raise RecordError(f"Field '{attr.name}' must be a TestState, got {value!r}")


def _validate_mode(inst: Any, attr: Any, value: str) -> None:
    if value not in COVERAGE_MODES:
        raise RecordError(f"Unknown coverage mode {value!r}. Must be one of {list(COVERAGE_MODES)}.")


def _unique_packages(value: Any) -> tuple[str, ...]:
    # Ordered set: first occurrence wins.
    if isinstance(value, str) or not hasattr(value, "__iter__"):
        raise RecordError(f"Covered packages must be a sequence of strings, got {value!r}")
    packages: dict[str, None] = {}
    for package in value:
        if not isinstance(package, str):
            raise RecordError(f"Covered package names must be strings, got {package!r}")
        packages.setdefault(package, None)
    return tuple(packages)


# --- Outcomes ---
@define(frozen=True, slots=True)
class TestOutcome:
    """Result of one test function."""

    __test__ = False

    name: str = field(validator=_validate_name)
    state: TestState = field(validator=_validate_state)
    elapsed: int = field(validator=_validate_count)  # nanoseconds
    log: str | None = field(default=None, validator=_validate_optional_text)

    @property
    def failed(self) -> bool:
        return self.state is TestState.FAIL

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"Name": self.name, "State": self.state.value, "T": self.elapsed}
        if self.log is not None:
            data["Log"] = self.log
        return data

    @classmethod
    def from_wire(cls, data: Any) -> "TestOutcome":
        _check_keys(data, required={"Name", "State", "T"}, optional={"Log"})
        return cls(
            name=data["Name"],
            state=_decode_state(data["State"]),
            elapsed=data["T"],
            log=data.get("Log"),
        )


@define(frozen=True, slots=True)
class BenchmarkOutcome:
    """Result of one benchmark function."""

    name: str = field(validator=_validate_name)
    procs: int = field(validator=_validate_count)
    elapsed: int = field(validator=_validate_count)  # nanoseconds, whole run
    iterations: int = field(validator=_validate_count)
    bytes: int = field(default=0, validator=_validate_count)  # per op
    allocs: int = field(default=0, validator=_validate_count)
    alloc_bytes: int = field(default=0, validator=_validate_count)
    state: TestState = field(default=TestState.PASS, validator=_validate_state)
    log: str | None = field(default=None, validator=_validate_optional_text)

    @property
    def failed(self) -> bool:
        return self.state is TestState.FAIL

    @property
    def ns_per_op(self) -> int:
        return self.elapsed // self.iterations if self.iterations else 0

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "Name": self.name,
            "Procs": self.procs,
            "T": self.elapsed,
            "N": self.iterations,
            "Bytes": self.bytes,
            "Allocs": self.allocs,
            "AllocBytes": self.alloc_bytes,
        }
        if self.state is not TestState.PASS:
            data["State"] = self.state.value
        if self.log is not None:
            data["Log"] = self.log
        return data

    @classmethod
    def from_wire(cls, data: Any) -> "BenchmarkOutcome":
        _check_keys(
            data,
            required={"Name", "Procs", "T", "N", "Bytes", "Allocs", "AllocBytes"},
            optional={"State", "Log"},
        )
        return cls(
            name=data["Name"],
            procs=data["Procs"],
            elapsed=data["T"],
            iterations=data["N"],
            bytes=data["Bytes"],
            allocs=data["Allocs"],
            alloc_bytes=data["AllocBytes"],
            state=_decode_state(data.get("State", TestState.PASS.value)),
            log=data.get("Log"),
        )


@define(frozen=True, slots=True)
class CoverageSummary:
    """Statement coverage for one whole runner invocation."""

    mode: str = field(validator=_validate_mode)
    total_statements: int = field(validator=_validate_count)
    active_statements: int = field(validator=_validate_count)
    covered_packages: tuple[str, ...] = field(factory=tuple, converter=_unique_packages)

    def __attrs_post_init__(self):
        if self.active_statements > self.total_statements:
            raise RecordError(
                f"Active statements ({self.active_statements}) exceed total ({self.total_statements})"
            )

    @property
    def percent(self) -> float:
        if not self.total_statements:
            return 0.0
        return 100.0 * self.active_statements / self.total_statements

    def to_wire(self) -> dict[str, Any]:
        return {
            "Mode": self.mode,
            "TotalStmts": self.total_statements,
            "ActiveStmts": self.active_statements,
            "CoveredPackages": list(self.covered_packages),
        }

    @classmethod
    def from_wire(cls, data: Any) -> "CoverageSummary":
        _check_keys(data, required={"Mode", "TotalStmts", "ActiveStmts", "CoveredPackages"})
        if not isinstance(data["CoveredPackages"], list):
            raise RecordError("CoveredPackages must be a list")
        return cls(
            mode=data["Mode"],
            total_statements=data["TotalStmts"],
            active_statements=data["ActiveStmts"],
            covered_packages=data["CoveredPackages"],
        )


Outcome: TypeAlias = TestOutcome | BenchmarkOutcome | CoverageSummary

_OUTCOME_ARMS: dict[str, type] = {
    "Test": TestOutcome,
    "Benchmark": BenchmarkOutcome,
    "Coverage": CoverageSummary,
}
_ARM_BY_TYPE = {kind: arm for arm, kind in _OUTCOME_ARMS.items()}


def _check_keys(data: Any, required: set[str], optional: frozenset[str] | set[str] = frozenset()) -> None:
    if not isinstance(data, dict):
        raise RecordError(f"Expected an object, got {type(data).__name__}")
    keys = set(data)
    missing = required - keys
    if missing:
        raise RecordError(f"Missing fields: {sorted(missing)}")
    unknown = keys - required - set(optional)
    if unknown:
        raise RecordError(f"Unknown fields: {sorted(unknown)}")


def _decode_state(value: Any) -> TestState:
    try:
        return TestState(value)
    except ValueError as e:
        raise RecordError(f"Unknown test state {value!r}") from e


def _encode_json(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def _count_arms(*arms: Any) -> int:
    return sum(1 for arm in arms if arm is not None)


# --- Wire-level record ---
@define(frozen=True, slots=True)
class WireRecord:
    """
    What a runner writes per completed event: exactly one of test,
    benchmark or coverage.
    """

    test: TestOutcome | None = field(default=None)
    benchmark: BenchmarkOutcome | None = field(default=None)
    coverage: CoverageSummary | None = field(default=None)

    def __attrs_post_init__(self):
        populated = _count_arms(self.test, self.benchmark, self.coverage)
        if populated != 1:
            raise RecordError(f"WireRecord must have exactly one populated arm, got {populated}")
        for value, kind in (
            (self.test, TestOutcome),
            (self.benchmark, BenchmarkOutcome),
            (self.coverage, CoverageSummary),
        ):
            if value is not None and not isinstance(value, kind):
                raise RecordError(f"Expected {kind.__name__}, got {type(value).__name__}")

    @classmethod
    def wrap(cls, outcome: Outcome) -> "WireRecord":
        arm = _ARM_BY_TYPE.get(type(outcome))
        if arm is None:
            raise RecordError(f"Cannot wrap {type(outcome).__name__} in a WireRecord")
        return cls(**{arm.lower(): outcome})

    @property
    def outcome(self) -> Outcome:
        return self.test or self.benchmark or self.coverage  # type: ignore[return-value]

    def to_wire(self) -> dict[str, Any]:
        return {_ARM_BY_TYPE[type(self.outcome)]: self.outcome.to_wire()}

    def to_json(self) -> str:
        return _encode_json(self.to_wire())

    @classmethod
    def from_wire(cls, data: Any) -> "WireRecord":
        if not isinstance(data, dict) or len(data) != 1:
            raise RecordError("A wire record is an object with exactly one key")
        ((arm, payload),) = data.items()
        kind = _OUTCOME_ARMS.get(arm)
        if kind is None:
            raise RecordError(f"Unknown record arm {arm!r}")
        return cls.wrap(kind.from_wire(payload))

    @classmethod
    def from_json(cls, text: str) -> "WireRecord":
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise RecordError(f"Not a JSON document: {e}") from e
        return cls.from_wire(data)


# --- Driver-level record ---
@define(frozen=True, slots=True)
class DriverRecord:
    """
    What the driver forwards downstream: the package plus exactly one of a
    relayed outcome or a passthrough line.
    """

    package: str = field(validator=_validate_name)
    test: TestOutcome | None = field(default=None, kw_only=True)
    benchmark: BenchmarkOutcome | None = field(default=None, kw_only=True)
    coverage: CoverageSummary | None = field(default=None, kw_only=True)
    stdout: str | None = field(default=None, kw_only=True, validator=_validate_optional_text)
    stderr: str | None = field(default=None, kw_only=True, validator=_validate_optional_text)

    def __attrs_post_init__(self):
        populated = _count_arms(self.test, self.benchmark, self.coverage, self.stdout, self.stderr)
        if populated != 1:
            raise RecordError(f"DriverRecord must have exactly one populated field, got {populated}")

    @classmethod
    def from_wire_record(cls, package: str, record: WireRecord) -> "DriverRecord":
        return cls(package, test=record.test, benchmark=record.benchmark, coverage=record.coverage)

    @classmethod
    def passthrough(cls, package: str, text: str, source: StreamSource) -> "DriverRecord":
        if source is StreamSource.STDOUT:
            return cls(package, stdout=text)
        return cls(package, stderr=text)

    @property
    def is_passthrough(self) -> bool:
        return self.stdout is not None or self.stderr is not None

    @property
    def outcome(self) -> Outcome | None:
        return self.test or self.benchmark or self.coverage

    def to_wire(self) -> dict[str, Any]:
        data: dict[str, Any] = {"Package": self.package}
        if self.stdout is not None:
            data[StreamSource.STDOUT.value] = self.stdout
        elif self.stderr is not None:
            data[StreamSource.STDERR.value] = self.stderr
        else:
            outcome = self.outcome
            data[_ARM_BY_TYPE[type(outcome)]] = outcome.to_wire()
        return data

    def to_json(self) -> str:
        return _encode_json(self.to_wire())

    @classmethod
    def from_wire(cls, data: Any) -> "DriverRecord":
        if not isinstance(data, dict) or len(data) != 2 or "Package" not in data:
            raise RecordError("A driver record is an object with 'Package' and one other key")
        package = data["Package"]
        ((arm, payload),) = ((k, v) for k, v in data.items() if k != "Package")
        if arm == StreamSource.STDOUT.value:
            return cls(package, stdout=payload)
        if arm == StreamSource.STDERR.value:
            return cls(package, stderr=payload)
        return cls.from_wire_record(package, WireRecord.from_wire({arm: payload}))

    @classmethod
    def from_json(cls, text: str) -> "DriverRecord":
        try:
            data = json.loads(text)
        except (ValueError, RecursionError) as e:
            raise RecordError(f"Not a JSON document: {e}") from e
        return cls.from_wire(data)


# 🔼⚙️
