#
# config/models.py
#
"""
Attrs-based data models for runstream configuration.
"""

import logging
import re
import shlex
from collections.abc import Mapping
from pathlib import Path
from typing import Any

from attrs import define, evolve, field

from runstream.exceptions import ConfigurationConflict, ConfigurationError
from runstream.records import COVERAGE_MODES


# --- Validators ---
def _validate_log_level(inst: Any, attr: Any, value: str) -> None:
    """Validator for standard logging level names."""
    valid = logging._nameToLevel.keys()
    if value.upper() not in valid:
        raise ConfigurationError(f"Invalid log_level '{value}'. Must be one of {list(valid)}.")


def _validate_positive_int(inst: Any, attr: Any, value: int) -> None:
    """Validator ensures integer is positive."""
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ConfigurationError(f"Field '{attr.name}' must be positive integer, got {value}")


def _validate_optional_positive(inst: Any, attr: Any, value: float | None) -> None:
    if value is not None and (isinstance(value, bool) or not isinstance(value, int | float) or value <= 0):
        raise ConfigurationError(f"Field '{attr.name}' must be a positive number, got {value}")


def _validate_command(inst: Any, attr: Any, value: tuple[str, ...]) -> None:
    if not value or not all(isinstance(part, str) and part for part in value):
        raise ConfigurationError(f"Runner command must be a non-empty list of strings, got {value!r}")


def _validate_cover_mode(inst: Any, attr: Any, value: str | None) -> None:
    if value is not None and value not in COVERAGE_MODES:
        raise ConfigurationError(f"Invalid cover_mode '{value}'. Must be one of {list(COVERAGE_MODES)}.")


def _validate_pattern(inst: Any, attr: Any, value: str | None) -> None:
    """Test and benchmark filters must compile before any runner sees them."""
    if value is None:
        return
    if not isinstance(value, str):
        raise ConfigurationError(f"Field '{attr.name}' must be a string, got {value!r}")
    try:
        re.compile(value)
    except re.error as e:
        raise ConfigurationError(f"Invalid regular expression for '{attr.name}': {value!r} ({e})") from e


def _to_command(value: Any) -> tuple[str, ...]:
    if isinstance(value, str):
        return tuple(shlex.split(value))
    return tuple(value)


# --- Package and driver models ---
@define(frozen=True, slots=True)
class PackageSpec:
    """One test package: the runner command that executes its tests."""

    name: str = field()
    command: tuple[str, ...] = field(converter=_to_command, validator=_validate_command)
    cwd: Path | None = field(default=None)
    env: Mapping[str, str] = field(factory=dict)

    @property
    def display_command(self) -> str:
        return shlex.join(self.command)


@define(frozen=True, slots=True)
class DriverOptions:
    """How one driver invocation runs and reports its runners."""

    json_output: bool = field(default=False)
    verbose: bool = field(default=False)
    dry_run: bool = field(default=False)
    trace: bool = field(default=False)
    jobs: int = field(default=4, validator=_validate_positive_int)
    timeout: float | None = field(default=None, validator=_validate_optional_positive)
    run_pattern: str | None = field(default=None, validator=_validate_pattern)
    bench_pattern: str | None = field(default=None, validator=_validate_pattern)
    bench_time: float | None = field(default=None, validator=_validate_optional_positive)
    cover_mode: str | None = field(default=None, validator=_validate_cover_mode)
    cover_profile_dir: Path | None = field(default=None)

    def validate(self) -> None:
        """
        Rejects combinations that would put unstructured text on the
        structured stream. Called before any runner starts.
        """
        if not self.json_output:
            return
        conflicts = [flag for flag, on in (("--dry-run", self.dry_run), ("--trace", self.trace)) if on]
        if conflicts:
            raise ConfigurationConflict(["--json", *conflicts])

    def runner_env(self, package: str) -> dict[str, str]:
        """
        Environment variables that hand these options down to a runner.

        Runners always write records; the driver renders them for people.
        Runner-side verbose detail is only requested in structured mode,
        where it ends up on stderr as passthrough.
        """
        env = {
            "RUNSTREAM_JSON": "1",
            "RUNSTREAM_VERBOSE": "1" if self.verbose and self.json_output else "0",
        }
        if self.run_pattern:
            env["RUNSTREAM_RUN"] = self.run_pattern
        if self.bench_pattern:
            env["RUNSTREAM_BENCH"] = self.bench_pattern
        if self.bench_time:
            env["RUNSTREAM_BENCHTIME"] = str(self.bench_time)
        if self.cover_mode:
            env["RUNSTREAM_COVER_MODE"] = self.cover_mode
            if self.cover_profile_dir is not None:
                safe_name = package.replace("/", "_")
                env["RUNSTREAM_COVER_PROFILE"] = str(self.cover_profile_dir / f"{safe_name}.cover")
        return env

    def merged(self, **overrides: Any) -> "DriverOptions":
        """Returns a copy with every non-None override applied."""
        return evolve(self, **{key: value for key, value in overrides.items() if value is not None})


@define(frozen=True, slots=True)
class GlobalConfig:
    """Global default settings for runstream."""

    log_level: str = field(default="WARNING", validator=_validate_log_level)

    @property
    def numeric_log_level(self) -> int:
        return logging.getLevelName(self.log_level.upper())


@define(frozen=True, slots=True)
class RunstreamConfig:
    """Root configuration object for the runstream driver."""

    packages: dict[str, PackageSpec] = field(factory=dict)
    driver: DriverOptions = field(factory=DriverOptions)
    global_config: GlobalConfig = field(factory=GlobalConfig)

    def select(self, names: list[str] | tuple[str, ...]) -> list[PackageSpec]:
        """Returns the named packages in the given order, or all when none named."""
        if not names:
            return list(self.packages.values())
        unknown = [name for name in names if name not in self.packages]
        if unknown:
            raise ConfigurationError(
                f"Unknown package(s): {', '.join(unknown)}. Available: {', '.join(self.packages) or 'none'}"
            )
        return [self.packages[name] for name in names]


# 🔼⚙️
