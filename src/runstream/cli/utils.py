# src/runstream/cli/utils.py

"""
Logging options shared by the ``runstream`` group and its commands.

The group reads them from the command line or ``RUNSTREAM_LOG_*`` variables
and stores a LogSettings on the context. A command's own options override
the group's; whatever is still unset falls back to the command's default.
"""

import logging
from typing import Any

import click
import structlog
from attrs import define

from runstream.telemetry import setup_logging

log = structlog.get_logger("cli.utils")

LOG_LEVEL_CHOICES = click.Choice(sorted(logging.getLevelNamesMapping()), case_sensitive=False)


def logging_options(f=None, *, from_env: bool = False):
    """
    Adds --log-level, --log-file and --json-logs to a command.
    With ``from_env`` the RUNSTREAM_LOG_* variables supply unset values.
    """

    def decorate(func):
        options = [
            click.option(
                "-l",
                "--log-level",
                type=LOG_LEVEL_CHOICES,
                default=None,
                envvar="RUNSTREAM_LOG_LEVEL" if from_env else None,
                help="Driver log level (default: [driver] log_level, then WARNING).",
            ),
            click.option(
                "--log-file",
                type=click.Path(dir_okay=False, writable=True, resolve_path=True),
                default=None,
                envvar="RUNSTREAM_LOG_FILE" if from_env else None,
                help="Also write logs to this file, as JSON.",
            ),
            click.option(
                "--json-logs",
                is_flag=True,
                default=None,
                envvar="RUNSTREAM_JSON_LOGS" if from_env else None,
                help="Write stderr logs as JSON.",
            ),
        ]
        for option in reversed(options):
            func = option(func)
        return func

    return decorate(f) if f is not None else decorate


@define(frozen=True, slots=True)
class LogSettings:
    """Logging choices made on the command line; None means not given."""

    level: str | None = None
    file: str | None = None
    json: bool | None = None

    @classmethod
    def from_options(cls, options: dict[str, Any]) -> "LogSettings":
        return cls(options.get("log_level"), options.get("log_file"), options.get("json_logs"))

    def over(self, base: "LogSettings | None") -> "LogSettings":
        """Fills unset fields from ``base``."""
        if base is None:
            return self
        return LogSettings(
            level=self.level or base.level,
            file=self.file or base.file,
            json=self.json if self.json is not None else base.json,
        )

    def apply(self, default_level: str = "WARNING") -> None:
        """Configures structlog on stderr (and the log file, if any)."""
        levels = logging.getLevelNamesMapping()
        level = levels.get((self.level or default_level).upper(), logging.WARNING)
        setup_logging(level=level, json_logs=bool(self.json), log_file=self.file)
        log.debug(
            "CLI logging configured",
            level=logging.getLevelName(level),
            file=self.file or "stderr",
            json=bool(self.json),
        )


def configure_command_logging(
    ctx: click.Context,
    options: dict[str, Any],
    default_level: str = "WARNING",
) -> LogSettings:
    """Applies a command's logging options on top of the group's and returns the result."""
    settings = LogSettings.from_options(options).over(ctx.find_object(LogSettings))
    settings.apply(default_level)
    return settings

# ⚙️🛠️
