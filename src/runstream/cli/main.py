# src/runstream/cli/main.py

"""
The ``runstream`` command group: ``test`` runs packages, ``config`` inspects
the configuration file.
"""

from importlib.metadata import PackageNotFoundError, version

import click
import structlog

from runstream.cli.config_cmds import config_cli
from runstream.cli.test_cmds import test_cli
from runstream.cli.utils import LogSettings, logging_options
from runstream.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.main")


def _installed_version() -> str:
    try:
        return version("runstream")
    except PackageNotFoundError:
        return "0.0.0-dev"


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(_installed_version(), "-V", "--version", prog_name="runstream")
@logging_options(from_env=True)
@click.pass_context
def cli(ctx: click.Context, **options):
    """
    Runstream: run test runners and relay their results.

    Launches one runner per configured package and streams what they report,
    as text for people or as one JSON record per line (test --json).

    \b
    Driver settings: command options > [driver] table > built-in defaults.
    Log settings: command options > these options or RUNSTREAM_LOG_*
    > [driver] log_level > WARNING.
    """
    ctx.obj = LogSettings.from_options(options)
    ctx.obj.apply()
    log.debug("runstream group initialized", settings=ctx.obj)


cli.add_command(config_cli)
cli.add_command(test_cli)

if __name__ == "__main__":
    cli()

# 🖥️⚙️
