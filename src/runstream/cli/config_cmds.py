# src/runstream/cli/config_cmds.py

from pathlib import Path

import click
import structlog
from rich.pretty import pretty_repr

from runstream.cli.utils import configure_command_logging, logging_options
from runstream.config import load_config
from runstream.exceptions import ConfigurationError
from runstream.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.config")


@click.group(name="config")
def config_cli():
    """Commands for inspecting and validating configuration."""
    pass


@config_cli.command(name="show")
@click.option(
    "-c",
    "--config-path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("runstream.toml"),
    show_default=True,
    envvar="RUNSTREAM_CONF",
    help="Path to the runstream configuration file (env var RUNSTREAM_CONF).",
    show_envvar=True,
)
@logging_options
@click.pass_context
def show_config(ctx: click.Context, config_path: Path, **kwargs):
    """Load, validate, and display the configuration."""
    configure_command_logging(ctx, kwargs)
    log.info("Executing 'config show' command", config_path=str(config_path))

    try:
        config = load_config(config_path)
        log.debug("Configuration loaded successfully by 'show' command.")
        click.echo(pretty_repr(config, expand_all=True))

        if not config.packages:
            log.warning("No packages configured.")
    except ConfigurationError as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: Configuration problem in '{config_path}':\n{e}", err=True)
        ctx.exit(1)

# 🔼⚙️
