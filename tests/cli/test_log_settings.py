#
# tests/cli/test_log_settings.py
#
"""
Tests for how group and command logging options combine.
"""

import logging
from unittest.mock import patch

import click
from click.testing import CliRunner

from runstream.cli.main import cli
from runstream.cli.utils import LogSettings, configure_command_logging


class TestLogSettings:
    def test_command_options_win_over_group(self) -> None:
        group = LogSettings(level="INFO", file="/tmp/group.log", json=True)
        command = LogSettings(level="DEBUG", file=None, json=None)

        assert command.over(group) == LogSettings(level="DEBUG", file="/tmp/group.log", json=True)

    def test_nothing_given_keeps_defaults(self) -> None:
        assert LogSettings().over(None) == LogSettings()

    def test_config_level_used_only_when_none_given(self) -> None:
        with patch("runstream.cli.utils.setup_logging") as setup:
            LogSettings().apply(default_level="DEBUG")
            LogSettings(level="ERROR").apply(default_level="DEBUG")

        assert [c.kwargs["level"] for c in setup.call_args_list] == [logging.DEBUG, logging.ERROR]

    def test_command_logging_layers_on_context(self) -> None:
        ctx = click.Context(cli, obj=LogSettings(level="INFO", json=True))
        with patch("runstream.cli.utils.setup_logging"):
            settings = configure_command_logging(ctx, {"log_level": None, "log_file": None, "json_logs": None})

        assert settings == LogSettings(level="INFO", json=True)


class TestGroupOptions:
    def test_env_level_reaches_the_group(self) -> None:
        with patch("runstream.cli.utils.setup_logging") as setup:
            result = CliRunner().invoke(cli, ["config", "--help"], env={"RUNSTREAM_LOG_LEVEL": "debug"})

        assert result.exit_code == 0
        assert setup.call_args.kwargs["level"] == logging.DEBUG

    def test_version(self) -> None:
        result = CliRunner().invoke(cli, ["--version"])

        assert result.exit_code == 0
        assert "runstream" in result.output
