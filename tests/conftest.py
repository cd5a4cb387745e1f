import logging
import sys
import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest
import structlog

from runstream.config import PackageSpec


@pytest.fixture(autouse=True)
def _quiet_structlog():
    """Keeps unconfigured structlog from printing into captured stdout."""
    structlog.configure(
        processors=[structlog.processors.KeyValueRenderer()],
        logger_factory=structlog.PrintLoggerFactory(sys.stderr),
        cache_logger_on_first_use=False,
    )
    yield
    structlog.reset_defaults()
    # CLI tests attach handlers bound to CliRunner streams.
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)


@pytest.fixture
def runner_script(tmp_path: Path) -> Callable[[str, str], PackageSpec]:
    """Writes a Python runner script and returns a PackageSpec that runs it."""

    def make(name: str, body: str) -> PackageSpec:
        script = tmp_path / f"{name.replace('/', '_')}_runner.py"
        script.write_text(textwrap.dedent(body))
        return PackageSpec(name=name, command=[sys.executable, str(script)], cwd=tmp_path)

    return make
