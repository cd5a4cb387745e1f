# src/runstream/cli/__init__.py

from runstream.cli.main import cli

__all__ = ["cli"]

# 🔼⚙️
