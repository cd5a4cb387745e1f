# src/runstream/telemetry/__init__.py

"""
Logging setup for runstream. Logs always go to stderr: stdout carries data.
"""

from .logger import StructLogger, configure_runner_logging, setup_logging

__all__ = ["StructLogger", "configure_runner_logging", "setup_logging"]

# 🔼⚙️
