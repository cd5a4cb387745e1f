# src/runstream/telemetry/logger/__init__.py

from .base import StructLogger, configure_runner_logging, setup_logging

__all__ = ["StructLogger", "configure_runner_logging", "setup_logging"]

# 🔼⚙️
